# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""HTTP status endpoint for the live nodeclaim monitor."""

import json
import logging
import threading
from collections.abc import Callable
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse

logger = logging.getLogger(__name__)


def create_status_handler(
    get_stats: Callable[[], dict],
    get_nodeclaims: Callable[[], list],
    get_health: Callable[[], tuple],
) -> type:
    """
    Create a request handler class bound to the monitor's callbacks.

    Args:
        get_stats: Callback returning the stats dict
        get_nodeclaims: Callback returning the sorted export as a list of dicts
        get_health: Callback returning (is_healthy: bool, details: dict)

    Returns:
        A BaseHTTPRequestHandler subclass
    """

    class StatusHandler(BaseHTTPRequestHandler):
        """Serves /stats, /nodeclaims and /healthz as JSON."""

        def log_message(self, format: str, *args) -> None:
            logger.debug(f"{self.address_string()} {format % args}")

        def _send_json(self, data: dict, status: int = 200, pretty: bool = True) -> None:
            body = json.dumps(data, indent=2 if pretty else None, default=str).encode("utf-8")
            self.send_response(status)
            self.send_header("Content-Type", "application/json")
            self.send_header("Content-Length", str(len(body)))
            self.end_headers()
            self.wfile.write(body)

        def do_GET(self) -> None:
            parsed = urlparse(self.path)
            pretty_values = parse_qs(parsed.query).get("pretty", ["true"])
            pretty = any(v.lower() in ("true", "1", "yes") for v in pretty_values)

            if parsed.path in ("/stats", "/"):
                self._send_json(get_stats(), pretty=pretty)
            elif parsed.path == "/nodeclaims":
                rows = get_nodeclaims()
                self._send_json({"nodeclaims": rows, "count": len(rows)}, pretty=pretty)
            elif parsed.path == "/healthz":
                is_healthy, details = get_health()
                response = {"status": "ok" if is_healthy else "degraded", **details}
                self._send_json(response, 200 if is_healthy else 503, pretty)
            else:
                self._send_json({"error": "Not found"}, 404, pretty)

    return StatusHandler


class StatusServer:
    """
    HTTP status server running in a daemon thread.

    Use as a context manager or call start()/stop().
    """

    def __init__(
        self,
        port: int,
        get_stats: Callable[[], dict],
        get_nodeclaims: Callable[[], list],
        get_health: Callable[[], tuple],
        host: str = "0.0.0.0",
    ):
        self._host = host
        self._port = port
        self._handler_class = create_status_handler(get_stats, get_nodeclaims, get_health)
        self._server: ThreadingHTTPServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port (differs from the requested one when 0 was requested)."""
        if self._server is not None:
            return self._server.server_address[1]
        return self._port

    def start(self) -> None:
        """Start the HTTP server in a background thread."""
        try:
            self._server = ThreadingHTTPServer((self._host, self._port), self._handler_class)
        except OSError as e:
            logger.error(f"Failed to bind status server to port {self._port}: {e}")
            raise SystemExit(1) from e

        self._thread = threading.Thread(
            target=self._server.serve_forever,
            daemon=True,
            name="status-server",
        )
        self._thread.start()
        logger.info(f"  Status server: http://{self._host}:{self.port}")

    def stop(self) -> None:
        """Stop the HTTP server."""
        if self._server is not None:
            self._server.shutdown()
            self._server.server_close()
            self._server = None
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None

    def __enter__(self) -> "StatusServer":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()
