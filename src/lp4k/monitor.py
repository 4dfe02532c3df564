# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Live cluster mode: follow every Karpenter pod and export periodically.

One ingestion thread per pod log stream feeds the shared registry. The main
thread exports a registry snapshot to the nodeclaim ConfigMap (and prints the
table) every update interval. SIGINT/SIGTERM stops all streams and triggers
one final export.
"""

import logging
import signal
import subprocess
import sys
import threading
import time
from types import FrameType
from typing import TextIO

from .errors import KubectlError
from .exporter import encode_snapshot, restore_snapshot, table_as_dicts, write_table
from .ingest import LogParser
from .kubectl import KubectlClient
from .registry import NodeclaimRegistry
from .stats import format_stats_summary, get_health_status, get_stats_dict
from .status_server import StatusServer

logger = logging.getLogger(__name__)


class NodeclaimMonitor:
    """
    Follows Karpenter pod logs and keeps the nodeclaim ConfigMap current.
    """

    STREAM_JOIN_TIMEOUT = 5.0  # seconds per stream thread on shutdown

    def __init__(
        self,
        kubectl: KubectlClient,
        label: str,
        configmap_name: str,
        update_interval: float,
        port: int | None = None,
        resume: bool = False,
        registry: NodeclaimRegistry | None = None,
        output: TextIO | None = None,
    ):
        """
        Initialize the monitor.

        Args:
            kubectl: Client scoped to the Karpenter namespace
            label: Label selector of the Karpenter pods
            configmap_name: ConfigMap receiving the snapshot export
            update_interval: Seconds between periodic exports
            port: Port for the status server (None to disable)
            resume: Reload the existing ConfigMap before streaming
            registry: Registry to fill (default: a new one)
            output: Stream for the tabular export (default: sys.stdout)
        """
        self.kubectl = kubectl
        self.label = label
        self.configmap_name = configmap_name
        self.update_interval = update_interval
        self.resume = resume
        self.registry = registry if registry is not None else NodeclaimRegistry()
        self.parser = LogParser(self.registry)
        self._output = output if output is not None else sys.stdout
        self._port = port
        self._status_server: StatusServer | None = None

        self._shutdown = threading.Event()
        self._streams_lock = threading.Lock()
        self._streams: dict[str, bool] = {}  # pod -> still streaming
        self._processes: dict[str, subprocess.Popen] = {}
        self._threads: list[threading.Thread] = []

    def __enter__(self) -> "NodeclaimMonitor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Stop streams and the status server."""
        self._stop_streams()
        self._stop_status_server()

    def request_shutdown(self) -> None:
        self._shutdown.set()

    def _setup_signal_handlers(self) -> None:
        signal.signal(signal.SIGTERM, self._handle_shutdown_signal)
        signal.signal(signal.SIGINT, self._handle_shutdown_signal)

    def _handle_shutdown_signal(self, signum: int, frame: FrameType | None = None) -> None:
        sig_name = signal.Signals(signum).name
        logger.info(f"Received {sig_name}, initiating graceful shutdown...")
        self._shutdown.set()

    # ------------------------------------------------------------------
    # Streams
    # ------------------------------------------------------------------

    def _stream_states(self) -> dict[str, bool]:
        with self._streams_lock:
            return dict(self._streams)

    def _start_streams(self, pods: list[str]) -> None:
        for pod in pods:
            logger.info(f"Streaming logs from pod \"{pod}\" in namespace \"{self.kubectl.namespace}\"")
            process = self.kubectl.stream_logs(pod)
            with self._streams_lock:
                self._streams[pod] = True
                self._processes[pod] = process
            thread = threading.Thread(
                target=self._follow_pod, args=(pod, process), daemon=True, name=f"stream-{pod}"
            )
            self._threads.append(thread)
            thread.start()

    def _follow_pod(self, pod: str, process) -> None:
        try:
            result = self.parser.parse_stream(process.stdout, source=pod, stop_event=self._shutdown)
            logger.info(f"Log stream of pod {pod} ended after {result.lines} lines")
        except Exception as e:
            logger.error(f"Error reading log stream of pod {pod}: {e}", exc_info=True)
        finally:
            with self._streams_lock:
                self._streams[pod] = False

    def _stop_streams(self) -> None:
        with self._streams_lock:
            processes = list(self._processes.values())
            self._processes.clear()
        for process in processes:
            if process.poll() is None:
                process.terminate()
        for thread in self._threads:
            thread.join(timeout=self.STREAM_JOIN_TIMEOUT)
        self._threads = []
        for process in processes:
            try:
                process.wait(timeout=self.STREAM_JOIN_TIMEOUT)
            except subprocess.TimeoutExpired:
                process.kill()

    # ------------------------------------------------------------------
    # Status server
    # ------------------------------------------------------------------

    def _start_status_server(self) -> None:
        if self._port is None:
            return
        self._status_server = StatusServer(
            port=self._port,
            get_stats=self.get_stats,
            get_nodeclaims=lambda: table_as_dicts(self.registry.snapshot()),
            get_health=lambda: get_health_status(self._stream_states()),
        )
        self._status_server.start()

    def _stop_status_server(self) -> None:
        if self._status_server is not None:
            self._status_server.stop()
            self._status_server = None

    def get_stats(self) -> dict:
        return get_stats_dict(self.registry, self.kubectl.stats, self._stream_states())

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def load_existing(self) -> int:
        """Merge the current ConfigMap content into the registry."""
        try:
            data = self.kubectl.get_configmap(self.configmap_name)
        except KubectlError as e:
            logger.error(f"Cannot read ConfigMap {self.configmap_name}: {e}")
            return 0
        if data is None:
            logger.info(f"ConfigMap {self.configmap_name} does not exist yet, starting empty")
            return 0
        return restore_snapshot(self.registry, data, source=f"ConfigMap {self.configmap_name}")

    def export(self, print_table: bool = True) -> None:
        """Write one point-in-time snapshot to the ConfigMap and optionally stdout."""
        pairs = self.registry.snapshot()
        data = encode_snapshot(pairs)
        try:
            self.kubectl.write_configmap(self.configmap_name, data)
            logger.info(f"Updated ConfigMap {self.kubectl.namespace}/{self.configmap_name} ({len(data)} nodeclaims)")
        except KubectlError as e:
            logger.error(f"Failed to update ConfigMap {self.configmap_name}: {e}")
        self.registry.count("exports")
        if print_table:
            logger.info(f"Current time: {time.strftime('%A, %d-%b-%y %H:%M:%S %Z')}")
            write_table(pairs, self._output)

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> int:
        """
        Stream, export periodically, and export once more on shutdown.

        Returns:
            Process exit code
        """
        self._setup_signal_handlers()

        try:
            pods = self.kubectl.list_pods(self.label)
        except KubectlError as e:
            logger.error(f"Failed to get pods: {e}")
            return 1
        if not pods:
            logger.error(
                f"Empty pod list - no pods in namespace \"{self.kubectl.namespace}\" "
                f"with label \"{self.label}\" - finishing"
            )
            return 1

        logger.info("=" * 60)
        logger.info("Starting nodeclaim monitor")
        logger.info("=" * 60)
        logger.info(f"  Namespace: {self.kubectl.namespace}")
        logger.info(f"  Pods ({self.label}): {', '.join(pods)}")
        logger.info(f"  ConfigMap: {self.configmap_name}")
        logger.info(f"  Update interval: {self.update_interval:g}s")

        try:
            if self.resume:
                self.load_existing()
            self._start_streams(pods)
            self._start_status_server()
            logger.info("=" * 60)

            self.export(print_table=False)
            while not self._shutdown.wait(self.update_interval):
                self.export()
                logger.info(format_stats_summary(self.get_stats()))
                if not any(self._stream_states().values()):
                    logger.warning("All pod log streams have ended")
                    break
                logger.info(
                    f"Next update in {self.update_interval:g} seconds, type Ctrl-C to end program"
                )
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        except KubectlError as e:
            logger.error(f"Failed to stream pod logs: {e}")
            return 1
        finally:
            self._shutdown.set()
            self._stop_streams()
            logger.info("Final export")
            self.export()
            logger.info(f"Final stats - {format_stats_summary(self.get_stats())}")
            self._stop_status_server()

        return 0
