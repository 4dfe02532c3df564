# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Feed raw log lines into the registry.

LogParser runs the per-line pipeline (classify -> extract -> apply) and keeps
line numbers per source for diagnostics. A single LogParser may be shared by
many threads, one per log source; all shared state lives in the registry.
"""

import logging
import signal
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from types import FrameType

from .classifier import classify_line
from .config import STDIN_SOURCE
from .extractor import extract_event
from .registry import ApplyOutcome, EventOrigin, NodeclaimRegistry

logger = logging.getLogger(__name__)


@dataclass
class SourceResult:
    """Outcome of ingesting one source."""

    source: str
    lines: int = 0
    applied: int = 0
    interrupted: bool = False


class LogParser:
    """
    Classify, extract, and apply Karpenter log lines.

    Example:
        registry = NodeclaimRegistry()
        parser = LogParser(registry)
        parser.parse_file("/tmp/karpenter.log")
        write_table(registry.snapshot())
    """

    def __init__(self, registry: NodeclaimRegistry):
        self.registry = registry

    def parse_line(self, line: str, source: str, line_no: int) -> ApplyOutcome | None:
        """
        Process one raw line.

        Returns:
            The ApplyOutcome, or None if the line was not a lifecycle event or
            no pattern variant matched it
        """
        kind = classify_line(line)
        event = extract_event(kind, line) if kind is not None else None
        outcome = self.registry.record_line(
            kind is not None, event, EventOrigin(source=source, line=line_no)
        )
        if kind is not None and event is None:
            logger.warning(
                f"Parsing error for message \"{kind.value}\" in line {line_no} in {source}, "
                f"probably Karpenter log syntax has changed!"
            )
        return outcome

    def parse_stream(
        self,
        lines: Iterable[str],
        source: str,
        stop_event: threading.Event | None = None,
    ) -> SourceResult:
        """
        Process lines in arrival order until the iterable is exhausted.

        Args:
            lines: Line source (open file, pipe, list); trailing newlines are stripped
            source: Identifier used in diagnostics (file name, pod name, STDIN)
            stop_event: Optional event; when set, ingestion stops before the next line

        Returns:
            SourceResult with line and applied-event counts
        """
        result = SourceResult(source=source)
        self._consume(lines, result, stop_event)
        return result

    def _consume(
        self,
        lines: Iterable[str],
        result: SourceResult,
        stop_event: threading.Event | None = None,
        busy: threading.Event | None = None,
    ) -> None:
        for raw in lines:
            if stop_event is not None and stop_event.is_set():
                result.interrupted = True
                break
            result.lines += 1
            if busy is not None:
                busy.set()
            try:
                outcome = self.parse_line(raw.rstrip("\r\n"), result.source, result.lines)
            finally:
                if busy is not None:
                    busy.clear()
            if outcome is not None and outcome.applied:
                result.applied += 1
            # Stop before blocking on the next read
            if stop_event is not None and stop_event.is_set():
                result.interrupted = True
                break

    def parse_file(self, path: str) -> SourceResult:
        """
        Read and process a whole log file.

        Raises:
            OSError: If the file cannot be opened (fatal for the CLI)
        """
        with open(path, "r", encoding="utf-8", errors="replace") as f:
            return self.parse_stream(f, source=path)

    def parse_stdin(self, stream: Iterable[str]) -> SourceResult:
        """
        Process standard input until EOF, Ctrl-C or SIGTERM.

        A signal that arrives while a line is being applied takes effect once
        that line is done, so no record is left half-updated. A signal that
        arrives while waiting for input ends the read immediately.
        """
        result = SourceResult(source=STDIN_SOURCE)
        stop_event = threading.Event()
        busy = threading.Event()

        def handle_signal(signum: int, frame: FrameType | None = None) -> None:
            logger.info(f"Received {signal.Signals(signum).name}, finishing STDIN")
            stop_event.set()
            if not busy.is_set():
                raise KeyboardInterrupt

        previous = {}
        if threading.current_thread() is threading.main_thread():
            for signum in (signal.SIGINT, signal.SIGTERM):
                previous[signum] = signal.signal(signum, handle_signal)
        try:
            self._consume(stream, result, stop_event, busy)
        except KeyboardInterrupt:
            if not stop_event.is_set():
                logger.info("Received keyboard interrupt, finishing STDIN")
            result.interrupted = True
        finally:
            for signum, handler in previous.items():
                signal.signal(signum, handler)
        return result
