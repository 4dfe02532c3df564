# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import io
import logging
import signal
import threading

import _karpenter_log_lines as lines
import pytest

from lp4k.ingest import LogParser
from lp4k.registry import ApplyOutcome, EventOrigin


@pytest.fixture
def parser(registry):
    return LogParser(registry)


def test_full_lifecycle(parser, registry):
    result = parser.parse_stream(lines.lifecycle(), source="karpenter.log")

    assert result.lines == 9
    assert result.applied == 8
    record = registry.get(lines.NODECLAIM)
    assert record.instancetypes == "c4.large|c4.xlarge|c5.large|and 55 other(s)"
    assert record.providerid == "i-0123456789abcdef0"
    assert record.k8snodename == lines.NODENAME
    assert record.nodereadytimesec == 60.0
    assert record.disruptionreason == "underutilized"
    assert record.annotation == "karpenter.sh/nodeclaim-termination-timestamp:2024-10-01T12:30:05Z"
    assert record.taint == "karpenter.sh/disrupted::NoSchedule"
    assert record.nodeterminationtimesec == 600.0
    assert record.nodelifecycletimesec == 7805.0
    assert record.initialized and record.deleted

    counters = registry.stats_snapshot()
    assert counters.lines_read == 9
    assert counters.lines_classified == 8
    assert counters.extraction_failures == 0


def test_unparseable_line_is_reported_and_skipped(parser, registry, caplog):
    broken = lines.launched().replace('"provider-id"', '"providerID"')
    with caplog.at_level(logging.WARNING):
        assert parser.parse_line(broken, "karpenter.log", 42) is None
    assert "line 42 in karpenter.log" in caplog.text
    assert "probably Karpenter log syntax has changed" in caplog.text
    assert registry.stats.extraction_failures == 1


def test_unrelated_lines_are_silent(parser, registry, caplog):
    with caplog.at_level(logging.WARNING):
        parser.parse_stream([lines.unrelated(), "plain text", ""], source="karpenter.log")
    assert caplog.text == ""
    assert registry.stats.lines_classified == 0


def test_parse_line_outcome(parser):
    assert parser.parse_line(lines.created(), "s", 1) is ApplyOutcome.CREATED
    assert parser.parse_line(lines.deleted(nodeclaim="other"), "s", 2) is ApplyOutcome.UNKNOWN_NODECLAIM


def test_legacy_taint_resolved_through_registration(parser, registry):
    parser.parse_stream(
        [lines.created(), lines.registered(), lines.tainted_v10(key="node.kubernetes.io/unschedulable")],
        source="karpenter.log",
    )
    assert registry.get(lines.NODECLAIM).taint == "node.kubernetes.io/unschedulable::NoSchedule"


def test_files_are_parsed_in_order(parser, registry, tmp_path):
    first = tmp_path / "karpenter-1.log"
    second = tmp_path / "karpenter-2.log"
    first.write_text("\n".join([lines.created(), lines.registered()]) + "\n")
    second.write_text("\n".join([lines.tainted_v037(), lines.deleted()]) + "\n")

    parser.parse_file(str(first))
    result = parser.parse_file(str(second))

    assert result.source == str(second)
    record = registry.get(lines.NODECLAIM)
    assert record.tainttime == "2024-10-01T12:00:06.000Z"
    assert record.deleted is True


def test_missing_file(parser, tmp_path):
    with pytest.raises(OSError):
        parser.parse_file(str(tmp_path / "missing.log"))


def test_crlf_line_endings(parser, registry):
    parser.parse_stream(io.StringIO(lines.created() + "\r\n"), source="karpenter.log")
    assert registry.get(lines.NODECLAIM).instancetypes.endswith("and 55 other(s)")


def test_stop_event_interrupts_stream(parser, registry):
    stop = threading.Event()
    stop.set()
    result = parser.parse_stream(lines.lifecycle(), source="pod", stop_event=stop)
    assert result.interrupted
    assert result.lines == 0
    assert len(registry) == 0


def test_stdin_keyboard_interrupt_keeps_progress(parser, registry):
    def interrupted_stdin():
        yield lines.created()
        yield lines.launched()
        raise KeyboardInterrupt

    result = parser.parse_stdin(interrupted_stdin())

    assert result.source == "STDIN"
    assert result.interrupted
    assert result.lines == 2
    assert registry.get(lines.NODECLAIM).launchedtime == "2024-10-01T10:00:02.000Z"


class _CountingLock:
    def __init__(self):
        self._lock = threading.Lock()
        self.acquisitions = 0

    def __enter__(self):
        self._lock.acquire()
        self.acquisitions += 1
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self._lock.release()


@pytest.mark.parametrize(
    "line",
    [lines.created(), lines.unrelated(), lines.launched().replace('"zone"', '"az"'), lines.deleted()],
)
def test_one_critical_section_per_line(parser, registry, line):
    lock = _CountingLock()
    registry._lock = lock
    parser.parse_line(line, "karpenter.log", 1)
    assert lock.acquisitions == 1


def test_line_counters_single_call(registry):
    origin = EventOrigin(source="s", line=1)
    assert registry.record_line(False, None, origin) is None
    assert registry.record_line(True, None, origin) is None
    counters = registry.stats_snapshot()
    assert (counters.lines_read, counters.lines_classified, counters.extraction_failures) == (2, 1, 1)


class TestStdinSignals:
    def test_signal_during_apply_finishes_the_line(self, parser, registry):
        original = registry.record_line

        def record_line_with_signal(classified, event, origin):
            if origin.line == 2:
                signal.raise_signal(signal.SIGINT)
            return original(classified, event, origin)

        registry.record_line = record_line_with_signal
        result = parser.parse_stdin(iter([lines.created(), lines.deleted(), lines.launched()]))

        assert result.interrupted
        assert result.lines == 2
        record = registry.get(lines.NODECLAIM)
        assert record.deletedtime == "2024-10-01T12:10:05.000Z"
        assert record.deleted is True
        assert record.nodelifecycletimesec == 7805.0
        assert record.launchedtime == ""

    @pytest.mark.parametrize("signum", [signal.SIGINT, signal.SIGTERM])
    def test_signal_while_waiting_for_input(self, parser, registry, signum):
        def stdin():
            yield lines.created()
            signal.raise_signal(signum)
            yield lines.launched()

        result = parser.parse_stdin(stdin())

        assert result.interrupted
        assert result.lines == 1
        assert registry.get(lines.NODECLAIM).launchedtime == ""

    def test_previous_handlers_restored(self, parser):
        before = (signal.getsignal(signal.SIGINT), signal.getsignal(signal.SIGTERM))
        parser.parse_stdin(iter([lines.created()]))
        assert (signal.getsignal(signal.SIGINT), signal.getsignal(signal.SIGTERM)) == before
