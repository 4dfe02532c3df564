# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

import _karpenter_log_lines as lines
import pytest

from lp4k.extractor import (
    EVENT_PATTERNS,
    AnnotatedEvent,
    CreatedEvent,
    DeletedEvent,
    DisruptingEvent,
    InitializedEvent,
    InterruptionEvent,
    LaunchedEvent,
    RegisteredEvent,
    Taint,
    TaintedEvent,
    extract_event,
    normalize_instance_types,
)
from lp4k.models import MessageKind


class TestNormalizeInstanceTypes:
    def test_truncated_list(self):
        raw = "c4.large, c4.xlarge, c5.large and 55 other(s)"
        assert normalize_instance_types(raw) == "c4.large|c4.xlarge|c5.large|and 55 other(s)"

    def test_explicit_list_only(self):
        assert normalize_instance_types("m5.large, m5.xlarge") == "m5.large|m5.xlarge"

    def test_single_type(self):
        assert normalize_instance_types("c5.large") == "c5.large"

    def test_no_commas_in_output(self):
        raw = "a1.large, a1.xlarge, c6g.large, c6g.xlarge, m6g.large and 120 other(s)"
        assert "," not in normalize_instance_types(raw)


class TestExtractEvent:
    def test_created(self):
        event = extract_event(MessageKind.CREATED, lines.created())
        assert event == CreatedEvent(
            time="2024-10-01T10:00:00.000Z",
            nodepool="default",
            nodeclaim="default-abcde",
            instancetypes="c4.large|c4.xlarge|c5.large|and 55 other(s)",
        )

    def test_launched_keeps_provider_id_tail(self):
        event = extract_event(MessageKind.LAUNCHED, lines.launched())
        assert event == LaunchedEvent(
            time="2024-10-01T10:00:02.000Z",
            nodeclaim="default-abcde",
            providerid="i-0123456789abcdef0",
            instancetype="c5.large",
            zone="us-west-2a",
            capacitytype="spot",
        )

    def test_registered(self):
        event = extract_event(MessageKind.REGISTERED, lines.registered())
        assert event == RegisteredEvent(
            time="2024-10-01T10:00:30.000Z",
            nodeclaim="default-abcde",
            nodename="ip-10-0-1-23.us-west-2.compute.internal",
        )

    def test_initialized(self):
        event = extract_event(MessageKind.INITIALIZED, lines.initialized())
        assert event == InitializedEvent(time="2024-10-01T10:01:00.000Z", nodeclaim="default-abcde")

    def test_disrupting(self):
        event = extract_event(
            MessageKind.DISRUPTING,
            lines.disrupting(reason="drifted", decision="replace", disrupted=1, replacements=1, pods=7),
        )
        assert event == DisruptingEvent(
            time="2024-10-01T12:00:00.000Z",
            reason="drifted",
            decision="replace",
            disrupted_node_count="1",
            replacement_node_count="1",
            pod_count="7",
            nodeclaim="default-abcde",
        )

    def test_interruption(self):
        event = extract_event(MessageKind.INTERRUPTION, lines.interruption())
        assert event == InterruptionEvent(
            time="2024-10-01T11:00:00.000Z", kind="SpotInterruptionKind", nodeclaim="default-abcde"
        )

    def test_annotated_takes_last_pair(self):
        event = extract_event(MessageKind.ANNOTATED, lines.annotated())
        assert event == AnnotatedEvent(
            time="2024-10-01T12:00:05.000Z",
            nodeclaim="default-abcde",
            key="karpenter.sh/nodeclaim-termination-timestamp",
            value="2024-10-01T12:30:05Z",
        )

    def test_deleted(self):
        event = extract_event(MessageKind.DELETED, lines.deleted())
        assert event == DeletedEvent(time="2024-10-01T12:10:05.000Z", nodeclaim="default-abcde")

    def test_empty_nodeclaim_still_extracts(self):
        event = extract_event(MessageKind.DELETED, lines.deleted(nodeclaim=""))
        assert event is not None
        assert event.nodeclaim == ""

    def test_changed_syntax_returns_none(self):
        line = lines.launched().replace('"capacity-type"', '"capacityType"')
        assert extract_event(MessageKind.LAUNCHED, line) is None


class TestTaintedVariants:
    def test_newest_layout_identifies_nodeclaim(self):
        event = extract_event(MessageKind.TAINTED, lines.tainted_v11())
        assert event == TaintedEvent(
            time="2024-10-01T12:00:06.000Z",
            nodeclaim="default-abcde",
            taint=Taint(key="karpenter.sh/disrupted", value="", effect="NoSchedule"),
        )

    def test_node_name_layout_with_taint(self):
        event = extract_event(MessageKind.TAINTED, lines.tainted_v10())
        assert event.nodeclaim == ""
        assert event.nodename == "ip-10-0-1-23.us-west-2.compute.internal"
        assert event.taint.composite() == "karpenter.sh/disrupted::NoSchedule"

    def test_oldest_layout_has_no_taint(self):
        event = extract_event(MessageKind.TAINTED, lines.tainted_v037())
        assert event == TaintedEvent(
            time="2024-10-01T12:00:06.000Z", nodename="ip-10-0-1-23.us-west-2.compute.internal"
        )
        assert event.taint is None

    def test_chain_is_ordered_newest_first(self):
        assert [v.schema for v in EVENT_PATTERNS[MessageKind.TAINTED]] == ["v1.1+", "v1.0", "v0.37"]


@pytest.mark.parametrize("kind", list(MessageKind))
def test_every_kind_has_a_pattern_chain(kind):
    assert EVENT_PATTERNS[kind]
