# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Per-kind field extraction with version-fallback pattern chains.

Karpenter changed the field layout of some lifecycle messages between major
versions. Every MessageKind therefore maps to an ordered tuple of
PatternVariant entries, newest schema first; the first variant whose pattern
matches the line produces the event. Supporting another historical layout
means appending a variant to the kind's tuple.

Extraction only produces typed payloads; folding them into records is the
registry's job.
"""

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass
from typing import Union

from .config import INSTANCE_TYPE_SEPARATOR
from .models import MessageKind

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CreatedEvent:
    time: str
    nodepool: str
    nodeclaim: str
    instancetypes: str


@dataclass(frozen=True)
class LaunchedEvent:
    time: str
    nodeclaim: str
    providerid: str
    instancetype: str
    zone: str
    capacitytype: str


@dataclass(frozen=True)
class RegisteredEvent:
    time: str
    nodeclaim: str
    nodename: str


@dataclass(frozen=True)
class InitializedEvent:
    time: str
    nodeclaim: str


@dataclass(frozen=True)
class DisruptingEvent:
    time: str
    reason: str
    decision: str
    disrupted_node_count: str
    replacement_node_count: str
    pod_count: str
    nodeclaim: str


@dataclass(frozen=True)
class InterruptionEvent:
    time: str
    kind: str
    nodeclaim: str


@dataclass(frozen=True)
class AnnotatedEvent:
    time: str
    nodeclaim: str
    key: str
    value: str


@dataclass(frozen=True)
class Taint:
    key: str
    value: str  # legitimately empty for most Karpenter taints
    effect: str

    def composite(self) -> str:
        return f"{self.key}:{self.value}:{self.effect}"


@dataclass(frozen=True)
class TaintedEvent:
    """
    A "tainted node" event.

    Exactly one of nodeclaim/nodename identifies the target: newer Karpenter
    logs the nodeclaim directly, older versions only the node name. The oldest
    layout carries no taint at all (taint is None).
    """

    time: str
    nodeclaim: str = ""
    nodename: str = ""
    taint: Taint | None = None


@dataclass(frozen=True)
class DeletedEvent:
    time: str
    nodeclaim: str


Event = Union[
    CreatedEvent,
    LaunchedEvent,
    RegisteredEvent,
    InitializedEvent,
    DisruptingEvent,
    InterruptionEvent,
    AnnotatedEvent,
    TaintedEvent,
    DeletedEvent,
]


@dataclass(frozen=True)
class PatternVariant:
    """One historical log layout of a message kind."""

    schema: str  # Karpenter versions that emit this layout
    pattern: re.Pattern
    build: Callable[[tuple[str, ...]], Event]

    def extract(self, line: str) -> Event | None:
        match = self.pattern.search(line)
        if match is None:
            return None
        return self.build(match.groups())


# Replacements applied to the explicit part of the instance-type list
_INSTANCE_TYPE_REPLACEMENTS = ((", ", INSTANCE_TYPE_SEPARATOR), (" ", ""), ("(s)", "s"))
_INSTANCE_TYPE_TRUNCATION = " and "


def _clean_instance_types(text: str) -> str:
    # Sequential replacement is safe: none of the outputs feed a later input
    for old, new in _INSTANCE_TYPE_REPLACEMENTS:
        text = text.replace(old, new)
    return text


def normalize_instance_types(raw: str) -> str:
    """
    Normalize Karpenter's requested instance-type list.

    The provisioner logs only the first few types followed by
    "and N other(s)". The explicit types become a separator-joined list and
    the truncation suffix is kept verbatim as the final token:

        "c5.large, m5.large and 42 other(s)" -> "c5.large|m5.large|and 42 other(s)"
    """
    position = raw.rfind(_INSTANCE_TYPE_TRUNCATION)
    if position == -1:
        return _clean_instance_types(raw)
    explicit = _clean_instance_types(raw[:position])
    suffix = raw[position:].strip()
    return f"{explicit}{INSTANCE_TYPE_SEPARATOR}{suffix}"


def _provider_id_tail(provider_uri: str) -> str:
    # aws:///us-west-2a/i-0123456789abcdef0 -> i-0123456789abcdef0
    return provider_uri.split("/")[-1]


def _build_created(g: tuple[str, ...]) -> CreatedEvent:
    return CreatedEvent(
        time=g[0], nodepool=g[1], nodeclaim=g[2], instancetypes=normalize_instance_types(g[3])
    )


def _build_launched(g: tuple[str, ...]) -> LaunchedEvent:
    return LaunchedEvent(
        time=g[0],
        nodeclaim=g[1],
        providerid=_provider_id_tail(g[2]),
        instancetype=g[3],
        zone=g[4],
        capacitytype=g[5],
    )


def _build_disrupting(g: tuple[str, ...]) -> DisruptingEvent:
    return DisruptingEvent(
        time=g[0],
        reason=g[1],
        decision=g[2],
        disrupted_node_count=g[3],
        replacement_node_count=g[4],
        pod_count=g[5],
        nodeclaim=g[6],
    )


# Common prefix: timestamp directly followed by the logger field
_TIME = r'"time":"(.*)","logger"'

EVENT_PATTERNS: dict[MessageKind, tuple[PatternVariant, ...]] = {
    MessageKind.CREATED: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(
                _TIME + r'.*"NodePool":{"name":"(.*)"},"NodeClaim":{"name":"(.*)"},'
                r'"requests".*"instance-types":"(.*)"}'
            ),
            build=_build_created,
        ),
    ),
    MessageKind.LAUNCHED: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(
                _TIME + r'.*"NodeClaim":{"name":"(.*)"},.*"provider-id":"(.*)",'
                r'"instance-type":"(.*)","zone":"(.*)","capacity-type":"(.*)","allocatable"'
            ),
            build=_build_launched,
        ),
    ),
    MessageKind.REGISTERED: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(_TIME + r'.*"NodeClaim":{"name":"(.*)"},.*,"Node":{"name":"(.*)"}'),
            build=lambda g: RegisteredEvent(time=g[0], nodeclaim=g[1], nodename=g[2]),
        ),
    ),
    MessageKind.INITIALIZED: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(_TIME + r'.*"NodeClaim":{"name":"(.*)"},"namespace"'),
            build=lambda g: InitializedEvent(time=g[0], nodeclaim=g[1]),
        ),
    ),
    # The nodeclaim sits inside the disrupted-nodes list, after the counts
    MessageKind.DISRUPTING: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(
                _TIME + r'.*"reason":"(.*)","decision":"(.*)","disrupted-node-count":(.*),'
                r'"replacement-node-count":(.*),"pod-count":(.*),"disrupted-nodes":.*,'
                r'"NodeClaim":{"name":"(.*)"},"capacity-type"'
            ),
            build=_build_disrupting,
        ),
    ),
    MessageKind.INTERRUPTION: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(
                _TIME + r'.*"messageKind":"(.*)","NodeClaim":{"name":"(.*)"},"action"'
            ),
            build=lambda g: InterruptionEvent(time=g[0], kind=g[1], nodeclaim=g[2]),
        ),
    ),
    # The annotation is the last key/value pair of the line
    MessageKind.ANNOTATED: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(_TIME + r'.*"NodeClaim":{"name":"(.*)"},"namespace".*,"(.*)":"(.*)"}'),
            build=lambda g: AnnotatedEvent(time=g[0], nodeclaim=g[1], key=g[2], value=g[3]),
        ),
    ),
    MessageKind.TAINTED: (
        PatternVariant(
            schema="v1.1+",
            pattern=re.compile(
                _TIME + r'.*"NodeClaim":{"name":"(.*)"},"taint.Key":"(.*)",'
                r'"taint.Value":"(.*)","taint.Effect":"(.*)"}'
            ),
            build=lambda g: TaintedEvent(time=g[0], nodeclaim=g[1], taint=Taint(*g[2:5])),
        ),
        # v1.0.x logs the node name instead of the nodeclaim
        PatternVariant(
            schema="v1.0",
            pattern=re.compile(
                _TIME + r'.*"Node":{"name":"(.*)"},"namespace".*,"taint.Key":"(.*)",'
                r'"taint.Value":"(.*)","taint.Effect":"(.*)"}'
            ),
            build=lambda g: TaintedEvent(time=g[0], nodename=g[1], taint=Taint(*g[2:5])),
        ),
        # v0.37.x logs neither the nodeclaim nor the taint
        PatternVariant(
            schema="v0.37",
            pattern=re.compile(_TIME + r'.*"Node":{"name":"(.*)"},"namespace"'),
            build=lambda g: TaintedEvent(time=g[0], nodename=g[1]),
        ),
    ),
    MessageKind.DELETED: (
        PatternVariant(
            schema="v0.37+",
            pattern=re.compile(_TIME + r'.*"NodeClaim":{"name":"(.*)"},"namespace"'),
            build=lambda g: DeletedEvent(time=g[0], nodeclaim=g[1]),
        ),
    ),
}


def extract_event(kind: MessageKind, line: str) -> Event | None:
    """
    Run the kind's pattern chain against a line.

    Returns:
        The event built by the first matching variant, or None when no
        variant matches (the log syntax has probably changed).
    """
    for variant in EVENT_PATTERNS[kind]:
        event = variant.extract(line)
        if event is not None:
            logger.debug(f"'{kind.value}' matched schema {variant.schema}")
            return event
    return None
