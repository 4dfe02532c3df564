# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Nodeclaim registry and node-name secondary index.

NodeclaimRegistry is the only owner of the nodeclaim records and of the index
mapping Kubernetes node names back to nodeclaim ids. Ingestion threads call
apply() once per extracted event and exporters call snapshot(); both run as a
single critical section under one lock, so concurrent pod streams and the
periodic exporter never observe a half-applied event.

Rules enforced here:
- only a "created" event creates a record, and it always starts from a fresh one
- every other event needs an existing record; otherwise the event is dropped
- index entries are never removed (late tainted-node lines must still resolve)
- annotation and taint composites only grow; disruption fields are replaced
- derived durations are computed only when both timestamps are present
"""

import logging
import threading
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, fields
from datetime import timedelta
from enum import Enum

from .config import COMPOSITE_SEPARATOR
from .durations import ZERO_DURATION, elapsed
from .errors import TimestampParseError
from .extractor import (
    AnnotatedEvent,
    CreatedEvent,
    DeletedEvent,
    DisruptingEvent,
    Event,
    InitializedEvent,
    InterruptionEvent,
    LaunchedEvent,
    RegisteredEvent,
    TaintedEvent,
)
from .models import NodeclaimRecord, ParserStats, copy_record

logger = logging.getLogger(__name__)


class ApplyOutcome(Enum):
    """Result of folding one event into the registry."""

    CREATED = "created"
    RECREATED = "recreated"  # "created" for an id that already had a record
    UPDATED = "updated"
    EMPTY_ID = "empty_id"
    UNKNOWN_NODECLAIM = "unknown_nodeclaim"
    UNKNOWN_NODE = "unknown_node"

    @property
    def applied(self) -> bool:
        return self in (ApplyOutcome.CREATED, ApplyOutcome.RECREATED, ApplyOutcome.UPDATED)


@dataclass(frozen=True)
class EventOrigin:
    """Where an event came from, for diagnostics only."""

    source: str
    line: int

    def __str__(self) -> str:
        return f"line {self.line} in {self.source}"


def _append_composite(current: str, unit: str) -> str:
    if not current:
        return unit
    return f"{current}{COMPOSITE_SEPARATOR}{unit}"


class NodeclaimRegistry:
    """
    Thread-safe nodeclaim id -> NodeclaimRecord mapping plus node-name index.

    The underlying dicts are never handed out; readers get copies.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        # Insertion order == creation order; snapshot() relies on it for stable ties
        self._records: dict[str, NodeclaimRecord] = {}
        self._node_index: dict[str, str] = {}
        self.stats = ParserStats()
        self._handlers: dict[type, Callable[[NodeclaimRecord, Event, EventOrigin], None]] = {
            LaunchedEvent: self._apply_launched,
            RegisteredEvent: self._apply_registered,
            InitializedEvent: self._apply_initialized,
            DisruptingEvent: self._apply_disrupting,
            InterruptionEvent: self._apply_interruption,
            AnnotatedEvent: self._apply_annotated,
            TaintedEvent: self._apply_tainted,
            DeletedEvent: self._apply_deleted,
        }

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # ------------------------------------------------------------------
    # Update side
    # ------------------------------------------------------------------

    def apply(self, event: Event, origin: EventOrigin) -> ApplyOutcome:
        """
        Fold one event into the registry as a single atomic update.

        Args:
            event: Payload produced by the extractor
            origin: Source and line number, used in diagnostics

        Returns:
            ApplyOutcome describing what happened
        """
        with self._lock:
            return self._apply_counted(event, origin)

    def record_line(self, classified: bool, event: Event | None, origin: EventOrigin) -> ApplyOutcome | None:
        """
        Count one ingested line and apply its event in a single critical section.

        Args:
            classified: The line carried a lifecycle message
            event: Extracted payload, None if the line was unclassified or no
                pattern variant matched
            origin: Source and line number, used in diagnostics

        Returns:
            ApplyOutcome, or None when there was no event to apply
        """
        with self._lock:
            self.stats.lines_read += 1
            if classified:
                self.stats.lines_classified += 1
                if event is None:
                    self.stats.extraction_failures += 1
            if event is None:
                return None
            return self._apply_counted(event, origin)

    def _apply_counted(self, event: Event, origin: EventOrigin) -> ApplyOutcome:
        outcome = self._apply_locked(event, origin)
        if outcome.applied:
            self.stats.events_applied += 1
        elif outcome == ApplyOutcome.EMPTY_ID:
            self.stats.empty_ids += 1
        else:
            self.stats.referential_failures += 1
        return outcome

    def _apply_locked(self, event: Event, origin: EventOrigin) -> ApplyOutcome:
        if isinstance(event, CreatedEvent):
            return self._apply_created(event, origin)

        if isinstance(event, TaintedEvent) and not event.nodeclaim:
            if not event.nodename:
                logger.warning(f"Parsing error empty \"K8s node name\" for 'tainted node' in {origin}")
                return ApplyOutcome.EMPTY_ID
            nodeclaim = self._node_index.get(event.nodename)
            if nodeclaim is None or nodeclaim not in self._records:
                logger.warning(
                    f"No corresponding nodeclaim for K8s node \"{event.nodename}\" "
                    f"for message 'tainted node' in {origin}; most probably {origin.source} "
                    f"does not contain the matching 'created nodeclaim' line"
                )
                return ApplyOutcome.UNKNOWN_NODE
        else:
            nodeclaim = event.nodeclaim
            if not nodeclaim:
                logger.warning(
                    f"Parsing error empty \"NodeClaim\" for {type(event).__name__} in {origin}, "
                    f"probably Karpenter log syntax has changed!"
                )
                return ApplyOutcome.EMPTY_ID

        record = self._records.get(nodeclaim)
        if record is None:
            # Expected when a log tail starts after the nodeclaim was created
            logger.debug(f"No record for nodeclaim \"{nodeclaim}\" ({type(event).__name__}, {origin})")
            return ApplyOutcome.UNKNOWN_NODECLAIM

        self._handlers[type(event)](record, event, origin)
        return ApplyOutcome.UPDATED

    def _apply_created(self, event: CreatedEvent, origin: EventOrigin) -> ApplyOutcome:
        if not event.nodeclaim:
            logger.warning(
                f"Parsing error empty \"NodeClaim\" for 'created nodeclaim' in {origin}, "
                f"probably Karpenter log syntax has changed!"
            )
            return ApplyOutcome.EMPTY_ID

        outcome = ApplyOutcome.CREATED
        previous = self._records.pop(event.nodeclaim, None)
        if previous is not None:
            self.stats.duplicate_created += 1
            logger.warning(
                f"Nodeclaim \"{event.nodeclaim}\" created again in {origin} "
                f"(previous createdtime {previous.createdtime or 'unset'}); resetting its record"
            )
            outcome = ApplyOutcome.RECREATED

        self._records[event.nodeclaim] = NodeclaimRecord(
            createdtime=event.time,
            nodepool=event.nodepool,
            instancetypes=event.instancetypes,
        )
        return outcome

    def _apply_launched(self, record: NodeclaimRecord, event: LaunchedEvent, origin: EventOrigin) -> None:
        record.launchedtime = event.time
        record.providerid = event.providerid
        record.instancetype = event.instancetype
        record.zone = event.zone
        record.capacitytype = event.capacitytype

    def _apply_registered(
        self, record: NodeclaimRecord, event: RegisteredEvent, origin: EventOrigin
    ) -> None:
        record.registeredtime = event.time
        record.k8snodename = event.nodename
        if event.nodename:
            self._node_index[event.nodename] = event.nodeclaim
        else:
            logger.warning(f"Parsing error empty \"K8s node name\" for 'registered nodeclaim' in {origin}")

    def _apply_initialized(
        self, record: NodeclaimRecord, event: InitializedEvent, origin: EventOrigin
    ) -> None:
        record.initializedtime = event.time
        if not event.time:
            logger.warning(f"Parsing error empty \"initialized time\" in {origin}")
        elif record.createdtime:
            record.nodereadytime = self._duration(record.createdtime, event.time, origin)
            record.nodereadytimesec = record.nodereadytime.total_seconds()
        # Set even without a timestamp; the line itself proves initialization
        record.initialized = True

    def _apply_disrupting(
        self, record: NodeclaimRecord, event: DisruptingEvent, origin: EventOrigin
    ) -> None:
        record.disruptiontime = event.time
        record.disruptionreason = event.reason
        record.disruptiondecision = event.decision
        record.disruptednodecount = event.disrupted_node_count
        record.replacementnodecount = event.replacement_node_count
        record.disruptedpodcount = event.pod_count

    def _apply_interruption(
        self, record: NodeclaimRecord, event: InterruptionEvent, origin: EventOrigin
    ) -> None:
        record.interruptiontime = event.time
        record.interruptionkind = event.kind

    def _apply_annotated(
        self, record: NodeclaimRecord, event: AnnotatedEvent, origin: EventOrigin
    ) -> None:
        record.annotationtime = event.time
        record.annotation = _append_composite(record.annotation, f"{event.key}:{event.value}")

    def _apply_tainted(self, record: NodeclaimRecord, event: TaintedEvent, origin: EventOrigin) -> None:
        record.tainttime = event.time
        if event.taint is None:
            return
        if not event.taint.key or not event.taint.effect:
            logger.warning(f"Incomplete taint {event.taint.composite()!r} for 'tainted node' in {origin}")
        record.taint = _append_composite(record.taint, event.taint.composite())

    def _apply_deleted(self, record: NodeclaimRecord, event: DeletedEvent, origin: EventOrigin) -> None:
        record.deletedtime = event.time
        if not event.time:
            logger.warning(f"Parsing error empty \"deleted time\" in {origin}")
        else:
            if record.createdtime:
                record.nodelifecycletime = self._duration(record.createdtime, event.time, origin)
                record.nodelifecycletimesec = record.nodelifecycletime.total_seconds()
            # Time from the termination annotation to the actual deletion; long
            # values usually point at blocking PDBs or do-not-disrupt pods
            if record.annotationtime:
                record.nodeterminationtime = self._duration(record.annotationtime, event.time, origin)
                record.nodeterminationtimesec = record.nodeterminationtime.total_seconds()
        record.deleted = True

    def _duration(self, start: str, end: str, origin: EventOrigin) -> timedelta:
        try:
            return elapsed(start, end)
        except TimestampParseError as e:
            self.stats.timestamp_parse_failures += 1
            logger.warning(f"{e} in {origin}; using zero duration")
            return ZERO_DURATION

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    def snapshot(self) -> list[tuple[str, NodeclaimRecord]]:
        """Point-in-time copy of all (id, record) pairs in creation order."""
        with self._lock:
            return [(key, copy_record(record)) for key, record in self._records.items()]

    def get(self, nodeclaim: str) -> NodeclaimRecord | None:
        """Copy of one record, or None."""
        with self._lock:
            record = self._records.get(nodeclaim)
            return copy_record(record) if record is not None else None

    def resolve_node(self, nodename: str) -> str | None:
        """Nodeclaim id that produced a node name, or None."""
        with self._lock:
            return self._node_index.get(nodename)

    def node_index(self) -> dict[str, str]:
        """Copy of the node-name index."""
        with self._lock:
            return dict(self._node_index)

    def stats_snapshot(self) -> ParserStats:
        with self._lock:
            return ParserStats(**{f.name: getattr(self.stats, f.name) for f in fields(ParserStats)})

    def count(self, counter: str, amount: int = 1) -> None:
        """Increment a ParserStats counter under the registry lock."""
        with self._lock:
            setattr(self.stats, counter, getattr(self.stats, counter) + amount)

    # ------------------------------------------------------------------
    # Reload
    # ------------------------------------------------------------------

    def load(self, records: Mapping[str, NodeclaimRecord] | Iterable[tuple[str, NodeclaimRecord]]) -> int:
        """
        Merge previously exported records into the registry.

        Loaded records replace records with the same id, and their node names
        are re-entered into the index so later tainted-node lines resolve.

        Returns:
            Number of records loaded
        """
        items = records.items() if isinstance(records, Mapping) else records
        loaded = 0
        with self._lock:
            for nodeclaim, record in items:
                self._records.pop(nodeclaim, None)
                self._records[nodeclaim] = copy_record(record)
                if record.k8snodename:
                    self._node_index[record.k8snodename] = nodeclaim
                loaded += 1
            self.stats.snapshot_records_loaded += loaded
        return loaded
