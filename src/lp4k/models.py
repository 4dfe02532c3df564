# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Data model for nodeclaim lifecycle aggregation.

NodeclaimRecord holds everything derived from the log lines of one nodeclaim,
grouped by lifecycle phase. RECORD_FIELDS is the single ordered list of its
fields; both the tabular exporter and the snapshot codec are driven by it, so
column order and snapshot keys cannot drift apart.
"""

from dataclasses import dataclass
from datetime import timedelta
from enum import Enum


class MessageKind(str, Enum):
    """Karpenter log "message" values that carry nodeclaim lifecycle events."""

    CREATED = "created nodeclaim"
    LAUNCHED = "launched nodeclaim"
    REGISTERED = "registered nodeclaim"
    INITIALIZED = "initialized nodeclaim"
    DISRUPTING = "disrupting node(s)"
    INTERRUPTION = "initiating delete from interruption message"
    ANNOTATED = "annotated nodeclaim"
    TAINTED = "tainted node"
    DELETED = "deleted nodeclaim"

    @classmethod
    def from_message(cls, message: str) -> "MessageKind | None":
        """Map a raw message value to a kind, None for unrelated messages."""
        try:
            return cls(message)
        except ValueError:
            return None


class FieldKind(Enum):
    """Value type of a NodeclaimRecord field (drives rendering and the codec)."""

    TEXT = "text"
    DURATION = "duration"
    SECONDS = "seconds"
    FLAG = "flag"


@dataclass(slots=True)
class NodeclaimRecord:
    """
    Aggregate lifecycle record for one nodeclaim.

    Timestamps are kept as the raw log text. The disruption counts stay text
    so that "never disrupted" ("") is distinguishable from a real zero.
    """

    # Creation
    createdtime: str = ""
    nodepool: str = ""
    instancetypes: str = ""
    # Launch
    launchedtime: str = ""
    providerid: str = ""
    instancetype: str = ""
    zone: str = ""
    capacitytype: str = ""
    # Registration
    registeredtime: str = ""
    k8snodename: str = ""
    # Initialization
    initializedtime: str = ""
    nodereadytime: timedelta = timedelta(0)
    nodereadytimesec: float = 0.0
    # Disruption (last write wins)
    disruptiontime: str = ""
    disruptionreason: str = ""
    disruptiondecision: str = ""
    disruptednodecount: str = ""
    replacementnodecount: str = ""
    disruptedpodcount: str = ""
    # Annotation (append-only composite)
    annotationtime: str = ""
    annotation: str = ""
    # Taint (append-only composite)
    tainttime: str = ""
    taint: str = ""
    # Interruption
    interruptiontime: str = ""
    interruptionkind: str = ""
    # Deletion
    deletedtime: str = ""
    nodeterminationtime: timedelta = timedelta(0)
    nodeterminationtimesec: float = 0.0
    nodelifecycletime: timedelta = timedelta(0)
    nodelifecycletimesec: float = 0.0
    initialized: bool = False
    deleted: bool = False


# Key column of the tabular export (the registry key, not a record field)
KEY_COLUMN = "nodeclaim"

# Ordered (name, kind) list of NodeclaimRecord fields. Column order of the
# tabular export and the key set of the snapshot codec.
RECORD_FIELDS: tuple[tuple[str, FieldKind], ...] = (
    ("createdtime", FieldKind.TEXT),
    ("nodepool", FieldKind.TEXT),
    ("instancetypes", FieldKind.TEXT),
    ("launchedtime", FieldKind.TEXT),
    ("providerid", FieldKind.TEXT),
    ("instancetype", FieldKind.TEXT),
    ("zone", FieldKind.TEXT),
    ("capacitytype", FieldKind.TEXT),
    ("registeredtime", FieldKind.TEXT),
    ("k8snodename", FieldKind.TEXT),
    ("initializedtime", FieldKind.TEXT),
    ("nodereadytime", FieldKind.DURATION),
    ("nodereadytimesec", FieldKind.SECONDS),
    ("disruptiontime", FieldKind.TEXT),
    ("disruptionreason", FieldKind.TEXT),
    ("disruptiondecision", FieldKind.TEXT),
    ("disruptednodecount", FieldKind.TEXT),
    ("replacementnodecount", FieldKind.TEXT),
    ("disruptedpodcount", FieldKind.TEXT),
    ("annotationtime", FieldKind.TEXT),
    ("annotation", FieldKind.TEXT),
    ("tainttime", FieldKind.TEXT),
    ("taint", FieldKind.TEXT),
    ("interruptiontime", FieldKind.TEXT),
    ("interruptionkind", FieldKind.TEXT),
    ("deletedtime", FieldKind.TEXT),
    ("nodeterminationtime", FieldKind.DURATION),
    ("nodeterminationtimesec", FieldKind.SECONDS),
    ("nodelifecycletime", FieldKind.DURATION),
    ("nodelifecycletimesec", FieldKind.SECONDS),
    ("initialized", FieldKind.FLAG),
    ("deleted", FieldKind.FLAG),
)

RECORD_FIELD_NAMES: tuple[str, ...] = tuple(name for name, _ in RECORD_FIELDS)


def header_row() -> str:
    """Indexed header, 1-based so that awk's $N lines up with the column index."""
    names = (KEY_COLUMN,) + RECORD_FIELD_NAMES
    return ",".join(f"{name}[{i}]" for i, name in enumerate(names, start=1))


def copy_record(record: NodeclaimRecord) -> NodeclaimRecord:
    """Field-for-field copy (all field values are immutable)."""
    return NodeclaimRecord(**{name: getattr(record, name) for name in RECORD_FIELD_NAMES})


@dataclass
class ParserStats:
    """Ingestion and export counters.

    All counters are cumulative since process start (never reset).
    """

    lines_read: int = 0
    lines_classified: int = 0  # Lines whose message matched a known kind
    events_applied: int = 0  # Events folded into a record
    extraction_failures: int = 0  # No pattern variant matched
    empty_ids: int = 0  # Pattern matched but the id/node name was empty
    referential_failures: int = 0  # Id or node name not resolvable to a record
    duplicate_created: int = 0  # "created" for an id already in the registry
    timestamp_parse_failures: int = 0
    snapshot_decode_failures: int = 0
    snapshot_records_loaded: int = 0
    exports: int = 0
