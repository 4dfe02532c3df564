# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Deterministic export of the nodeclaim registry.

Two forms are produced from a registry snapshot, both ordered by a stable sort
on the raw createdtime text (lexical, not parsed, so ordering never depends on
timestamp parsing; equal keys keep creation order):

- tabular: an indexed CSV header followed by one row per nodeclaim
- snapshot: nodeclaim id -> self-describing JSON value, suitable for a
  ConfigMap and reloadable field for field

Both forms are driven by models.RECORD_FIELDS.
"""

import json
import logging
import sys
from collections.abc import Iterable, Mapping
from datetime import timedelta
from typing import TYPE_CHECKING, Any, TextIO

from .config import CONFIGMAP_KEY_PATTERN
from .durations import format_go_duration, to_micros
from .errors import SnapshotDecodeError
from .models import KEY_COLUMN, RECORD_FIELDS, FieldKind, NodeclaimRecord, header_row

if TYPE_CHECKING:
    from .registry import NodeclaimRegistry

logger = logging.getLogger(__name__)

RecordPairs = Iterable[tuple[str, NodeclaimRecord]]


def sort_records(pairs: RecordPairs) -> list[tuple[str, NodeclaimRecord]]:
    """Stable sort by raw createdtime text."""
    return sorted(pairs, key=lambda pair: pair[1].createdtime)


# ----------------------------------------------------------------------
# Tabular form
# ----------------------------------------------------------------------


def format_value(kind: FieldKind, value: Any) -> str:
    if kind is FieldKind.DURATION:
        return format_go_duration(value)
    if kind is FieldKind.SECONDS:
        return repr(float(value))
    if kind is FieldKind.FLAG:
        return "true" if value else "false"
    return value


def format_row(nodeclaim: str, record: NodeclaimRecord) -> str:
    values = [nodeclaim]
    values.extend(format_value(kind, getattr(record, name)) for name, kind in RECORD_FIELDS)
    return ",".join(values)


def render_table(pairs: RecordPairs) -> list[str]:
    """Header plus one row per nodeclaim, sorted by createdtime. Empty list if no records."""
    ordered = sort_records(pairs)
    if not ordered:
        return []
    return [header_row()] + [format_row(key, record) for key, record in ordered]


def write_table(pairs: RecordPairs, stream: TextIO | None = None) -> int:
    """
    Print the tabular export.

    Args:
        pairs: (nodeclaim, record) pairs, usually NodeclaimRegistry.snapshot()
        stream: Output stream (default: sys.stdout)

    Returns:
        Number of data rows written
    """
    out = stream if stream is not None else sys.stdout
    rows = render_table(pairs)
    if not rows:
        logger.warning("No results - empty nodeclaim map")
        return 0
    for row in rows:
        out.write(row + "\n")
    out.flush()
    return len(rows) - 1


def table_as_dicts(pairs: RecordPairs) -> list[dict[str, str]]:
    """Sorted export as a list of column-name -> rendered-value dicts."""
    result = []
    for key, record in sort_records(pairs):
        row = {KEY_COLUMN: key}
        for name, kind in RECORD_FIELDS:
            row[name] = format_value(kind, getattr(record, name))
        result.append(row)
    return result


# ----------------------------------------------------------------------
# Snapshot form
# ----------------------------------------------------------------------


def _duration_to_nanos(delta: timedelta) -> int:
    return to_micros(delta) * 1_000


def _nanos_to_duration(nanos: int) -> timedelta:
    micros = nanos // 1_000 if nanos >= 0 else -(-nanos // 1_000)
    return timedelta(microseconds=micros)


def encode_record(record: NodeclaimRecord) -> str:
    """Serialize one record to compact JSON with keys in RECORD_FIELDS order."""
    data: dict[str, Any] = {}
    for name, kind in RECORD_FIELDS:
        value = getattr(record, name)
        if kind is FieldKind.DURATION:
            value = _duration_to_nanos(value)
        data[name] = value
    return json.dumps(data, separators=(",", ":"), ensure_ascii=False)


def _decode_field(key: str, name: str, kind: FieldKind, value: Any) -> Any:
    if kind is FieldKind.TEXT:
        if not isinstance(value, str):
            raise SnapshotDecodeError(key, f"field '{name}' must be a string")
        return value
    if kind is FieldKind.DURATION:
        if isinstance(value, bool) or not isinstance(value, int):
            raise SnapshotDecodeError(key, f"field '{name}' must be integer nanoseconds")
        try:
            return _nanos_to_duration(value)
        except (OverflowError, ValueError) as e:
            raise SnapshotDecodeError(key, f"field '{name}' is out of range: {e}") from e
    if kind is FieldKind.SECONDS:
        if isinstance(value, bool) or not isinstance(value, (int, float)):
            raise SnapshotDecodeError(key, f"field '{name}' must be a number")
        try:
            return float(value)
        except (OverflowError, ValueError) as e:
            raise SnapshotDecodeError(key, f"field '{name}' is out of range: {e}") from e
    if not isinstance(value, bool):
        raise SnapshotDecodeError(key, f"field '{name}' must be a boolean")
    return value


def decode_record(key: str, value: str) -> NodeclaimRecord:
    """
    Rebuild a record from its snapshot value.

    Keys match case-insensitively (snapshots written by the Go tool use
    capitalised field names); missing fields keep their defaults and unknown
    keys are ignored.

    Raises:
        SnapshotDecodeError: If the value is not a well-typed JSON object
    """
    try:
        data = json.loads(value)
    except (TypeError, ValueError, RecursionError) as e:
        raise SnapshotDecodeError(key, f"invalid JSON: {e}") from e
    if not isinstance(data, dict):
        raise SnapshotDecodeError(key, "value is not a JSON object")

    lowered = {str(k).lower(): v for k, v in data.items()}
    kwargs = {}
    for name, kind in RECORD_FIELDS:
        if name in lowered:
            kwargs[name] = _decode_field(key, name, kind, lowered[name])
    return NodeclaimRecord(**kwargs)


def encode_snapshot(pairs: RecordPairs) -> dict[str, str]:
    """
    Encode records for a keyed store such as a ConfigMap.

    Ids that are not valid ConfigMap keys are skipped with a warning.
    """
    data: dict[str, str] = {}
    for key, record in sort_records(pairs):
        if not CONFIGMAP_KEY_PATTERN.match(key):
            logger.warning(f"Skipping nodeclaim \"{key}\": not a valid ConfigMap key")
            continue
        data[key] = encode_record(record)
    if not data:
        logger.warning("No results - empty nodeclaim map")
    return data


def decode_snapshot(
    data: Mapping[str, str],
) -> tuple[dict[str, NodeclaimRecord], list[SnapshotDecodeError]]:
    """
    Decode every key of a snapshot, tolerating bad values.

    Returns:
        (records, errors): every decodable record, and one error per key
        that could not be decoded
    """
    records: dict[str, NodeclaimRecord] = {}
    errors: list[SnapshotDecodeError] = []
    for key, value in data.items():
        try:
            records[key] = decode_record(key, value)
        except SnapshotDecodeError as e:
            logger.warning(str(e))
            errors.append(e)
    return records, errors


def restore_snapshot(registry: "NodeclaimRegistry", data: Mapping[str, str], source: str) -> int:
    """
    Decode a persisted snapshot and merge it into a registry.

    Bad values are reported and counted; every other key is still loaded.

    Returns:
        Number of records loaded
    """
    records, errors = decode_snapshot(data)
    if errors:
        registry.count("snapshot_decode_failures", len(errors))
        logger.warning(f"{len(errors)} of {len(data)} values in {source} could not be decoded")
    loaded = registry.load(records)
    logger.info(f"Loaded {loaded} nodeclaims from {source}")
    return loaded
