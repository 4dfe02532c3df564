# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""lp4k: Karpenter nodeclaim lifecycle log parser."""

from .classifier import classify_line
from .errors import KubectlError, Lp4kError, SnapshotDecodeError, TimestampParseError
from .exporter import decode_snapshot, encode_snapshot, render_table, restore_snapshot, write_table
from .extractor import extract_event
from .ingest import LogParser, SourceResult
from .models import MessageKind, NodeclaimRecord, ParserStats
from .registry import ApplyOutcome, EventOrigin, NodeclaimRegistry

__version__ = "0.1.0"

__all__ = [
    "ApplyOutcome",
    "EventOrigin",
    "KubectlError",
    "LogParser",
    "Lp4kError",
    "MessageKind",
    "NodeclaimRecord",
    "NodeclaimRegistry",
    "ParserStats",
    "SnapshotDecodeError",
    "SourceResult",
    "TimestampParseError",
    "classify_line",
    "decode_snapshot",
    "encode_snapshot",
    "extract_event",
    "render_table",
    "restore_snapshot",
    "write_table",
]
