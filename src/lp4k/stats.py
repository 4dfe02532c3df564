# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Stats calculation and formatting for lp4k."""

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from .kubectl import KubectlStats
    from .registry import NodeclaimRegistry


def get_stats_dict(
    registry: "NodeclaimRegistry",
    kubectl_stats: Optional["KubectlStats"] = None,
    streams: Optional[dict[str, bool]] = None,
) -> dict:
    """
    Build the stats dictionary for logging and the status endpoint.

    "nodeclaims" describes the current registry content; "parser" counters
    are cumulative since process start.

    Args:
        registry: Registry to summarize (read through its lock)
        kubectl_stats: kubectl counters in live mode
        streams: Pod name -> stream still running, in live mode

    Returns:
        Stats dictionary with nodeclaims, parser and optionally kubectl/streams
    """
    records = registry.snapshot()
    counters = registry.stats_snapshot()

    stats = {
        "nodeclaims": {
            "total": len(records),
            "launched": sum(1 for _, r in records if r.launchedtime),
            "registered": sum(1 for _, r in records if r.registeredtime),
            "initialized": sum(1 for _, r in records if r.initialized),
            "disrupted": sum(1 for _, r in records if r.disruptiontime),
            "interrupted": sum(1 for _, r in records if r.interruptiontime),
            "deleted": sum(1 for _, r in records if r.deleted),
            "nodes_indexed": len(registry.node_index()),
        },
        "parser": {
            "lines_read": counters.lines_read,
            "lines_classified": counters.lines_classified,
            "events_applied": counters.events_applied,
            "extraction_failures": counters.extraction_failures,
            "empty_ids": counters.empty_ids,
            "referential_failures": counters.referential_failures,
            "duplicate_created": counters.duplicate_created,
            "timestamp_parse_failures": counters.timestamp_parse_failures,
            "snapshot_decode_failures": counters.snapshot_decode_failures,
            "snapshot_records_loaded": counters.snapshot_records_loaded,
            "exports": counters.exports,
        },
    }
    if kubectl_stats is not None:
        stats["kubectl"] = {
            "calls": kubectl_stats.calls,
            "failures": kubectl_stats.failures,
            "streams_started": kubectl_stats.streams_started,
        }
    if streams is not None:
        stats["streams"] = {
            "total": len(streams),
            "active": sum(1 for running in streams.values() if running),
        }
    return stats


def get_health_status(streams: dict[str, bool]) -> tuple:
    """
    Health of the live monitor.

    Returns:
        (is_healthy: bool, details: dict); unhealthy once every pod stream ended
    """
    active = sum(1 for running in streams.values() if running)
    details = {"streams_total": len(streams), "streams_active": active}
    is_healthy = active > 0
    if not is_healthy:
        details["issues"] = ["no_active_log_streams"]
    return is_healthy, details


def format_stats_summary(stats: dict) -> str:
    """
    Format stats as a one-line summary for logging.

    Args:
        stats: Stats dictionary from get_stats_dict()

    Returns:
        One-line summary string
    """
    nodeclaims = stats["nodeclaims"]
    parser = stats["parser"]

    summary = (
        f"Nodeclaims: {nodeclaims['total']} tracked ({nodeclaims['initialized']} initialized, "
        f"{nodeclaims['deleted']} deleted), "
        f"Lines: {parser['lines_read']} read, {parser['lines_classified']} classified, "
        f"{parser['events_applied']} applied, "
        f"Drops: {parser['extraction_failures']} unparsed, "
        f"{parser['referential_failures']} unresolved, "
        f"{parser['empty_ids']} empty id"
    )
    if parser["duplicate_created"]:
        summary += f", {parser['duplicate_created']} re-created"
    if parser["timestamp_parse_failures"]:
        summary += f", {parser['timestamp_parse_failures']} bad timestamps"
    if "streams" in stats:
        summary += f", Streams: {stats['streams']['active']}/{stats['streams']['total']} active"
    return summary
