# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Elapsed-time calculation between raw Karpenter log timestamps.

Karpenter logs timestamps as RFC 3339 text with millisecond precision and a
"Z" suffix (e.g. 2024-01-01T00:00:00.000Z). Older builds and hand-edited
inputs vary slightly (no fraction, explicit +00:00 offset, space separator).
Anything with a full date and time of day is parsed by dateutil's strict ISO
8601 parser; other text is rejected rather than guessed at. Timestamps
without an offset are taken as UTC.

Durations are rendered in Go duration text (1m0s, 2h3m4.5s, 500ms) because
that is what downstream tooling built around the tabular export expects.
"""

import logging
import re
from datetime import datetime, timedelta, timezone

from dateutil import parser as date_parser

from .errors import TimestampParseError

logger = logging.getLogger(__name__)

ZERO_DURATION = timedelta(0)

_MICROS_PER_SECOND = 1_000_000
_MICROS_PER_MINUTE = 60 * _MICROS_PER_SECOND
_MICROS_PER_HOUR = 60 * _MICROS_PER_MINUTE

# Go time.ParseDuration units expressed in microseconds
_GO_UNIT_MICROS = {
    "ns": 0.001,
    "us": 1,
    "µs": 1,
    "μs": 1,
    "ms": 1_000,
    "s": _MICROS_PER_SECOND,
    "m": _MICROS_PER_MINUTE,
    "h": _MICROS_PER_HOUR,
}
_GO_DURATION_PART = re.compile(r"(\d+(?:\.\d*)?|\.\d+)(ns|us|µs|μs|ms|s|m|h)")

# Full calendar date and time of day, "T" or space separated
_TIMESTAMP_PREFIX = re.compile(r"^\d{4}-\d{2}-\d{2}([T ])\d{2}:\d{2}")


def parse_timestamp(text: str) -> datetime:
    """
    Parse a raw log timestamp into an aware datetime.

    Args:
        text: Timestamp exactly as it appeared in the log line

    Returns:
        Timezone-aware datetime (UTC when the text carries no offset)

    Raises:
        TimestampParseError: If the text is not a recognizable timestamp
    """
    raw = text.strip()
    if not raw:
        raise TimestampParseError(text, "empty")
    match = _TIMESTAMP_PREFIX.match(raw)
    if match is None:
        raise TimestampParseError(text, "expected an RFC 3339 date and time")
    if match.group(1) == " ":
        raw = f"{raw[:10]}T{raw[11:]}"
    try:
        parsed = date_parser.isoparse(raw)
    except (ValueError, OverflowError) as e:
        raise TimestampParseError(text, str(e)) from e
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def elapsed(start: str, end: str) -> timedelta:
    """
    Signed elapsed time from start to end (end - start).

    Raises:
        TimestampParseError: If either endpoint cannot be parsed
    """
    return parse_timestamp(end) - parse_timestamp(start)


def to_micros(delta: timedelta) -> int:
    """Exact integer microseconds of a timedelta."""
    return (delta.days * 86_400 + delta.seconds) * _MICROS_PER_SECOND + delta.microseconds


def _with_fraction(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{frac:0{digits}d}".rstrip("0")


def format_go_duration(delta: timedelta) -> str:
    """
    Render a timedelta the way Go's time.Duration.String() does.

    Examples: 0s, 750µs, 1.5ms, 59.9s, 1m0s, 1h2m3.5s, -30s
    """
    micros = to_micros(delta)
    if micros == 0:
        return "0s"
    sign = "-" if micros < 0 else ""
    micros = abs(micros)

    if micros < 1_000:
        return f"{sign}{micros}µs"
    if micros < _MICROS_PER_SECOND:
        return f"{sign}{_with_fraction(micros, 1_000)}ms"

    hours, rem = divmod(micros, _MICROS_PER_HOUR)
    minutes, rem = divmod(rem, _MICROS_PER_MINUTE)
    text = f"{_with_fraction(rem, _MICROS_PER_SECOND)}s"
    if hours or minutes:
        text = f"{minutes}m{text}"
    if hours:
        text = f"{hours}h{text}"
    return sign + text


def parse_go_duration(text: str) -> timedelta:
    """
    Parse Go duration text ("30s", "2m10s", "1h", "1.5h", "300ms").

    Raises:
        ValueError: If the text is not a valid Go duration
    """
    s = text.strip()
    if s in ("0", "+0", "-0"):
        return ZERO_DURATION

    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if not s:
        raise ValueError(f"invalid duration '{text}'")

    total = 0.0
    pos = 0
    while pos < len(s):
        match = _GO_DURATION_PART.match(s, pos)
        if match is None:
            raise ValueError(f"invalid duration '{text}'")
        total += float(match.group(1)) * _GO_UNIT_MICROS[match.group(2)]
        pos = match.end()

    return timedelta(microseconds=sign * total)
