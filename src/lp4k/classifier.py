# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""First-stage filter: pull the message kind out of a raw Karpenter log line."""

import re

from .models import MessageKind

# Karpenter's zap JSON encoder always emits "message" directly before "commit"
MESSAGE_PATTERN = re.compile(r'"message":"(.*)","commit"')


def extract_message(line: str) -> str | None:
    """Return the raw message text of a log line, or None if it has none."""
    match = MESSAGE_PATTERN.search(line)
    if match is None:
        return None
    return match.group(1)


def classify_line(line: str) -> MessageKind | None:
    """
    Classify a log line by its message field.

    Returns:
        The MessageKind, or None for lines that are not nodeclaim lifecycle
        events (the vast majority; they are ignored without diagnostics).
    """
    message = extract_message(line)
    if message is None:
        return None
    return MessageKind.from_message(message)
