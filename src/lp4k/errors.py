# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Exception types raised by lp4k."""


class Lp4kError(Exception):
    """Base class for lp4k errors."""


class TimestampParseError(Lp4kError):
    """A raw log timestamp could not be parsed."""

    def __init__(self, text: str, reason: str = ""):
        self.text = text
        message = f"cannot parse timestamp '{text}'"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class SnapshotDecodeError(Lp4kError):
    """A persisted snapshot value could not be decoded into a record."""

    def __init__(self, key: str, reason: str):
        self.key = key
        self.reason = reason
        super().__init__(f"cannot decode snapshot value for nodeclaim '{key}': {reason}")


class KubectlError(Lp4kError):
    """A kubectl invocation failed or timed out."""

    def __init__(self, command: list[str], reason: str):
        self.command = command
        self.reason = reason
        super().__init__(f"{' '.join(command)}: {reason}")
