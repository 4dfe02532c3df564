# SPDX-FileCopyrightText: Copyright (c) 2024 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""Core constants and environment configuration for lp4k.

Library-level constants (separators, ConfigMap naming, header format) are
plain module attributes. Runtime settings for the CLI and the live cluster
monitor come from the environment via pydantic-settings:

- KARPENTER_NAMESPACE / KARPENTER_LABEL select the Karpenter pods
- KARPENTER_CM_UPDATE_FREQ is the export interval in Go duration text ("30s", "2m10s")
- LP4K_* variables cover everything else (log level, ConfigMap name, port, kubectl)
"""

import logging
import re
from datetime import timedelta

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .durations import parse_go_duration
from .errors import Lp4kError

logger = logging.getLogger(__name__)

# Karpenter deployment defaults
DEFAULT_NAMESPACE = "karpenter"
DEFAULT_LABEL = "app.kubernetes.io/name=karpenter"
DEFAULT_CM_UPDATE_FREQ = "30s"
DEFAULT_CONFIGMAP_NAME = "karpenter-nodeclaims-cm"
DEFAULT_KUBECTL_TIMEOUT = 30.0  # seconds for non-streaming kubectl calls

# Composite field separators; commas are reserved for the tabular export
INSTANCE_TYPE_SEPARATOR = "|"
COMPOSITE_SEPARATOR = "|"

# Source identifier used for diagnostics when reading standard input
STDIN_SOURCE = "STDIN"

# ConfigMap data keys must consist of alphanumerics, '-', '_' or '.'
CONFIGMAP_KEY_PATTERN = re.compile(r"^[-._a-zA-Z0-9]+$")

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%d %H:%M:%S"


class Settings(BaseSettings):
    """Typed configuration loaded from environment/.env (pydantic-settings v2).

    The three Karpenter variables keep the names used by existing deployments
    and are read without the LP4K_ prefix.
    """

    NAMESPACE: str = Field(
        default=DEFAULT_NAMESPACE,
        description="Namespace of the Karpenter pods and the nodeclaim ConfigMap",
        validation_alias=AliasChoices("KARPENTER_NAMESPACE", "LP4K_NAMESPACE"),
    )
    LABEL: str = Field(
        default=DEFAULT_LABEL,
        description="Label selector for the Karpenter pods",
        validation_alias=AliasChoices("KARPENTER_LABEL", "LP4K_LABEL"),
    )
    CM_UPDATE_FREQ: str = Field(
        default=DEFAULT_CM_UPDATE_FREQ,
        description="Export interval as Go duration text, e.g. 30s or 2m10s",
        validation_alias=AliasChoices("KARPENTER_CM_UPDATE_FREQ", "LP4K_CM_UPDATE_FREQ"),
    )
    CONFIGMAP_NAME: str = Field(default=DEFAULT_CONFIGMAP_NAME)
    LOG_LEVEL: str = Field(default="INFO")
    PORT: int | None = Field(default=None, description="Status server port (None = disabled)")
    KUBECTL: str = Field(default="kubectl", description="kubectl binary")
    KUBECTL_TIMEOUT: float = Field(default=DEFAULT_KUBECTL_TIMEOUT)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
        env_prefix="LP4K_",
        populate_by_name=True,
    )

    @field_validator("CM_UPDATE_FREQ")
    @classmethod
    def validate_cm_update_freq(cls, v: str) -> str:
        try:
            interval = parse_go_duration(v)
        except ValueError as e:
            raise ValueError(
                f"KARPENTER_CM_UPDATE_FREQ must be a valid duration like \"30s\" or \"2m10s\", got '{v}'"
            ) from e
        if interval <= timedelta(0):
            raise ValueError(f"KARPENTER_CM_UPDATE_FREQ must be positive, got '{v}'")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"LOG_LEVEL must be one of {valid_levels}, got '{v}'")
        return v_upper

    @field_validator("PORT")
    @classmethod
    def validate_port(cls, v: int | None) -> int | None:
        if v is not None and not 1 <= v <= 65535:
            raise ValueError(f"PORT must be between 1 and 65535, got {v}")
        return v

    @field_validator("CONFIGMAP_NAME")
    @classmethod
    def validate_configmap_name(cls, v: str) -> str:
        if not re.match(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$", v):
            raise ValueError(f"CONFIGMAP_NAME is not a valid Kubernetes object name: '{v}'")
        return v

    @field_validator("KUBECTL_TIMEOUT")
    @classmethod
    def validate_kubectl_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"KUBECTL_TIMEOUT must be positive, got {v}")
        return v

    @property
    def update_interval(self) -> timedelta:
        return parse_go_duration(self.CM_UPDATE_FREQ)


class ConfigurationError(Lp4kError):
    """Raised when the environment holds invalid settings."""


def load_settings() -> Settings:
    """Load settings from the environment, failing with a readable message."""
    try:
        return Settings()
    except Exception as e:
        raise ConfigurationError(f"lp4k configuration error: {e}") from e


def setup_logging(level_name: str = "INFO", verbose: bool = False) -> None:
    """Configure root logging for the CLI entry points (diagnostics go to stderr)."""
    level = logging.DEBUG if verbose else getattr(logging, level_name.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
    logging.getLogger().setLevel(level)
