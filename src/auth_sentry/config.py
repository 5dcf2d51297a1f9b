"""Detector configuration.

All tunable policy lives in :class:`DetectorConfig`. Values come from the
model defaults, an optional YAML file and CLI overrides, in that order.
Durations are ``timedelta``s; in YAML they are given in seconds.
"""

import logging
import re
from datetime import timedelta
from enum import Enum
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from auth_sentry.errors import ConfigError

logger = logging.getLogger(__name__)


DEFAULT_FAILURE_MARKERS: tuple[str, ...] = ("Failed login", "Failed password")
DEFAULT_SUCCESS_MARKERS: tuple[str, ...] = ("Accepted login", "Accepted password")


class OverflowPolicy(str, Enum):
    """What to do with a new identity once the tracking limit is reached."""

    EVICT_OLDEST = "evict_oldest"  # fail-open
    REJECT = "reject"  # fail-closed


class DetectorConfig(BaseModel):
    """Validated detection policy.

    ``eviction_grace`` defaults to twice ``window_duration`` and may not be
    shorter than one window, otherwise live counts could be evicted.
    """

    model_config = ConfigDict(extra="forbid")

    window_duration: timedelta = timedelta(seconds=60)
    eviction_grace: Optional[timedelta] = None
    threshold: int = Field(default=3, gt=0)
    reset_on_success: bool = False
    max_line_length: int = Field(default=8192, gt=0)
    max_identities: int = Field(default=100_000, gt=0)
    overflow_policy: OverflowPolicy = OverflowPolicy.EVICT_OLDEST
    sweep_interval: int = Field(default=1000, gt=0)
    medium_factor: int = Field(default=2, gt=1)
    high_factor: int = Field(default=4, gt=1)
    failure_markers: tuple[str, ...] = Field(default=DEFAULT_FAILURE_MARKERS, min_length=1)
    success_markers: tuple[str, ...] = Field(default=DEFAULT_SUCCESS_MARKERS, min_length=1)
    # Regex searched after the marker; group "identity" (or group 1) is the identity.
    # Unset means the last whitespace-delimited field, skipping an sshd "port N ssh2" trailer.
    identity_pattern: Optional[str] = None

    @field_validator("identity_pattern")
    @classmethod
    def _compiles(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            compiled = re.compile(value)
        except re.error as e:
            raise ValueError(f"identity_pattern does not compile: {e}") from e
        if compiled.groups < 1:
            raise ValueError("identity_pattern needs a capturing group")
        return value

    @field_validator("window_duration", "eviction_grace")
    @classmethod
    def _positive_duration(cls, value: Optional[timedelta]) -> Optional[timedelta]:
        if value is not None and value <= timedelta(0):
            raise ValueError("duration must be positive")
        return value

    @field_validator("failure_markers", "success_markers")
    @classmethod
    def _non_empty_markers(cls, value: tuple[str, ...]) -> tuple[str, ...]:
        if any(not marker.strip() for marker in value):
            raise ValueError("outcome markers must not be blank")
        return value

    @model_validator(mode="after")
    def _check_policy(self) -> "DetectorConfig":
        if self.eviction_grace is None:
            self.eviction_grace = self.window_duration * 2
        if self.eviction_grace < self.window_duration:
            raise ValueError("eviction_grace must be at least window_duration")
        if self.high_factor <= self.medium_factor:
            raise ValueError("high_factor must be greater than medium_factor")
        return self


def build_config(**values: Any) -> DetectorConfig:
    """Build a DetectorConfig, turning validation failures into ConfigError.

    Keys whose value is None are ignored so unset CLI options fall back
    to the defaults.
    """
    values = {k: v for k, v in values.items() if v is not None}
    try:
        return DetectorConfig(**values)
    except ValidationError as e:
        raise ConfigError(f"Invalid detector configuration: {e}") from e


def load_config(path: Optional[Path | str] = None, **overrides: Any) -> DetectorConfig:
    """Load configuration from a YAML file and apply overrides.

    Args:
        path: Optional YAML file whose keys mirror DetectorConfig fields.
        **overrides: Values taking precedence over the file (None = unset).

    Returns:
        Validated DetectorConfig.

    Raises:
        ConfigError: If the file is missing, malformed or the policy is invalid.
    """
    values: dict[str, Any] = {}

    if path is not None:
        path = Path(path)
        if not path.exists():
            raise ConfigError(f"Config file not found: {path}")
        try:
            data = yaml.safe_load(path.read_text(encoding="utf-8"))
        except yaml.YAMLError as e:
            raise ConfigError(f"Malformed config file {path}: {e}") from e
        if data is None:
            data = {}
        if not isinstance(data, dict):
            raise ConfigError(f"Config file {path} must contain a mapping")
        values.update(data)
        logger.debug(f"Loaded {len(data)} config keys from {path}")

    values.update({k: v for k, v in overrides.items() if v is not None})
    return build_config(**values)
