"""Data models for Auth Sentry.

Parsed login events, per-identity window state and the alerts raised
from it. Events and alerts are frozen once built; window state is owned
and mutated by the aggregator only.
"""

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class Outcome(str, Enum):
    """Result of an authentication attempt."""

    FAILED = "failed"
    SUCCEEDED = "succeeded"


class Severity(str, Enum):
    """Alert severity band, ordered LOW < MEDIUM < HIGH."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return _SEVERITY_RANK[self]


_SEVERITY_RANK = {Severity.LOW: 0, Severity.MEDIUM: 1, Severity.HIGH: 2}


class LoginEvent(BaseModel):
    """One authentication attempt parsed from a log line."""

    model_config = ConfigDict(frozen=True)

    timestamp: datetime
    source_identity: str = Field(..., min_length=1)
    outcome: Outcome
    raw: str = ""

    @property
    def failed(self) -> bool:
        return self.outcome is Outcome.FAILED


class WindowState(BaseModel):
    """Failure counter for one identity inside its current window."""

    model_config = ConfigDict(validate_assignment=True)

    identity: str
    count: int = Field(default=0, ge=0)
    window_start: datetime
    last_seen: datetime


class WindowCount(BaseModel):
    """Aggregator answer for one ingested event.

    ``window_start``/``window_end`` are None when the identity holds no
    state (for instance after a reset on success).
    """

    model_config = ConfigDict(frozen=True)

    identity: str
    count: int = Field(default=0, ge=0)
    window_start: Optional[datetime] = None
    window_end: Optional[datetime] = None


class Alert(BaseModel):
    """Threshold alert for one identity and window."""

    model_config = ConfigDict(frozen=True)

    alert_id: str
    identity: str
    count: int = Field(..., ge=0)
    window_start: datetime
    window_end: datetime
    severity: Severity
    score: int = Field(default=0, ge=0, le=100)
    title: str = "Brute Force Login Attempts Detected"
    description: str = ""
