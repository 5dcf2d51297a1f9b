"""Exception hierarchy for Auth Sentry.

Parse, delivery and capacity errors are recoverable and handled by the
ingestion loop; configuration errors are fatal at startup.
"""

from enum import Enum


class AuthSentryError(Exception):
    """Base class for all Auth Sentry errors."""


class ParseErrorKind(str, Enum):
    TOO_LONG = "too_long"
    NO_TIMESTAMP = "no_timestamp"
    NO_OUTCOME_MARKER = "no_outcome_marker"
    INVALID_IDENTITY = "invalid_identity"


class ParseError(AuthSentryError):
    """A log line could not be turned into a LoginEvent."""

    def __init__(self, kind: ParseErrorKind, line: str = "", detail: str = "") -> None:
        self.kind = kind
        self.line = line
        self.detail = detail
        message = kind.value if not detail else f"{kind.value}: {detail}"
        super().__init__(message)


class ConfigError(AuthSentryError, ValueError):
    """Detector configuration is invalid; the detector must not start."""


class DeliveryError(AuthSentryError):
    """A report sink failed to deliver an alert."""

    def __init__(self, sink: str, reason: str) -> None:
        self.sink = sink
        self.reason = reason
        super().__init__(f"{sink}: {reason}")


class CapacityExceededError(AuthSentryError):
    """A new identity was refused because the tracked-identity limit is reached."""

    def __init__(self, identity: str, limit: int) -> None:
        self.identity = identity
        self.limit = limit
        super().__init__(f"cannot track {identity}: limit of {limit} identities reached")
