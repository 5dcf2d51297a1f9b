"""Threshold alerting with per-window suppression.

An alert is raised once per identity and window. Further failures in the
same window stay quiet until the count crosses into a higher severity
band, which re-emits with the new count and severity.
"""

import logging
import uuid
from datetime import datetime
from typing import NamedTuple, Optional

from auth_sentry.config import DetectorConfig
from auth_sentry.errors import ConfigError
from auth_sentry.schema import Alert, Severity
from auth_sentry.scoring import calculate_alert_score, severity_for_count

logger = logging.getLogger(__name__)


class _AlertNote(NamedTuple):
    window_start: datetime
    severity: Severity


class AlertEvaluator:
    """Decide whether a window count warrants an alert.

    Args:
        config: Validated detector configuration (defaults if omitted).
    """

    def __init__(self, config: Optional[DetectorConfig] = None) -> None:
        self.config = config or DetectorConfig()
        self._notes: dict[str, _AlertNote] = {}

    def evaluate(
        self,
        identity: str,
        count: int,
        window_start: datetime,
        window_end: datetime,
        threshold: Optional[int] = None,
    ) -> Optional[Alert]:
        """Return an Alert if the count reaches the threshold and is not suppressed.

        Args:
            identity: Source identity the count belongs to.
            count: Failures in the current window.
            window_start: Start of the current window.
            window_end: End of the current window.
            threshold: Overrides the configured threshold.

        Returns:
            Alert, or None below threshold or when suppressed.

        Raises:
            ConfigError: If an explicit threshold is not positive.
        """
        if threshold is None:
            threshold = self.config.threshold
        elif threshold <= 0:
            raise ConfigError(f"threshold must be positive, got {threshold}")
        if count < threshold:
            return None

        severity = severity_for_count(
            count,
            threshold,
            medium_factor=self.config.medium_factor,
            high_factor=self.config.high_factor,
        )

        note = self._notes.get(identity)
        if (
            note is not None
            and note.window_start == window_start
            and severity.rank <= note.severity.rank
        ):
            return None

        escalated = note is not None and note.window_start == window_start
        self._notes[identity] = _AlertNote(window_start, severity)

        alert = _create_alert(identity, count, window_start, window_end, severity, threshold)
        if escalated:
            logger.info(f"Escalated alert for {identity}: {count} failures ({severity.value})")
        else:
            logger.info(f"Brute force detected for {identity}: {count} failures ({severity.value})")
        return alert

    def forget(self, identity: str) -> None:
        """Drop the suppression note for an identity."""
        self._notes.pop(identity, None)

    def last_severity(self, identity: str) -> Optional[Severity]:
        note = self._notes.get(identity)
        return note.severity if note else None

    def __len__(self) -> int:
        return len(self._notes)


def _create_alert(
    identity: str,
    count: int,
    window_start: datetime,
    window_end: datetime,
    severity: Severity,
    threshold: int,
) -> Alert:
    window_seconds = int((window_end - window_start).total_seconds())
    desc = (
        f"Detected {count} failed login attempts from {identity} within a "
        f"{window_seconds}s window starting {window_start.isoformat()} "
        f"(threshold {threshold}). This pattern is consistent with a brute force attack."
    )

    return Alert(
        alert_id=f"BFA-{uuid.uuid4().hex[:8].upper()}",
        identity=identity,
        count=count,
        window_start=window_start,
        window_end=window_end,
        severity=severity,
        score=calculate_alert_score(count, threshold, severity),
        description=desc,
    )
