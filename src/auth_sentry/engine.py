"""Detection engine.

Wires the line parser, window aggregator and alert evaluator into one
ordered ingestion path, and hands alerts to an optional dispatcher.
"""

import logging
import threading
from collections import Counter, deque
from dataclasses import dataclass, field
from typing import Iterable, Optional

from auth_sentry.aggregator import WindowAggregator
from auth_sentry.config import DetectorConfig
from auth_sentry.dispatch import AlertDispatcher
from auth_sentry.errors import CapacityExceededError, ParseError, ParseErrorKind
from auth_sentry.evaluator import AlertEvaluator
from auth_sentry.ingest import LineParser
from auth_sentry.schema import Alert

logger = logging.getLogger(__name__)


@dataclass
class RunStats:
    """Counters for one run over a line stream.

    ``alerts`` holds only the most recent alerts when the engine bounds
    retention; ``alerts_total`` and ``alerts_by_severity`` cover the run.
    """

    lines: int = 0
    events: int = 0
    failed_events: int = 0
    rejected: int = 0
    parse_errors: Counter = field(default_factory=Counter)
    alerts: deque[Alert] = field(default_factory=deque)
    alerts_total: int = 0
    alerts_by_severity: Counter = field(default_factory=Counter)

    def record_alert(self, alert: Alert) -> None:
        self.alerts.append(alert)
        self.alerts_total += 1
        self.alerts_by_severity[alert.severity] += 1

    @property
    def skipped(self) -> int:
        return sum(self.parse_errors.values())


class DetectionEngine:
    """Turn raw log lines into alerts.

    ``process_line`` may be called from several producer threads; calls
    are serialized so the aggregator only ever has one writer.

    Args:
        config: Validated detector configuration (defaults if omitted).
        dispatcher: Started AlertDispatcher to hand alerts to, if any.
        parser: LineParser override (defaults to one built from config).
        retain_alerts: How many recent alerts ``stats.alerts`` keeps
            (None = all). Long-running streams should leave this bounded
            and rely on sinks for the full alert history.
    """

    def __init__(
        self,
        config: Optional[DetectorConfig] = None,
        dispatcher: Optional[AlertDispatcher] = None,
        parser: Optional[LineParser] = None,
        retain_alerts: Optional[int] = 1000,
    ) -> None:
        self.config = config or DetectorConfig()
        self.parser = parser or LineParser.from_config(self.config)
        self.aggregator = WindowAggregator(self.config)
        self.evaluator = AlertEvaluator(self.config)
        self.dispatcher = dispatcher
        self.stats = RunStats(alerts=deque(maxlen=retain_alerts))
        self._lock = threading.Lock()

    def process_line(self, line: str) -> Optional[Alert]:
        """Process one raw line.

        Malformed lines and identities refused for capacity are logged,
        counted and skipped.

        Returns:
            The alert raised by this line, if any.
        """
        with self._lock:
            alert = self._process_locked(line)

        if alert is not None and self.dispatcher is not None:
            self.dispatcher.submit(alert)
        return alert

    def _process_locked(self, line: str) -> Optional[Alert]:
        self.stats.lines += 1
        if not line.strip():
            return None

        try:
            event = self.parser.parse(line)
        except ParseError as e:
            self.stats.parse_errors[e.kind] += 1
            logger.warning(f"Skipping line {self.stats.lines}: {e}")
            return None

        self.stats.events += 1
        if event.failed:
            self.stats.failed_events += 1

        try:
            current = self.aggregator.ingest(event)
        except CapacityExceededError as e:
            self.stats.rejected += 1
            logger.warning(f"Rejected event on line {self.stats.lines}: {e}")
            return None

        for identity in self.aggregator.drain_evicted():
            self.evaluator.forget(identity)

        if not event.failed or current.window_start is None:
            return None

        alert = self.evaluator.evaluate(
            current.identity,
            current.count,
            current.window_start,
            current.window_end,
        )
        if alert is not None:
            self.stats.record_alert(alert)
        return alert

    def run(self, lines: Iterable[str]) -> RunStats:
        """Process a whole stream of lines and return the accumulated stats."""
        for line in lines:
            self.process_line(line)

        logger.info(
            f"Processed {self.stats.lines} lines: {self.stats.events} events, "
            f"{self.stats.skipped} skipped, {self.stats.alerts_total} alerts"
        )
        return self.stats

    def sweep(self) -> list[str]:
        """Evict idle identities as of the latest event seen."""
        with self._lock:
            evicted = self.aggregator.sweep()
            for identity in self.aggregator.drain_evicted():
                self.evaluator.forget(identity)
        return evicted

    def parse_error_count(self, kind: ParseErrorKind) -> int:
        return self.stats.parse_errors[kind]


def detect_alerts(lines: Iterable[str], config: Optional[DetectorConfig] = None) -> list[Alert]:
    """Run detection over lines and return the alerts raised.

    Args:
        lines: Raw log lines.
        config: Detector configuration (defaults if omitted).

    Returns:
        Alerts in the order they were raised.
    """
    return list(DetectionEngine(config, retain_alerts=None).run(lines).alerts)
