"""Report sinks and alert serialization.

Sinks receive alerts one at a time from the dispatcher. Every sink raises
DeliveryError on failure and never retries on its own.
"""

import json
import logging
import threading
from pathlib import Path
from typing import Optional, Protocol, Sequence

import requests
import typer

from auth_sentry.errors import DeliveryError
from auth_sentry.schema import Alert

logger = logging.getLogger(__name__)


class ReportSink(Protocol):
    """Anything that can take delivery of an alert."""

    name: str

    def deliver(self, alert: Alert) -> None:
        ...


class ConsoleSink:
    """Print one text line per alert to stdout."""

    name = "console"

    def deliver(self, alert: Alert) -> None:
        try:
            typer.echo(format_alert_line(alert))
        except OSError as e:
            raise DeliveryError(self.name, str(e)) from e


class CollectingSink:
    """Keep every delivered alert in memory, for a summary written at exit."""

    name = "collect"

    def __init__(self) -> None:
        self.alerts: list[Alert] = []

    def deliver(self, alert: Alert) -> None:
        self.alerts.append(alert)


class JsonlFileSink:
    """Append one JSON object per alert to a file (JSON Lines)."""

    name = "jsonl"

    def __init__(self, path: Path | str) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def deliver(self, alert: Alert) -> None:
        line = json.dumps(alert_to_dict(alert), default=str) + "\n"
        try:
            with self._lock:
                self.path.parent.mkdir(parents=True, exist_ok=True)
                with open(self.path, "a", encoding="utf-8") as f:
                    f.write(line)
        except OSError as e:
            raise DeliveryError(self.name, f"cannot write {self.path}: {e}") from e


class WebhookSink:
    """POST each alert as JSON to an HTTP endpoint."""

    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self.url = url
        self.timeout = timeout
        self.session = session or requests.Session()

    def deliver(self, alert: Alert) -> None:
        try:
            r = self.session.post(self.url, json=alert_to_dict(alert), timeout=self.timeout)
            r.raise_for_status()
        except requests.exceptions.HTTPError as e:
            raise DeliveryError(self.name, f"HTTP {e.response.status_code} from {self.url}") from e
        except requests.exceptions.RequestException as e:
            raise DeliveryError(self.name, f"request to {self.url} failed: {e}") from e


def generate_alerts_json(alerts: Sequence[Alert], path: Path) -> None:
    """Write alerts to a JSON file.

    Args:
        alerts: Alert objects in the order they were raised.
        path: Output file path.
    """
    data = [alert_to_dict(a) for a in alerts]

    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(data, indent=2, default=str),
        encoding="utf-8"
    )

    logger.info(f"Wrote {len(alerts)} alerts to {path}")


def format_alert_line(alert: Alert) -> str:
    """Format an alert as a single line of text."""
    return (
        f"[{alert.severity.value.upper()}] {alert.identity} "
        f"count={alert.count} "
        f"window={_format_ts(alert.window_start)}..{_format_ts(alert.window_end)} "
        f"score={alert.score} id={alert.alert_id}"
    )


def alert_to_dict(alert: Alert) -> dict:
    """Convert Alert to dictionary for JSON serialization.

    Args:
        alert: Alert object.

    Returns:
        Dictionary representation.
    """
    return {
        "alert_id": alert.alert_id,
        "identity": alert.identity,
        "count": alert.count,
        "window_start": alert.window_start.isoformat(),
        "window_end": alert.window_end.isoformat(),
        "severity": alert.severity.value,
        "score": alert.score,
        "title": alert.title,
        "description": alert.description,
    }


def _format_ts(ts) -> str:
    return ts.strftime("%Y-%m-%d %H:%M:%S")
