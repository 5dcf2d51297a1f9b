"""Asynchronous alert delivery.

Alerts are queued by the ingestion path and delivered to every sink by a
single background thread, so a slow or failing sink never stalls
ingestion. Delivery is at-most-once: a failed delivery is recorded and
logged, never re-queued.
"""

import logging
import queue
import threading
from collections import deque
from dataclasses import dataclass
from typing import Iterable, Optional

from auth_sentry.errors import DeliveryError
from auth_sentry.report import ReportSink
from auth_sentry.schema import Alert

logger = logging.getLogger(__name__)

_STOP = object()


@dataclass(frozen=True)
class DeliveryResult:
    """Outcome of delivering one alert to one sink."""

    alert_id: str
    sink: str
    ok: bool
    error: Optional[str] = None


class AlertDispatcher:
    """Deliver alerts to sinks from a background thread.

    Only the most recent ``max_results`` delivery outcomes are kept;
    ``delivered_count`` and ``failure_count`` cover the whole run.

    Args:
        sinks: Sinks every alert is handed to, in order.
        maxsize: Queue bound (0 = unbounded).
        max_results: Delivery outcomes retained (None = all).
    """

    def __init__(
        self,
        sinks: Iterable[ReportSink],
        maxsize: int = 0,
        max_results: Optional[int] = 1000,
    ) -> None:
        self.sinks = list(sinks)
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._results: deque[DeliveryResult] = deque(maxlen=max_results)
        self._results_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closing = False
        self.delivered_count = 0
        self.failure_count = 0

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the delivery thread (no-op if already running).

        Raises:
            RuntimeError: If a previous worker is still draining after a
                timed-out close.
        """
        if self.running:
            if self._closing:
                raise RuntimeError("Previous dispatcher worker is still draining")
            return
        self._closing = False
        self._thread = threading.Thread(
            target=self._process_alerts,
            name="auth-sentry-dispatch",
            daemon=True,
        )
        self._thread.start()
        logger.debug(f"Dispatcher started with {len(self.sinks)} sinks")

    def submit(self, alert: Alert) -> None:
        """Queue an alert for delivery."""
        if not self.running or self._closing:
            raise RuntimeError("Dispatcher is not running; call start() first")
        self._queue.put(alert)

    def close(self, timeout: Optional[float] = None) -> None:
        """Deliver everything still queued, then stop the thread.

        If the worker outlives the timeout it keeps draining and the
        dispatcher cannot be restarted until it has finished.
        """
        if self._thread is None:
            return
        if not self._closing:
            self._closing = True
            self._queue.put(_STOP)
        self._thread.join(timeout=timeout)
        if self._thread.is_alive():
            logger.warning("Dispatcher did not finish within timeout; pending alerts may be lost")
            return
        self._thread = None
        self._closing = False

    @property
    def results(self) -> list[DeliveryResult]:
        with self._results_lock:
            return list(self._results)

    @property
    def failures(self) -> list[DeliveryResult]:
        return [r for r in self.results if not r.ok]

    def __enter__(self) -> "AlertDispatcher":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _process_alerts(self) -> None:
        while True:
            item = self._queue.get()
            try:
                if item is _STOP:
                    return
                self._deliver(item)
            finally:
                self._queue.task_done()

    def _deliver(self, alert: Alert) -> None:
        for sink in self.sinks:
            try:
                sink.deliver(alert)
                result = DeliveryResult(alert.alert_id, sink.name, ok=True)
            except DeliveryError as e:
                logger.warning(f"Delivery of {alert.alert_id} to {sink.name} failed: {e.reason}")
                result = DeliveryResult(alert.alert_id, sink.name, ok=False, error=e.reason)
            except Exception as e:
                # Keep the thread alive for the remaining alerts
                logger.exception(f"Sink {sink.name} raised unexpectedly for {alert.alert_id}")
                result = DeliveryResult(alert.alert_id, sink.name, ok=False, error=str(e))
            with self._results_lock:
                self._results.append(result)
                if result.ok:
                    self.delivered_count += 1
                else:
                    self.failure_count += 1
