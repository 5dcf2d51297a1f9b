"""Tests for asynchronous alert delivery."""

import threading
import pytest
from datetime import datetime

from auth_sentry.dispatch import AlertDispatcher
from auth_sentry.errors import DeliveryError
from auth_sentry.schema import Alert, Severity


def _alert(n: int) -> Alert:
    return Alert(
        alert_id=f"BFA-{n:08d}",
        identity=f"10.0.0.{n}",
        count=3,
        window_start=datetime(2024, 3, 12, 10, 10, 0),
        window_end=datetime(2024, 3, 12, 10, 11, 0),
        severity=Severity.LOW,
    )


class RecordingSink:
    name = "recording"

    def __init__(self):
        self.delivered = []
        self.thread_names = set()

    def deliver(self, alert):
        self.thread_names.add(threading.current_thread().name)
        self.delivered.append(alert)


class FailingSink:
    name = "failing"

    def __init__(self):
        self.calls = 0

    def deliver(self, alert):
        self.calls += 1
        raise DeliveryError(self.name, "endpoint down")


class BrokenSink:
    name = "broken"

    def deliver(self, alert):
        raise RuntimeError("bug in sink")


class BlockingSink:
    name = "blocking"

    def __init__(self):
        self.entered = threading.Event()
        self.release = threading.Event()
        self.delivered = []

    def deliver(self, alert):
        self.entered.set()
        self.release.wait(timeout=10)
        self.delivered.append(alert)


class TestAlertDispatcher:
    """Tests for AlertDispatcher."""

    def test_delivers_all_alerts_in_order(self):
        sink = RecordingSink()

        with AlertDispatcher([sink]) as dispatcher:
            for n in range(5):
                dispatcher.submit(_alert(n))

        assert [a.alert_id for a in sink.delivered] == [_alert(n).alert_id for n in range(5)]
        assert all(r.ok for r in dispatcher.results)

    def test_delivers_from_worker_thread(self):
        sink = RecordingSink()

        with AlertDispatcher([sink]) as dispatcher:
            dispatcher.submit(_alert(1))

        assert sink.thread_names == {"auth-sentry-dispatch"}

    def test_failure_recorded_not_retried(self):
        """Test a failing sink is tried once per alert and does not block others."""
        failing = FailingSink()
        recording = RecordingSink()

        with AlertDispatcher([failing, recording]) as dispatcher:
            dispatcher.submit(_alert(1))
            dispatcher.submit(_alert(2))

        assert failing.calls == 2
        assert len(recording.delivered) == 2
        failures = dispatcher.failures
        assert len(failures) == 2
        assert failures[0].sink == "failing"
        assert failures[0].error == "endpoint down"
        assert len(dispatcher.results) == 4

    def test_unexpected_sink_error_keeps_worker_alive(self):
        recording = RecordingSink()

        with AlertDispatcher([BrokenSink(), recording]) as dispatcher:
            dispatcher.submit(_alert(1))
            dispatcher.submit(_alert(2))

        assert len(recording.delivered) == 2
        assert [r.error for r in dispatcher.failures] == ["bug in sink", "bug in sink"]

    def test_submit_requires_start(self):
        dispatcher = AlertDispatcher([RecordingSink()])

        with pytest.raises(RuntimeError):
            dispatcher.submit(_alert(1))

    def test_close_without_start_is_noop(self):
        dispatcher = AlertDispatcher([])
        dispatcher.close()
        assert not dispatcher.running

    def test_start_twice_is_noop(self):
        dispatcher = AlertDispatcher([RecordingSink()])
        dispatcher.start()
        thread = dispatcher._thread
        dispatcher.start()

        assert dispatcher._thread is thread
        dispatcher.close()
        assert not dispatcher.running

    def test_results_bounded_counts_exact(self):
        """Test only recent delivery outcomes are kept while counters cover everything."""
        with AlertDispatcher([RecordingSink(), FailingSink()], max_results=10) as dispatcher:
            for n in range(100):
                dispatcher.submit(_alert(n))

        assert len(dispatcher.results) == 10
        assert dispatcher.delivered_count == 100
        assert dispatcher.failure_count == 100

    def test_no_second_worker_after_timed_out_close(self):
        """Test a worker still draining after close() blocks a restart."""
        sink = BlockingSink()
        dispatcher = AlertDispatcher([sink])
        dispatcher.start()
        dispatcher.submit(_alert(1))
        assert sink.entered.wait(timeout=5)

        dispatcher.close(timeout=0.01)
        thread = dispatcher._thread
        assert thread is not None and thread.is_alive()
        with pytest.raises(RuntimeError):
            dispatcher.start()
        with pytest.raises(RuntimeError):
            dispatcher.submit(_alert(2))

        sink.release.set()
        dispatcher.close(timeout=5)
        assert not thread.is_alive()
        assert not dispatcher.running
        assert [a.alert_id for a in sink.delivered] == [_alert(1).alert_id]

        dispatcher.start()
        dispatcher.submit(_alert(3))
        dispatcher.close(timeout=5)
        assert len(sink.delivered) == 2
