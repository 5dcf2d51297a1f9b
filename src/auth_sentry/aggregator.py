"""Per-identity failure counting over fixed-origin windows.

Each identity gets a window that starts at its first failure and is held
for ``window_duration``. The first failure at or after the window end
re-anchors a fresh window with a count of 1. This is not a true sliding
window: counts are never re-derived from past events, so memory stays at
one small record per active identity. True sliding-window semantics
would need a retained event log per identity.

The aggregator is a single-writer structure. Every mutation and every
snapshot happens under one lock, and callers are expected to feed events
in non-decreasing timestamp order.
"""

import logging
import threading
from collections import OrderedDict
from datetime import datetime
from typing import Optional

from auth_sentry.config import DetectorConfig, OverflowPolicy
from auth_sentry.errors import CapacityExceededError
from auth_sentry.schema import LoginEvent, WindowCount, WindowState

logger = logging.getLogger(__name__)


class WindowAggregator:
    """Track failed logins per source identity.

    Args:
        config: Validated detector configuration (defaults if omitted).
    """

    def __init__(self, config: Optional[DetectorConfig] = None) -> None:
        self.config = config or DetectorConfig()
        self.window_duration = self.config.window_duration
        self.eviction_grace = self.config.eviction_grace

        # identity -> state, least recently seen first
        self._states: OrderedDict[str, WindowState] = OrderedDict()
        self._lock = threading.Lock()
        self._clock: Optional[datetime] = None
        self._since_sweep = 0
        self._evicted: list[str] = []

    def ingest(self, event: LoginEvent) -> WindowCount:
        """Apply one event and return the identity's current count.

        Raises:
            CapacityExceededError: If the identity is new, the tracking
                limit is reached and the overflow policy is ``reject``.
        """
        with self._lock:
            if self._clock is None or event.timestamp > self._clock:
                self._clock = event.timestamp

            if event.failed:
                state = self._record_failure(event)
                result = self._window_count(state)
            else:
                result = self._record_success(event)

            self._since_sweep += 1
            if self._since_sweep >= self.config.sweep_interval:
                self._sweep_locked(self._clock)

        return result

    def _record_failure(self, event: LoginEvent) -> WindowState:
        identity = event.source_identity
        state = self._states.get(identity)

        if state is None:
            self._make_room(identity)
            state = WindowState(
                identity=identity,
                count=1,
                window_start=event.timestamp,
                last_seen=event.timestamp,
            )
            self._states[identity] = state
            return state

        ts = event.timestamp
        if ts < state.last_seen:
            logger.debug(f"Late event for {identity} at {ts}, clamped to {state.last_seen}")
            ts = state.last_seen

        if ts - state.window_start >= self.window_duration:
            state.window_start = ts
            state.count = 1
        else:
            state.count += 1
        state.last_seen = ts
        self._states.move_to_end(identity)
        return state

    def _record_success(self, event: LoginEvent) -> WindowCount:
        identity = event.source_identity
        state = self._states.get(identity)

        if state is not None and self.config.reset_on_success:
            del self._states[identity]
            self._evicted.append(identity)
            logger.debug(f"Cleared failure window for {identity} after successful login")
            state = None

        if state is None:
            return WindowCount(identity=identity)
        return self._window_count(state)

    def _make_room(self, identity: str) -> None:
        if len(self._states) < self.config.max_identities:
            return

        if self.config.overflow_policy is OverflowPolicy.REJECT:
            raise CapacityExceededError(identity, self.config.max_identities)

        oldest, _ = self._states.popitem(last=False)
        self._evicted.append(oldest)
        logger.warning(
            f"Identity limit {self.config.max_identities} reached; "
            f"evicted least recently seen {oldest}"
        )

    def _window_count(self, state: WindowState) -> WindowCount:
        return WindowCount(
            identity=state.identity,
            count=state.count,
            window_start=state.window_start,
            window_end=state.window_start + self.window_duration,
        )

    def sweep(self, now: Optional[datetime] = None) -> list[str]:
        """Evict identities idle for longer than the eviction grace.

        Args:
            now: Reference time (defaults to the latest event timestamp seen).

        Returns:
            Identities removed by this sweep.
        """
        with self._lock:
            if now is None:
                now = self._clock
            if now is None:
                return []
            return self._sweep_locked(now)

    def _sweep_locked(self, now: datetime) -> list[str]:
        self._since_sweep = 0
        stale = [
            identity
            for identity, state in self._states.items()
            if now - state.last_seen > self.eviction_grace
        ]
        for identity in stale:
            del self._states[identity]
        if stale:
            self._evicted.extend(stale)
            logger.debug(f"Swept {len(stale)} idle identities")
        return stale

    def drain_evicted(self) -> list[str]:
        """Return and forget identities dropped since the last call.

        Covers sweeps, overflow evictions and resets on success.
        """
        with self._lock:
            evicted, self._evicted = self._evicted, []
        return evicted

    def snapshot(self) -> dict[str, WindowState]:
        """Return copies of all tracked window states."""
        with self._lock:
            return {identity: state.model_copy() for identity, state in self._states.items()}

    def get(self, identity: str) -> Optional[WindowState]:
        with self._lock:
            state = self._states.get(identity)
            return state.model_copy() if state is not None else None

    def clear(self) -> None:
        with self._lock:
            self._states.clear()
            self._evicted.clear()
            self._clock = None
            self._since_sweep = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._states)

    def __contains__(self, identity: object) -> bool:
        with self._lock:
            return identity in self._states
