"""Keyed failure guard that stops repeatedly failing queries from being retried."""

import logging
import threading
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from .clock import Clock, SystemClock
from .config import GuardConfig
from .errors import QueryBlocked
from .keys import canonicalize
from .models import GuardSnapshot, GuardState, GuardStatus

logger = logging.getLogger("query_guard")


class QueryGuard:
    """
    Track consecutive failures per query key and block keys that keep failing.

    A key that fails ``failure_threshold`` times in a row is blocked for
    ``block_duration_ms``. Once the window expires the key is let through
    again; one more failure re-blocks it for a full window, while a single
    success clears its history.

    The guard only decides and records. Callers perform the query themselves
    and report the outcome with ``record_failure`` or ``record_success``.
    """

    def __init__(self, config: Optional[GuardConfig] = None, clock: Optional[Clock] = None):
        """
        Initialize the guard.

        Args:
            config: Guard configuration (defaults: 3 failures, 30s block)
            clock: Time source, injectable for tests
        """
        self.config = config or GuardConfig()
        self.clock = clock or SystemClock()
        self._table: "OrderedDict[str, GuardState]" = OrderedDict()
        self._lock = threading.RLock()

    def __len__(self) -> int:
        return len(self._table)

    def __contains__(self, key: Any) -> bool:
        return canonicalize(key) in self._table

    def _status_of(self, state: Optional[GuardState], now: float) -> GuardStatus:
        if state is None:
            return GuardStatus.CLOSED
        return state.status(now, self.config.failure_threshold)

    def status(self, key: Any) -> GuardStatus:
        """Return the logical state of a key."""
        canonical = canonicalize(key)
        with self._lock:
            return self._status_of(self._table.get(canonical), self.clock.now_ms())

    def classify(self, key: Any) -> bool:
        """
        Check whether a key is currently blocked.

        Args:
            key: Query key

        Returns:
            True if the key is blocked, False if the query may run
        """
        return self.status(key) is GuardStatus.OPEN

    def retry_after_ms(self, key: Any) -> float:
        """
        Milliseconds until the key admits callers again.

        Covers the block window and, with ``single_probe``, another caller's
        probe claim. Returns 0 when a caller would be admitted now.
        """
        canonical = canonicalize(key)
        with self._lock:
            state = self._table.get(canonical)
            now = self.clock.now_ms()
            status = self._status_of(state, now)
            if status is GuardStatus.OPEN:
                return state.blocked_until - now
            if (
                status is GuardStatus.REOPENED
                and self.config.single_probe
                and state.probe_until is not None
                and now < state.probe_until
            ):
                return state.probe_until - now
            return 0.0

    def check(self, key: Any) -> None:
        """Raise ``QueryBlocked`` if the key is blocked."""
        if self.classify(key):
            raise QueryBlocked(canonicalize(key), self.retry_after_ms(key))

    def try_acquire(self, key: Any) -> bool:
        """
        Decide whether a caller may attempt the query now.

        Behaves like ``not classify(key)`` unless ``single_probe`` is enabled;
        then a reopened key admits one caller and turns the others away until
        that caller reports back or its claim expires.
        """
        canonical = canonicalize(key)
        with self._lock:
            state = self._table.get(canonical)
            now = self.clock.now_ms()
            status = self._status_of(state, now)
            if status is GuardStatus.OPEN:
                return False
            if status is GuardStatus.REOPENED and self.config.single_probe:
                if state.probe_until is not None and now < state.probe_until:
                    return False
                state.probe_until = now + self.config.block_duration_ms
                logger.info("Admitting probe for %s", canonical)
            return True

    def record_failure(self, key: Any) -> None:
        """
        Record a failed attempt, blocking the key once the threshold is reached.

        Args:
            key: Query key that failed
        """
        canonical = canonicalize(key)
        with self._lock:
            now = self.clock.now_ms()
            state = self._table.get(canonical)
            if state is None:
                state = GuardState()
                self._table[canonical] = state
                self._evict_overflow(now, keep=canonical)
            else:
                self._table.move_to_end(canonical)

            state.consecutive_failures += 1
            state.probe_until = None
            if state.consecutive_failures >= self.config.failure_threshold:
                state.blocked_until = now + self.config.block_duration_ms
                logger.warning(
                    "Blocking %s for %dms after %d consecutive failures",
                    canonical,
                    self.config.block_duration_ms,
                    state.consecutive_failures,
                )

    def record_success(self, key: Any) -> None:
        """
        Record a successful attempt, clearing all failure history for the key.

        Args:
            key: Query key that succeeded
        """
        canonical = canonicalize(key)
        with self._lock:
            state = self._table.pop(canonical, None)
        if state is not None and state.consecutive_failures:
            logger.info("Recovered %s after %d failures", canonical, state.consecutive_failures)

    @contextmanager
    def attempt(self, key: Any) -> Iterator[None]:
        """
        Run one guarded attempt.

        Example:
            with guard.attempt(["user-profile"]):
                profile = fetch_profile()
        """
        if not self.try_acquire(key):
            raise QueryBlocked(canonicalize(key), self.retry_after_ms(key))
        try:
            yield
        except Exception:
            self.record_failure(key)
            raise
        except BaseException:
            # Cancelled or interrupted: no outcome to report
            self.release(key)
            raise
        self.record_success(key)

    def release(self, key: Any) -> None:
        """Drop a pending probe claim on a key without recording an outcome."""
        canonical = canonicalize(key)
        with self._lock:
            state = self._table.get(canonical)
            if state is not None:
                state.probe_until = None

    def inspect(self, key: Any) -> GuardSnapshot:
        """Return a snapshot of a single key, tracked or not."""
        canonical = canonicalize(key)
        with self._lock:
            return self._snapshot(canonical, self._table.get(canonical), self.clock.now_ms())

    def snapshot(self) -> List[GuardSnapshot]:
        """Return snapshots of every tracked key, least recently recorded first."""
        with self._lock:
            now = self.clock.now_ms()
            return [self._snapshot(k, s, now) for k, s in self._table.items()]

    def clear(self) -> None:
        """Forget every tracked key."""
        with self._lock:
            self._table.clear()

    def _snapshot(self, canonical: str, state: Optional[GuardState], now: float) -> GuardSnapshot:
        state = state or GuardState()
        status = self._status_of(state, now)
        return GuardSnapshot(
            key=canonical,
            status=status,
            consecutive_failures=state.consecutive_failures,
            blocked_until=state.blocked_until,
            retry_after_ms=state.blocked_until - now if status is GuardStatus.OPEN else 0.0,
        )

    def _evict_overflow(self, now: float, keep: str) -> None:
        limit = self.config.max_entries
        if limit is None:
            return
        # Open keys are never evicted; the table may exceed the limit until they expire
        while len(self._table) > limit:
            victim = next(
                (
                    k for k, s in self._table.items()
                    if k != keep and self._status_of(s, now) is not GuardStatus.OPEN
                ),
                None,
            )
            if victim is None:
                return
            del self._table[victim]
            logger.debug("Evicted %s from guard table", victim)
