# src/cryptotracker/infrastructure/pricing/governor.py
"""
Process-wide upstream call governor.

A single timer decides when the next CoinGecko call may be issued. Two rules
move it forward:
  - every issued call pushes it to `now + min_interval` (spacing),
  - a 429 response pushes it to `now + backoff` (rate-limit backoff).
Spacing never shortens a running backoff; only the clock lifts it.

Unlike the old in-client sleeper this never blocks: callers ask
`can_call_now()` and serve cached data when the answer is no.
"""

import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Optional

from cryptotracker.domain.entities import utcnow

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GovernorState:
    next_allowed_call_at: Optional[datetime]
    backoff_until: Optional[datetime]


class RateLimitGovernor:
    def __init__(
        self,
        min_interval_seconds: float = 2.0,
        backoff_seconds: float = 60.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        if min_interval_seconds < 0 or backoff_seconds < 0:
            raise ValueError("Governor intervals must be >= 0")
        self._min_interval = timedelta(seconds=min_interval_seconds)
        self._backoff = timedelta(seconds=backoff_seconds)
        self._clock = clock
        self._lock = threading.Lock()
        self._next_allowed_call_at: Optional[datetime] = None
        self._backoff_until: Optional[datetime] = None

    def _callable_at(self, now: datetime) -> bool:
        return self._next_allowed_call_at is None or now >= self._next_allowed_call_at

    def can_call_now(self) -> bool:
        with self._lock:
            return self._callable_at(self._clock())

    def try_acquire(self) -> bool:
        """
        Atomically checks the window and, if open, records a call as issued.
        Returns False (and changes nothing) when the window is closed.
        """
        with self._lock:
            now = self._clock()
            if not self._callable_at(now):
                return False
            self._push_next(now + self._min_interval)
            return True

    def record_call_issued(self) -> None:
        with self._lock:
            self._push_next(self._clock() + self._min_interval)

    def record_rate_limited(self) -> None:
        with self._lock:
            until = self._clock() + self._backoff
            self._next_allowed_call_at = until
            self._backoff_until = until
        log.warning("Upstream rate limit hit. Backing off for %.0fs (until %s)",
                    self._backoff.total_seconds(), until.isoformat())

    def record_success(self) -> None:
        with self._lock:
            if self._backoff_until is not None and self._clock() >= self._backoff_until:
                self._backoff_until = None

    def seconds_until_callable(self) -> float:
        with self._lock:
            if self._next_allowed_call_at is None:
                return 0.0
            remaining = (self._next_allowed_call_at - self._clock()).total_seconds()
            return max(0.0, remaining)

    def snapshot(self) -> GovernorState:
        with self._lock:
            backoff_until = self._backoff_until
            if backoff_until is not None and self._clock() >= backoff_until:
                backoff_until = None
            return GovernorState(
                next_allowed_call_at=self._next_allowed_call_at,
                backoff_until=backoff_until,
            )

    def _push_next(self, candidate: datetime) -> None:
        # Caller holds the lock.
        if self._next_allowed_call_at is None or candidate > self._next_allowed_call_at:
            self._next_allowed_call_at = candidate
