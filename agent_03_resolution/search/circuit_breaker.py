"""
Buprenorphine Pharmacy Locator — Circuit Breaker

Wraps calls to the map search provider.  After ``threshold`` consecutive
failures the breaker opens and every call goes straight to the fallback
until ``reset_timeout`` seconds have passed; the next call is then a trial
(half-open) that closes the breaker on success or re-opens it on failure.

States:
    closed    — calls pass through
    open      — calls short-circuit to the fallback
    half_open — one trial call at a time; concurrent callers get the fallback
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, TypeVar

logger = logging.getLogger(__name__)

T = TypeVar("T")

CLOSED = "closed"
OPEN = "open"
HALF_OPEN = "half_open"


class CircuitBreaker:
    def __init__(
        self,
        name: str = "upstream",
        threshold: int = 3,
        reset_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.threshold = threshold
        self.reset_timeout = reset_timeout
        self._clock = clock
        self._lock = threading.Lock()
        self._failures = 0
        self._opened_at: float | None = None
        self._trial_in_flight = False

    @property
    def state(self) -> str:
        with self._lock:
            return self._state_locked()

    def _state_locked(self) -> str:
        if self._opened_at is None:
            return CLOSED
        if self._clock() - self._opened_at >= self.reset_timeout:
            return HALF_OPEN
        return OPEN

    def call(self, fn: Callable[[], T], fallback: Callable[[], T]) -> T:
        """Run ``fn``; return ``fallback()`` if the breaker is open or ``fn`` raises."""
        with self._lock:
            state = self._state_locked()
            blocked = state == OPEN or (state == HALF_OPEN and self._trial_in_flight)
            if state == HALF_OPEN and not blocked:
                self._trial_in_flight = True

        if blocked:
            logger.debug("Circuit %s %s, using fallback", self.name, state)
            return fallback()

        try:
            result = fn()
        except Exception as e:
            self._record_failure(e)
            return fallback()

        self._record_success()
        return result

    def _record_failure(self, error: Exception) -> None:
        with self._lock:
            self._failures += 1
            half_open = self._state_locked() == HALF_OPEN
            self._trial_in_flight = False
            if half_open or self._failures >= self.threshold:
                self._opened_at = self._clock()
                logger.warning(
                    "Circuit %s opened after %d failure(s): %s",
                    self.name, self._failures, error,
                )
            else:
                logger.warning(
                    "Circuit %s failure %d/%d: %s",
                    self.name, self._failures, self.threshold, error,
                )

    def _record_success(self) -> None:
        with self._lock:
            if self._opened_at is not None:
                logger.info("Circuit %s closed", self.name)
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False

    def reset(self) -> None:
        with self._lock:
            self._failures = 0
            self._opened_at = None
            self._trial_in_flight = False
