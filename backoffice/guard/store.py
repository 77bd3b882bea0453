"""
store.py — In-memory bookkeeping for the edge request guard
===========================================================
Two maps keyed by client id:

  * rate windows     — fixed-duration request counters for the login path
  * login attempts   — consecutive failure counts and lock expiry

Login status per client moves Clear → Accumulating(n) → Locked and back
to Clear on success, or lazily once the lock expires (on the next check
or sweep).

All read-check-write sequences run under one lock so concurrent requests
never lose an increment, and ``sweep()`` only ever removes entries that
are already expired.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock
from typing import Callable, Dict, Optional

from ..config import Settings

log = logging.getLogger("backoffice.guard")

Clock = Callable[[], float]


@dataclass
class RateWindow:
    count: int
    reset_at: float


@dataclass
class LoginAttemptState:
    failures: int = 0
    locked_until: Optional[float] = None
    last_failure_at: float = 0.0


@dataclass
class WindowDecision:
    allowed: bool
    count: int
    reset_at: float


@dataclass
class FailureOutcome:
    locked: bool
    failures: int
    attempts_remaining: int
    locked_until: Optional[float] = None


class GuardStore:
    """Process-scoped rate-window and login-attempt state for one guard instance."""

    def __init__(
        self,
        window_seconds: float = 60,
        max_requests: int = 10,
        max_attempts: int = 5,
        lockout_seconds: float = 15 * 60,
        clock: Clock = time.time,
    ) -> None:
        if max_requests < 1 or max_attempts < 1:
            raise ValueError("max_requests and max_attempts must be at least 1")
        self.window_seconds = window_seconds
        self.max_requests = max_requests
        self.max_attempts = max_attempts
        self.lockout_seconds = lockout_seconds
        self._clock = clock
        self._lock = Lock()
        self._windows: Dict[str, RateWindow] = {}
        self._attempts: Dict[str, LoginAttemptState] = {}

    @classmethod
    def from_settings(cls, settings: Settings, clock: Clock = time.time) -> "GuardStore":
        return cls(
            window_seconds=settings.rate_limit_window_seconds,
            max_requests=settings.rate_limit_max_requests,
            max_attempts=settings.login_max_attempts,
            lockout_seconds=settings.login_lockout_seconds,
            clock=clock,
        )

    # ------------------------------------------------------------------
    # Rate window
    # ------------------------------------------------------------------

    def hit_window(self, client_id: str) -> WindowDecision:
        """Count one request against the client's window.

        A missing or expired window restarts at count 1. A live window at
        ``max_requests`` rejects without incrementing.
        """
        now = self._clock()
        with self._lock:
            window = self._windows.get(client_id)
            if window is None or now >= window.reset_at:
                window = RateWindow(count=1, reset_at=now + self.window_seconds)
                self._windows[client_id] = window
                return WindowDecision(True, window.count, window.reset_at)
            if window.count >= self.max_requests:
                return WindowDecision(False, window.count, window.reset_at)
            window.count += 1
            return WindowDecision(True, window.count, window.reset_at)

    # ------------------------------------------------------------------
    # Login attempts
    # ------------------------------------------------------------------

    def locked_until(self, client_id: str) -> Optional[float]:
        """Return the lock expiry if the client is locked right now.

        An expired lock is cleared here, returning the client to Clear.
        """
        now = self._clock()
        with self._lock:
            state = self._attempts.get(client_id)
            if state is None or state.locked_until is None:
                return None
            if state.locked_until > now:
                return state.locked_until
            del self._attempts[client_id]
            return None

    def record_failure(self, client_id: str) -> FailureOutcome:
        now = self._clock()
        with self._lock:
            state = self._attempts.get(client_id)
            if state is None or self._is_stale(state, now):
                state = LoginAttemptState()
                self._attempts[client_id] = state
            elif state.locked_until is not None and state.locked_until > now:
                # Already locked; the guard normally rejects before we get here.
                return FailureOutcome(True, state.failures, 0, state.locked_until)

            state.failures += 1
            state.last_failure_at = now
            if state.failures >= self.max_attempts:
                state.locked_until = now + self.lockout_seconds
                log.warning(
                    "Client %s locked out for %ds after %d failed login attempts",
                    client_id, self.lockout_seconds, state.failures,
                )
                return FailureOutcome(True, state.failures, 0, state.locked_until)
            return FailureOutcome(False, state.failures, self.max_attempts - state.failures)

    def record_success(self, client_id: str) -> None:
        """Forget all login-attempt state for the client."""
        with self._lock:
            self._attempts.pop(client_id, None)

    def failures(self, client_id: str) -> int:
        with self._lock:
            state = self._attempts.get(client_id)
            return state.failures if state else 0

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------

    def _is_stale(self, state: LoginAttemptState, now: float) -> bool:
        if state.locked_until is not None:
            return state.locked_until <= now
        return now - state.last_failure_at > self.lockout_seconds

    def sweep(self) -> tuple[int, int]:
        """Delete expired windows and stale login state.

        Returns ``(windows_removed, attempts_removed)``.
        """
        now = self._clock()
        with self._lock:
            expired_windows = [k for k, w in self._windows.items() if now >= w.reset_at]
            for key in expired_windows:
                del self._windows[key]
            stale_attempts = [k for k, s in self._attempts.items() if self._is_stale(s, now)]
            for key in stale_attempts:
                del self._attempts[key]
        if expired_windows or stale_attempts:
            log.debug(
                "Guard sweep removed %d rate windows and %d login states",
                len(expired_windows), len(stale_attempts),
            )
        return len(expired_windows), len(stale_attempts)

    def stats(self) -> dict:
        now = self._clock()
        with self._lock:
            locked = sum(
                1 for s in self._attempts.values()
                if s.locked_until is not None and s.locked_until > now
            )
            return {
                "rate_windows": len(self._windows),
                "login_states": len(self._attempts),
                "locked_clients": locked,
            }
