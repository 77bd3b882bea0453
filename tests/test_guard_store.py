"""
Tests for the edge guard's in-memory bookkeeping: fixed rate windows,
the login lockout state machine, the expiry sweep and the sweeper thread.

Run with: pytest tests/test_guard_store.py -v
"""
from __future__ import annotations

import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from backoffice.config import Settings
from backoffice.guard import GuardStore, StoreSweeper


@pytest.fixture
def store(clock) -> GuardStore:
    return GuardStore(
        window_seconds=60, max_requests=10, max_attempts=5, lockout_seconds=900, clock=clock
    )


# ---------------------------------------------------------------------------
# Rate window
# ---------------------------------------------------------------------------

class TestRateWindow:
    def test_first_request_opens_window(self, store, clock):
        decision = store.hit_window("1.2.3.4")
        assert decision.allowed
        assert decision.count == 1
        assert decision.reset_at == clock.now + 60

    def test_max_requests_then_reject(self, store):
        for i in range(10):
            assert store.hit_window("1.2.3.4").allowed, f"request {i + 1} rejected"
        rejected = store.hit_window("1.2.3.4")
        assert not rejected.allowed
        assert rejected.count == 10

    def test_rejection_does_not_increment(self, store):
        for _ in range(15):
            store.hit_window("1.2.3.4")
        assert store.hit_window("1.2.3.4").count == 10

    def test_window_resets_after_expiry(self, store, clock):
        for _ in range(12):
            store.hit_window("1.2.3.4")
        clock.advance(60)
        decision = store.hit_window("1.2.3.4")
        assert decision.allowed
        assert decision.count == 1

    def test_clients_are_independent(self, store):
        for _ in range(10):
            store.hit_window("1.2.3.4")
        assert not store.hit_window("1.2.3.4").allowed
        assert store.hit_window("5.6.7.8").allowed

    def test_concurrent_hits_never_lose_increments(self):
        store = GuardStore(window_seconds=60, max_requests=10)
        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(lambda _: store.hit_window("race").allowed, range(50)))
        assert results.count(True) == 10


# ---------------------------------------------------------------------------
# Login lockout state machine
# ---------------------------------------------------------------------------

class TestLoginAttempts:
    def test_clear_client_is_not_locked(self, store):
        assert store.locked_until("1.2.3.4") is None
        assert store.failures("1.2.3.4") == 0

    def test_failures_accumulate_below_threshold(self, store):
        for n in range(1, 5):
            outcome = store.record_failure("1.2.3.4")
            assert not outcome.locked
            assert outcome.failures == n
            assert outcome.attempts_remaining == 5 - n
        assert store.locked_until("1.2.3.4") is None

    def test_threshold_locks_for_exact_duration(self, store, clock):
        for _ in range(4):
            store.record_failure("1.2.3.4")
        outcome = store.record_failure("1.2.3.4")
        assert outcome.locked
        assert outcome.locked_until == clock.now + 900
        assert store.locked_until("1.2.3.4") == clock.now + 900

    def test_lock_expiry_is_stable_while_locked(self, store, clock):
        for _ in range(5):
            store.record_failure("1.2.3.4")
        first = store.locked_until("1.2.3.4")
        clock.advance(600)
        assert store.locked_until("1.2.3.4") == first

    def test_lock_clears_lazily_after_expiry(self, store, clock):
        for _ in range(5):
            store.record_failure("1.2.3.4")
        clock.advance(900)
        assert store.locked_until("1.2.3.4") is None
        assert store.failures("1.2.3.4") == 0
        # Back to Clear: the next failure starts a fresh count
        assert store.record_failure("1.2.3.4").failures == 1

    def test_success_resets_failures(self, store):
        for _ in range(4):
            store.record_failure("1.2.3.4")
        store.record_success("1.2.3.4")
        assert store.failures("1.2.3.4") == 0
        assert not store.record_failure("1.2.3.4").locked

    def test_success_does_not_touch_rate_window(self, store):
        for _ in range(10):
            store.hit_window("1.2.3.4")
        store.record_success("1.2.3.4")
        assert not store.hit_window("1.2.3.4").allowed

    def test_stale_accumulation_restarts(self, store, clock):
        for _ in range(3):
            store.record_failure("1.2.3.4")
        clock.advance(901)
        assert store.record_failure("1.2.3.4").failures == 1

    def test_failure_while_locked_keeps_lock(self, store, clock):
        for _ in range(5):
            store.record_failure("1.2.3.4")
        expiry = store.locked_until("1.2.3.4")
        clock.advance(10)
        outcome = store.record_failure("1.2.3.4")
        assert outcome.locked
        assert outcome.locked_until == expiry


# ---------------------------------------------------------------------------
# Sweep
# ---------------------------------------------------------------------------

class TestSweep:
    def test_sweep_removes_only_expired_entries(self, store, clock):
        store.hit_window("old")
        for _ in range(5):
            store.record_failure("locked-old")
        clock.advance(30)
        store.hit_window("fresh")
        store.record_failure("accumulating")

        clock.advance(30)  # "old" window now expired, "fresh" still live
        assert store.sweep() == (1, 0)
        assert store.stats()["rate_windows"] == 1

        clock.advance(900)  # lock expired, accumulation stale
        windows, attempts = store.sweep()
        assert windows == 1
        assert attempts == 2
        assert store.stats() == {"rate_windows": 0, "login_states": 0, "locked_clients": 0}

    def test_sweep_keeps_live_lock(self, store, clock):
        for _ in range(5):
            store.record_failure("1.2.3.4")
        clock.advance(899)
        store.sweep()
        assert store.locked_until("1.2.3.4") is not None

    def test_stats_counts_locked_clients(self, store):
        for _ in range(5):
            store.record_failure("a")
        store.record_failure("b")
        store.hit_window("a")
        assert store.stats() == {"rate_windows": 1, "login_states": 2, "locked_clients": 1}


class TestSweeper:
    def test_sweeper_runs_until_stopped(self, clock):
        store = GuardStore(window_seconds=60, clock=clock)
        store.hit_window("1.2.3.4")
        clock.advance(61)

        sweeper = StoreSweeper(store, interval=0.01)
        sweeper.start()
        try:
            assert sweeper.running
            deadline = time.monotonic() + 2
            while store.stats()["rate_windows"] and time.monotonic() < deadline:
                time.sleep(0.01)
            assert store.stats()["rate_windows"] == 0
        finally:
            sweeper.stop()
        assert not sweeper.running

    def test_rejects_non_positive_interval(self, store):
        with pytest.raises(ValueError):
            StoreSweeper(store, interval=0)


def test_store_from_settings():
    settings = Settings(
        rate_limit_window_seconds=30,
        rate_limit_max_requests=3,
        login_max_attempts=2,
        login_lockout_seconds=120,
    )
    store = GuardStore.from_settings(settings)
    assert store.window_seconds == 30
    assert store.max_requests == 3
    assert store.max_attempts == 2
    assert store.lockout_seconds == 120
