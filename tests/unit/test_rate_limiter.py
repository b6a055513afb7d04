"""Unit tests for the fixed-window rate limiter.

A fake clock drives time so windows and sweeps are deterministic.
"""

from __future__ import annotations

from roofcalc.intelligence.rate_limiter import RateLimiter


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def _limiter(clock: FakeClock, sweep: float = 300.0) -> RateLimiter:
    return RateLimiter(sweep_interval_seconds=sweep, clock=clock)


class TestRateLimiter:
    def test_allows_up_to_limit(self):
        limiter = _limiter(FakeClock())

        results = [limiter.check("ai", "10.0.0.1", 3, 60) for _ in range(4)]

        assert results == [True, True, True, False]

    def test_window_resets_after_expiry(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        for _ in range(2):
            limiter.check("ai", "10.0.0.1", 2, 60)
        assert not limiter.check("ai", "10.0.0.1", 2, 60)

        clock.advance(60)
        assert not limiter.check("ai", "10.0.0.1", 2, 60)  # boundary still in window

        clock.advance(0.001)
        assert limiter.check("ai", "10.0.0.1", 2, 60)

    def test_clients_and_buckets_are_independent(self):
        limiter = _limiter(FakeClock())
        assert limiter.check("ai", "a", 1, 60)
        assert not limiter.check("ai", "a", 1, 60)

        assert limiter.check("ai", "b", 1, 60)
        assert limiter.check("upload", "a", 1, 60)

    def test_retry_after(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        limiter.check("ai", "a", 1, 60)

        clock.advance(15)
        assert limiter.retry_after("ai", "a") == 45
        assert limiter.retry_after("ai", "unknown") == 0.0

    def test_sweep_removes_expired_windows(self):
        clock = FakeClock()
        limiter = _limiter(clock)
        limiter.check("ai", "old", 5, 60)
        clock.advance(30)
        limiter.check("ai", "new", 5, 60)

        clock.advance(31)
        assert limiter.sweep() == 1
        assert ("ai", "old") not in limiter.windows
        assert ("ai", "new") in limiter.windows

    def test_lazy_sweep_after_interval(self):
        clock = FakeClock()
        limiter = _limiter(clock, sweep=300)
        limiter.check("ai", "idle", 5, 60)

        clock.advance(120)
        limiter.check("ai", "active", 5, 60)
        assert ("ai", "idle") in limiter.windows

        clock.advance(200)
        limiter.check("ai", "active", 5, 60)
        assert ("ai", "idle") not in limiter.windows

    def test_reset(self):
        limiter = _limiter(FakeClock())
        limiter.check("ai", "a", 1, 60)
        limiter.reset()
        assert limiter.check("ai", "a", 1, 60)
