"""Tests for the per-caller rate limit store."""

from taskparse.services.rate_limit import InMemoryRateLimitStore


class FakeClock:
    def __init__(self, start: float = 1000.0) -> None:
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_store(max_requests: int = 3, window_seconds: float = 60.0):
    clock = FakeClock()
    return InMemoryRateLimitStore(max_requests, window_seconds, clock=clock), clock


class TestInMemoryRateLimitStore:
    def test_allows_up_to_the_limit(self):
        store, _ = make_store()
        assert [store.hit("user-1") for _ in range(4)] == [True, True, True, False]

    def test_callers_are_independent(self):
        store, _ = make_store(max_requests=1)
        assert store.hit("user-1")
        assert not store.hit("user-1")
        assert store.hit("user-2")

    def test_window_resets_after_expiry(self):
        store, clock = make_store(max_requests=1)
        assert store.hit("user-1")
        clock.advance(60.0)
        # The window is inclusive of its reset instant
        assert not store.hit("user-1")
        clock.advance(0.5)
        assert store.hit("user-1")

    def test_remaining(self):
        store, clock = make_store()
        assert store.remaining("user-1") == 3
        store.hit("user-1")
        store.hit("user-1")
        assert store.remaining("user-1") == 1
        store.hit("user-1")
        store.hit("user-1")
        assert store.remaining("user-1") == 0
        clock.advance(61.0)
        assert store.remaining("user-1") == 3

    def test_wait_time(self):
        store, clock = make_store(max_requests=1)
        assert store.wait_time_seconds("user-1") == 0.0
        store.hit("user-1")
        clock.advance(20.0)
        assert store.wait_time_seconds("user-1") == 40.0

    def test_reset_one_caller(self):
        store, _ = make_store(max_requests=1)
        store.hit("user-1")
        store.hit("user-2")
        store.reset("user-1")
        assert store.hit("user-1")
        assert not store.hit("user-2")

    def test_reset_all(self):
        store, _ = make_store(max_requests=1)
        store.hit("user-1")
        store.hit("user-2")
        store.reset()
        assert store.hit("user-1")
        assert store.hit("user-2")
