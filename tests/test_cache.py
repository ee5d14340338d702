"""
Unit tests for the response cache and rate limiter.
"""

import pytest

from sales_insights.data.cache import InMemoryStore, RateLimiter, ResponseCache


class FakeClock:
    """Manually advanced clock."""

    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return InMemoryStore(clock=clock)


class TestInMemoryStore:
    """Test InMemoryStore."""

    def test_set_and_get(self, store):
        store.set("key", "value")

        assert store.get("key") == "value"

    def test_expiry(self, store, clock):
        store.set("key", "value", ttl_seconds=60)

        clock.advance(59)
        assert store.get("key") == "value"

        clock.advance(1)
        assert store.get("key") is None

    def test_write_sweeps_expired_entries_never_read_again(self, clock):
        store = InMemoryStore(clock=clock, sweep_interval=60)
        for i in range(20):
            store.set(f"ratelimit:10.0.0.{i}", [clock()], ttl_seconds=30)
        store.set("permanent", "value")

        clock.advance(60)
        store.set("fresh", "value", ttl_seconds=30)

        assert len(store) == 2
        assert store.get("permanent") == "value"
        assert store.get("fresh") == "value"

    def test_no_sweep_before_interval(self, clock):
        store = InMemoryStore(clock=clock, sweep_interval=60)
        store.set("old", "value", ttl_seconds=10)

        clock.advance(30)
        store.set("new", "value")

        assert len(store) == 2

    def test_explicit_sweep(self, store, clock):
        store.set("a", 1, ttl_seconds=10)
        store.set("b", 2, ttl_seconds=100)

        clock.advance(10)

        assert store.sweep() == 1
        assert len(store) == 1

    def test_delete_and_clear(self, store):
        store.set("a", 1)
        store.set("b", 2)

        store.delete("a")
        assert store.get("a") is None

        store.clear()
        assert store.get("b") is None


class TestResponseCache:
    """Test ResponseCache."""

    def test_signature_normalizes_question(self):
        assert ResponseCache.signature("  Top Products? ") == ResponseCache.signature("top products?")

    def test_signature_depends_on_conversation(self):
        conversation = [{"role": "user", "content": "December 2024"}]

        assert ResponseCache.signature("What about Latte?") != ResponseCache.signature(
            "What about Latte?", conversation
        )

    def test_cached_answer_expires(self, store, clock):
        cache = ResponseCache(store, ttl_seconds=3600)
        cache.set("question", [], "answer")

        assert cache.get("question", []) == "answer"

        clock.advance(3600)
        assert cache.get("question", []) is None


class TestRateLimiter:
    """Test RateLimiter."""

    def test_eleventh_call_is_rejected(self, store, clock):
        limiter = RateLimiter(store, clock=clock)

        results = [limiter.allow("10.0.0.1") for _ in range(11)]

        assert results == [True] * 10 + [False]

    def test_clients_are_counted_separately(self, store, clock):
        limiter = RateLimiter(store, limit=1, clock=clock)

        assert limiter.allow("10.0.0.1")
        assert limiter.allow("10.0.0.2")
        assert not limiter.allow("10.0.0.1")

    def test_window_rolls(self, store, clock):
        limiter = RateLimiter(store, limit=2, window_seconds=3600, clock=clock)
        limiter.allow("client")
        clock.advance(1800)
        limiter.allow("client")
        assert not limiter.allow("client")

        # The first call leaves the window
        clock.advance(1800)
        assert limiter.allow("client")
        assert not limiter.allow("client")

    def test_rejected_calls_are_not_recorded(self, store, clock):
        limiter = RateLimiter(store, limit=1, window_seconds=60, clock=clock)
        limiter.allow("client")

        for _ in range(5):
            clock.advance(10)
            assert not limiter.allow("client")

        # Only the accepted call counts, so the window frees up after it
        clock.advance(10)
        assert limiter.allow("client")

    def test_missing_address_shares_anonymous_bucket(self, store, clock):
        limiter = RateLimiter(store, limit=1, clock=clock)

        assert limiter.allow(None)
        assert not limiter.allow("")
