"""
Tests for the upstream response cache.
"""

import pytest

from shipreport.repositories.cache_repo import InMemoryResponseCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class TestInMemoryResponseCache:
    """Tests for InMemoryResponseCache."""

    @pytest.fixture
    def clock(self) -> FakeClock:
        return FakeClock()

    @pytest.fixture
    def cache(self, clock: FakeClock) -> InMemoryResponseCache:
        return InMemoryResponseCache(clock=clock)

    @pytest.mark.asyncio
    async def test_get_missing_key(self, cache: InMemoryResponseCache) -> None:
        """Test that unknown keys read as absent."""
        assert await cache.get("https://bugzilla.test/rest/bug?id=1") is None

    @pytest.mark.asyncio
    async def test_ttl_boundary(self, cache: InMemoryResponseCache, clock: FakeClock) -> None:
        """Test that an entry is present just before its TTL and gone just after."""
        await cache.set("k", {"bugs": []}, ttl_seconds=1.0)

        clock.advance(0.999)
        assert await cache.get("k") == {"bugs": []}

        clock.advance(0.002)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_default_ttl_is_one_day(self, cache: InMemoryResponseCache, clock: FakeClock) -> None:
        """Test the 24 hour default TTL."""
        await cache.set("k", 1)

        clock.advance(24 * 60 * 60 - 1)
        assert await cache.get("k") == 1

        clock.advance(2)
        assert await cache.get("k") is None

    @pytest.mark.asyncio
    async def test_bypass_skips_reads_and_writes(self, clock: FakeClock) -> None:
        """Test that a bypassed cache never stores or returns values."""
        cache = InMemoryResponseCache(bypass=True, clock=clock)
        await cache.set("k", "v")

        assert cache.is_bypassed()
        assert await cache.get("k") is None
        assert (await cache.get_stats())["total_entries"] == 0

    @pytest.mark.asyncio
    async def test_sweep_runs_on_write_after_interval(self, clock: FakeClock) -> None:
        """Test that expired entries are swept by a write once the interval has passed."""
        cache = InMemoryResponseCache(default_ttl_seconds=10, sweep_interval_seconds=100, clock=clock)
        await cache.set("old", 1)

        clock.advance(50)
        await cache.set("mid", 2)
        assert (await cache.get_stats())["total_entries"] == 2

        clock.advance(51)
        await cache.set("new", 3)
        stats = await cache.get_stats()
        assert stats["total_entries"] == 1
        assert await cache.get("new") == 3

    @pytest.mark.asyncio
    async def test_delete_and_clear(self, cache: InMemoryResponseCache) -> None:
        """Test explicit removal."""
        await cache.set("a", 1)
        await cache.set("b", 2)

        assert await cache.delete("a") is True
        assert await cache.delete("a") is False

        await cache.clear()
        assert await cache.get("b") is None
