"""
Tests for the quota stores.

Property: for any limit, prior usage and burst size, N concurrent
check_and_increment calls on one key admit exactly min(N, remaining).
"""

import asyncio

import fakeredis.aioredis
import pytest
from hypothesis import given, settings, strategies as st

from launchpad_proxy.services.quota_store import InMemoryQuotaStore, QuotaDecision, RedisQuotaStore

from conftest import ManualClock

HOUR = 3600


class TestInMemoryQuotaStore:

    @pytest.mark.asyncio
    async def test_allows_up_to_limit_then_denies(self):
        store = InMemoryQuotaStore(clock=ManualClock())

        decisions = [await store.check_and_increment("k", HOUR, 3) for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]

    @pytest.mark.asyncio
    async def test_denied_requests_are_not_counted(self):
        store = InMemoryQuotaStore(clock=ManualClock())
        for _ in range(5):
            await store.check_and_increment("k", HOUR, 2)

        count, _ = store.windows["k"]
        assert count == 2

    @pytest.mark.asyncio
    async def test_window_rolls_over_after_duration(self):
        clock = ManualClock()
        store = InMemoryQuotaStore(clock=clock)
        await store.check_and_increment("k", HOUR, 1)
        assert not (await store.check_and_increment("k", HOUR, 1)).allowed

        clock.advance(HOUR - 1)
        assert not (await store.check_and_increment("k", HOUR, 1)).allowed

        clock.advance(1)
        decision = await store.check_and_increment("k", HOUR, 1)
        assert decision.allowed
        assert decision.reset_after == HOUR

    @pytest.mark.asyncio
    async def test_window_starts_at_first_request(self):
        clock = ManualClock()
        store = InMemoryQuotaStore(clock=clock)
        await store.check_and_increment("k", HOUR, 5)

        clock.advance(600)
        decision = await store.check_and_increment("k", HOUR, 5)

        assert decision.reset_after == HOUR - 600
        assert decision.reset_seconds == 3000

    @pytest.mark.asyncio
    async def test_keys_are_independent(self):
        store = InMemoryQuotaStore(clock=ManualClock())
        await store.check_and_increment("a", HOUR, 1)

        assert not (await store.check_and_increment("a", HOUR, 1)).allowed
        assert (await store.check_and_increment("b", HOUR, 1)).allowed

    @pytest.mark.asyncio
    async def test_cleanup_removes_only_expired_windows(self):
        clock = ManualClock()
        store = InMemoryQuotaStore(clock=clock)
        await store.check_and_increment("short", 10, 5)
        await store.check_and_increment("long", HOUR, 5)

        clock.advance(20)
        removed = await store.cleanup()

        assert removed == 1
        assert "short" not in store.windows
        assert "long" in store.windows


@settings(max_examples=50, deadline=None)
@given(
    limit=st.integers(min_value=1, max_value=40),
    used=st.integers(min_value=0, max_value=40),
    burst=st.integers(min_value=1, max_value=60),
)
def test_concurrent_burst_admits_exactly_remaining(limit, used, burst):
    """
    Property: concurrent requests near the boundary never overcount or
    undercount; exactly min(burst, remaining) are admitted.
    """

    async def scenario():
        store = InMemoryQuotaStore(clock=ManualClock())
        for _ in range(used):
            await store.check_and_increment("user", HOUR, limit)
        results = await asyncio.gather(
            *(store.check_and_increment("user", HOUR, limit) for _ in range(burst))
        )
        return sum(1 for decision in results if decision.allowed)

    remaining = max(0, limit - used)
    assert asyncio.run(scenario()) == min(burst, remaining)


class TestRedisQuotaStore:

    @pytest.fixture
    def redis(self):
        return fakeredis.aioredis.FakeRedis(decode_responses=True)

    @pytest.mark.asyncio
    async def test_allows_up_to_limit_then_denies(self, redis):
        store = RedisQuotaStore(redis)

        decisions = [await store.check_and_increment("k", HOUR, 3) for _ in range(4)]

        assert [d.allowed for d in decisions] == [True, True, True, False]
        assert [d.remaining for d in decisions] == [2, 1, 0, 0]
        assert int(await redis.get("quota:k")) == 3

    @pytest.mark.asyncio
    async def test_sets_expiry_on_first_hit(self, redis):
        store = RedisQuotaStore(redis)

        decision = await store.check_and_increment("k", HOUR, 3)

        ttl = await redis.pttl("quota:k")
        assert 0 < ttl <= HOUR * 1000
        assert 0 < decision.reset_after <= HOUR

    @pytest.mark.asyncio
    async def test_window_rolls_over_after_expiry(self, redis):
        store = RedisQuotaStore(redis)
        await store.check_and_increment("k", 0.05, 1)
        assert not (await store.check_and_increment("k", 0.05, 1)).allowed

        await asyncio.sleep(0.2)

        assert (await store.check_and_increment("k", 0.05, 1)).allowed

    @pytest.mark.asyncio
    async def test_concurrent_burst_admits_exactly_remaining(self, redis):
        store = RedisQuotaStore(redis)
        for _ in range(25):
            await store.check_and_increment("user", HOUR, 30)

        results = await asyncio.gather(
            *(store.check_and_increment("user", HOUR, 30) for _ in range(10))
        )

        assert sum(1 for decision in results if decision.allowed) == 5


def test_reset_seconds_rounds_up_and_never_negative():
    assert QuotaDecision(True, 10, 5, 0.2).reset_seconds == 1
    assert QuotaDecision(False, 10, 0, -3).reset_seconds == 0
