"""Tests for the Redis-backed policy store (mocked Redis)."""

from unittest.mock import AsyncMock

import pytest
from redis.exceptions import TimeoutError as RedisTimeoutError

from carpool.domain.errors import UpstreamDependencyError
from carpool.infrastructure.policy_store import RedisPolicyStore, default_policy


class TestPolicyStore:
    @pytest.mark.asyncio
    async def test_empty_hash_yields_defaults(self, test_settings):
        mock_redis = AsyncMock()
        mock_redis.hgetall = AsyncMock(return_value={})

        store = RedisPolicyStore(mock_redis, test_settings)
        assert await store.load() == default_policy(test_settings)
        mock_redis.hgetall.assert_awaited_once_with(test_settings.policy_key)

    @pytest.mark.asyncio
    async def test_stored_values_override_defaults(self, test_settings):
        mock_redis = AsyncMock()
        mock_redis.hgetall = AsyncMock(
            return_value={
                "commission_rate": "0.2",
                "booking_lead_time_minutes": "30",
                "booking_enabled": "False",
            }
        )

        policy = await RedisPolicyStore(mock_redis, test_settings).load()
        assert policy.commission_rate == 0.2
        assert policy.booking_lead_time_minutes == 30
        assert policy.booking_enabled is False
        assert policy.rider_cancellation_cutoff_hours == test_settings.rider_cancellation_cutoff_hours

    @pytest.mark.asyncio
    async def test_unparsable_value_falls_back_to_default(self, test_settings):
        mock_redis = AsyncMock()
        mock_redis.hgetall = AsyncMock(return_value={"driver_cancellation_cutoff_hours": "soon"})

        policy = await RedisPolicyStore(mock_redis, test_settings).load()
        assert policy.driver_cancellation_cutoff_hours == test_settings.driver_cancellation_cutoff_hours

    @pytest.mark.asyncio
    async def test_unusable_commission_is_upstream_error(self, test_settings):
        mock_redis = AsyncMock()
        mock_redis.hgetall = AsyncMock(return_value={"commission_rate": "1.5"})

        with pytest.raises(UpstreamDependencyError):
            await RedisPolicyStore(mock_redis, test_settings).load()

    @pytest.mark.asyncio
    async def test_unreachable_redis_is_upstream_error(self, test_settings):
        mock_redis = AsyncMock()
        mock_redis.hgetall = AsyncMock(side_effect=RedisTimeoutError("timed out"))

        with pytest.raises(UpstreamDependencyError) as exc:
            await RedisPolicyStore(mock_redis, test_settings).load()
        assert exc.value.retryable

    @pytest.mark.asyncio
    async def test_save_writes_hash(self, test_settings):
        mock_redis = AsyncMock()
        mock_redis.hset = AsyncMock(return_value=2)

        await RedisPolicyStore(mock_redis, test_settings).save(
            commission_rate=0.1, booking_enabled=False
        )
        mock_redis.hset.assert_awaited_once_with(
            test_settings.policy_key,
            mapping={"commission_rate": "0.1", "booking_enabled": "false"},
        )

    @pytest.mark.asyncio
    async def test_save_rejects_unknown_keys(self, test_settings):
        store = RedisPolicyStore(AsyncMock(), test_settings)
        with pytest.raises(ValueError):
            await store.save(surge_multiplier=2)
