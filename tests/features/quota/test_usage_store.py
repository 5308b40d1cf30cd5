from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.features.quota.services.usage import DailyAiUsageStore, next_reset_at, usage_key

NOW = datetime(2025, 12, 26, 15, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_new_session_has_no_usage():
    store = DailyAiUsageStore(in_memory=True)

    usage = await store.get_usage("session-a", NOW)

    assert usage.ai_urls_used_today == 0
    assert usage.day_window_start == datetime(2025, 12, 26, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_record_accumulates_per_session():
    store = DailyAiUsageStore(in_memory=True)

    await store.record("session-a", 3, NOW)
    total = await store.record("session-a", 2, NOW)
    await store.record("session-b", 1, NOW)

    assert total == 5
    assert (await store.get_usage("session-a", NOW)).ai_urls_used_today == 5
    assert (await store.get_usage("session-b", NOW)).ai_urls_used_today == 1


@pytest.mark.asyncio
async def test_usage_does_not_carry_into_next_utc_day():
    store = DailyAiUsageStore(in_memory=True)
    await store.record("session-a", 4, NOW)

    tomorrow = NOW + timedelta(hours=12)

    assert (await store.get_usage("session-a", tomorrow)).ai_urls_used_today == 0


@pytest.mark.asyncio
async def test_recording_zero_is_a_no_op():
    store = DailyAiUsageStore(in_memory=True)

    assert await store.record("session-a", 0, NOW) == 0
    assert store.memory_store == {}


@pytest.mark.asyncio
async def test_reset_single_session_and_all():
    store = DailyAiUsageStore(in_memory=True)
    await store.record("session-a", 2, NOW)
    await store.record("session-b", 2, NOW)

    assert await store.reset("session-a", NOW) == 1
    assert (await store.get_usage("session-a", NOW)).ai_urls_used_today == 0
    assert (await store.get_usage("session-b", NOW)).ai_urls_used_today == 2

    assert await store.reset(now=NOW) == 1
    assert store.memory_store == {}


@pytest.mark.asyncio
async def test_redis_read_failure_fails_open():
    store = DailyAiUsageStore(in_memory=False)
    redis = MagicMock()
    redis.get = AsyncMock(side_effect=RedisConnectionError("connection refused"))

    with patch("app.features.quota.services.usage.get_redis", return_value=redis):
        usage = await store.get_usage("session-a", NOW)

    assert usage.ai_urls_used_today == 0


@pytest.mark.asyncio
async def test_redis_record_uses_incrby_with_expiry():
    store = DailyAiUsageStore(in_memory=False)
    pipe = MagicMock()
    pipe.execute = AsyncMock(return_value=[7, True])
    redis = MagicMock()
    redis.pipeline.return_value = pipe

    with patch("app.features.quota.services.usage.get_redis", return_value=redis):
        total = await store.record("session-a", 3, NOW)

    assert total == 7
    key = usage_key("session-a", NOW)
    assert key == "ai_quota:daily:session-a:2025-12-26"
    pipe.incrby.assert_called_once_with(key, 3)
    pipe.expire.assert_called_once()


def test_next_reset_is_following_utc_midnight():
    assert next_reset_at(NOW) == datetime(2025, 12, 27, tzinfo=timezone.utc)
