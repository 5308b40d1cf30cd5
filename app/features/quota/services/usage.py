"""
Daily AI usage accounting.

One counter per session per UTC day. Redis holds the counters in production;
FORCE_IN_MEMORY_USAGE_STORE switches to a process-local dict for tests.
"""
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

from redis.exceptions import RedisError

from app.features.quota.schemas.quota import SessionUsage
from app.features.quota.services.policy import day_window_start, roll_over
from app.platform.cache.redis import get_redis
from app.platform.config import settings
from app.platform.logger import get_logger

logger = get_logger(__name__)

KEY_PREFIX = "ai_quota:daily"
KEY_TTL_SECONDS = 2 * 24 * 60 * 60


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def usage_key(session_id: str, now: datetime) -> str:
    return f"{KEY_PREFIX}:{session_id}:{day_window_start(now).date().isoformat()}"


class DailyAiUsageStore:
    def __init__(self, in_memory: Optional[bool] = None):
        self.in_memory = settings.FORCE_IN_MEMORY_USAGE_STORE if in_memory is None else in_memory
        self.memory_store: Dict[str, int] = {}

    async def get_usage(self, session_id: str, now: Optional[datetime] = None) -> SessionUsage:
        """Current usage for the session, already rolled over to `now`'s day."""
        now = now or _utcnow()
        key = usage_key(session_id, now)

        if self.in_memory:
            used = self.memory_store.get(key, 0)
        else:
            try:
                raw = await get_redis().get(key)
                used = int(raw) if raw else 0
            except RedisError as e:
                # Fail open: a Redis outage must not block scanning
                logger.error(f"Failed to read daily AI usage for {session_id}: {e}")
                used = 0

        usage = SessionUsage(ai_urls_used_today=used, day_window_start=day_window_start(now))
        return roll_over(usage, now)

    async def record(self, session_id: str, count: int, now: Optional[datetime] = None) -> int:
        """Add `count` AI URLs to today's counter. Returns the new total."""
        if count <= 0:
            return (await self.get_usage(session_id, now)).ai_urls_used_today

        now = now or _utcnow()
        key = usage_key(session_id, now)

        if self.in_memory:
            total = self.memory_store.get(key, 0) + count
            self.memory_store[key] = total
        else:
            try:
                pipe = get_redis().pipeline()
                pipe.incrby(key, count)
                pipe.expire(key, KEY_TTL_SECONDS)
                total, _ = await pipe.execute()
            except RedisError as e:
                logger.error(f"Failed to record daily AI usage for {session_id}: {e}")
                return 0

        logger.info(f"Recorded {count} AI URLs for session {session_id} (today={total})")
        return int(total)

    async def reset(self, session_id: Optional[str] = None, now: Optional[datetime] = None) -> int:
        """Clear today's counters for one session, or all sessions. Returns keys removed."""
        now = now or _utcnow()
        day = day_window_start(now).date().isoformat()

        if self.in_memory:
            keys = [
                key for key in self.memory_store
                if key.endswith(f":{day}") and (session_id is None or key == usage_key(session_id, now))
            ]
            for key in keys:
                del self.memory_store[key]
            return len(keys)

        redis = get_redis()
        if session_id is not None:
            return await redis.delete(usage_key(session_id, now))

        removed = 0
        async for key in redis.scan_iter(match=f"{KEY_PREFIX}:*:{day}"):
            removed += await redis.delete(key)
        return removed


def next_reset_at(now: Optional[datetime] = None) -> datetime:
    return day_window_start(now or _utcnow()) + timedelta(days=1)


_store: Optional[DailyAiUsageStore] = None


def get_usage_store() -> DailyAiUsageStore:
    global _store
    if _store is None:
        _store = DailyAiUsageStore()
    return _store
