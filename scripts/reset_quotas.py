import argparse
import asyncio

from app.features.quota.services.usage import DailyAiUsageStore
from app.platform.cache.redis import close_redis


async def reset_quotas(session_id=None):
    store = DailyAiUsageStore(in_memory=False)
    try:
        removed = await store.reset(session_id)
    finally:
        await close_redis()

    target = f"session {session_id}" if session_id else "all sessions"
    print(f"✅ Reset today's AI usage for {target} ({removed} counter(s) removed)")


def main():
    parser = argparse.ArgumentParser(description="Reset today's daily AI usage counters")
    parser.add_argument("--session", help="Only reset this session id")
    args = parser.parse_args()
    asyncio.run(reset_quotas(args.session))


if __name__ == "__main__":
    main()
