from datetime import datetime, timedelta, timezone

from app.features.quota.schemas.quota import (
    Accepted,
    BatchRequest,
    QuotaDecision,
    QuotaLimits,
    QuotaViolation,
    QuotaViolationCode,
    SessionUsage,
)

DAY_WINDOW = timedelta(hours=24)


def evaluate(batch: BatchRequest, usage: SessionUsage, limits: QuotaLimits) -> QuotaDecision:
    """
    Decide whether a batch fits the tier's limits.

    Checks run in a fixed order and the first failing one is returned:
    batch size, AI URLs per batch, then the daily AI allowance. `usage` must
    already be rolled over to the current day (see roll_over); it is never
    modified here.
    """
    url_count = len(batch.urls)
    if url_count > limits.max_urls_per_batch:
        return QuotaViolation(
            code=QuotaViolationCode.BATCH_SIZE_EXCEEDED,
            current=url_count,
            max=limits.max_urls_per_batch,
        )

    ai_count = len(batch.ai_enabled_urls)
    if ai_count > limits.max_ai_urls_per_batch:
        return QuotaViolation(
            code=QuotaViolationCode.AI_BATCH_LIMIT_EXCEEDED,
            current=ai_count,
            max=limits.max_ai_urls_per_batch,
        )

    used = usage.ai_urls_used_today
    if used + ai_count > limits.max_ai_urls_per_day:
        return QuotaViolation(
            code=QuotaViolationCode.DAILY_AI_LIMIT_EXCEEDED,
            current=used,
            max=limits.max_ai_urls_per_day,
            remaining=max(0, limits.max_ai_urls_per_day - used),
        )

    return Accepted()


def day_window_start(now: datetime) -> datetime:
    """UTC midnight of the day `now` falls in."""
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    now = now.astimezone(timezone.utc)
    return now.replace(hour=0, minute=0, second=0, microsecond=0)


def roll_over(usage: SessionUsage, now: datetime) -> SessionUsage:
    """Reset the counter once `now` is 24h or more past the window start."""
    start = usage.day_window_start
    if start.tzinfo is None:
        start = start.replace(tzinfo=timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    if now - start >= DAY_WINDOW:
        return SessionUsage(ai_urls_used_today=0, day_window_start=day_window_start(now))
    return usage
