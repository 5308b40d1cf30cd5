"""
Quota admission for new scans.

Batch submission, single-scan submission and the quota dry run all turn raw
URL lists into a BatchRequest here, so they agree on normalization and on
the verdict.
"""
from datetime import datetime
from typing import Iterable, Optional

from fastapi import HTTPException, status
from pydantic import ValidationError

from app.features.quota.schemas.quota import BatchRequest, QuotaLimits, QuotaViolation
from app.features.quota.services.policy import evaluate
from app.features.quota.services.usage import DailyAiUsageStore
from app.platform import feature_flags
from app.platform.exceptions import DomainError
from app.platform.logger import get_logger
from app.platform.utils.url_validator import normalize_url, validate_urls

logger = get_logger(__name__)

ERROR_STATUS_CODES = {
    "INVALID_URL": status.HTTP_400_BAD_REQUEST,
    "INVALID_INPUT": status.HTTP_400_BAD_REQUEST,
    "BATCH_SIZE_EXCEEDED": status.HTTP_400_BAD_REQUEST,
    "AI_BATCH_LIMIT_EXCEEDED": status.HTTP_400_BAD_REQUEST,
    "DAILY_AI_LIMIT_EXCEEDED": status.HTTP_429_TOO_MANY_REQUESTS,
    "AI_DISABLED": status.HTTP_403_FORBIDDEN,
    "FEATURE_DISABLED": status.HTTP_403_FORBIDDEN,
    "BATCH_NOT_FOUND": status.HTTP_404_NOT_FOUND,
    "INVALID_STATE": status.HTTP_409_CONFLICT,
}


class AdmissionError(DomainError):
    """A request refused with a machine-readable code; `violation` is set for quota refusals."""

    def __init__(self, message: str, code: str, violation: Optional[QuotaViolation] = None):
        super().__init__(message, code)
        self.violation = violation


def to_http_exception(error: AdmissionError) -> HTTPException:
    detail = {"message": error.message, "code": error.code}
    if error.violation is not None:
        detail.update(error.violation.to_payload())
    return HTTPException(
        status_code=ERROR_STATUS_CODES.get(error.code, status.HTTP_400_BAD_REQUEST),
        detail=detail,
    )


def build_batch_request(
    urls: Iterable[str],
    ai_enabled_urls: Optional[Iterable[str]] = None,
    ai_enabled: bool = False,
) -> BatchRequest:
    """
    Validate and normalize a submission.

    One invalid URL rejects the whole submission (INVALID_URL). AI URLs are
    normalized the same way as the batch URLs; `ai_enabled` opts every URL
    in unless `ai_enabled_urls` is given. AI URLs outside the batch are
    INVALID_INPUT. Raises AI_DISABLED when AI is requested but switched off.
    """
    valid_urls, invalid_urls = validate_urls(list(urls))
    if invalid_urls:
        details = ", ".join(f"{url}: {error}" for url, error in invalid_urls)
        raise AdmissionError(f"Invalid URLs detected: {details}", "INVALID_URL")

    if ai_enabled_urls is not None:
        ai_urls = [normalize_url(url) for url in ai_enabled_urls if url and url.strip()]
    elif ai_enabled:
        ai_urls = list(valid_urls)
    else:
        ai_urls = []

    if ai_urls and not feature_flags.is_ai_enabled():
        raise AdmissionError("AI processing is currently disabled", "AI_DISABLED")

    try:
        return BatchRequest(urls=valid_urls, ai_enabled_urls=frozenset(ai_urls))
    except ValidationError as e:
        raise AdmissionError(e.errors()[0]["msg"].removeprefix("Value error, "), "INVALID_INPUT") from e


async def check_quota(
    batch: BatchRequest,
    session_id: str,
    usage_store: DailyAiUsageStore,
    limits: QuotaLimits,
    now: datetime,
) -> None:
    """Raise AdmissionError carrying the violation if the session is over quota."""
    usage = await usage_store.get_usage(session_id, now)
    decision = evaluate(batch, usage, limits)
    if isinstance(decision, QuotaViolation):
        # Expected outcome, not a fault
        logger.info(f"Submission rejected for session {session_id}: {decision.code.value} "
                    f"(current={decision.current}, max={decision.max})")
        raise AdmissionError(decision.message, decision.code.value, violation=decision)
