from fastapi import APIRouter, Request

from app.features.quota.schemas.quota import Accepted, QuotaEvaluateRequest
from app.features.quota.services.admission import AdmissionError, build_batch_request, to_http_exception
from app.features.quota.services.policy import evaluate
from app.features.quota.services.quota_table import get_active_limits, get_quota_table
from app.features.quota.services.usage import get_usage_store, next_reset_at
from app.platform.config import settings
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.device import resolve_session_id

logger = get_logger(__name__)

router = APIRouter(prefix="/quotas", tags=["quotas"])


@router.get("")
async def get_quotas():
    """Quota table keyed by tier, with version and checksum."""
    table = get_quota_table()
    return api_response(
        data=table.to_payload(),
        message="Quota table retrieved",
    )


@router.get("/usage")
async def get_usage(request: Request):
    session_id = resolve_session_id(request)
    limits = get_active_limits()
    usage = await get_usage_store().get_usage(session_id)

    return api_response(
        data={
            "tier": settings.QUOTA_TIER,
            "used": usage.ai_urls_used_today,
            "remaining": max(0, limits.max_ai_urls_per_day - usage.ai_urls_used_today),
            "limit": limits.max_ai_urls_per_day,
            "resetsAt": next_reset_at(),
        },
        message="Daily AI usage retrieved",
    )


@router.post("/evaluate")
async def evaluate_quota(data: QuotaEvaluateRequest, request: Request):
    """
    Dry-run the quota policy for a batch without creating anything.

    URLs are validated and normalized exactly as on batch submission.
    Returns `accepted: true`, or `accepted: false` with the first violation.
    """
    try:
        batch = build_batch_request(data.urls, data.ai_enabled_urls)
    except AdmissionError as e:
        raise to_http_exception(e)

    session_id = resolve_session_id(request)
    usage = await get_usage_store().get_usage(session_id)
    decision = evaluate(batch, usage, get_active_limits())

    if isinstance(decision, Accepted):
        return api_response(data={"accepted": True}, message="Batch is within quota")

    logger.info(f"Quota dry-run rejected for session {session_id}: {decision.code.value}")
    return api_response(
        data={"accepted": False, "violation": decision.to_payload()},
        message=decision.message,
    )
