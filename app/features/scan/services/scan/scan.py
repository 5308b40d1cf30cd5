from datetime import datetime
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.quota.schemas.quota import QuotaLimits
from app.features.quota.services.admission import build_batch_request, check_quota
from app.features.quota.services.quota_table import get_active_limits
from app.features.quota.services.usage import DailyAiUsageStore, get_usage_store
from app.features.scan.models.scan import Scan, ScanStatus, TERMINAL_SCAN_STATUSES
from app.features.scan.schemas.scan import ScanCreateRequest, ScanListResponse, ScanStatusResponse
from app.platform.db.base import as_utc, utcnow
from app.platform.exceptions import DomainError
from app.platform.logger import get_logger

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
MAX_PAGE_SIZE = 100


class ScanServiceError(DomainError):
    pass


def to_status_response(scan: Scan) -> ScanStatusResponse:
    return ScanStatusResponse(
        scan_id=scan.id,
        status=scan.status,
        progress=scan.progress,
        url=scan.url,
        created_at=as_utc(scan.created_at),
        completed_at=as_utc(scan.completed_at),
        error_message=scan.error_message,
        ai_enabled=scan.ai_enabled,
    )


async def get_scan(db: AsyncSession, scan_id: str) -> Optional[Scan]:
    result = await db.execute(select(Scan).where(Scan.id == scan_id))
    return result.scalar_one_or_none()


async def get_scan_status(db: AsyncSession, scan_id: str) -> Optional[ScanStatusResponse]:
    if not scan_id:
        return None

    scan = await get_scan(db, scan_id)
    if not scan:
        return None

    return to_status_response(scan)


async def update_scan_status(
    db: AsyncSession,
    scan_id: str,
    status: ScanStatus,
    progress: Optional[int] = None,
    error_message: Optional[str] = None,
) -> ScanStatusResponse:
    """
    Record a lifecycle change reported by the scan worker.

    Terminal scans are immutable. Entering a terminal state stamps
    completed_at; COMPLETED also forces progress to 100.
    """
    scan = await get_scan(db, scan_id)
    if not scan:
        raise ScanServiceError(f"Scan {scan_id} not found", "SCAN_NOT_FOUND")

    if scan.status in TERMINAL_SCAN_STATUSES:
        raise ScanServiceError(
            f"Scan {scan_id} is already {scan.status.value}", "SCAN_ALREADY_TERMINAL"
        )

    if progress is not None and not 0 <= progress <= 100:
        raise ScanServiceError(f"Progress must be between 0 and 100, got {progress}", "INVALID_INPUT")

    scan.status = status
    if progress is not None:
        scan.progress = progress

    if status in TERMINAL_SCAN_STATUSES:
        scan.completed_at = utcnow()
        if status == ScanStatus.COMPLETED:
            scan.progress = 100
        else:
            scan.error_message = error_message or "Scan failed"

    await db.commit()

    logger.info(f"Scan {scan_id} -> {status.value} (progress={scan.progress})")
    return to_status_response(scan)


async def create_scan(
    db: AsyncSession,
    data: ScanCreateRequest,
    session_id: str,
    usage_store: Optional[DailyAiUsageStore] = None,
    limits: Optional[QuotaLimits] = None,
    now: Optional[datetime] = None,
) -> ScanStatusResponse:
    """
    Queue a standalone scan.

    Goes through the same quota admission as a one-URL batch, so an
    AI-enabled scan counts against the daily AI allowance.
    """
    usage_store = usage_store or get_usage_store()
    limits = limits or get_active_limits()
    now = now or utcnow()

    request = build_batch_request([data.url], ai_enabled=data.ai_enabled)
    await check_quota(request, session_id, usage_store, limits, now)

    scan = Scan(
        session_id=session_id,
        url=request.urls[0],
        wcag_level=data.wcag_level,
        status=ScanStatus.QUEUED,
        progress=0,
        ai_enabled=bool(request.ai_enabled_urls),
        created_at=now,
        updated_at=now,
    )
    db.add(scan)
    await db.commit()

    await usage_store.record(session_id, len(request.ai_enabled_urls), now)

    logger.info(f"Created scan {scan.id} for {scan.url} (session {session_id})")
    return to_status_response(scan)


async def list_scans(
    db: AsyncSession,
    session_id: str,
    cursor: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
) -> ScanListResponse:
    """
    A session's scans, newest first.

    Ids are uuid7 and so sort by creation time; `cursor` is the last id of
    the previous page.
    """
    if not 1 <= limit <= MAX_PAGE_SIZE:
        raise ScanServiceError(f"limit must be between 1 and {MAX_PAGE_SIZE}, got {limit}", "INVALID_INPUT")

    query = select(Scan).where(Scan.session_id == session_id)
    if cursor:
        query = query.where(Scan.id < cursor)
    query = query.order_by(Scan.id.desc()).limit(limit + 1)

    result = await db.execute(query)
    scans = list(result.scalars().all())

    next_cursor = None
    if len(scans) > limit:
        scans = scans[:limit]
        next_cursor = scans[-1].id

    return ScanListResponse(
        scans=[to_status_response(scan) for scan in scans],
        next_cursor=next_cursor,
    )
