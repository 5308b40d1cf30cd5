import math
from datetime import datetime
from typing import List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from app.features.batches.models.batch import BatchScan, BatchStatus, CANCELLABLE_BATCH_STATUSES
from app.features.batches.schemas.batch import (
    BatchCancelResponse,
    BatchCreateRequest,
    BatchListItem,
    BatchListResponse,
    BatchResponse,
    Pagination,
)
from app.features.quota.schemas.quota import QuotaLimits
from app.features.quota.services.admission import AdmissionError, build_batch_request, check_quota
from app.features.quota.services.quota_table import get_active_limits
from app.features.quota.services.usage import DailyAiUsageStore, get_usage_store
from app.features.scan.models.scan import Scan, ScanStatus, TERMINAL_SCAN_STATUSES
from app.features.scan.schemas.scan import ScanSummary
from app.features.scan.services.scan.scan import update_scan_status
from app.platform import feature_flags
from app.platform.db.base import as_utc, utcnow
from app.platform.logger import get_logger
from app.platform.utils.url_validator import normalize_url

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 20
CANCELLED_SCAN_MESSAGE = "Cancelled by user"


class BatchServiceError(AdmissionError):
    """Batch-level refusal (feature off, not found, wrong state)."""


def batch_status(batch: BatchScan, scans: Sequence[Scan]) -> BatchStatus:
    """
    Overall state of a batch.

    Once every scan is terminal the batch is FAILED if any scan failed,
    else COMPLETED. Before that it is RUNNING as soon as any scan has left
    QUEUED. A cancelled batch stays CANCELLED.
    """
    if batch.cancelled_at is not None:
        return BatchStatus.CANCELLED

    statuses = [scan.status for scan in scans]
    if statuses and all(s in TERMINAL_SCAN_STATUSES for s in statuses):
        return BatchStatus.FAILED if ScanStatus.FAILED in statuses else BatchStatus.COMPLETED
    if any(s is not ScanStatus.QUEUED for s in statuses):
        return BatchStatus.RUNNING
    return BatchStatus.PENDING


def _completed_at(batch: BatchScan, scans: Sequence[Scan], overall: BatchStatus) -> Optional[datetime]:
    if overall is BatchStatus.CANCELLED:
        return as_utc(batch.cancelled_at)
    if overall in (BatchStatus.COMPLETED, BatchStatus.FAILED):
        stamps = [as_utc(scan.completed_at) for scan in scans if scan.completed_at]
        return max(stamps) if stamps else None
    return None


def _count(scans: Sequence[Scan], status: ScanStatus) -> int:
    return sum(1 for scan in scans if scan.status is status)


def _to_response(batch: BatchScan, scans: List[Scan]) -> BatchResponse:
    overall = batch_status(batch, scans)
    return BatchResponse(
        batch_id=batch.id,
        status=overall,
        homepage_url=batch.homepage_url,
        wcag_level=batch.wcag_level,
        total_urls=batch.total_urls,
        ai_urls=batch.ai_urls,
        completed_count=_count(scans, ScanStatus.COMPLETED),
        failed_count=_count(scans, ScanStatus.FAILED),
        created_at=as_utc(batch.created_at),
        completed_at=_completed_at(batch, scans, overall),
        cancelled_at=as_utc(batch.cancelled_at),
        scans=[
            ScanSummary(
                id=scan.id,
                url=scan.url,
                status=scan.status,
                ai_enabled=scan.ai_enabled,
                error_message=scan.error_message,
            )
            for scan in scans
        ],
    )


def _to_list_item(batch: BatchScan) -> BatchListItem:
    scans = list(batch.scans)
    overall = batch_status(batch, scans)
    return BatchListItem(
        id=batch.id,
        status=overall,
        homepage_url=batch.homepage_url,
        wcag_level=batch.wcag_level,
        total_urls=batch.total_urls,
        completed_count=_count(scans, ScanStatus.COMPLETED),
        failed_count=_count(scans, ScanStatus.FAILED),
        created_at=as_utc(batch.created_at),
        completed_at=_completed_at(batch, scans, overall),
    )


async def create_batch(
    db: AsyncSession,
    data: BatchCreateRequest,
    session_id: str,
    usage_store: Optional[DailyAiUsageStore] = None,
    limits: Optional[QuotaLimits] = None,
    now: Optional[datetime] = None,
) -> BatchResponse:
    """
    Create a batch scan after validating URLs and quota.

    1. Every URL must be valid; one bad URL rejects the whole batch.
    2. The quota policy runs against the session's current daily AI usage.
    3. A BatchScan plus one QUEUED Scan per URL are stored.
    4. Only then is the AI usage counter incremented.
    """
    if not feature_flags.is_batch_scans_enabled():
        raise BatchServiceError("Batch scans are currently disabled", "FEATURE_DISABLED")

    usage_store = usage_store or get_usage_store()
    limits = limits or get_active_limits()
    now = now or utcnow()

    batch_request = build_batch_request(data.urls, data.ai_enabled_urls, data.ai_enabled)
    await check_quota(batch_request, session_id, usage_store, limits, now)

    valid_urls = batch_request.urls
    batch = BatchScan(
        session_id=session_id,
        homepage_url=normalize_url(data.homepage_url) if data.homepage_url else valid_urls[0],
        wcag_level=data.wcag_level,
        total_urls=len(valid_urls),
        ai_urls=len(batch_request.ai_enabled_urls),
        created_at=now,
        updated_at=now,
    )
    db.add(batch)
    await db.flush()

    scans = []
    for position, url in enumerate(valid_urls):
        scan = Scan(
            position=position,
            batch_id=batch.id,
            session_id=session_id,
            url=url,
            wcag_level=data.wcag_level,
            status=ScanStatus.QUEUED,
            progress=0,
            ai_enabled=url in batch_request.ai_enabled_urls,
            created_at=now,
            updated_at=now,
        )
        db.add(scan)
        scans.append(scan)

    await db.commit()

    # AI accounting counts distinct AI-enabled URLs, matching the policy check
    await usage_store.record(session_id, len(batch_request.ai_enabled_urls), now)

    logger.info(f"Created batch {batch.id} with {len(scans)} scans "
                f"({batch.ai_urls} AI-enabled) for session {session_id}")
    return _to_response(batch, scans)


async def _load_batch(db: AsyncSession, batch_id: str, session_id: str) -> Optional[BatchScan]:
    query = (
        select(BatchScan)
        .options(selectinload(BatchScan.scans))
        .where(BatchScan.id == batch_id, BatchScan.session_id == session_id)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    return result.scalar_one_or_none()


async def get_batch(db: AsyncSession, batch_id: str, session_id: str) -> Optional[BatchResponse]:
    """Batch with its scans, visible only to the session that created it."""
    batch = await _load_batch(db, batch_id, session_id)
    if not batch:
        return None
    return _to_response(batch, list(batch.scans))


async def list_batches(
    db: AsyncSession,
    session_id: str,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
) -> BatchListResponse:
    """A session's batches, newest first."""
    total = await db.scalar(
        select(func.count()).select_from(BatchScan).where(BatchScan.session_id == session_id)
    )

    query = (
        select(BatchScan)
        .options(selectinload(BatchScan.scans))
        .where(BatchScan.session_id == session_id)
        .order_by(BatchScan.created_at.desc(), BatchScan.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .execution_options(populate_existing=True)
    )
    result = await db.execute(query)
    batches = result.scalars().all()

    return BatchListResponse(
        batches=[_to_list_item(batch) for batch in batches],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total or 0,
            total_pages=math.ceil((total or 0) / limit),
        ),
    )


async def cancel_batch(
    db: AsyncSession,
    batch_id: str,
    session_id: str,
    now: Optional[datetime] = None,
) -> BatchCancelResponse:
    """
    Cancel a PENDING or RUNNING batch.

    Queued and running scans are failed with a cancellation message; scans
    that already finished keep their results.
    """
    batch = await _load_batch(db, batch_id, session_id)
    if not batch:
        raise BatchServiceError(f"Batch {batch_id} not found", "BATCH_NOT_FOUND")

    scans = list(batch.scans)
    overall = batch_status(batch, scans)
    if overall not in CANCELLABLE_BATCH_STATUSES:
        raise BatchServiceError(f"Batch cannot be cancelled in {overall.value} state", "INVALID_STATE")

    now = now or utcnow()
    completed_count = 0
    cancelled_count = 0
    for scan in scans:
        if scan.status in TERMINAL_SCAN_STATUSES:
            completed_count += 1
            continue
        await update_scan_status(db, scan.id, ScanStatus.FAILED, error_message=CANCELLED_SCAN_MESSAGE)
        cancelled_count += 1

    batch.cancelled_at = now
    await db.commit()

    logger.info(f"Cancelled batch {batch_id}: {cancelled_count} scans cancelled, "
                f"{completed_count} already finished")
    return BatchCancelResponse(
        batch_id=batch.id,
        status=BatchStatus.CANCELLED,
        completed_count=completed_count,
        cancelled_count=cancelled_count,
        cancelled_at=now,
    )
