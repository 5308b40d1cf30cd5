from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.batches.schemas.batch import BatchCreateRequest
from app.features.batches.services.batch_service import (
    BatchServiceError,
    cancel_batch,
    create_batch,
    get_batch,
    list_batches,
)
from app.features.quota.services.admission import AdmissionError, to_http_exception
from app.platform.db.session import get_db
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.device import resolve_session_id

logger = get_logger(__name__)

router = APIRouter(prefix="/batches", tags=["batches"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_batch_endpoint(
    data: BatchCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Submit several URLs for scanning in one go.

    The batch is checked against the session's quota before anything is
    created. Quota violations come back with their code and numbers
    (current, max and, for the daily limit, remaining).
    """
    session_id = resolve_session_id(request)

    try:
        batch = await create_batch(db, data, session_id)
    except AdmissionError as e:
        await db.rollback()
        raise to_http_exception(e)

    return api_response(
        data=batch.model_dump(by_alias=True),
        message=f"Batch created with {batch.total_urls} scans",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("")
async def list_batches_endpoint(
    request: Request,
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    session_id = resolve_session_id(request)
    batches = await list_batches(db, session_id, page=page, limit=limit)
    return api_response(data=batches.model_dump(by_alias=True), message="Batches retrieved")


@router.get("/{batch_id}")
async def get_batch_endpoint(batch_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    """Batch with overall status, completed/failed counts and every scan."""
    session_id = resolve_session_id(request)
    batch = await get_batch(db, batch_id, session_id)

    if not batch:
        return api_response(
            message="Batch not found",
            status_code=status.HTTP_404_NOT_FOUND,
            code="BATCH_NOT_FOUND",
        )

    return api_response(data=batch.model_dump(by_alias=True), message="Batch retrieved")


@router.post("/{batch_id}/cancel")
async def cancel_batch_endpoint(batch_id: str, request: Request, db: AsyncSession = Depends(get_db)):
    """
    Cancel a pending or running batch.

    Unfinished scans end as FAILED ("Cancelled by user"); finished scans are
    kept. 409 if the batch is already finished or cancelled.
    """
    session_id = resolve_session_id(request)

    try:
        result = await cancel_batch(db, batch_id, session_id)
    except BatchServiceError as e:
        await db.rollback()
        raise to_http_exception(e)

    return api_response(
        data=result.model_dump(by_alias=True),
        message=f"Batch cancelled ({result.cancelled_count} scans stopped)",
    )
