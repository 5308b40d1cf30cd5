from typing import Optional

from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.features.quota.services.admission import AdmissionError, to_http_exception
from app.features.scan.schemas.scan import ScanCreateRequest
from app.features.scan.services.scan.scan import create_scan, get_scan_status, list_scans
from app.platform.db.session import get_db
from app.platform.logger import get_logger
from app.platform.response import api_response
from app.platform.utils.device import resolve_session_id

logger = get_logger(__name__)

router = APIRouter(prefix="/scans", tags=["scan"])


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_scan_endpoint(
    data: ScanCreateRequest,
    request: Request,
    db: AsyncSession = Depends(get_db),
):
    """
    Queue a scan for one URL.

    Same URL rules and quota as a one-URL batch.
    """
    session_id = resolve_session_id(request)

    try:
        scan = await create_scan(db, data, session_id)
    except AdmissionError as e:
        await db.rollback()
        raise to_http_exception(e)

    return api_response(
        data=scan.model_dump(by_alias=True),
        message="Scan queued",
        status_code=status.HTTP_201_CREATED,
    )


@router.get("")
async def list_scans_endpoint(
    request: Request,
    cursor: Optional[str] = None,
    limit: int = Query(20, ge=1, le=100),
    db: AsyncSession = Depends(get_db),
):
    session_id = resolve_session_id(request)
    page = await list_scans(db, session_id, cursor=cursor, limit=limit)
    return api_response(data=page.model_dump(by_alias=True), message="Scans retrieved")


@router.get("/{scan_id}")
async def get_scan_status_endpoint(scan_id: str, db: AsyncSession = Depends(get_db)):
    """
    Current lifecycle state of a scan.

    Polled by ScanObservationController until status is COMPLETED or FAILED.
    """
    scan_status = await get_scan_status(db, scan_id)

    if not scan_status:
        return api_response(
            message="Scan not found",
            status_code=status.HTTP_404_NOT_FOUND,
            code="SCAN_NOT_FOUND",
        )

    return api_response(
        data=scan_status.model_dump(by_alias=True),
        message="Scan status retrieved",
    )
