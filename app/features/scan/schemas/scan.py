"""
Scan Schemas

Status payload served by GET /scans/{id}. Field names follow the status
contract used by polling clients (camelCase on the wire).
"""
from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.features.scan.models.scan import ScanStatus


class ScanStatusResponse(BaseModel):
    """Response for scan status check."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "scanId": "0192f0c4-5b1e-7c1a-9d2e-3f4a5b6c7d8e",
                "status": "RUNNING",
                "progress": 50,
                "url": "https://example.com",
                "createdAt": "2025-12-26T12:00:00+00:00",
                "completedAt": None,
                "errorMessage": None,
            }
        },
    )

    scan_id: str
    status: ScanStatus
    progress: Optional[int] = Field(default=None, ge=0, le=100)
    url: str
    created_at: datetime
    completed_at: Optional[datetime] = None
    error_message: Optional[str] = None
    ai_enabled: bool = False


class ScanSummary(BaseModel):
    """A scan as listed inside a batch."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    url: str
    status: ScanStatus
    ai_enabled: bool = False
    error_message: Optional[str] = None


class ScanObservation(ScanStatusResponse):
    """
    Immutable client-side snapshot of a scan, parsed from a status payload.

    Same fields and parsing as ScanStatusResponse.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    @property
    def is_terminal(self) -> bool:
        return self.status in (ScanStatus.COMPLETED, ScanStatus.FAILED)


class ScanCreateRequest(BaseModel):
    """Request to scan a single URL."""
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {"url": "https://example.com", "wcagLevel": "AA", "aiEnabled": True}
        },
    )

    url: str = Field(min_length=1)
    wcag_level: Literal["A", "AA", "AAA"] = "AA"
    ai_enabled: bool = False


class ScanListResponse(BaseModel):
    """One page of a session's scans, newest first."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    scans: List[ScanStatusResponse]
    next_cursor: Optional[str] = None
