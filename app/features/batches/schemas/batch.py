from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from app.features.batches.models.batch import BatchStatus
from app.features.scan.schemas.scan import ScanSummary


class BatchCreateRequest(BaseModel):
    """
    Request to scan several URLs at once.

    `ai_enabled` opts every URL into AI processing; `ai_enabled_urls` picks a
    subset instead and takes precedence when given.
    """
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "urls": ["https://example.com", "https://example.com/contact"],
                "wcagLevel": "AA",
                "aiEnabledUrls": ["https://example.com"],
            }
        },
    )

    urls: List[str] = Field(min_length=1)
    wcag_level: Literal["A", "AA", "AAA"] = "AA"
    homepage_url: Optional[str] = None
    ai_enabled: bool = False
    ai_enabled_urls: Optional[List[str]] = None


class BatchResponse(BaseModel):
    """A batch with its scans and aggregate progress."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_id: str
    status: BatchStatus
    homepage_url: str
    wcag_level: str
    total_urls: int
    ai_urls: int
    completed_count: int = 0
    failed_count: int = 0
    created_at: datetime
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    scans: List[ScanSummary]


class BatchListItem(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: str
    status: BatchStatus
    homepage_url: str
    wcag_level: str
    total_urls: int
    completed_count: int
    failed_count: int
    created_at: datetime
    completed_at: Optional[datetime] = None


class Pagination(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    page: int
    limit: int
    total: int
    total_pages: int


class BatchListResponse(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batches: List[BatchListItem]
    pagination: Pagination


class BatchCancelResponse(BaseModel):
    """Outcome of a cancellation. Finished scans keep their results."""
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    batch_id: str
    status: BatchStatus
    completed_count: int
    cancelled_count: int
    cancelled_at: datetime
