"""
Quota Schemas

Value types for the quota policy: per-tier limits, the batch being checked,
the session's daily AI usage and the outcome of an evaluation.
"""
import enum
from datetime import datetime
from typing import Dict, FrozenSet, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator


class QuotaViolationCode(str, enum.Enum):
    """Closed set of codes shared by API error bodies and client messages."""
    BATCH_SIZE_EXCEEDED = "BATCH_SIZE_EXCEEDED"
    AI_BATCH_LIMIT_EXCEEDED = "AI_BATCH_LIMIT_EXCEEDED"
    DAILY_AI_LIMIT_EXCEEDED = "DAILY_AI_LIMIT_EXCEEDED"


class QuotaLimits(BaseModel):
    """Ceilings for one tier. Serialized with camelCase keys."""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    max_urls_per_batch: int = Field(gt=0, alias="maxUrlsPerBatch")
    max_ai_urls_per_batch: int = Field(gt=0, alias="maxAiUrlsPerBatch")
    max_ai_urls_per_day: int = Field(gt=0, alias="maxAiUrlsPerDay")


class QuotaTableFile(BaseModel):
    """On-disk layout of quotas.json."""
    model_config = ConfigDict(frozen=True)

    version: str = Field(min_length=1)
    tiers: Dict[str, QuotaLimits]


class BatchRequest(BaseModel):
    """URLs of one submission and the subset opted into AI processing."""
    model_config = ConfigDict(frozen=True)

    urls: List[str]
    ai_enabled_urls: FrozenSet[str] = frozenset()

    @model_validator(mode="after")
    def check_ai_subset(self):
        extra = self.ai_enabled_urls - set(self.urls)
        if extra:
            raise ValueError(
                f"AI-enabled URLs must be part of the batch: {', '.join(sorted(extra))}"
            )
        return self


class SessionUsage(BaseModel):
    model_config = ConfigDict(frozen=True)

    ai_urls_used_today: int = Field(default=0, ge=0)
    day_window_start: datetime


class Accepted(BaseModel):
    model_config = ConfigDict(frozen=True)

    accepted: bool = True


class QuotaViolation(BaseModel):
    """
    A failed quota check.

    For DAILY_AI_LIMIT_EXCEEDED, `current` is the number of AI URLs already
    used today and `remaining` is what is left of the daily allowance.
    """
    model_config = ConfigDict(frozen=True)

    code: QuotaViolationCode
    current: int
    max: int
    remaining: Optional[int] = None

    @property
    def used(self) -> int:
        return self.current

    @property
    def message(self) -> str:
        if self.code == QuotaViolationCode.BATCH_SIZE_EXCEEDED:
            return (
                f"Batch size limit exceeded ({self.current} URLs submitted, "
                f"maximum {self.max} URLs per batch)"
            )
        if self.code == QuotaViolationCode.AI_BATCH_LIMIT_EXCEEDED:
            return (
                f"AI batch limit exceeded ({self.current} AI URLs requested, "
                f"maximum {self.max} AI URLs per batch)"
            )
        return (
            f"Daily AI limit exceeded ({self.current}/{self.max} used today). "
            f"{self.remaining} AI scans remaining. Resets at midnight UTC."
        )

    def to_payload(self) -> dict:
        payload = {
            "code": self.code.value,
            "message": self.message,
            "current": self.current,
            "max": self.max,
        }
        if self.code == QuotaViolationCode.DAILY_AI_LIMIT_EXCEEDED:
            payload["used"] = self.current
            payload["remaining"] = self.remaining
        return payload


QuotaDecision = Union[Accepted, QuotaViolation]


# ============================================================================
# API Schemas
# ============================================================================

class QuotaEvaluateRequest(BaseModel):
    """Dry-run a batch against the caller's quota."""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "urls": ["https://example.com", "https://example.com/about"],
                "ai_enabled_urls": ["https://example.com"],
            }
        },
    )

    urls: List[str] = Field(min_length=1)
    ai_enabled_urls: List[str] = Field(default_factory=list, alias="aiEnabledUrls")


class QuotaUsageResponse(BaseModel):
    used: int
    remaining: int
    limit: int
    resets_at: datetime
