import enum

from sqlalchemy import Column, DateTime, Integer, String
from sqlalchemy.orm import relationship

from app.platform.db.base import BaseModel


class BatchStatus(str, enum.Enum):
    """Overall batch state, derived from its scans (see batch_status)."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    CANCELLED = "CANCELLED"


CANCELLABLE_BATCH_STATUSES = frozenset({BatchStatus.PENDING, BatchStatus.RUNNING})


class BatchScan(BaseModel):
    """One multi-URL submission. Each URL becomes a Scan."""
    __tablename__ = "batch_scans"

    session_id = Column(String(128), nullable=False, index=True)
    homepage_url = Column(String(2048), nullable=False)
    wcag_level = Column(String(3), default="AA", nullable=False)

    total_urls = Column(Integer, nullable=False)
    ai_urls = Column(Integer, default=0, nullable=False)

    cancelled_at = Column(DateTime(timezone=True), nullable=True)

    scans = relationship(
        "Scan",
        back_populates="batch",
        cascade="all, delete-orphan",
        order_by="Scan.position",
    )
