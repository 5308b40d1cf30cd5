from sqlalchemy import Boolean, Column, DateTime, Enum, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import relationship
import enum

from app.platform.db.base import BaseModel


class ScanStatus(str, enum.Enum):
    """Scan lifecycle. COMPLETED and FAILED are terminal."""
    QUEUED = "QUEUED"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


TERMINAL_SCAN_STATUSES = frozenset({ScanStatus.COMPLETED, ScanStatus.FAILED})


class Scan(BaseModel):
    __tablename__ = "scans"

    batch_id = Column(String, ForeignKey("batch_scans.id", ondelete="CASCADE"), nullable=True, index=True)
    batch = relationship("BatchScan", back_populates="scans")

    # Guest session that submitted the scan
    session_id = Column(String(128), nullable=False, index=True)

    url = Column(String(2048), nullable=False)
    position = Column(Integer, default=0, nullable=False)  # order within the batch
    wcag_level = Column(String(3), default="AA", nullable=False)

    status = Column(Enum(ScanStatus), default=ScanStatus.QUEUED, nullable=False)
    progress = Column(Integer, default=0, nullable=True)  # 0-100
    ai_enabled = Column(Boolean, default=False, nullable=False)

    error_message = Column(Text, nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        Index('idx_scans_session_status', 'session_id', 'status'),
    )
