import enum
from datetime import datetime, timezone

from sqlalchemy import JSON, Column, DateTime, Enum, Index, String

from a11y_audit.platform.db.base import BaseModel


class ScanRequestStatus(enum.Enum):
    """Scan request state machine: pending -> processing -> completed|failed|cancelled"""
    pending = "pending"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ScanRequest(BaseModel):

    __tablename__ = "scan_requests"

    user_id = Column(String, nullable=True, index=True)
    url = Column(String(2048), nullable=False, index=True)

    # ScanSettings as submitted; immutable once the scan starts
    settings = Column(JSON, nullable=False, default=dict)

    status = Column(
        Enum(ScanRequestStatus), default=ScanRequestStatus.pending, nullable=False, index=True
    )

    requested_at = Column(DateTime(timezone=True), default=utcnow, nullable=False)
    completed_at = Column(DateTime(timezone=True), nullable=True)

    # "metadata" is reserved on declarative classes
    request_metadata = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        Index("ix_scan_requests_user_requested", "user_id", "requested_at"),
    )
