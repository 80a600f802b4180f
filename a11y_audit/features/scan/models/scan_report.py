from sqlalchemy import JSON, Column, DateTime, ForeignKey, Integer, String, UniqueConstraint, Index

from a11y_audit.platform.db.base import BaseModel


class ScanReport(BaseModel):
    """
    Normalized report of one completed scan request (1:1 with ScanRequest).

    Summary figures are denormalized into columns so history and analytics
    queries can order and filter without decoding JSON.
    """
    __tablename__ = "scan_reports"

    scan_request_id = Column(
        String, ForeignKey("scan_requests.id", ondelete="CASCADE"), nullable=False, index=True
    )
    user_id = Column(String, nullable=True, index=True)
    url = Column(String(2048), nullable=False, index=True)
    captured_at = Column(DateTime(timezone=True), nullable=False, index=True)

    compliance_score = Column(Integer, nullable=False)
    total_issues = Column(Integer, default=0, nullable=False)

    violations = Column(JSON, nullable=False, default=list)
    passes = Column(JSON, nullable=False, default=list)
    incomplete = Column(JSON, nullable=False, default=list)
    summary = Column(JSON, nullable=False, default=dict)
    recommendations = Column(JSON, nullable=False, default=list)
    report_metadata = Column("metadata", JSON, nullable=False, default=dict)

    __table_args__ = (
        UniqueConstraint("scan_request_id", name="uq_scan_reports_request"),
        Index("ix_scan_reports_url_captured", "url", "captured_at"),
    )
