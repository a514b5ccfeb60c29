from sqlalchemy import Column, String, Integer, DateTime, Text, ForeignKey, Index, Enum, JSON
from sqlalchemy.orm import relationship
import enum

from consent_scanner.platform.db.base import BaseModel


class IssueCategory(enum.Enum):
    """Report section an issue belongs to"""
    cookies = "cookies"
    trackers = "trackers"
    consent = "consent"
    privacy_policy = "privacy_policy"
    security = "security"
    forms = "forms"
    data_transfer = "data_transfer"
    other = "other"


class ReportRiskLevel(enum.Enum):
    critical = "critical"
    high = "high"
    medium = "medium"
    low = "low"


class ScanReport(BaseModel):
    """Persisted outcome of one completed scan."""

    __tablename__ = "scan_reports"

    audit_request_id = Column(String, nullable=True, index=True)
    website_url = Column(String(2048), nullable=False)
    scanned_at = Column(DateTime, nullable=False)
    scan_duration_ms = Column(Integer, nullable=False)

    overall_score = Column(Integer, nullable=False)  # 0-100
    risk_level = Column(Enum(ReportRiskLevel), nullable=False, index=True)

    # Full ScanResult payload, sections kept apart for querying
    cookies = Column(JSON, nullable=False)
    trackers = Column(JSON, nullable=False)
    third_party_requests = Column(JSON, nullable=False)
    consent_banner = Column(JSON, nullable=False)
    privacy_policy = Column(JSON, nullable=False)
    security = Column(JSON, nullable=False)
    forms = Column(JSON, nullable=False)
    data_transfers = Column(JSON, nullable=False)
    technologies = Column(JSON, nullable=False)

    issues = relationship(
        "ReportIssue", back_populates="report", cascade="all, delete-orphan", lazy="selectin"
    )


class ReportIssue(BaseModel):
    """One derived issue of a report."""

    __tablename__ = "report_issues"

    report_id = Column(String, ForeignKey("scan_reports.id", ondelete="CASCADE"), nullable=False, index=True)

    code = Column(String(64), nullable=False)
    category = Column(Enum(IssueCategory), nullable=False, index=True)
    risk_level = Column(Enum(ReportRiskLevel), nullable=False, index=True)
    title = Column(String(512), nullable=False)
    description = Column(Text, nullable=False)
    recommendation = Column(Text, nullable=True)

    report = relationship("ScanReport", back_populates="issues")

    __table_args__ = (
        Index("idx_report_issues_code", "code"),
    )
