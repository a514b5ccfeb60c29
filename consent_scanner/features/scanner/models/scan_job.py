from sqlalchemy import Column, String, Integer, DateTime, Text, Index, CheckConstraint, Enum
from datetime import datetime
import enum

from consent_scanner.platform.db.base import BaseModel


class ScanJobStatus(enum.Enum):
    """Scan job status state machine"""
    queued = "queued"
    processing = "processing"
    completed = "completed"
    failed = "failed"
    cancelled = "cancelled"


# target status -> statuses it may be entered from
ALLOWED_TRANSITIONS = {
    ScanJobStatus.processing: (ScanJobStatus.queued,),
    ScanJobStatus.completed: (ScanJobStatus.processing,),
    ScanJobStatus.failed: (ScanJobStatus.processing,),
    ScanJobStatus.cancelled: (ScanJobStatus.queued,),
}


class ScanJob(BaseModel):
    """
    One queued compliance scan.

    The row is the single source of truth for job state and queue order,
    whichever backend actually dispatches the work.
    """

    __tablename__ = "scan_jobs"

    website_url = Column(String(2048), nullable=False)

    # Optional link to an external audit request record
    audit_request_id = Column(String, nullable=True, index=True)
    user_email = Column(String(320), nullable=True)
    locale = Column(String(16), default="en", nullable=False)

    # Higher is served first
    priority = Column(Integer, default=0, nullable=False)

    status = Column(Enum(ScanJobStatus), default=ScanJobStatus.queued, nullable=False, index=True)
    progress = Column(Integer, default=0, nullable=False)
    current_step = Column(String(255), nullable=True)

    report_id = Column(String, nullable=True)
    error_message = Column(Text, nullable=True)

    celery_task_id = Column(String(128), nullable=True, index=True)

    # queued_at never changes after insert
    queued_at = Column(DateTime, default=datetime.utcnow, nullable=False)
    started_at = Column(DateTime, nullable=True)
    completed_at = Column(DateTime, nullable=True)

    __table_args__ = (
        CheckConstraint("progress >= 0 AND progress <= 100", name="check_progress_range"),
        Index("idx_scan_jobs_dequeue", "status", "priority", "queued_at"),
    )
