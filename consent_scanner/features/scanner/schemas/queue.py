"""
Queue Schemas

Request/response models of the scan queue facade.
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class QueuedJob(BaseModel):
    """A request to scan one website."""
    website_url: str
    audit_request_id: Optional[str] = None
    user_email: Optional[str] = None
    locale: Optional[str] = None
    priority: int = 0

    class Config:
        json_schema_extra = {
            "example": {
                "website_url": "https://example.com",
                "locale": "en",
                "priority": 0,
            }
        }


class JobStatus(BaseModel):
    id: str
    website_url: str
    status: str
    progress: int = Field(ge=0, le=100)
    current_step: Optional[str] = None
    position: Optional[int] = None  # only while queued
    report_id: Optional[str] = None
    error: Optional[str] = None
    queued_at: datetime
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    estimated_wait_minutes: Optional[int] = None


class QueueStats(BaseModel):
    queued: int
    processing: int
    completed: int
    failed: int
    cancelled: int
    max_concurrent: int
    estimated_wait_per_job: int  # seconds, display only
