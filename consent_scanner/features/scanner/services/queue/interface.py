import math
from typing import Dict, Optional, Protocol

from consent_scanner.features.scanner.models.scan_job import ScanJob, ScanJobStatus
from consent_scanner.features.scanner.schemas.queue import JobStatus, QueuedJob, QueueStats


class QueueService(Protocol):
    """What request handlers see of the scan queue, whichever backend runs it."""

    async def add_job(self, job: QueuedJob) -> JobStatus: ...

    async def get_job_status(self, job_id: str) -> Optional[JobStatus]: ...

    async def cancel_job(self, job_id: str) -> bool: ...

    async def get_stats(self) -> QueueStats: ...

    async def start_worker(self) -> None: ...

    async def stop_worker(self) -> None: ...


def estimate_wait_minutes(position: Optional[int], wait_per_job: int) -> Optional[int]:
    if not position or position <= 0:
        return None
    return math.ceil(position * wait_per_job / 60)


def to_job_status(job: ScanJob, position: Optional[int], wait_per_job: int) -> JobStatus:
    return JobStatus(
        id=job.id,
        website_url=job.website_url,
        status=job.status.value,
        progress=job.progress,
        current_step=job.current_step,
        position=position,
        report_id=job.report_id,
        error=job.error_message,
        queued_at=job.queued_at,
        started_at=job.started_at,
        completed_at=job.completed_at,
        estimated_wait_minutes=estimate_wait_minutes(position, wait_per_job),
    )


def to_queue_stats(counts: Dict[ScanJobStatus, int], max_concurrent: int, wait_per_job: int) -> QueueStats:
    return QueueStats(
        queued=counts.get(ScanJobStatus.queued, 0),
        processing=counts.get(ScanJobStatus.processing, 0),
        completed=counts.get(ScanJobStatus.completed, 0),
        failed=counts.get(ScanJobStatus.failed, 0),
        cancelled=counts.get(ScanJobStatus.cancelled, 0),
        max_concurrent=max_concurrent,
        estimated_wait_per_job=wait_per_job,
    )
