"""
Scan job persistence.

Every state change is a single conditional UPDATE whose WHERE clause carries
the legal source statuses from ALLOWED_TRANSITIONS. A change that lost a race
affects zero rows and is reported as False / None, never as an exception.
"""
from datetime import datetime, timedelta
from typing import Dict, Optional

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.ext.asyncio import async_sessionmaker
from sqlalchemy.orm import aliased

from consent_scanner.features.scanner.models.scan_job import (
    ALLOWED_TRANSITIONS,
    ScanJob,
    ScanJobStatus,
)
from consent_scanner.features.scanner.schemas.queue import QueuedJob
from consent_scanner.platform.config import settings

STEP_INITIALIZING = "Initializing browser..."
STEP_LOADING = "Loading website..."
STEP_SAVING = "Saving results..."
STEP_COMPLETED = "Completed"
STEP_FAILED = "Failed"

PROGRESS_INITIALIZING = 5
PROGRESS_LOADING = 10
PROGRESS_SAVING = 90
PROGRESS_COMPLETED = 100


def _dequeue_order():
    return (ScanJob.priority.desc(), ScanJob.queued_at.asc(), ScanJob.id.asc())


class ScanJobStore:

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory
        self._last_queued_at: Optional[datetime] = None

    def _next_queued_at(self) -> datetime:
        # strictly increasing within the process, so FIFO survives equal clock reads
        now = datetime.utcnow()
        if self._last_queued_at is not None and now <= self._last_queued_at:
            now = self._last_queued_at + timedelta(microseconds=1)
        self._last_queued_at = now
        return now

    async def add(self, job: QueuedJob) -> ScanJob:
        row = ScanJob(
            website_url=job.website_url,
            audit_request_id=job.audit_request_id,
            user_email=job.user_email,
            locale=job.locale or settings.DEFAULT_LOCALE,
            priority=job.priority or 0,
            status=ScanJobStatus.queued,
            progress=0,
            queued_at=self._next_queued_at(),
        )
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
        return row

    async def get(self, job_id: str) -> Optional[ScanJob]:
        async with self.session_factory() as session:
            return await session.get(ScanJob, job_id)

    async def position(self, job: ScanJob) -> Optional[int]:
        """1-based place in the dequeue order; None unless the job is queued."""
        if job.status != ScanJobStatus.queued:
            return None

        ahead = or_(
            ScanJob.priority > job.priority,
            and_(ScanJob.priority == job.priority, ScanJob.queued_at < job.queued_at),
            and_(
                ScanJob.priority == job.priority,
                ScanJob.queued_at == job.queued_at,
                ScanJob.id < job.id,
            ),
        )
        stmt = (
            select(func.count())
            .select_from(ScanJob)
            .where(ScanJob.status == ScanJobStatus.queued, ahead)
        )
        async with self.session_factory() as session:
            count = await session.scalar(stmt)
        return 1 + (count or 0)

    async def count_by_status(self) -> Dict[ScanJobStatus, int]:
        stmt = select(ScanJob.status, func.count()).group_by(ScanJob.status)
        async with self.session_factory() as session:
            rows = (await session.execute(stmt)).all()
        counts = {status: 0 for status in ScanJobStatus}
        for status, count in rows:
            counts[status] = count
        return counts

    async def cancel(self, job_id: str) -> bool:
        return await self._transition(job_id, ScanJobStatus.cancelled)

    async def claim_next(self, limit: int) -> Optional[ScanJob]:
        """
        Move the head of the queue to processing if fewer than `limit` jobs run.

        The concurrency check and the status flip happen in one UPDATE, so two
        workers cannot both take the same job.
        """
        head = (
            select(ScanJob.id)
            .where(ScanJob.status == ScanJobStatus.queued)
            .order_by(*_dequeue_order())
            .limit(1)
        )
        async with self.session_factory() as session:
            candidate_id = await session.scalar(head)
        if candidate_id is None:
            return None

        running = aliased(ScanJob)
        in_flight = (
            select(func.count(running.id))
            .where(running.status == ScanJobStatus.processing)
            .scalar_subquery()
        )
        return await self._claim(candidate_id, in_flight < limit)

    async def claim(self, job_id: str) -> Optional[ScanJob]:
        """Queued -> processing for one known job; None if it is no longer queued."""
        return await self._claim(job_id)

    async def update_progress(self, job_id: str, progress: int, step: str) -> bool:
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.id == job_id,
                ScanJob.status == ScanJobStatus.processing,
                ScanJob.progress <= progress,
            )
            .values(progress=progress, current_step=step)
            .execution_options(synchronize_session=False)
        )
        return await self._execute(stmt)

    async def complete(self, job_id: str, report_id: str) -> bool:
        return await self._transition(
            job_id,
            ScanJobStatus.completed,
            report_id=report_id,
            progress=PROGRESS_COMPLETED,
            current_step=STEP_COMPLETED,
            completed_at=datetime.utcnow(),
        )

    async def fail(self, job_id: str, error: str) -> bool:
        # progress stays at the last checkpoint reached
        return await self._transition(
            job_id,
            ScanJobStatus.failed,
            error_message=error,
            current_step=STEP_FAILED,
            completed_at=datetime.utcnow(),
        )

    async def set_task_id(self, job_id: str, task_id: str) -> bool:
        stmt = (
            update(ScanJob)
            .where(ScanJob.id == job_id)
            .values(celery_task_id=task_id)
            .execution_options(synchronize_session=False)
        )
        return await self._execute(stmt)

    async def _claim(self, job_id: str, *conditions) -> Optional[ScanJob]:
        claimed = await self._transition(
            job_id,
            ScanJobStatus.processing,
            *conditions,
            started_at=datetime.utcnow(),
            progress=PROGRESS_INITIALIZING,
            current_step=STEP_INITIALIZING,
        )
        if not claimed:
            return None
        return await self.get(job_id)

    async def _transition(self, job_id: str, target: ScanJobStatus, *conditions, **values) -> bool:
        stmt = (
            update(ScanJob)
            .where(
                ScanJob.id == job_id,
                ScanJob.status.in_(ALLOWED_TRANSITIONS[target]),
                *conditions,
            )
            .values(status=target, **values)
            .execution_options(synchronize_session=False)
        )
        return await self._execute(stmt)

    async def _execute(self, stmt) -> bool:
        async with self.session_factory() as session:
            result = await session.execute(stmt)
            await session.commit()
        return result.rowcount == 1
