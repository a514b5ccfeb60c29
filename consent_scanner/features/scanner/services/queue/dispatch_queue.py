import asyncio
from typing import Optional

from kombu.exceptions import OperationalError

from consent_scanner.features.scanner.schemas.queue import JobStatus, QueuedJob, QueueStats
from consent_scanner.features.scanner.services.queue.interface import to_job_status, to_queue_stats
from consent_scanner.features.scanner.services.queue.job_store import ScanJobStore
from consent_scanner.platform.config import settings
from consent_scanner.platform.logger import get_logger

logger = get_logger(__name__)

MAX_DISPATCH_PRIORITY = 9
NEUTRAL_DISPATCH_PRIORITY = 5


def dispatch_priority(priority: int) -> int:
    """Job priority (higher first) -> broker priority (0 first), clamped to 0..9."""
    return max(0, min(MAX_DISPATCH_PRIORITY, NEUTRAL_DISPATCH_PRIORITY - priority))


class CeleryQueueService:
    """
    Queue backend that hands ordering and concurrency to Celery.

    scan_jobs stays the status view for API callers, so position and stats
    read from the table are estimates: the broker decides the actual order.
    """

    def __init__(
        self,
        store: ScanJobStore,
        task=None,
        control=None,
        queue_name: Optional[str] = None,
        max_concurrent: Optional[int] = None,
        wait_per_job: Optional[int] = None,
    ):
        if task is None:
            from consent_scanner.features.scanner.workers.tasks import process_scan_job
            task = process_scan_job
        if control is None:
            from consent_scanner.platform.celery_app import celery_app
            control = celery_app.control

        self.store = store
        self.task = task
        self.control = control
        self.queue_name = settings.SCAN_QUEUE_NAME if queue_name is None else queue_name
        self.max_concurrent = settings.WORKER_CONCURRENCY if max_concurrent is None else max_concurrent
        self.wait_per_job = (
            settings.ESTIMATED_WAIT_PER_JOB_SECONDS if wait_per_job is None else wait_per_job
        )

    async def add_job(self, job: QueuedJob) -> JobStatus:
        logger.info(f"Queueing scan for: {job.website_url}")
        row = await self.store.add(job)

        try:
            await asyncio.to_thread(
                self.task.apply_async,
                args=[row.id],
                task_id=row.id,
                priority=dispatch_priority(row.priority),
                queue=self.queue_name,
            )
        except OperationalError as e:
            logger.error(f"[{row.id}] Could not dispatch scan job: {e}")
            # nothing will ever pick it up
            await self.store.cancel(row.id)
            raise

        await self.store.set_task_id(row.id, row.id)
        row.celery_task_id = row.id
        position = await self.store.position(row)
        return to_job_status(row, position, self.wait_per_job)

    async def get_job_status(self, job_id: str) -> Optional[JobStatus]:
        job = await self.store.get(job_id)
        if job is None:
            return None
        return to_job_status(job, await self.store.position(job), self.wait_per_job)

    async def cancel_job(self, job_id: str) -> bool:
        if not await self.store.cancel(job_id):
            return False

        logger.info(f"[{job_id}] Cancelled, revoking task")
        try:
            await asyncio.to_thread(self.control.revoke, job_id)
        except OperationalError as e:
            # the task re-checks the status before running, so this is harmless
            logger.warning(f"[{job_id}] Revoke failed: {e}")
        return True

    async def get_stats(self) -> QueueStats:
        counts = await self.store.count_by_status()
        return to_queue_stats(counts, self.max_concurrent, self.wait_per_job)

    async def start_worker(self) -> None:
        logger.info(f"Scan jobs are dispatched to Celery queue '{self.queue_name}'")

    async def stop_worker(self) -> None:
        logger.info("Celery dispatch stopped; running tasks belong to the workers")
