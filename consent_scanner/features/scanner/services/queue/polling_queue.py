import asyncio
from typing import Optional, Set

from sqlalchemy.exc import SQLAlchemyError

from consent_scanner.features.scanner.models.scan_job import ScanJob
from consent_scanner.features.scanner.schemas.queue import JobStatus, QueuedJob, QueueStats
from consent_scanner.features.scanner.services.queue.interface import to_job_status, to_queue_stats
from consent_scanner.features.scanner.services.queue.job_runner import JobRunner
from consent_scanner.features.scanner.services.queue.job_store import ScanJobStore
from consent_scanner.platform.config import settings
from consent_scanner.platform.logger import get_logger

logger = get_logger(__name__)


class PollingQueueService:
    """
    In-process queue backend.

    A single asyncio task polls scan_jobs every poll_interval seconds, and
    immediately when woken by add_job() or a finished job. Each tick claims
    jobs until the concurrency limit is reached; every claimed job runs in
    its own task.
    """

    def __init__(
        self,
        store: ScanJobStore,
        runner: JobRunner,
        max_concurrent: Optional[int] = None,
        poll_interval: Optional[float] = None,
        wait_per_job: Optional[int] = None,
    ):
        self.store = store
        self.runner = runner
        self.max_concurrent = settings.MAX_CONCURRENT_SCANS if max_concurrent is None else max_concurrent
        self.poll_interval = (
            settings.QUEUE_POLL_INTERVAL_SECONDS if poll_interval is None else poll_interval
        )
        self.wait_per_job = (
            settings.ESTIMATED_WAIT_PER_JOB_SECONDS if wait_per_job is None else wait_per_job
        )

        self._wake = asyncio.Event()
        self._worker: Optional[asyncio.Task] = None
        self._running: Set[asyncio.Task] = set()

    async def add_job(self, job: QueuedJob) -> JobStatus:
        logger.info(f"Queueing scan for: {job.website_url}")
        row = await self.store.add(job)
        position = await self.store.position(row)
        self.wake()
        return to_job_status(row, position, self.wait_per_job)

    async def get_job_status(self, job_id: str) -> Optional[JobStatus]:
        job = await self.store.get(job_id)
        if job is None:
            return None
        return to_job_status(job, await self.store.position(job), self.wait_per_job)

    async def cancel_job(self, job_id: str) -> bool:
        cancelled = await self.store.cancel(job_id)
        if cancelled:
            logger.info(f"[{job_id}] Cancelled")
        return cancelled

    async def get_stats(self) -> QueueStats:
        counts = await self.store.count_by_status()
        return to_queue_stats(counts, self.max_concurrent, self.wait_per_job)

    def wake(self) -> None:
        self._wake.set()

    async def start_worker(self) -> None:
        if self._worker is not None:
            return
        logger.info("Starting polling queue worker...")
        self._worker = asyncio.create_task(self._poll_loop())

    async def stop_worker(self) -> None:
        """Stop polling, then let jobs already processing run to their end."""
        worker, self._worker = self._worker, None
        if worker is not None:
            logger.info("Stopping polling queue worker...")
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        await self.join()

    async def join(self) -> None:
        """Wait for every job currently running in this process."""
        while self._running:
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def process_next_job(self) -> Optional[asyncio.Task]:
        """
        One claim attempt. Returns the task running the claimed job, or None
        when the limit is reached, the queue is empty or the store failed.
        """
        if len(self._running) >= self.max_concurrent:
            return None

        try:
            job = await self.store.claim_next(self.max_concurrent)
        except SQLAlchemyError as e:
            logger.error(f"Queue tick failed, will retry on next tick: {e}")
            return None

        if job is None:
            return None

        task = asyncio.create_task(self._execute(job))
        self._running.add(task)
        task.add_done_callback(self._running.discard)
        return task

    async def _poll_loop(self) -> None:
        while True:
            self._wake.clear()
            try:
                while await self.process_next_job() is not None:
                    pass
            except Exception:
                # raw driver errors (e.g. asyncpg connect) are not SQLAlchemyError
                logger.exception("Queue tick failed, will retry on next tick")
            try:
                await asyncio.wait_for(self._wake.wait(), timeout=self.poll_interval)
            except asyncio.TimeoutError:
                pass

    async def _execute(self, job: ScanJob) -> None:
        try:
            await self.runner.run(job)
        except Exception:
            # the store itself failed while recording the outcome
            logger.exception(f"[{job.id}] Could not record job outcome")
        finally:
            self.wake()
