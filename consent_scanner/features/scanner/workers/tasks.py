import asyncio
import logging
from dataclasses import dataclass
from typing import Optional

from celery.signals import worker_process_shutdown
from sqlalchemy.ext.asyncio import AsyncEngine

from consent_scanner.features.scanner.services.browser.browser_session import BrowserSession
from consent_scanner.features.scanner.services.queue.job_runner import JobRunner
from consent_scanner.features.scanner.services.queue.job_store import ScanJobStore
from consent_scanner.platform.celery_app import celery_app

logger = logging.getLogger(__name__)


@dataclass
class WorkerRuntime:
    engine: AsyncEngine
    store: ScanJobStore
    runner: JobRunner
    browser_session: BrowserSession

    async def shutdown(self) -> None:
        await self.browser_session.close()
        await self.engine.dispose()


# One event loop and one runtime per worker process, created on first task.
# The browser and the DB pool are bound to that loop and reused across tasks.
_loop: Optional[asyncio.AbstractEventLoop] = None
_runtime: Optional[WorkerRuntime] = None


def get_loop() -> asyncio.AbstractEventLoop:
    global _loop
    if _loop is None or _loop.is_closed():
        _loop = asyncio.new_event_loop()
    return _loop


def get_runtime() -> WorkerRuntime:
    global _runtime

    if _runtime is None:
        from consent_scanner.features.scanner.services.pipeline.scan_pipeline import ScanPipeline
        from consent_scanner.features.scanner.services.report.report_writer import ScanReportService
        from consent_scanner.platform.config import settings
        from consent_scanner.platform.db.session import create_engine_for, create_session_factory

        engine = create_engine_for(settings.DATABASE_URL)
        session_factory = create_session_factory(engine)
        store = ScanJobStore(session_factory)
        browser_session = BrowserSession()
        runner = JobRunner(store, ScanPipeline(browser_session), ScanReportService(session_factory))
        _runtime = WorkerRuntime(engine, store, runner, browser_session)

    return _runtime


async def run_claimed_job(runtime: WorkerRuntime, job_id: str) -> Optional[str]:
    """Claim queued -> processing and run it; None when the claim fails."""
    job = await runtime.store.claim(job_id)
    if job is None:
        logger.info(f"[{job_id}] No longer queued (cancelled or already taken), skipping")
        return None

    await runtime.runner.run(job)
    return job_id


@celery_app.task(
    bind=True,
    name="consent_scanner.features.scanner.workers.tasks.process_scan_job",
)
def process_scan_job(self, job_id: str) -> Optional[str]:
    """
    Run one scan job.

    Args:
        job_id: The scan job ID (also used as the Celery task id)

    Returns:
        The job id when the job was run, None when it was skipped
    """
    logger.info(f"[{job_id}] Received scan job (delivery {self.request.id})")
    return get_loop().run_until_complete(run_claimed_job(get_runtime(), job_id))


@worker_process_shutdown.connect
def close_worker_runtime(**kwargs):
    global _runtime

    if _runtime is None or _loop is None or _loop.is_closed():
        return

    logger.info("Worker process shutting down, closing browser")
    runtime, _runtime = _runtime, None
    try:
        _loop.run_until_complete(runtime.shutdown())
    except Exception as e:
        logger.warning(f"Error during worker shutdown: {e}")
    finally:
        _loop.close()
