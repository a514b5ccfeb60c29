from typing import Optional

from sqlalchemy.ext.asyncio import async_sessionmaker

from consent_scanner.features.scanner.services.browser.browser_session import BrowserSession
from consent_scanner.features.scanner.services.pipeline.scan_pipeline import ScanPipeline
from consent_scanner.features.scanner.services.queue.dispatch_queue import CeleryQueueService
from consent_scanner.features.scanner.services.queue.interface import QueueService
from consent_scanner.features.scanner.services.queue.job_runner import JobRunner
from consent_scanner.features.scanner.services.queue.job_store import ScanJobStore
from consent_scanner.features.scanner.services.queue.polling_queue import PollingQueueService
from consent_scanner.features.scanner.services.report.report_writer import ScanReportService
from consent_scanner.platform.config import Settings
from consent_scanner.platform.logger import get_logger

logger = get_logger(__name__)


def create_queue_service(
    settings: Settings,
    session_factory: async_sessionmaker,
    browser_session: Optional[BrowserSession] = None,
    pipeline: Optional[ScanPipeline] = None,
) -> QueueService:
    """Build the backend named by QUEUE_TYPE."""
    store = ScanJobStore(session_factory)

    if settings.QUEUE_TYPE == "celery":
        logger.info("Using Celery queue backend")
        return CeleryQueueService(
            store,
            queue_name=settings.SCAN_QUEUE_NAME,
            max_concurrent=settings.WORKER_CONCURRENCY,
            wait_per_job=settings.ESTIMATED_WAIT_PER_JOB_SECONDS,
        )

    logger.info("Using polling queue backend")
    if pipeline is None:
        pipeline = ScanPipeline(browser_session or BrowserSession())
    runner = JobRunner(store, pipeline, ScanReportService(session_factory))
    return PollingQueueService(
        store,
        runner,
        max_concurrent=settings.MAX_CONCURRENT_SCANS,
        poll_interval=settings.QUEUE_POLL_INTERVAL_SECONDS,
        wait_per_job=settings.ESTIMATED_WAIT_PER_JOB_SECONDS,
    )
