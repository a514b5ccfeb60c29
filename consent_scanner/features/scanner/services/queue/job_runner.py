import logging

from consent_scanner.features.scanner.models.scan_job import ScanJob
from consent_scanner.features.scanner.services.pipeline.scan_pipeline import ScanPipeline
from consent_scanner.features.scanner.services.queue.job_store import (
    PROGRESS_LOADING,
    PROGRESS_SAVING,
    STEP_LOADING,
    STEP_SAVING,
    ScanJobStore,
)
from consent_scanner.features.scanner.services.report.report_writer import ReportWriter

logger = logging.getLogger(__name__)


class JobRunner:
    """
    Runs one claimed job to a terminal state. Shared by both queue backends.

    Never raises for a job-level failure: the job ends failed with the error
    text and the caller's loop carries on.
    """

    def __init__(self, store: ScanJobStore, pipeline: ScanPipeline, report_writer: ReportWriter):
        self.store = store
        self.pipeline = pipeline
        self.report_writer = report_writer

    async def run(self, job: ScanJob) -> bool:
        job_id = job.id
        logger.info(f"[{job_id}] Starting scan for {job.website_url}")

        try:
            await self.store.update_progress(job_id, PROGRESS_LOADING, STEP_LOADING)
            result = await self.pipeline.run(job.website_url)

            await self.store.update_progress(job_id, PROGRESS_SAVING, STEP_SAVING)
            report_id = await self.report_writer.save_scan_result(result, job.audit_request_id)

            await self.store.complete(job_id, report_id)
            logger.info(f"[{job_id}] Completed. Report: {report_id}, score {result.score}/100")
            return True

        except Exception as e:
            error = str(e) or e.__class__.__name__
            logger.error(f"[{job_id}] Scan failed: {error}", exc_info=True)
            await self.store.fail(job_id, error)
            return False
