from fastapi import APIRouter, Depends, HTTPException, Request, status
from kombu.exceptions import OperationalError

from consent_scanner.features.scanner.models.scan_job import ScanJobStatus
from consent_scanner.features.scanner.schemas.queue import QueuedJob
from consent_scanner.features.scanner.services.pipeline.url_utils import hostname, normalize_url
from consent_scanner.features.scanner.services.queue.interface import QueueService
from consent_scanner.platform.config import settings
from consent_scanner.platform.logger import get_logger
from consent_scanner.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/scan-queue", tags=["scan-queue"])


def get_queue_service(request: Request) -> QueueService:
    queue_service = getattr(request.app.state, "queue_service", None)
    if queue_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scan queue is not running",
        )
    return queue_service


@router.post("")
async def enqueue_scan(
    payload: QueuedJob,
    queue: QueueService = Depends(get_queue_service),
):
    """Queue a website for a compliance scan."""
    try:
        url = normalize_url(payload.website_url)
        hostname(url)
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=f"Invalid URL: {e}")

    job = payload.model_copy(update={
        "website_url": url,
        "locale": payload.locale or settings.DEFAULT_LOCALE,
    })

    try:
        job_status = await queue.add_job(job)
    except OperationalError as e:
        logger.error(f"Scan dispatch failed for {url}: {e}")
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Scan queue broker is unavailable",
        )

    return api_response(
        data=job_status,
        message="Scan queued",
        status_code=status.HTTP_201_CREATED,
        headers={"Location": f"{settings.API_V1_PREFIX}/scan-queue/{job_status.id}"},
    )


@router.get("/stats")
async def queue_stats(queue: QueueService = Depends(get_queue_service)):
    stats = await queue.get_stats()
    return api_response(data=stats, message="Queue statistics retrieved")


@router.get("/{job_id}")
async def get_scan_job(job_id: str, queue: QueueService = Depends(get_queue_service)):
    job_status = await queue.get_job_status(job_id)
    if job_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan job not found")
    return api_response(data=job_status, message="Scan job retrieved")


@router.delete("/{job_id}")
async def cancel_scan_job(job_id: str, queue: QueueService = Depends(get_queue_service)):
    """Cancel a job that is still waiting; running jobs are never interrupted."""
    if await queue.cancel_job(job_id):
        job_status = await queue.get_job_status(job_id)
        return api_response(data=job_status, message="Scan job cancelled")

    job_status = await queue.get_job_status(job_id)
    if job_status is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Scan job not found")

    raise HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail=f"Scan job is {job_status.status}, only {ScanJobStatus.queued.value} jobs can be cancelled",
    )
