import asyncio
from unittest.mock import AsyncMock

import pytest
from playwright.async_api import Error as PlaywrightError
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError

from consent_scanner.features.scanner.models.scan_report import ReportIssue, ReportRiskLevel, ScanReport
from consent_scanner.features.scanner.schemas.queue import QueuedJob
from consent_scanner.features.scanner.services.queue.job_runner import JobRunner
from consent_scanner.features.scanner.services.queue.polling_queue import PollingQueueService
from consent_scanner.features.scanner.services.report.report_writer import ScanReportService
from fakes import FakeBrowser, make_pipeline


def make_service(store, session_factory, pipeline, max_concurrent=1):
    runner = JobRunner(store, pipeline, ScanReportService(session_factory))
    return PollingQueueService(store, runner, max_concurrent=max_concurrent, poll_interval=0.05)


async def wait_for_status(service, job_id, status, attempts=100):
    for _ in range(attempts):
        job_status = await service.get_job_status(job_id)
        if job_status.status == status:
            return job_status
        await asyncio.sleep(0.02)
    raise AssertionError(f"job {job_id} never reached {status}")


@pytest.mark.asyncio
async def test_scan_runs_to_completion(store, session_factory, pipeline):
    # hold the scan until the processing state has been observed
    gate = asyncio.Event()
    scan = pipeline.run

    async def gated_run(url):
        await gate.wait()
        return await scan(url)

    pipeline.run = gated_run
    service = make_service(store, session_factory, pipeline)

    queued = await service.add_job(QueuedJob(website_url="https://example.com"))
    assert queued.status == "queued"
    assert queued.position == 1
    assert queued.progress == 0

    task = await service.process_next_job()
    assert task is not None

    processing = await service.get_job_status(queued.id)
    assert processing.status == "processing"
    assert processing.position is None
    assert processing.started_at is not None

    gate.set()
    await task

    done = await service.get_job_status(queued.id)
    assert done.status == "completed"
    assert done.progress == 100
    assert done.current_step == "Completed"
    assert done.report_id is not None
    assert done.completed_at is not None

    async with session_factory() as session:
        report = await session.get(ScanReport, done.report_id)
        issues = (await session.scalars(
            select(ReportIssue).where(ReportIssue.report_id == done.report_id)
        )).all()

    assert report.overall_score == 60
    assert report.risk_level == ReportRiskLevel.high
    assert report.cookies["total"] == 2
    assert {i.code for i in issues} == {"TRACKERS_BEFORE_CONSENT", "US_DATA_TRANSFERS"}


@pytest.mark.asyncio
async def test_navigation_failure_marks_job_failed(store, session_factory):
    fake = FakeBrowser(goto_error=PlaywrightError("net::ERR_NAME_NOT_RESOLVED"))
    pipeline, _, _ = make_pipeline([fake])
    service = make_service(store, session_factory, pipeline)

    queued = await service.add_job(QueuedJob(website_url="https://nowhere.invalid"))
    await (await service.process_next_job())

    failed = await service.get_job_status(queued.id)
    assert failed.status == "failed"
    assert "ERR_NAME_NOT_RESOLVED" in failed.error
    assert failed.progress == 10
    assert failed.report_id is None


@pytest.mark.asyncio
async def test_report_writer_failure_marks_job_failed(store, pipeline):
    writer = AsyncMock()
    writer.save_scan_result = AsyncMock(side_effect=RuntimeError("disk full"))
    service = PollingQueueService(store, JobRunner(store, pipeline, writer), max_concurrent=1)

    queued = await service.add_job(QueuedJob(website_url="https://example.com"))
    await (await service.process_next_job())

    failed = await service.get_job_status(queued.id)
    assert failed.status == "failed"
    assert failed.error == "disk full"
    assert failed.progress == 90


@pytest.mark.asyncio
async def test_concurrency_limit_holds_second_job(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline, max_concurrent=1)
    first = await service.add_job(QueuedJob(website_url="https://example.com"))
    second = await service.add_job(QueuedJob(website_url="https://example.org"))

    task = await service.process_next_job()
    assert await service.process_next_job() is None
    assert (await service.get_job_status(second.id)).position == 1

    await task
    assert (await service.get_job_status(first.id)).status == "completed"


@pytest.mark.asyncio
async def test_process_next_job_on_empty_queue(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline)

    assert await service.process_next_job() is None


@pytest.mark.asyncio
async def test_worker_picks_up_new_jobs(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline)
    await service.start_worker()
    try:
        queued = await service.add_job(QueuedJob(website_url="https://example.com"))
        done = await wait_for_status(service, queued.id, "completed")
    finally:
        await service.stop_worker()

    assert done.progress == 100


@pytest.mark.asyncio
async def test_cancel_through_service(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline)
    queued = await service.add_job(QueuedJob(website_url="https://example.com"))

    assert await service.cancel_job(queued.id) is True
    assert await service.cancel_job(queued.id) is False
    assert await service.process_next_job() is None
    assert (await service.get_job_status(queued.id)).status == "cancelled"


@pytest.mark.asyncio
async def test_stats(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline, max_concurrent=2)
    for i in range(3):
        await service.add_job(QueuedJob(website_url=f"https://site{i}.example"))

    stats = await service.get_stats()

    assert stats.queued == 3
    assert stats.processing == 0
    assert stats.max_concurrent == 2
    assert stats.estimated_wait_per_job == 60


@pytest.mark.asyncio
async def test_unknown_job_status(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline)

    assert await service.get_job_status("missing") is None


def fail_first_claim(store, error):
    """Make the store's first claim_next() raise `error`, later calls go through."""
    claim_next = store.claim_next
    calls = []

    async def flaky_claim_next(limit):
        calls.append(limit)
        if len(calls) == 1:
            raise error
        return await claim_next(limit)

    store.claim_next = flaky_claim_next
    return calls


@pytest.mark.asyncio
async def test_store_error_ends_the_tick(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline)
    fail_first_claim(store, SQLAlchemyError("database is locked"))
    queued = await service.add_job(QueuedJob(website_url="https://example.com"))

    assert await service.process_next_job() is None
    assert (await service.get_job_status(queued.id)).status == "queued"

    await service.start_worker()
    try:
        done = await wait_for_status(service, queued.id, "completed")
    finally:
        await service.stop_worker()

    assert done.progress == 100


@pytest.mark.asyncio
async def test_worker_survives_driver_error(store, session_factory, pipeline):
    service = make_service(store, session_factory, pipeline)
    calls = fail_first_claim(store, ConnectionRefusedError(111, "Connect call failed"))

    await service.start_worker()
    try:
        queued = await service.add_job(QueuedJob(website_url="https://example.com"))
        done = await wait_for_status(service, queued.id, "completed")
        assert not service._worker.done()
    finally:
        await service.stop_worker()

    assert done.progress == 100
    assert len(calls) >= 2


@pytest.mark.asyncio
async def test_wait_estimate_uses_configured_time_per_job(store, session_factory, pipeline):
    runner = JobRunner(store, pipeline, ScanReportService(session_factory))
    service = PollingQueueService(store, runner, max_concurrent=1, wait_per_job=90)

    statuses = [
        await service.add_job(QueuedJob(website_url=f"https://site{i}.example"))
        for i in range(3)
    ]

    assert [s.estimated_wait_minutes for s in statuses] == [2, 3, 5]

    await service.cancel_job(statuses[0].id)
    assert (await service.get_job_status(statuses[0].id)).estimated_wait_minutes is None


@pytest.mark.asyncio
async def test_zero_concurrency_is_kept(store, session_factory, pipeline):
    runner = JobRunner(store, pipeline, ScanReportService(session_factory))
    service = PollingQueueService(store, runner, max_concurrent=0, poll_interval=0)
    await service.add_job(QueuedJob(website_url="https://example.com"))

    assert service.max_concurrent == 0
    assert service.poll_interval == 0
    assert await service.process_next_job() is None
    assert (await service.get_stats()).queued == 1
