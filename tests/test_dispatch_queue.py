from unittest.mock import AsyncMock, MagicMock

import pytest
from kombu.exceptions import OperationalError

from consent_scanner.features.scanner.models.scan_job import ScanJobStatus
from consent_scanner.features.scanner.schemas.queue import QueuedJob
from consent_scanner.features.scanner.services.queue.dispatch_queue import (
    CeleryQueueService,
    dispatch_priority,
)
from consent_scanner.features.scanner.services.queue.factory import create_queue_service
from consent_scanner.features.scanner.services.queue.polling_queue import PollingQueueService
from consent_scanner.features.scanner.workers.tasks import WorkerRuntime, run_claimed_job
from consent_scanner.platform.config import Settings


def make_service(store):
    return CeleryQueueService(store, task=MagicMock(), control=MagicMock(), queue_name="scan.test")


@pytest.mark.parametrize("priority, expected", [
    (0, 5),
    (3, 2),
    (5, 0),
    (10, 0),
    (-2, 7),
    (-10, 9),
])
def test_dispatch_priority_is_inverted_and_clamped(priority, expected):
    assert dispatch_priority(priority) == expected


@pytest.mark.asyncio
async def test_add_job_dispatches_task(store):
    service = make_service(store)

    status = await service.add_job(QueuedJob(website_url="https://example.com", priority=3))

    service.task.apply_async.assert_called_once_with(
        args=[status.id], task_id=status.id, priority=2, queue="scan.test"
    )
    assert status.status == "queued"
    assert status.position == 1
    assert (await store.get(status.id)).celery_task_id == status.id


@pytest.mark.asyncio
async def test_broker_down_cancels_the_row(store):
    service = make_service(store)
    service.task.apply_async.side_effect = OperationalError("connection refused")

    with pytest.raises(OperationalError):
        await service.add_job(QueuedJob(website_url="https://example.com"))

    counts = await store.count_by_status()
    assert counts[ScanJobStatus.queued] == 0
    assert counts[ScanJobStatus.cancelled] == 1


@pytest.mark.asyncio
async def test_cancel_revokes_task(store):
    service = make_service(store)
    status = await service.add_job(QueuedJob(website_url="https://example.com"))

    assert await service.cancel_job(status.id) is True

    service.control.revoke.assert_called_once_with(status.id)
    assert (await store.get(status.id)).status == ScanJobStatus.cancelled


@pytest.mark.asyncio
async def test_cancel_survives_revoke_failure(store):
    service = make_service(store)
    service.control.revoke.side_effect = OperationalError("connection refused")
    status = await service.add_job(QueuedJob(website_url="https://example.com"))

    assert await service.cancel_job(status.id) is True


@pytest.mark.asyncio
async def test_cancel_of_non_queued_job_does_not_revoke(store):
    service = make_service(store)

    assert await service.cancel_job("missing") is False
    service.control.revoke.assert_not_called()


@pytest.mark.asyncio
async def test_stats_use_worker_concurrency(store):
    service = CeleryQueueService(
        store, task=MagicMock(), control=MagicMock(), max_concurrent=4, wait_per_job=30
    )
    await service.add_job(QueuedJob(website_url="https://example.com"))

    stats = await service.get_stats()

    assert stats.queued == 1
    assert stats.max_concurrent == 4
    assert stats.estimated_wait_per_job == 30


def make_runtime(store):
    runner = MagicMock()
    runner.run = AsyncMock(return_value=True)
    return WorkerRuntime(engine=MagicMock(), store=store, runner=runner, browser_session=MagicMock())


@pytest.mark.asyncio
async def test_task_runs_claimed_job(store):
    runtime = make_runtime(store)
    row = await store.add(QueuedJob(website_url="https://example.com"))

    assert await run_claimed_job(runtime, row.id) == row.id

    runtime.runner.run.assert_awaited_once()
    assert (await store.get(row.id)).status == ScanJobStatus.processing


@pytest.mark.asyncio
async def test_task_skips_cancelled_job(store):
    runtime = make_runtime(store)
    row = await store.add(QueuedJob(website_url="https://example.com"))
    await store.cancel(row.id)

    assert await run_claimed_job(runtime, row.id) is None

    runtime.runner.run.assert_not_awaited()


@pytest.mark.asyncio
async def test_factory_picks_backend(session_factory):
    polling = create_queue_service(Settings(QUEUE_TYPE="polling"), session_factory)
    celery = create_queue_service(Settings(QUEUE_TYPE="celery"), session_factory)

    assert isinstance(polling, PollingQueueService)
    assert isinstance(celery, CeleryQueueService)


@pytest.mark.asyncio
async def test_explicit_zero_settings_are_kept(store):
    service = CeleryQueueService(
        store, task=MagicMock(), control=MagicMock(), queue_name="", max_concurrent=0, wait_per_job=0
    )

    stats = await service.get_stats()

    assert service.queue_name == ""
    assert stats.max_concurrent == 0
    assert stats.estimated_wait_per_job == 0
