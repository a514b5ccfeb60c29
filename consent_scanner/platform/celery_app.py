from celery import Celery
from kombu import Queue

from consent_scanner.platform.config import settings


def create_celery_app() -> Celery:
    """
    Create and configure the Celery application.

    Only used when QUEUE_TYPE=celery. One queue carries scan jobs; the broker
    orders it by message priority (0 = most urgent) and each worker process
    runs WORKER_CONCURRENCY scans at most, taking one message at a time.
    """
    celery_app = Celery(
        "consent_scanner",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
    )

    celery_app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer=settings.CELERY_RESULT_SERIALIZER,
        accept_content=[settings.CELERY_ACCEPT_CONTENT],
        timezone="UTC",
        enable_utc=True,
        task_track_started=settings.CELERY_TASK_TRACK_STARTED,
        task_time_limit=settings.CELERY_TASK_TIME_LIMIT,

        result_expires=3600,

        task_routes={
            "consent_scanner.features.scanner.workers.tasks.process_scan_job": {
                "queue": settings.SCAN_QUEUE_NAME
            },
        },
        task_queues=(
            Queue("default"),
            Queue(settings.SCAN_QUEUE_NAME, queue_arguments={"x-max-priority": 10}),
        ),
        task_default_queue="default",

        # Redis emulates priorities with one list per step
        broker_transport_options={
            "priority_steps": list(range(10)),
            "sep": ":",
            "queue_order_strategy": "priority",
        },
        task_default_priority=5,

        worker_concurrency=settings.WORKER_CONCURRENCY,
        worker_prefetch_multiplier=1,
        task_acks_late=True,
        task_reject_on_worker_lost=True,
    )

    celery_app.autodiscover_tasks(["consent_scanner.features.scanner.workers"])

    return celery_app


celery_app = create_celery_app()
