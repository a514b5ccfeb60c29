"""Celery workers module - imports task modules for autodiscovery."""

from consent_scanner.features.scanner.workers import tasks  # noqa: F401
