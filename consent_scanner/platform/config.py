from pathlib import Path
from typing import List, Literal

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # ── App ─────────────────────────────────────
    APP_NAME: str = "Consent Scanner"
    ENVIRONMENT: Literal["local", "staging", "production"] = "local"
    DEBUG: bool = True
    API_V1_PREFIX: str = "/api/v1"
    LOG_DIR: str = "logs"

    # ── Database ────────────────────────────────
    DATABASE_URL: str = "sqlite+aiosqlite:///./consent_scanner.db"

    # ── Queue ───────────────────────────────────
    # "polling": in-process worker polling the scan_jobs table
    # "celery": Celery dispatches jobs, scan_jobs stays the status view
    QUEUE_TYPE: Literal["polling", "celery"] = "polling"
    MAX_CONCURRENT_SCANS: int = 1
    QUEUE_POLL_INTERVAL_SECONDS: float = 5.0
    ESTIMATED_WAIT_PER_JOB_SECONDS: int = 60
    DEFAULT_LOCALE: str = "en"

    CELERY_BROKER_URL: str = "redis://localhost:6379/0"
    CELERY_RESULT_BACKEND: str = "redis://localhost:6379/1"
    CELERY_TASK_SERIALIZER: str = "json"
    CELERY_RESULT_SERIALIZER: str = "json"
    CELERY_ACCEPT_CONTENT: str = "json"
    CELERY_TASK_TRACK_STARTED: bool = True
    CELERY_TASK_TIME_LIMIT: int = 600  # 10 minutes max per scan
    SCAN_QUEUE_NAME: str = "scan.compliance"
    WORKER_ENABLED: bool = True
    WORKER_CONCURRENCY: int = 1

    # ── Browser ─────────────────────────────────
    BROWSER_HEADLESS: bool = True
    BROWSER_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    )
    BROWSER_VIEWPORT_WIDTH: int = 1920
    BROWSER_VIEWPORT_HEIGHT: int = 1080
    BROWSER_LAUNCH_ARGS: List[str] = [
        "--no-sandbox",
        "--disable-setuid-sandbox",
        "--disable-dev-shm-usage",
        "--disable-gpu",
    ]
    # Matched case-insensitively against engine error text
    BROWSER_CRASH_SIGNATURES: List[str] = [
        "browser has been closed",
        "target page, context or browser",
        "browser closed",
        "protocol error",
        "process closed",
        "target closed",
    ]

    # ── Scan pipeline ───────────────────────────
    NAVIGATION_TIMEOUT_MS: int = 30000
    CONSENT_SETTLE_MS: int = 2000
    BANNER_APPEAR_WAIT_MS: int = 2000
    POLICY_PAGE_TIMEOUT_MS: int = 15000
    SCAN_CRASH_RETRIES: int = 1

    class Config:
        env_file = str(Path(__file__).parent.parent.parent / ".env")
        env_file_encoding = "utf-8"
        case_sensitive = False
        extra = "ignore"


settings = Settings()
