"""
Test configuration and fixtures for the Consent Scanner.

Every test that touches the database gets its own temporary SQLite file.
Playwright objects are replaced with unittest.mock fakes (see fakes.py), so
no browser is ever launched.
"""

import os
import tempfile

from dotenv import load_dotenv

load_dotenv()

test_db_path = tempfile.mktemp(suffix=".db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ["WORKER_ENABLED"] = "false"
os.environ["QUEUE_TYPE"] = "polling"
os.environ["LOG_DIR"] = tempfile.mkdtemp()

import pytest

from consent_scanner.features.scanner.services.queue.job_store import ScanJobStore
from consent_scanner.platform.db.session import create_engine_for, create_session_factory, create_tables
from fakes import DEFAULT_LOAD, FakeBrowser, make_pipeline


@pytest.fixture
async def session_factory(tmp_path):
    engine = create_engine_for(f"sqlite+aiosqlite:///{tmp_path / 'scans.db'}")
    await create_tables(engine)
    yield create_session_factory(engine)
    await engine.dispose()


@pytest.fixture
def store(session_factory):
    return ScanJobStore(session_factory)


@pytest.fixture
def fake_browser():
    return FakeBrowser(on_load=DEFAULT_LOAD)


@pytest.fixture
def pipeline(fake_browser):
    scan_pipeline, _, _ = make_pipeline([fake_browser])
    return scan_pipeline
