"""
Test configuration and fixtures for the A11y Audit API.

The database URL and log directory are pointed at temporary locations before
anything from `a11y_audit` is imported, so the module-level settings, engine
and logger pick them up.
"""

import os
import tempfile
from typing import Generator
from unittest.mock import AsyncMock

from dotenv import load_dotenv

import pytest
from fastapi.testclient import TestClient
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

load_dotenv()

test_db_url = os.getenv("TEST_DATABASE_URL")
if test_db_url:
    os.environ["DATABASE_URL"] = test_db_url
else:
    test_db_path = tempfile.mktemp(suffix=".db")
    os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{test_db_path}"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="a11y-audit-logs-")

from a11y_audit.features.scan.schemas.audit import RawAuditResult  # noqa: E402
from a11y_audit.features.scan.schemas.scan import ScanSettings  # noqa: E402
from a11y_audit.features.scan.services.browser.selenium_page import SeleniumPage  # noqa: E402
from a11y_audit.features.scan.services.orchestration.repository import ScanRepository  # noqa: E402
from a11y_audit.platform.db.session import init_db  # noqa: E402


@pytest.fixture(scope="session")
def test_app():
    """Create FastAPI test application."""
    from a11y_audit.main import app

    return app


@pytest.fixture(scope="function")
def client(test_app) -> Generator[TestClient, None, None]:
    """
    TestClient with the lifespan running, so tables exist and
    app.state carries the repository and scheduler.
    """
    with TestClient(test_app) as test_client:
        yield test_client
    test_app.dependency_overrides.clear()


@pytest.fixture
async def session_factory(tmp_path):
    """A fresh SQLite database per test, independent of the app's engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'scans.db'}", poolclass=NullPool)
    await init_db(bind=engine)
    yield async_sessionmaker(engine, expire_on_commit=False, autoflush=False)
    await engine.dispose()


@pytest.fixture
def repository(session_factory) -> ScanRepository:
    return ScanRepository(session_factory)


@pytest.fixture
def scan_settings() -> ScanSettings:
    return ScanSettings()


@pytest.fixture
def fake_page():
    """
    A BrowserPage that loads https://example.com with a 200 and whose
    DOM scripts return nothing interesting. Tests override what they need.
    """
    page = AsyncMock(spec=SeleniumPage)
    page.goto.return_value = 200
    page.current_url.return_value = "https://example.com/"
    page.title.return_value = "Example Domain"
    page.evaluate.return_value = {}
    page.screenshot.return_value = b"\x89PNG\r\n"
    return page


@pytest.fixture
def page_factory(fake_page):
    return AsyncMock(return_value=fake_page)


@pytest.fixture
def make_raw_result():
    """Build a RawAuditResult from axe-shaped dicts."""
    def _make(violations=None, passes=None, incomplete=None, engine="axe-core") -> RawAuditResult:
        return RawAuditResult.model_validate(
            {
                "violations": violations or [],
                "passes": passes or [],
                "incomplete": incomplete or [],
                "inapplicable": [],
                "testEngine": {"name": engine, "version": "4.10.2"},
            }
        )
    return _make


@pytest.fixture
def raw_result(make_raw_result) -> RawAuditResult:
    return make_raw_result(
        violations=[
            {
                "id": "image-alt",
                "impact": "serious",
                "tags": ["cat.text-alternatives", "wcag2a", "wcag111"],
                "description": "Ensures <img> elements have alternate text",
                "help": "Images must have alternate text",
                "helpUrl": "https://dequeuniversity.com/rules/axe/4.10/image-alt",
                "nodes": [{"html": "<img src='a.png'>", "target": ["img"]}, {"html": "<img>", "target": ["img"]}],
            }
        ],
        passes=[{"id": "document-title", "tags": ["wcag2a"], "nodes": [{}]}],
    )
