import asyncio
from unittest.mock import AsyncMock, patch

import pytest

from a11y_audit.features.scan.models.scan_request import ScanRequestStatus
from a11y_audit.features.scan.services.audit.audit_engine import AuditEngine
from a11y_audit.features.scan.services.orchestration.scheduler import ScanScheduler
from a11y_audit.platform.exceptions import (
    AlreadyRunningError,
    AutomationEnvironmentError,
    DataValidationError,
    InvalidTargetError,
    InvalidTransitionError,
    NavigationError,
    NotFoundError,
    ScanCancelledError,
)


class GatedEngine:
    """Audit engine that blocks until the test opens the gate."""

    def __init__(self, result):
        self.result = result
        self.started = asyncio.Event()
        self.gate = asyncio.Event()

    async def run(self, session, scan_settings):
        self.started.set()
        await self.gate.wait()
        return self.result


@pytest.fixture
def audit_engine(raw_result):
    engine = AsyncMock(spec=AuditEngine)
    engine.run.return_value = raw_result
    return engine


@pytest.fixture
def scheduler(repository, page_factory, audit_engine):
    return ScanScheduler(repository=repository, page_factory=page_factory, audit_engine=audit_engine)


@pytest.fixture
async def pending(repository):
    request = await repository.create_request("https://example.com", {})
    return request.id


class TestScanLifecycle:

    @pytest.mark.asyncio
    async def test_successful_scan(self, scheduler, repository, pending, fake_page):
        report = await scheduler.start(pending)

        assert report.summary.total_issues == 1
        assert report.summary.compliance_score == 50
        assert report.metadata.http_status == 200
        assert report.metadata.readiness_strategy == "selector"

        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.completed
        assert request.completed_at is not None
        assert "processing_started" in request.request_metadata
        assert request.request_metadata["processing_duration_ms"] >= 0

        stored = await repository.get_report_by_request_id(pending)
        assert stored.id == request.request_metadata["result_id"]
        assert stored.compliance_score == 50
        assert not scheduler.is_active(pending)
        fake_page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_screenshot_is_embedded(self, scheduler, repository):
        request = await repository.create_request("https://example.com", {"capture_screenshot": True})

        report = await scheduler.start(request.id)

        assert report.metadata.screenshot_base64 == "iVBORw0K"

    @pytest.mark.asyncio
    async def test_submit_runs_in_background(self, scheduler, repository, pending):
        task = scheduler.submit(pending)

        assert scheduler.is_active(pending)
        report = await task
        assert report.url == "https://example.com"
        assert (await repository.get_request(pending)).status == ScanRequestStatus.completed

    @pytest.mark.asyncio
    async def test_full_status_after_completion(self, scheduler, pending):
        await scheduler.start(pending)

        status = await scheduler.full_status(pending)

        assert status.status == "completed"
        assert status.liveness.status == "not_active"
        assert status.liveness.started_at is None

    @pytest.mark.asyncio
    async def test_unknown_request(self, scheduler, page_factory):
        with pytest.raises(NotFoundError):
            await scheduler.start("does-not-exist")

        assert not scheduler.is_active("does-not-exist")
        page_factory.assert_not_awaited()
        with pytest.raises(NotFoundError):
            await scheduler.full_status("does-not-exist")

    @pytest.mark.asyncio
    async def test_invalid_scheme_never_launches_browser(self, scheduler, repository, page_factory):
        request = await repository.create_request("ftp://example.com", {})

        with pytest.raises(InvalidTargetError):
            await scheduler.start(request.id)

        page_factory.assert_not_awaited()
        assert not scheduler.is_active(request.id)

    @pytest.mark.asyncio
    async def test_completed_request_cannot_start_again(self, scheduler, pending):
        await scheduler.start(pending)

        with pytest.raises(InvalidTransitionError):
            await scheduler.start(pending)


class TestFailures:

    @pytest.mark.asyncio
    async def test_navigation_failure_is_recorded(self, scheduler, repository, pending, fake_page):
        fake_page.goto.return_value = 404

        with pytest.raises(NavigationError):
            await scheduler.start(pending)

        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.failed
        metadata = request.request_metadata
        assert metadata["error_category"] == "not_found"
        assert "404" in metadata["error"]
        assert "404" in metadata["user_friendly_message"]
        assert "failed_at" in metadata
        assert await repository.get_report_by_request_id(pending) is None
        fake_page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_browser_launch_failure(self, repository, audit_engine, pending):
        scheduler = ScanScheduler(
            repository=repository,
            page_factory=AsyncMock(side_effect=OSError("chrome binary missing")),
            audit_engine=audit_engine,
        )

        with pytest.raises(AutomationEnvironmentError, match="chrome binary missing"):
            await scheduler.start(pending)

        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.failed
        assert request.request_metadata["error_category"] == "environment"

    @pytest.mark.asyncio
    async def test_invalid_report_is_not_stored(self, scheduler, repository, pending):
        with patch(
            "a11y_audit.features.scan.services.orchestration.scheduler.validate_report",
            side_effect=DataValidationError(["summary.total_issues does not match violations"]),
        ):
            with pytest.raises(DataValidationError):
                await scheduler.start(pending)

        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.failed
        assert request.request_metadata["error_category"] == "validation"
        assert await repository.get_report_by_request_id(pending) is None


class TestSingleFlight:

    @pytest.mark.asyncio
    async def test_concurrent_starts(self, scheduler, pending):
        results = await asyncio.gather(
            scheduler.start(pending), scheduler.start(pending), return_exceptions=True
        )

        conflicts = [r for r in results if isinstance(r, AlreadyRunningError)]
        reports = [r for r in results if not isinstance(r, Exception)]
        assert len(conflicts) == 1
        assert len(reports) == 1

    @pytest.mark.asyncio
    async def test_submit_conflict_raises_before_task(self, scheduler, pending):
        task = scheduler.submit(pending)

        with pytest.raises(AlreadyRunningError):
            scheduler.submit(pending)

        await task

    def test_release_is_by_identity(self, scheduler):
        stale = scheduler._register("req-1")
        scheduler._active.pop("req-1")
        fresh = scheduler._register("req-1")

        scheduler._release(stale)
        assert scheduler.is_active("req-1")

        scheduler._release(fresh)
        assert not scheduler.is_active("req-1")


class TestCancellation:

    @pytest.mark.asyncio
    async def test_cancel_running_scan(self, repository, page_factory, fake_page, raw_result, pending):
        engine = GatedEngine(raw_result)
        scheduler = ScanScheduler(repository=repository, page_factory=page_factory, audit_engine=engine)

        task = scheduler.submit(pending)
        await engine.started.wait()

        liveness = scheduler.status(pending)
        assert liveness.status == "processing"
        assert [scan.request_id for scan in scheduler.active_scans()] == [pending]

        assert await scheduler.cancel(pending) is True
        assert not scheduler.is_active(pending)
        engine.gate.set()

        with pytest.raises(ScanCancelledError):
            await task

        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.cancelled
        assert "cancelled_at" in request.request_metadata
        assert await repository.get_report_by_request_id(pending) is None
        fake_page.close.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_cancel_inactive(self, scheduler, repository, pending):
        assert await scheduler.cancel(pending) is False
        assert (await repository.get_request(pending)).status == ScanRequestStatus.pending

    @pytest.mark.asyncio
    async def test_shutdown_cancels_stuck_scans(self, repository, page_factory, raw_result, pending):
        engine = GatedEngine(raw_result)
        scheduler = ScanScheduler(repository=repository, page_factory=page_factory, audit_engine=engine)

        task = scheduler.submit(pending)
        await engine.started.wait()
        await scheduler.shutdown(timeout=0.01)

        assert task.cancelled()
        assert not scheduler.is_active(pending)
        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.failed
        assert request.request_metadata["error_category"] == "interrupted"
        assert "interrupted" in request.request_metadata["user_friendly_message"]

    @pytest.mark.asyncio
    async def test_cancel_after_completion_commits_reports_false(self, scheduler, repository, pending, monkeypatch):
        complete_request = repository.complete_request
        cancel_results = []

        async def complete_then_cancel(*args, **kwargs):
            row = await complete_request(*args, **kwargs)
            cancel_results.append(await scheduler.cancel(pending))
            return row

        monkeypatch.setattr(repository, "complete_request", complete_then_cancel)

        report = await scheduler.start(pending)

        assert cancel_results == [False]
        assert report.summary.compliance_score == 50
        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.completed
        assert "cancelled_at" not in request.request_metadata
        assert await repository.get_report_by_request_id(pending) is not None

    @pytest.mark.asyncio
    async def test_cancel_before_completion_commits_wins(self, scheduler, repository, pending, monkeypatch):
        complete_request = repository.complete_request
        cancel_results = []

        async def cancel_then_complete(*args, **kwargs):
            cancel_results.append(await scheduler.cancel(pending))
            return await complete_request(*args, **kwargs)

        monkeypatch.setattr(repository, "complete_request", cancel_then_complete)

        with pytest.raises(ScanCancelledError):
            await scheduler.start(pending)

        assert cancel_results == [True]
        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.cancelled
        assert await repository.get_report_by_request_id(pending) is None


class TestRetrigger:

    @pytest.mark.asyncio
    async def test_retrigger_failed_request(self, scheduler, repository, pending, fake_page):
        fake_page.goto.return_value = 500
        with pytest.raises(NavigationError):
            await scheduler.start(pending)

        fake_page.goto.return_value = 200
        task = await scheduler.retrigger(pending)
        await task

        request = await repository.get_request(pending)
        assert request.status == ScanRequestStatus.completed
        assert request.request_metadata["manual_trigger"] is True
        assert "error" not in request.request_metadata
        assert "error_category" not in request.request_metadata
        assert "result_id" in request.request_metadata

    @pytest.mark.asyncio
    async def test_retrigger_completed_request(self, scheduler, pending):
        await scheduler.start(pending)

        with pytest.raises(InvalidTransitionError):
            await scheduler.retrigger(pending)

        assert not scheduler.is_active(pending)

    @pytest.mark.asyncio
    async def test_retrigger_while_running(self, repository, page_factory, raw_result, pending):
        engine = GatedEngine(raw_result)
        scheduler = ScanScheduler(repository=repository, page_factory=page_factory, audit_engine=engine)

        task = scheduler.submit(pending)
        await engine.started.wait()

        with pytest.raises(AlreadyRunningError):
            await scheduler.retrigger(pending)

        engine.gate.set()
        await task
        assert (await repository.get_request(pending)).status == ScanRequestStatus.completed

    @pytest.mark.asyncio
    async def test_retrigger_stale_processing_request(self, scheduler, repository, pending):
        await repository.transition_status(pending, ScanRequestStatus.pending, ScanRequestStatus.processing)

        task = await scheduler.retrigger(pending)
        await task

        assert (await repository.get_request(pending)).status == ScanRequestStatus.completed

    @pytest.mark.asyncio
    async def test_retrigger_unknown_request(self, scheduler):
        with pytest.raises(NotFoundError):
            await scheduler.retrigger("nope")

        assert not scheduler.is_active("nope")
