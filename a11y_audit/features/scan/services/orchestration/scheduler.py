import asyncio
import base64
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Dict, List, Optional, Set

from a11y_audit.features.scan.models.scan_request import (
    ScanRequest,
    ScanRequestStatus,
    utcnow,
)
from a11y_audit.features.scan.schemas.audit import NormalizedReport
from a11y_audit.features.scan.schemas.scan import (
    ActiveScan,
    LivenessStatus,
    ScanSettings,
    ScanStatusResponse,
)
from a11y_audit.features.scan.services.analysis.report_validator import validate_report
from a11y_audit.features.scan.services.analysis.result_normalizer import ResultNormalizer
from a11y_audit.features.scan.services.audit.audit_engine import AuditEngine
from a11y_audit.features.scan.services.browser.page_session import PageFactory, PageSession
from a11y_audit.features.scan.services.browser.selenium_page import launch_page
from a11y_audit.features.scan.services.orchestration.repository import ScanRepository
from a11y_audit.platform.exceptions import (
    AlreadyRunningError,
    InvalidTransitionError,
    NotFoundError,
    ScanCancelledError,
    ScanInterruptedError,
    classify_failure,
)
from a11y_audit.platform.logger import get_logger
from a11y_audit.platform.utils.url_validator import ensure_scan_target

logger = get_logger(__name__)


@dataclass(eq=False)
class ActiveScanEntry:
    request_id: str
    started_at: datetime = field(default_factory=utcnow)
    started_monotonic: float = field(default_factory=time.monotonic)

    def duration_ms(self) -> int:
        return int((time.monotonic() - self.started_monotonic) * 1000)


class ScanScheduler:
    """
    Single-flight scan orchestrator.

    At most one pipeline runs per request id. The `_active` map is the lock:
    registering checks and inserts without awaiting, so two callers racing on
    the same id cannot both get in. Entries are removed by identity, which
    keeps a late finisher from removing a newer registration.

    Cancellation is cooperative. `cancel()` drops the entry and marks the
    request cancelled; the pipeline notices between stages, stops, and still
    closes its browser.
    """

    def __init__(
        self,
        repository: Optional[ScanRepository] = None,
        page_factory: PageFactory = launch_page,
        audit_engine: Optional[AuditEngine] = None,
    ):
        self._repository = repository or ScanRepository()
        self._page_factory = page_factory
        self._audit_engine = audit_engine or AuditEngine()
        self._active: Dict[str, ActiveScanEntry] = {}
        self._tasks: Set[asyncio.Task] = set()

    # ------------------------------------------------------------------
    # Active-entry bookkeeping (synchronous by construction)
    # ------------------------------------------------------------------

    def _register(self, request_id: str) -> ActiveScanEntry:
        if request_id in self._active:
            raise AlreadyRunningError(f"Scan already in progress for request {request_id}")
        entry = ActiveScanEntry(request_id=request_id)
        self._active[request_id] = entry
        return entry

    def _release(self, entry: ActiveScanEntry) -> None:
        if self._active.get(entry.request_id) is entry:
            del self._active[entry.request_id]

    def _ensure_registered(self, entry: ActiveScanEntry) -> None:
        if self._active.get(entry.request_id) is not entry:
            raise ScanCancelledError(f"Scan for request {entry.request_id} was cancelled")

    def is_active(self, request_id: str) -> bool:
        return request_id in self._active

    # ------------------------------------------------------------------
    # Entry points
    # ------------------------------------------------------------------

    async def start(self, request_id: str) -> NormalizedReport:
        """Run the scan for a pending request and return the stored report."""
        entry = self._register(request_id)
        return await self._start_registered(entry)

    def submit(self, request_id: str) -> asyncio.Task:
        """
        Same as start() but runs in a tracked background task.

        AlreadyRunningError is raised here, before the task exists.
        """
        entry = self._register(request_id)
        return self._spawn(self._start_registered(entry), entry)

    async def retrigger(self, request_id: str) -> asyncio.Task:
        """Reset a failed, cancelled or stale request to pending and scan it again."""
        entry = self._register(request_id)
        try:
            request = await self._repository.get_request(request_id)
            if request is None:
                raise NotFoundError(f"Analysis request {request_id} not found")
            if request.status == ScanRequestStatus.completed:
                raise InvalidTransitionError(
                    f"Request {request_id} is already completed; submit a new analysis instead"
                )
            ensure_scan_target(request.url)

            reset = await self._repository.reset_for_retrigger(
                request_id,
                metadata={"manual_trigger": True, "retriggered_at": utcnow().isoformat()},
            )
            if not reset:
                raise InvalidTransitionError(f"Request {request_id} can no longer be re-triggered")
        except BaseException:
            self._release(entry)
            raise

        logger.info(f"[{request_id}] Manual re-trigger accepted")
        return self._spawn(self._start_registered(entry), entry)

    async def cancel(self, request_id: str) -> bool:
        """
        Stop an active scan. Returns True only if the stored status became
        cancelled; False when nothing was active or the scan finished first.
        """
        entry = self._active.pop(request_id, None)
        if entry is None:
            return False

        cancelled = await self._repository.transition_status(
            request_id,
            (ScanRequestStatus.pending, ScanRequestStatus.processing),
            ScanRequestStatus.cancelled,
            metadata={
                "cancelled_at": utcnow().isoformat(),
                "processing_duration_ms": entry.duration_ms(),
            },
        )
        if not cancelled:
            logger.info(f"[{request_id}] Cancel arrived after the scan left processing")
            return False
        logger.info(f"[{request_id}] Scan cancelled")
        return True

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def status(self, request_id: str) -> LivenessStatus:
        entry = self._active.get(request_id)
        if entry is None:
            return LivenessStatus(status="not_active")
        return LivenessStatus(
            status="processing", started_at=entry.started_at, duration_ms=entry.duration_ms()
        )

    async def full_status(self, request_id: str) -> ScanStatusResponse:
        request = await self._repository.get_request(request_id)
        if request is None:
            raise NotFoundError(f"Analysis request {request_id} not found")
        return ScanStatusResponse(
            request_id=request_id,
            status=request.status.value,
            liveness=self.status(request_id),
            metadata=request.request_metadata or {},
        )

    def active_scans(self) -> List[ActiveScan]:
        return [
            ActiveScan(
                request_id=entry.request_id,
                started_at=entry.started_at,
                duration_ms=entry.duration_ms(),
            )
            for entry in list(self._active.values())
        ]

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def _start_registered(self, entry: ActiveScanEntry) -> NormalizedReport:
        request_id = entry.request_id
        try:
            self._ensure_registered(entry)
            request = await self._repository.get_request(request_id)
            if request is None:
                raise NotFoundError(f"Analysis request {request_id} not found")
            ensure_scan_target(request.url)

            started = await self._repository.transition_status(
                request_id,
                ScanRequestStatus.pending,
                ScanRequestStatus.processing,
                metadata={"processing_started": utcnow().isoformat()},
            )
            if not started:
                raise InvalidTransitionError(
                    f"Request {request_id} is {request.status.value}, expected pending"
                )

            try:
                return await self._run_pipeline(entry, request)
            except ScanCancelledError:
                logger.info(f"[{request_id}] Scan stopped after cancellation")
                raise
            except asyncio.CancelledError:
                # Task cancelled from outside, e.g. by shutdown(); leave a failed record behind
                await asyncio.shield(
                    self._record_failure(entry, ScanInterruptedError("Scan interrupted by service shutdown"))
                )
                raise
            except Exception as e:
                await self._record_failure(entry, e)
                raise
        finally:
            self._release(entry)

    async def _run_pipeline(self, entry: ActiveScanEntry, request: ScanRequest) -> NormalizedReport:
        request_id = entry.request_id
        prefix = f"[{request_id}] "
        scan_settings = ScanSettings.model_validate(request.settings or {})
        logger.info(f"{prefix}Starting scan of {request.url}")

        screenshot_base64 = None
        async with PageSession(scan_settings, self._page_factory, log_prefix=prefix) as session:
            self._ensure_registered(entry)
            navigation = await session.navigate(request.url)

            self._ensure_registered(entry)
            readiness = await session.await_ready(navigation.final_url)
            page_metadata = await session.capture_page()

            self._ensure_registered(entry)
            raw = await self._audit_engine.run(session, scan_settings)

            self._ensure_registered(entry)
            if scan_settings.capture_screenshot:
                png = await session.screenshot(full_page=scan_settings.full_page_screenshot)
                if png:
                    screenshot_base64 = base64.b64encode(png).decode("ascii")

        duration_ms = entry.duration_ms()
        report = ResultNormalizer.normalize(
            raw,
            url=request.url,
            wcag_level=scan_settings.wcag_level.value,
            captured_at=utcnow(),
            scan_duration_ms=duration_ms,
            page_title=navigation.page_title or page_metadata.title,
            screenshot_base64=screenshot_base64,
            extra_metadata={
                "final_url": navigation.final_url,
                "http_status": navigation.http_status,
                "readiness_strategy": readiness,
                "page": page_metadata,
            },
        )
        validate_report(report)

        self._ensure_registered(entry)
        stored = await self._repository.complete_request(
            request_id,
            report,
            completed_at=utcnow(),
            metadata={
                "processing_completed": utcnow().isoformat(),
                "processing_duration_ms": duration_ms,
            },
        )
        if stored is None:
            raise ScanCancelledError(f"Request {request_id} left processing before completion")

        logger.info(
            f"{prefix}Scan completed in {duration_ms}ms: "
            f"score={report.summary.compliance_score}, issues={report.summary.total_issues}"
        )
        return report

    async def _record_failure(self, entry: ActiveScanEntry, error: Exception) -> None:
        request_id = entry.request_id
        category, friendly = classify_failure(error)
        logger.error(f"[{request_id}] Scan failed ({category}): {error}")
        try:
            marked = await self._repository.transition_status(
                request_id,
                ScanRequestStatus.processing,
                ScanRequestStatus.failed,
                metadata={
                    "error": str(error) or error.__class__.__name__,
                    "error_category": category,
                    "user_friendly_message": friendly,
                    "failed_at": utcnow().isoformat(),
                    "processing_duration_ms": entry.duration_ms(),
                },
            )
            if not marked:
                logger.warning(f"[{request_id}] Request left processing before the failure was recorded")
        except Exception as update_error:
            logger.error(f"[{request_id}] Failed to record scan failure: {update_error}")

    # ------------------------------------------------------------------
    # Background tasks
    # ------------------------------------------------------------------

    def _spawn(self, coro: Awaitable[NormalizedReport], entry: ActiveScanEntry) -> asyncio.Task:
        task = asyncio.create_task(coro, name=f"scan-{entry.request_id}")
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            logger.warning(f"Background {task.get_name()} was cancelled")
            return
        error = task.exception()
        if error is None:
            logger.info(f"Background {task.get_name()} finished")
        elif isinstance(error, ScanCancelledError):
            logger.info(f"Background {task.get_name()} stopped: {error}")
        else:
            logger.error(f"Background {task.get_name()} failed: {error}")

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Wait for running scans, cancelling whatever is still going after `timeout`."""
        if not self._tasks:
            return
        pending = list(self._tasks)
        logger.info(f"Waiting for {len(pending)} running scan(s) to finish")
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        for task in still_running:
            task.cancel()
        if still_running:
            await asyncio.gather(*still_running, return_exceptions=True)
