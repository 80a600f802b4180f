import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

from sqlalchemy import desc, select, update
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from uuid_extension import uuid7

from a11y_audit.features.scan.models.scan_report import ScanReport
from a11y_audit.features.scan.models.scan_request import ScanRequest, ScanRequestStatus
from a11y_audit.features.scan.schemas.audit import NormalizedReport, dump_rules
from a11y_audit.platform.db.session import SessionLocal

logger = logging.getLogger(__name__)

Statuses = Union[ScanRequestStatus, Iterable[ScanRequestStatus]]

# Keys describing a previous failed or cancelled run
_RUN_OUTCOME_KEYS = ("error", "error_category", "user_friendly_message", "failed_at", "cancelled_at")


def _as_tuple(statuses: Statuses):
    if isinstance(statuses, ScanRequestStatus):
        return (statuses,)
    return tuple(statuses)


def report_to_dict(report: ScanReport) -> Dict[str, Any]:
    return {
        "id": report.id,
        "scan_request_id": report.scan_request_id,
        "user_id": report.user_id,
        "url": report.url,
        "captured_at": report.captured_at,
        "compliance_score": report.compliance_score,
        "total_issues": report.total_issues,
        "summary": report.summary or {},
        "violations": report.violations or [],
        "passes": report.passes or [],
        "incomplete": report.incomplete or [],
        "recommendations": report.recommendations or [],
        "metadata": report.report_metadata or {},
    }


def report_from_row(report: ScanReport) -> NormalizedReport:
    return NormalizedReport.model_validate(
        {
            "url": report.url,
            "captured_at": report.captured_at,
            "violations": report.violations or [],
            "passes": report.passes or [],
            "incomplete": report.incomplete or [],
            "summary": report.summary or {},
            "recommendations": report.recommendations or [],
            "metadata": report.report_metadata or {},
        }
    )


class ScanRepository:
    """
    Durable store for scan requests and their reports.

    Every method runs in its own session. Status changes are conditional
    updates (`WHERE id = ? AND status IN (...)`) so two writers racing on the
    same request cannot both win.
    """

    def __init__(self, session_factory: async_sessionmaker = SessionLocal):
        self._session_factory = session_factory

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def create_request(
        self, url: str, settings: Dict[str, Any], user_id: Optional[str] = None
    ) -> ScanRequest:
        async with self._session_factory() as db:
            request = ScanRequest(
                url=url,
                settings=settings,
                user_id=user_id,
                status=ScanRequestStatus.pending,
                request_metadata={},
            )
            db.add(request)
            await db.commit()
            await db.refresh(request)
            logger.info(f"[{request.id}] Scan request created for {url}")
            return request

    async def get_request(self, request_id: str) -> Optional[ScanRequest]:
        async with self._session_factory() as db:
            return await db.get(ScanRequest, request_id)

    async def update_request(
        self, request_id: str, *, metadata: Optional[Dict[str, Any]] = None, **values
    ) -> Optional[ScanRequest]:
        """Unconditional update; `metadata` is merged into the stored metadata."""
        async with self._session_factory() as db:
            request = await db.get(ScanRequest, request_id)
            if request is None:
                return None
            for key, value in values.items():
                setattr(request, key, value)
            if metadata:
                request.request_metadata = {**(request.request_metadata or {}), **metadata}
            await db.commit()
            await db.refresh(request)
            return request

    async def _conditional_transition(
        self,
        db: AsyncSession,
        request_id: str,
        expected: Statuses,
        new_status: ScanRequestStatus,
        metadata: Optional[Dict[str, Any]],
        drop_keys: Iterable[str] = (),
        **values,
    ) -> bool:
        current = await db.get(ScanRequest, request_id)
        if current is None:
            return False

        merged = {k: v for k, v in (current.request_metadata or {}).items() if k not in drop_keys}
        merged.update(metadata or {})

        assignments = {ScanRequest.status: new_status, ScanRequest.request_metadata: merged}
        for key, value in values.items():
            assignments[getattr(ScanRequest, key)] = value

        result = await db.execute(
            update(ScanRequest)
            .where(ScanRequest.id == request_id, ScanRequest.status.in_(_as_tuple(expected)))
            .values(assignments)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def transition_status(
        self,
        request_id: str,
        expected: Statuses,
        new_status: ScanRequestStatus,
        metadata: Optional[Dict[str, Any]] = None,
        **values,
    ) -> bool:
        """Move to `new_status` only if the stored status is still `expected`."""
        async with self._session_factory() as db:
            won = await self._conditional_transition(db, request_id, expected, new_status, metadata, **values)
            if not won:
                await db.rollback()
                logger.info(f"[{request_id}] Transition to {new_status.value} lost (status changed)")
                return False
            await db.commit()
            return True

    async def reset_for_retrigger(self, request_id: str, metadata: Optional[Dict[str, Any]] = None) -> bool:
        """
        Put a failed, cancelled or stale processing request back to pending and
        clear the previous outcome. Callers must hold the active entry.
        """
        async with self._session_factory() as db:
            won = await self._conditional_transition(
                db,
                request_id,
                (
                    ScanRequestStatus.pending,
                    ScanRequestStatus.processing,
                    ScanRequestStatus.failed,
                    ScanRequestStatus.cancelled,
                ),
                ScanRequestStatus.pending,
                metadata,
                drop_keys=_RUN_OUTCOME_KEYS,
                completed_at=None,
            )
            if not won:
                await db.rollback()
                return False
            await db.commit()
            return True

    async def complete_request(
        self,
        request_id: str,
        report: NormalizedReport,
        completed_at: datetime,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> Optional[ScanReport]:
        """
        processing -> completed and the report insert, in one transaction.

        Returns None (and stores nothing) when the request is no longer
        processing, e.g. it was cancelled while the scan ran.
        """
        report_id = str(uuid7())
        async with self._session_factory() as db:
            current = await db.get(ScanRequest, request_id)
            user_id = current.user_id if current is not None else None

            won = await self._conditional_transition(
                db,
                request_id,
                ScanRequestStatus.processing,
                ScanRequestStatus.completed,
                {**(metadata or {}), "result_id": report_id},
                completed_at=completed_at,
            )
            if not won:
                await db.rollback()
                logger.info(f"[{request_id}] Completion refused: request is no longer processing")
                return None

            row = self._report_row(report_id, request_id, user_id, report)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return row

    # ------------------------------------------------------------------
    # Reports
    # ------------------------------------------------------------------

    @staticmethod
    def _report_row(
        report_id: Optional[str], request_id: str, user_id: Optional[str], report: NormalizedReport
    ) -> ScanReport:
        row = ScanReport(
            scan_request_id=request_id,
            user_id=user_id,
            url=report.url,
            captured_at=report.captured_at,
            compliance_score=report.summary.compliance_score,
            total_issues=report.summary.total_issues,
            violations=dump_rules(report.violations),
            passes=dump_rules(report.passes),
            incomplete=dump_rules(report.incomplete),
            summary=report.summary.model_dump(mode="json"),
            recommendations=[r.model_dump(mode="json") for r in report.recommendations],
            report_metadata=report.metadata.model_dump(mode="json"),
        )
        if report_id:
            row.id = report_id
        return row

    async def create_report(
        self, request_id: str, report: NormalizedReport, user_id: Optional[str] = None
    ) -> ScanReport:
        async with self._session_factory() as db:
            row = self._report_row(None, request_id, user_id, report)
            db.add(row)
            await db.commit()
            await db.refresh(row)
            return row

    async def get_report_by_request_id(self, request_id: str) -> Optional[ScanReport]:
        async with self._session_factory() as db:
            result = await db.execute(select(ScanReport).where(ScanReport.scan_request_id == request_id))
            return result.scalars().first()

    async def list_reports_by_url(self, url: str, limit: int = 10) -> List[ScanReport]:
        """Newest first."""
        async with self._session_factory() as db:
            result = await db.execute(
                select(ScanReport)
                .where(ScanReport.url == url)
                .order_by(desc(ScanReport.captured_at))
                .limit(limit)
            )
            return list(result.scalars().all())

    async def list_requests_by_user(
        self, user_id: str, limit: int = 10, offset: int = 0
    ) -> List[ScanRequest]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ScanRequest)
                .where(ScanRequest.user_id == user_id)
                .order_by(desc(ScanRequest.requested_at), desc(ScanRequest.id))
                .limit(limit)
                .offset(offset)
            )
            return list(result.scalars().all())

    async def list_recent_completed(self, limit: int = 10) -> List[ScanReport]:
        async with self._session_factory() as db:
            result = await db.execute(
                select(ScanReport).order_by(desc(ScanReport.captured_at)).limit(limit)
            )
            return list(result.scalars().all())

    async def list_reports(
        self,
        user_id: Optional[str] = None,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> List[ScanReport]:
        query = select(ScanReport)
        if user_id:
            query = query.where(ScanReport.user_id == user_id)
        if start is not None:
            query = query.where(ScanReport.captured_at >= start)
        if end is not None:
            query = query.where(ScanReport.captured_at <= end)

        async with self._session_factory() as db:
            result = await db.execute(query.order_by(ScanReport.captured_at))
            return list(result.scalars().all())
