from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status

from a11y_audit.features.scan.dependencies.scan import get_repository, get_scheduler
from a11y_audit.features.scan.models.scan_request import ScanRequestStatus
from a11y_audit.features.scan.schemas.audit import ViolationAnalysis
from a11y_audit.features.scan.schemas.scan import (
    AnalysisCreateRequest,
    ScanHistoryItem,
    ScanHistoryPage,
    ScanRequestOut,
)
from a11y_audit.features.scan.schemas.trend import HistoricalComparison
from a11y_audit.features.scan.services.analysis.analytics import build_analytics
from a11y_audit.features.scan.services.analysis.result_normalizer import (
    categorize_violations,
    severity_counts,
    wcag_tag_counts,
)
from a11y_audit.features.scan.services.analysis.trend_analyzer import TrendAnalyzer
from a11y_audit.features.scan.services.orchestration.repository import (
    ScanRepository,
    report_from_row,
    report_to_dict,
)
from a11y_audit.features.scan.services.orchestration.scheduler import ScanScheduler
from a11y_audit.platform.config import settings
from a11y_audit.platform.exceptions import NotFoundError
from a11y_audit.platform.logger import get_logger
from a11y_audit.platform.response import api_response

logger = get_logger(__name__)

router = APIRouter(prefix="/analysis", tags=["analysis"])


def _report_summary(row) -> dict:
    return {
        "id": row.id,
        "scan_request_id": row.scan_request_id,
        "url": row.url,
        "captured_at": row.captured_at,
        "compliance_score": row.compliance_score,
        "total_issues": row.total_issues,
        "summary": row.summary or {},
    }


async def _get_request_or_404(repository: ScanRepository, request_id: str):
    request = await repository.get_request(request_id)
    if request is None:
        raise NotFoundError(f"Analysis request {request_id} not found")
    return request


@router.post("", status_code=status.HTTP_201_CREATED)
async def create_analysis(
    payload: AnalysisCreateRequest,
    start: bool = Query(True, description="Start scanning immediately"),
    repository: ScanRepository = Depends(get_repository),
    scheduler: ScanScheduler = Depends(get_scheduler),
):
    """
    Create an analysis request for one page and, by default, start scanning it
    in the background. Poll `/analysis/{id}/status` for progress.
    """
    request = await repository.create_request(
        url=str(payload.url),
        settings=payload.settings.model_dump(mode="json"),
        user_id=payload.user_id,
    )
    if start:
        scheduler.submit(request.id)

    return api_response(
        data=ScanRequestOut.from_model(request),
        message="Analysis request created" + (" and scan started" if start else ""),
        status_code=status.HTTP_201_CREATED,
    )


@router.get("/active")
async def list_active_scans(scheduler: ScanScheduler = Depends(get_scheduler)):
    active = scheduler.active_scans()
    return api_response(data={"active_scans": active, "count": len(active)})


@router.get("/url/history")
async def url_history(
    url: str = Query(..., description="Exact URL that was analyzed"),
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, ge=1, le=100),
    repository: ScanRepository = Depends(get_repository),
):
    rows = await repository.list_reports_by_url(url, limit=limit)
    return api_response(
        data={"url": url, "reports": [_report_summary(row) for row in rows], "count": len(rows)},
        message=f"Found {len(rows)} analyses for {url}",
    )


@router.get("/history/comparison")
async def historical_comparison(
    url: str = Query(..., description="Exact URL that was analyzed"),
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, ge=2, le=100),
    repository: ScanRepository = Depends(get_repository),
):
    reports = [report_to_dict(row) for row in await repository.list_reports_by_url(url, limit=limit)]
    comparison = HistoricalComparison(
        url=url,
        analysis_count=len(reports),
        comparison=TrendAnalyzer.compare(reports),
        weekly=TrendAnalyzer.weekly(reports),
    )
    message = "Historical comparison" if comparison.comparison else "Not enough analyses to compare"
    return api_response(data=comparison, message=message)


@router.get("/user/requests")
async def user_requests(
    user_id: str = Query(...),
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, ge=1, le=100),
    offset: int = Query(0, ge=0),
    repository: ScanRepository = Depends(get_repository),
):
    rows = await repository.list_requests_by_user(user_id, limit=limit, offset=offset)
    page = ScanHistoryPage(
        items=[
            ScanHistoryItem(
                id=row.id,
                url=row.url,
                status=row.status.value,
                requested_at=row.requested_at,
                completed_at=row.completed_at,
            )
            for row in rows
        ],
        limit=limit,
        offset=offset,
    )
    return api_response(data=page)


@router.get("/public/recent")
async def recent_analyses(
    limit: int = Query(settings.HISTORY_DEFAULT_LIMIT, ge=1, le=50),
    repository: ScanRepository = Depends(get_repository),
):
    rows = await repository.list_recent_completed(limit=limit)
    return api_response(data={"analyses": [_report_summary(row) for row in rows]})


@router.get("/dashboard/analytics")
async def dashboard_analytics(
    user_id: Optional[str] = Query(None),
    start: Optional[datetime] = Query(None),
    end: Optional[datetime] = Query(None),
    repository: ScanRepository = Depends(get_repository),
):
    rows = await repository.list_reports(user_id=user_id, start=start, end=end)
    return api_response(data=build_analytics([report_to_dict(row) for row in rows]))


@router.get("/{request_id}")
async def get_analysis(request_id: str, repository: ScanRepository = Depends(get_repository)):
    request = await _get_request_or_404(repository, request_id)
    return api_response(data=ScanRequestOut.from_model(request))


@router.get("/{request_id}/result")
async def get_analysis_result(request_id: str, repository: ScanRepository = Depends(get_repository)):
    request = await _get_request_or_404(repository, request_id)
    row = await repository.get_report_by_request_id(request_id)
    if row is None:
        raise NotFoundError(f"No result for analysis {request_id} (status: {request.status.value})")
    return api_response(data={"id": row.id, "request_id": request_id, "report": report_from_row(row)})


@router.get("/{request_id}/status")
async def get_analysis_status(request_id: str, scheduler: ScanScheduler = Depends(get_scheduler)):
    return api_response(data=await scheduler.full_status(request_id))


@router.post("/{request_id}/scan", status_code=status.HTTP_202_ACCEPTED)
async def trigger_scan(
    request_id: str,
    repository: ScanRepository = Depends(get_repository),
    scheduler: ScanScheduler = Depends(get_scheduler),
):
    """Start a pending request, or re-run a failed or cancelled one."""
    request = await _get_request_or_404(repository, request_id)
    if request.status == ScanRequestStatus.pending:
        scheduler.submit(request_id)
    else:
        await scheduler.retrigger(request_id)

    logger.info(f"[{request_id}] Scan triggered manually")
    return api_response(
        data={"request_id": request_id, "status": "processing"},
        message="Scan started",
        status_code=status.HTTP_202_ACCEPTED,
    )


@router.post("/{request_id}/cancel")
async def cancel_scan(
    request_id: str,
    repository: ScanRepository = Depends(get_repository),
    scheduler: ScanScheduler = Depends(get_scheduler),
):
    cancelled = await scheduler.cancel(request_id)
    if not cancelled:
        await _get_request_or_404(repository, request_id)
        return api_response(
            data={"request_id": request_id, "cancelled": False},
            message="No active scan for this request, or the scan already finished",
        )
    return api_response(data={"request_id": request_id, "cancelled": True}, message="Scan cancelled")


@router.get("/{request_id}/violations")
async def violation_analysis(request_id: str, repository: ScanRepository = Depends(get_repository)):
    await _get_request_or_404(repository, request_id)
    row = await repository.get_report_by_request_id(request_id)
    if row is None:
        raise NotFoundError(f"No result for analysis {request_id}")

    report = report_from_row(row)
    categories = categorize_violations(report.violations)
    analysis = ViolationAnalysis(
        request_id=request_id,
        url=report.url,
        total_violations=len(report.violations),
        categories={name: [v.rule_id for v in rules] for name, rules in categories.items()},
        category_counts={name: len(rules) for name, rules in categories.items()},
        wcag_tag_counts=wcag_tag_counts(report.violations),
        impact_counts=severity_counts(report.violations),
    )
    return api_response(data=analysis)
