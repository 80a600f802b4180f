from fastapi import Request

from a11y_audit.features.scan.services.orchestration.repository import ScanRepository
from a11y_audit.features.scan.services.orchestration.scheduler import ScanScheduler


def get_scheduler(request: Request) -> ScanScheduler:
    return request.app.state.scan_scheduler


def get_repository(request: Request) -> ScanRepository:
    return request.app.state.scan_repository
