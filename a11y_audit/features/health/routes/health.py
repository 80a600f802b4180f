from fastapi import APIRouter, Request, status

from a11y_audit.platform.config import settings
from a11y_audit.platform.response import api_response

router = APIRouter()


@router.get("/health", tags=["health"])
async def health_check(request: Request):
    scheduler = getattr(request.app.state, "scan_scheduler", None)
    return api_response(
        data={
            "status": "ok",
            "service": settings.APP_NAME,
            "active_scans": len(scheduler.active_scans()) if scheduler else 0,
        },
        message="Service is healthy",
        status_code=status.HTTP_200_OK,
    )
