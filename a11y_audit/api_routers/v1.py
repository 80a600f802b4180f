from fastapi import APIRouter

from a11y_audit.features.scan.routes.analysis import router as analysis_router

api_router = APIRouter()

api_router.include_router(analysis_router)
