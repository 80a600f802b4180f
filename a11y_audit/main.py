from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from a11y_audit.api_routers.v1 import api_router
from a11y_audit.features.health.routes.health import router as health_router
from a11y_audit.features.scan.services.orchestration.repository import ScanRepository
from a11y_audit.features.scan.services.orchestration.scheduler import ScanScheduler
from a11y_audit.platform.config import settings
from a11y_audit.platform.db.session import init_db
from a11y_audit.platform.exceptions import add_exception_handlers
from a11y_audit.platform.logger import get_logger

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    repository = ScanRepository()
    app.state.scan_repository = repository
    app.state.scan_scheduler = ScanScheduler(repository=repository)
    logger.info(f"{settings.APP_NAME} started ({settings.ENVIRONMENT})")
    yield
    await app.state.scan_scheduler.shutdown()
    logger.info(f"{settings.APP_NAME} stopped")


app = FastAPI(
    title="A11y Audit API",
    description="WCAG accessibility analysis for web pages",
    version="1.0.0",
    lifespan=lifespan,
)


# Root endpoint for basic info
@app.get("/", tags=["Info"])
def root():
    return {
        "app_name": "A11y Audit API",
        "description": "Scans web pages with axe-core and reports WCAG compliance.",
        "version": "1.0.0",
        "docs_url": "/docs",
        "api_base": "/api/v1",
    }


app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

add_exception_handlers(app)

app.include_router(health_router)
app.include_router(api_router, prefix="/api/v1")
