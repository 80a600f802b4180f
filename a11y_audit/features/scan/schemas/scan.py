"""
Scan Schemas

Request, settings and status models for the analysis API endpoints.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, HttpUrl

from a11y_audit.platform.config import settings as app_settings


class WcagLevel(str, Enum):
    A = "A"
    AA = "AA"
    AAA = "AAA"


class Viewport(BaseModel):
    width: int = Field(1280, ge=320, le=3840)
    height: int = Field(720, ge=240, le=2160)

    class Config:
        frozen = True


class ScanSettings(BaseModel):
    """Per-scan browser and rule-engine settings. Immutable once a scan starts."""
    timeout_ms: int = Field(default_factory=lambda: app_settings.DEFAULT_SCAN_TIMEOUT_MS, ge=5000, le=300000)
    viewport: Viewport = Field(default_factory=Viewport)
    user_agent: Optional[str] = None
    wcag_level: WcagLevel = WcagLevel.AA
    capture_screenshot: bool = False
    full_page_screenshot: bool = False
    wait_for_selector: str = "body"
    rule_options: Dict[str, Any] = Field(default_factory=dict)

    class Config:
        frozen = True
        json_schema_extra = {
            "example": {
                "timeout_ms": 45000,
                "viewport": {"width": 1280, "height": 720},
                "wcag_level": "AA",
                "capture_screenshot": False,
            }
        }

    @property
    def timeout_seconds(self) -> float:
        return self.timeout_ms / 1000


# ============================================================================
# API payloads
# ============================================================================

class AnalysisCreateRequest(BaseModel):
    """Request to analyze a single page."""
    url: HttpUrl
    settings: ScanSettings = Field(default_factory=ScanSettings)
    user_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com",
                "settings": {"wcag_level": "AA", "capture_screenshot": True},
            }
        }


class ScanRequestOut(BaseModel):
    id: str
    url: str
    user_id: Optional[str] = None
    status: str
    settings: Dict[str, Any]
    requested_at: datetime
    completed_at: Optional[datetime] = None
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def from_model(cls, request) -> "ScanRequestOut":
        return cls(
            id=request.id,
            url=request.url,
            user_id=request.user_id,
            status=request.status.value if hasattr(request.status, "value") else str(request.status),
            settings=request.settings or {},
            requested_at=request.requested_at,
            completed_at=request.completed_at,
            metadata=request.request_metadata or {},
        )


class LivenessStatus(BaseModel):
    """Whether this process is executing the scan right now."""
    status: str
    started_at: Optional[datetime] = None
    duration_ms: Optional[int] = None


class ScanStatusResponse(BaseModel):
    request_id: str
    status: str
    liveness: LivenessStatus
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ActiveScan(BaseModel):
    request_id: str
    started_at: datetime
    duration_ms: int


class ScanHistoryItem(BaseModel):
    id: str
    url: str
    status: str
    requested_at: datetime
    completed_at: Optional[datetime] = None


class ScanHistoryPage(BaseModel):
    items: List[ScanHistoryItem]
    limit: int
    offset: int
