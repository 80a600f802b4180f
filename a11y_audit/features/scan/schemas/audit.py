"""
Audit Schemas

Raw rule-engine output and the normalized report built from it.
"""
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator


# ============================================================================
# Raw rule-engine output
# ============================================================================

class AffectedNode(BaseModel):
    """One DOM node a rule applied to."""
    html: str = ""
    target_selector: List[str] = Field(default_factory=list, alias="target")
    failure_summary: Optional[str] = Field(default=None, alias="failureSummary")

    class Config:
        populate_by_name = True

    @field_validator("target_selector", mode="before")
    @classmethod
    def flatten_selectors(cls, value):
        # axe reports iframe / shadow DOM paths as nested lists
        if value is None:
            return []
        if isinstance(value, str):
            return [value]
        flat = []
        for item in value:
            if isinstance(item, (list, tuple)):
                flat.append(" >>> ".join(str(part) for part in item))
            else:
                flat.append(str(item))
        return flat

    @field_validator("html", mode="before")
    @classmethod
    def none_html(cls, value):
        return value or ""


class AuditRule(BaseModel):
    """A single rule outcome (violation, pass, incomplete or inapplicable)."""
    rule_id: str = Field(alias="id")
    impact: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    description: str = ""
    help: str = ""
    help_url: str = Field(default="", alias="helpUrl")
    nodes: List[AffectedNode] = Field(default_factory=list)

    class Config:
        populate_by_name = True

    @field_validator("description", "help", "help_url", mode="before")
    @classmethod
    def none_text(cls, value):
        return value or ""

    @field_validator("tags", "nodes", mode="before")
    @classmethod
    def none_list(cls, value):
        return value or []


class TestEngine(BaseModel):
    __test__ = False

    name: str = "axe-core"
    version: str = ""


class RawAuditResult(BaseModel):
    violations: List[AuditRule] = Field(default_factory=list)
    passes: List[AuditRule] = Field(default_factory=list)
    incomplete: List[AuditRule] = Field(default_factory=list)
    inapplicable: List[AuditRule] = Field(default_factory=list)
    test_engine: TestEngine = Field(default_factory=TestEngine, alias="testEngine")

    class Config:
        populate_by_name = True


# ============================================================================
# Page capture
# ============================================================================

class NavigationResult(BaseModel):
    final_url: str
    http_status: int
    page_title: str = ""
    strategy: str = ""


class PageMetadata(BaseModel):
    title: str = ""
    description: str = ""
    keywords: str = ""
    lang: str = ""
    charset: str = ""
    viewport: str = ""
    canonical: str = ""
    robots: str = ""


# ============================================================================
# Normalized report
# ============================================================================

class ReportSummary(BaseModel):
    total_issues: int = 0
    critical_issues: int = 0
    serious_issues: int = 0
    moderate_issues: int = 0
    minor_issues: int = 0
    total_passes: int = 0
    total_incomplete: int = 0
    compliance_score: int = 100
    wcag_level: str = "AA"
    wcag_tag_counts: Dict[str, int] = Field(default_factory=dict)


class Recommendation(BaseModel):
    rule_id: str
    title: str
    description: str = ""
    impact: Optional[str] = None
    priority: int
    affected_element_count: int
    wcag_tags: List[str] = Field(default_factory=list)
    help_url: str = ""
    remediation_text: str
    estimated_effort: str


class ReportMetadata(BaseModel):
    scan_duration_ms: int = 0
    page_title: str = ""
    screenshot_base64: Optional[str] = None
    final_url: Optional[str] = None
    http_status: Optional[int] = None
    engine_name: Optional[str] = None
    engine_version: Optional[str] = None
    readiness_strategy: Optional[str] = None
    page: Optional[PageMetadata] = None


class NormalizedReport(BaseModel):
    url: str
    captured_at: datetime
    violations: List[AuditRule] = Field(default_factory=list)
    passes: List[AuditRule] = Field(default_factory=list)
    incomplete: List[AuditRule] = Field(default_factory=list)
    summary: ReportSummary
    recommendations: List[Recommendation] = Field(default_factory=list)
    metadata: ReportMetadata = Field(default_factory=ReportMetadata)

    class Config:
        json_schema_extra = {
            "example": {
                "url": "https://example.com",
                "captured_at": "2025-11-18T07:30:00Z",
                "violations": [
                    {
                        "rule_id": "image-alt",
                        "impact": "serious",
                        "tags": ["wcag2a", "wcag111"],
                        "description": "Images must have alternate text",
                        "help": "Images must have alternate text",
                        "help_url": "https://dequeuniversity.com/rules/axe/4.10/image-alt",
                        "nodes": [{"html": "<img src=\"logo.png\">", "target_selector": ["img"]}],
                    }
                ],
                "passes": [],
                "incomplete": [],
                "summary": {
                    "total_issues": 1,
                    "serious_issues": 1,
                    "compliance_score": 0,
                    "wcag_level": "AA",
                },
                "recommendations": [],
                "metadata": {"scan_duration_ms": 5321, "page_title": "Example Domain"},
            }
        }


class ViolationAnalysis(BaseModel):
    """Categorized view of a report's violations for analytics display."""
    request_id: str
    url: str
    total_violations: int
    categories: Dict[str, List[str]]
    category_counts: Dict[str, int]
    wcag_tag_counts: Dict[str, int]
    impact_counts: Dict[str, int]


def dump_rules(rules: List[AuditRule]) -> List[Dict[str, Any]]:
    return [rule.model_dump(mode="json") for rule in rules]
