"""
Turns raw rule-engine output into the stored report shape.

Everything here is pure: the same RawAuditResult and captured_at always
produce an equal NormalizedReport.
"""
from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional

from a11y_audit.features.scan.schemas.audit import (
    AuditRule,
    NormalizedReport,
    RawAuditResult,
    Recommendation,
    ReportMetadata,
    ReportSummary,
)
from a11y_audit.features.scan.services.analysis.remediation import (
    estimate_effort,
    priority_for,
    remediation_for,
)

SEVERITIES = ("critical", "serious", "moderate", "minor")

# Checked in order; the first category with a matching tag substring wins
VIOLATION_CATEGORIES = (
    ("Color & Contrast", ("color", "contrast")),
    ("Keyboard Navigation", ("keyboard", "focus")),
    ("Forms", ("forms", "label")),
    ("Images & Media", ("text-alternatives", "image", "media")),
    ("Headings & Structure", ("structure", "heading", "tables")),
    ("Links", ("link",)),
    ("ARIA & Semantics", ("aria", "semantics", "name-role-value")),
)
OTHER_CATEGORY = "Other"


def compliance_score(violation_count: int, pass_count: int) -> int:
    """100 * passes / (violations + passes), rounded half up; 100 when nothing was evaluated."""
    total = violation_count + pass_count
    if total == 0:
        return 100
    return (200 * pass_count + total) // (2 * total)


def severity_counts(violations: Iterable[AuditRule]) -> Dict[str, int]:
    counts = {severity: 0 for severity in SEVERITIES}
    for violation in violations:
        if violation.impact in counts:
            counts[violation.impact] += 1
    return counts


def wcag_tag_counts(violations: Iterable[AuditRule]) -> Dict[str, int]:
    counter = Counter(
        tag for violation in violations for tag in violation.tags if tag.startswith("wcag")
    )
    return {tag: counter[tag] for tag in sorted(counter)}


def build_recommendations(violations: List[AuditRule]) -> List[Recommendation]:
    grouped: Dict[str, List[AuditRule]] = {}
    for violation in violations:
        grouped.setdefault(violation.rule_id, []).append(violation)

    recommendations = []
    for rule_id, group in grouped.items():
        template = group[0]
        affected = sum(len(v.nodes) for v in group)
        recommendations.append(
            Recommendation(
                rule_id=rule_id,
                title=template.help,
                description=template.description,
                impact=template.impact,
                priority=priority_for(template.impact),
                affected_element_count=affected,
                wcag_tags=[tag for tag in template.tags if tag.startswith("wcag")],
                help_url=template.help_url,
                remediation_text=remediation_for(rule_id, template.help),
                estimated_effort=estimate_effort(template.impact, affected),
            )
        )

    # sorted() is stable, so equal keys keep first-seen order
    return sorted(recommendations, key=lambda r: (r.priority, -r.affected_element_count))


def categorize(violation: AuditRule) -> str:
    for category, needles in VIOLATION_CATEGORIES:
        if any(needle in tag for tag in violation.tags for needle in needles):
            return category
    return OTHER_CATEGORY


def categorize_violations(violations: Iterable[AuditRule]) -> Dict[str, List[AuditRule]]:
    categories: Dict[str, List[AuditRule]] = {}
    for violation in violations:
        categories.setdefault(categorize(violation), []).append(violation)
    return categories


class ResultNormalizer:

    @staticmethod
    def normalize(
        raw: RawAuditResult,
        *,
        url: str,
        wcag_level: str = "AA",
        captured_at: Optional[datetime] = None,
        scan_duration_ms: int = 0,
        page_title: str = "",
        screenshot_base64: Optional[str] = None,
        extra_metadata: Optional[Dict[str, Any]] = None,
    ) -> NormalizedReport:
        violations = list(raw.violations)
        passes = list(raw.passes)
        incomplete = list(raw.incomplete)
        severities = severity_counts(violations)

        summary = ReportSummary(
            total_issues=len(violations),
            critical_issues=severities["critical"],
            serious_issues=severities["serious"],
            moderate_issues=severities["moderate"],
            minor_issues=severities["minor"],
            total_passes=len(passes),
            total_incomplete=len(incomplete),
            compliance_score=compliance_score(len(violations), len(passes)),
            wcag_level=getattr(wcag_level, "value", wcag_level),
            wcag_tag_counts=wcag_tag_counts(violations),
        )

        metadata = ReportMetadata(
            scan_duration_ms=scan_duration_ms,
            page_title=page_title,
            screenshot_base64=screenshot_base64,
            engine_name=raw.test_engine.name,
            engine_version=raw.test_engine.version,
            **(extra_metadata or {}),
        )

        return NormalizedReport(
            url=url,
            captured_at=captured_at or datetime.now(timezone.utc),
            violations=violations,
            passes=passes,
            incomplete=incomplete,
            summary=summary,
            recommendations=build_recommendations(violations),
            metadata=metadata,
        )
