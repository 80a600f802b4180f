from collections import Counter
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping

from a11y_audit.features.scan.services.analysis.trend_analyzer import TrendAnalyzer, parse_timestamp


WCAG_BREAKDOWN_TAGS = ("wcag2a", "wcag2aa", "wcag21aa", "wcag21aaa")
TOP_URL_LIMIT = 10
RECENT_LIMIT = 10

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def build_analytics(reports: List[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    Dashboard figures over stored reports (mappings as returned by the repository).

    Only violations count as issues; incomplete results are ignored here.
    """
    analytics: Dict[str, Any] = {
        "total_analyses": len(reports),
        "average_compliance_score": 0,
        "issue_distribution": {"critical": 0, "serious": 0, "moderate": 0, "minor": 0},
        "wcag_compliance_breakdown": {tag: 0 for tag in WCAG_BREAKDOWN_TAGS},
        "total_violations_found": 0,
        "average_scan_duration_ms": 0,
        "most_problematic_urls": [],
        "recent_analyses": [],
        "trends_over_time": [],
    }
    if not reports:
        return analytics

    url_violations: Counter = Counter()
    durations = []
    score_total = 0

    for report in reports:
        summary = report.get("summary") or {}
        score_total += summary.get("compliance_score", 0) or 0
        for severity in analytics["issue_distribution"]:
            analytics["issue_distribution"][severity] += summary.get(f"{severity}_issues", 0) or 0

        total_issues = summary.get("total_issues", 0) or 0
        analytics["total_violations_found"] += total_issues
        if report.get("url") and total_issues:
            url_violations[report["url"]] += total_issues

        duration = (report.get("metadata") or {}).get("scan_duration_ms")
        if duration:
            durations.append(duration)

        for violation in report.get("violations") or []:
            for tag in violation.get("tags") or []:
                if tag in analytics["wcag_compliance_breakdown"]:
                    analytics["wcag_compliance_breakdown"][tag] += 1

    analytics["average_compliance_score"] = round(score_total / len(reports), 2)
    if durations:
        analytics["average_scan_duration_ms"] = round(sum(durations) / len(durations))

    analytics["most_problematic_urls"] = [
        {"url": url, "violations": count}
        for url, count in sorted(url_violations.items(), key=lambda item: -item[1])[:TOP_URL_LIMIT]
    ]

    newest_first = sorted(
        reports, key=lambda r: parse_timestamp(r.get("captured_at")) or _EPOCH, reverse=True
    )
    analytics["recent_analyses"] = [
        {
            "id": report.get("id"),
            "scan_request_id": report.get("scan_request_id"),
            "url": report.get("url"),
            "captured_at": report.get("captured_at"),
            "summary": report.get("summary"),
        }
        for report in newest_first[:RECENT_LIMIT]
    ]

    if len(reports) >= 2:
        analytics["trends_over_time"] = [
            trend.model_dump(mode="json") for trend in TrendAnalyzer.weekly(reports)
        ]

    return analytics
