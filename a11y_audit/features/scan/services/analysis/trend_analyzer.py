import logging
from datetime import date, datetime, timedelta, timezone
from typing import Any, Iterable, List, Mapping, Optional, Tuple, Union

from a11y_audit.features.scan.schemas.audit import NormalizedReport
from a11y_audit.features.scan.schemas.trend import Trend, WeeklyTrend

logger = logging.getLogger(__name__)

ReportLike = Union[NormalizedReport, Mapping[str, Any]]

# (captured_at, compliance_score, total_issues)
_Point = Tuple[datetime, int, int]


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Accept a datetime, an ISO-8601 string or epoch seconds/milliseconds."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if value > 1e11 else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str) and value.strip():
        try:
            parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
        except ValueError:
            return None
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    return None


def week_start(day: date) -> date:
    """Sunday on or before `day`."""
    return day - timedelta(days=(day.weekday() + 1) % 7)


class TrendAnalyzer:

    @staticmethod
    def _point(report: ReportLike) -> Optional[_Point]:
        if isinstance(report, NormalizedReport):
            raw_ts = report.captured_at
            score = report.summary.compliance_score
            issues = report.summary.total_issues
        else:
            summary = report.get("summary") or {}
            raw_ts = report.get("captured_at")
            score = summary.get("compliance_score", report.get("compliance_score", 0))
            issues = summary.get("total_issues", report.get("total_issues", 0))

        captured_at = parse_timestamp(raw_ts)
        if captured_at is None:
            logger.warning(f"Skipping report with unparseable timestamp: {raw_ts!r}")
            return None
        return captured_at, int(score or 0), int(issues or 0)

    @classmethod
    def _points(cls, reports: Iterable[ReportLike]) -> List[_Point]:
        points = [point for point in (cls._point(r) for r in reports) if point is not None]
        return sorted(points, key=lambda point: point[0])

    @classmethod
    def compare(cls, reports: Iterable[ReportLike]) -> Optional[Trend]:
        """Deltas between the two most recent reports; None with fewer than two."""
        points = cls._points(reports)
        if len(points) < 2:
            return None

        (_, previous_score, previous_issues), (_, current_score, current_issues) = points[-2:]
        delta = current_score - previous_score
        if delta > 0:
            direction = "improving"
        elif delta < 0:
            direction = "declining"
        else:
            direction = "stable"

        return Trend(
            previous_score=previous_score,
            current_score=current_score,
            compliance_score_delta=delta,
            total_issues_delta=current_issues - previous_issues,
            trend=direction,
        )

    @classmethod
    def weekly(cls, reports: Iterable[ReportLike]) -> List[WeeklyTrend]:
        buckets = {}
        for captured_at, score, issues in cls._points(reports):
            key = week_start(captured_at.astimezone(timezone.utc).date())
            bucket = buckets.setdefault(key, {"count": 0, "violations": 0, "scores": []})
            bucket["count"] += 1
            bucket["violations"] += issues
            bucket["scores"].append(score)

        return [
            WeeklyTrend(
                week_start=key,
                analysis_count=bucket["count"],
                total_violations=bucket["violations"],
                average_compliance_score=round(sum(bucket["scores"]) / len(bucket["scores"]), 2),
            )
            for key, bucket in sorted(buckets.items())
        ]
