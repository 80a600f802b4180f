from typing import List

from a11y_audit.features.scan.schemas.audit import NormalizedReport
from a11y_audit.platform.exceptions import DataValidationError


def report_errors(report: NormalizedReport) -> List[str]:
    """Structural checks a report must pass before it is stored."""
    errors = []
    summary = report.summary

    if not report.url:
        errors.append("URL is required")
    for field in ("violations", "passes", "incomplete"):
        if not isinstance(getattr(report, field), list):
            errors.append(f"{field} must be an array")
    if not 0 <= summary.compliance_score <= 100:
        errors.append("Compliance score must be between 0 and 100")
    if summary.total_issues != len(report.violations):
        errors.append("Summary total issues does not match violations count")

    bucketed = (
        summary.critical_issues + summary.serious_issues + summary.moderate_issues + summary.minor_issues
    )
    if bucketed > summary.total_issues:
        errors.append("Severity counts exceed total issues")

    return errors


def validate_report(report: NormalizedReport) -> NormalizedReport:
    errors = report_errors(report)
    if errors:
        raise DataValidationError(errors)
    return report
