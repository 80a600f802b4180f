import pytest

from a11y_audit.platform.exceptions import (
    AutomationEnvironmentError,
    DataValidationError,
    InvalidTargetError,
    NavigationError,
    ScanInterruptedError,
    classify_failure,
)
from a11y_audit.platform.utils.url_validator import ensure_scan_target, validate_scan_target


@pytest.mark.parametrize(
    "error, expected",
    [
        (NavigationError("HTTP 403 received", status_code=403), "blocked"),
        (NavigationError("HTTP 429 received", status_code=429), "blocked"),
        (NavigationError("HTTP 404 received", status_code=404), "not_found"),
        (NavigationError("HTTP 503 received", status_code=503), "server_error"),
        (NavigationError("net::ERR_NAME_NOT_RESOLVED at https://nope.invalid"), "network"),
        (RuntimeError("Navigation timed out after 45000ms"), "timeout"),
        (RuntimeError("Request blocked by client"), "blocked"),
        (RuntimeError("Refused to evaluate: Content Security Policy"), "csp"),
        (InvalidTargetError("Invalid URL scheme: ftp"), "invalid_target"),
        (AutomationEnvironmentError("Failed to launch browser"), "environment"),
        (DataValidationError(["violations missing"]), "validation"),
        (ScanInterruptedError("Scan interrupted by service shutdown"), "interrupted"),
        (RuntimeError("something odd"), "unknown"),
    ],
)
def test_classify_failure(error, expected):
    category, reason = classify_failure(error)

    assert category == expected
    assert str(error) in reason


def test_unknown_failure_keeps_raw_message():
    assert classify_failure(KeyError()) == ("unknown", "KeyError")


def test_data_validation_error_lists_problems():
    error = DataValidationError(["a", "b"])

    assert error.errors == ["a", "b"]
    assert str(error) == "Data validation failed: a, b"


@pytest.mark.parametrize(
    "url, valid",
    [
        ("https://example.com", True),
        ("http://example.com/path?q=1", True),
        ("  https://example.com  ", True),
        ("ftp://example.com", False),
        ("file:///etc/passwd", False),
        ("javascript:alert(1)", False),
        ("https://", False),
        ("", False),
    ],
)
def test_validate_scan_target(url, valid):
    assert validate_scan_target(url)[0] is valid


def test_ensure_scan_target():
    assert ensure_scan_target(" https://example.com ") == "https://example.com"
    with pytest.raises(InvalidTargetError, match="ftp"):
        ensure_scan_target("ftp://example.com")
