from typing import Tuple
from urllib.parse import urlparse

from a11y_audit.platform.exceptions import InvalidTargetError

SCANNABLE_SCHEMES = ("http", "https")


def validate_scan_target(url: str) -> Tuple[bool, str]:
    """Return (is_valid, reason). Only absolute http(s) URLs can be scanned."""
    if not url or not url.strip():
        return False, "URL cannot be empty"

    try:
        parsed = urlparse(url.strip())
    except ValueError as e:
        return False, f"URL parsing error: {str(e)}"

    if parsed.scheme.lower() not in SCANNABLE_SCHEMES:
        return False, f"Invalid URL scheme: {parsed.scheme or 'none'} (must be http or https)"
    if not parsed.netloc:
        return False, "Invalid URL format: missing domain"

    return True, ""


def ensure_scan_target(url: str) -> str:
    is_valid, reason = validate_scan_target(url)
    if not is_valid:
        raise InvalidTargetError(f"{reason}: {url}")
    return url.strip()
