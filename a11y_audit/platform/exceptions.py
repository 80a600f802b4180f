import logging
from typing import Optional, Tuple

from fastapi import Request, status
from fastapi.exceptions import RequestValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from a11y_audit.platform.response import api_response

logger = logging.getLogger(__name__)


class ScanError(Exception):
    """Base class for every failure the scan pipeline knows how to classify."""

    category = "unknown"
    http_status = status.HTTP_500_INTERNAL_SERVER_ERROR

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class InvalidTargetError(ScanError):
    """URL scheme is not http/https. The request never starts."""

    category = "invalid_target"
    http_status = status.HTTP_400_BAD_REQUEST


class AutomationEnvironmentError(ScanError):
    """The browser automation runtime could not be started."""

    category = "environment"


class NavigationError(ScanError):
    """Every navigation strategy failed, no response arrived, or the status was not 2xx."""

    category = "navigation"
    http_status = status.HTTP_502_BAD_GATEWAY

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class EngineInjectionError(ScanError):
    """The rule engine could not be made available in the page."""

    category = "csp"


class AuditTimeoutError(ScanError):
    """The rule engine exceeded its execution ceiling."""

    category = "timeout"


class AlreadyRunningError(ScanError):
    category = "conflict"
    http_status = status.HTTP_409_CONFLICT


class InvalidTransitionError(ScanError):
    """The persisted status does not allow the requested transition."""

    category = "conflict"
    http_status = status.HTTP_409_CONFLICT


class NotFoundError(ScanError):
    category = "not_found"
    http_status = status.HTTP_404_NOT_FOUND


class DataValidationError(ScanError):
    """A normalized report failed structural validation before persistence."""

    category = "validation"

    def __init__(self, errors):
        self.errors = list(errors)
        super().__init__(f"Data validation failed: {', '.join(self.errors)}")


class ScanCancelledError(ScanError):
    """Raised inside a pipeline whose active entry was removed by cancel()."""

    category = "cancelled"


class ScanInterruptedError(ScanError):
    """The scan task was cancelled from outside the pipeline before it finished."""

    category = "interrupted"


_FRIENDLY_MESSAGES = {
    "timeout": (
        "The website took too long to respond. This may be due to slow loading times, "
        "network issues, or the website blocking automated access."
    ),
    "network": "Unable to reach the website. Please check the URL and your internet connection.",
    "blocked": (
        "The website is blocking automated access. This is common with sites that have "
        "anti-bot protection."
    ),
    "not_found": "The webpage was not found (404 error). Please check the URL.",
    "server_error": "The website is experiencing server issues. Please try again later.",
    "csp": (
        "The website has strict security policies that prevent detailed analysis. "
        "A basic analysis was attempted."
    ),
    "environment": "The scanning browser could not be started. Please try again later.",
    "validation": "The scan produced an invalid report and was not saved.",
    "invalid_target": "Only HTTP and HTTPS URLs can be analyzed.",
    "interrupted": "The scan was interrupted because the service was shutting down. Please run it again.",
}

_NETWORK_MARKERS = (
    "ERR_NAME_NOT_RESOLVED",
    "ERR_INTERNET_DISCONNECTED",
    "ERR_CONNECTION_REFUSED",
    "ERR_CONNECTION_RESET",
    "ERR_ADDRESS_UNREACHABLE",
)


def classify_failure(exc: BaseException) -> Tuple[str, str]:
    """
    Map a pipeline failure to (category, user-facing reason).

    The reason always embeds the original message so a failed request's
    metadata stays diagnosable.
    """
    raw = str(exc) or exc.__class__.__name__
    category = "unknown"

    if isinstance(exc, NavigationError) and exc.status_code is not None:
        code = exc.status_code
        if code in (401, 403, 429):
            category = "blocked"
        elif code == 404:
            category = "not_found"
        elif code >= 500:
            category = "server_error"
    if category == "unknown" and isinstance(
        exc, (InvalidTargetError, AutomationEnvironmentError, DataValidationError, ScanInterruptedError)
    ):
        category = exc.category
    if category == "unknown":
        lowered = raw.lower()
        if any(marker in raw for marker in _NETWORK_MARKERS):
            category = "network"
        elif "timeout" in lowered or "timed out" in lowered:
            category = "timeout"
        elif "blocked" in lowered or "forbidden" in lowered:
            category = "blocked"
        elif "content security policy" in lowered or "csp" in lowered:
            category = "csp"

    friendly = _FRIENDLY_MESSAGES.get(category)
    if friendly is None:
        return category, raw
    return category, f"{friendly} ({raw})"


def add_exception_handlers(app):
    @app.exception_handler(ScanError)
    async def scan_error_handler(request: Request, exc: ScanError):
        return api_response(
            message=exc.message,
            status_code=exc.http_status,
            error_category=exc.category,
        )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return api_response(message=str(exc.detail) or "Error", status_code=exc.status_code)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        return api_response(
            message="Validation failed",
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            data={"errors": exc.errors()},
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.exception(f"Unhandled exception: {exc}")
        return api_response(
            message="Internal server error",
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        )
