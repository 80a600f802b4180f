import asyncio
import logging
from typing import Awaitable, Callable, Optional

from a11y_audit.features.scan.schemas.audit import NavigationResult, PageMetadata
from a11y_audit.features.scan.schemas.scan import ScanSettings
from a11y_audit.features.scan.services.browser.page import BrowserPage
from a11y_audit.features.scan.services.browser.readiness import (
    DEFAULT_READY_EXPRESSION,
    ReadinessProfile,
    match_profile,
)
from a11y_audit.features.scan.services.browser.selenium_page import launch_page
from a11y_audit.features.scan.services.utils.fallback import AllStrategiesFailed, first_success
from a11y_audit.platform.config import settings
from a11y_audit.platform.exceptions import AutomationEnvironmentError, NavigationError
from a11y_audit.platform.utils.url_validator import ensure_scan_target

logger = logging.getLogger(__name__)

PageFactory = Callable[[ScanSettings], Awaitable[BrowserPage]]

NAVIGATION_STRATEGIES = ("networkidle", "domcontentloaded", "load")

# Sent on the single retry after a 403
BROWSER_LIKE_HEADERS = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,image/avif,image/webp,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
    "Pragma": "no-cache",
    "Upgrade-Insecure-Requests": "1",
}

_PAGE_METADATA_SCRIPT = """
function meta(name) {
    var el = document.querySelector('meta[name="' + name + '"]');
    return el ? (el.getAttribute('content') || '') : '';
}
var charset = document.querySelector('meta[charset]');
var canonical = document.querySelector('link[rel="canonical"]');
return {
    title: document.title || '',
    description: meta('description'),
    keywords: meta('keywords'),
    lang: document.documentElement.getAttribute('lang') || '',
    charset: charset ? (charset.getAttribute('charset') || '') : (document.characterSet || ''),
    viewport: meta('viewport'),
    canonical: canonical ? (canonical.getAttribute('href') || '') : '',
    robots: meta('robots')
};
"""


class PageSession:
    """
    One browser page for one scan: launch, navigate, wait for readiness,
    capture, tear down.

    Use as an async context manager so the browser is released on every
    exit path:

        async with PageSession(scan_settings) as session:
            nav = await session.navigate(url)
            await session.await_ready(nav.final_url)
    """

    def __init__(
        self,
        scan_settings: ScanSettings,
        page_factory: PageFactory = launch_page,
        log_prefix: str = "",
    ):
        self.settings = scan_settings
        self.page: Optional[BrowserPage] = None
        self._page_factory = page_factory
        self._opened = False
        self._closed = False
        self.log_prefix = log_prefix

    async def __aenter__(self) -> "PageSession":
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.close()

    async def open(self) -> "PageSession":
        if self._opened:
            raise RuntimeError("PageSession can only be opened once")
        self._opened = True
        try:
            self.page = await self._page_factory(self.settings)
        except Exception as e:
            logger.error(f"{self.log_prefix}Browser launch failed: {e}")
            raise AutomationEnvironmentError(f"Failed to launch browser: {e}") from e
        return self

    def _require_page(self) -> BrowserPage:
        if self.page is None or self._closed:
            raise RuntimeError("PageSession is not open")
        return self.page

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def navigate(self, url: str) -> NavigationResult:
        """
        Load `url`, trying networkidle, domcontentloaded then load.

        Raises:
            InvalidTargetError: non-http(s) URL (the page is never touched)
            NavigationError: every strategy failed, no response, or non-2xx
        """
        url = ensure_scan_target(url)
        page = self._require_page()

        result = await self._navigate_once(page, url)

        if result.http_status == 403:
            logger.warning(f"{self.log_prefix}403 from {url}, retrying with browser headers")
            try:
                await page.set_extra_headers(BROWSER_LIKE_HEADERS)
                result = await self._navigate_once(page, url)
            except Exception as e:
                raise NavigationError(
                    f"HTTP 403 received from {url} (retry with browser headers failed: {e})",
                    status_code=403,
                ) from e

        if not 200 <= result.http_status < 300:
            raise NavigationError(
                f"HTTP {result.http_status} received from {url}", status_code=result.http_status
            )

        logger.info(
            f"{self.log_prefix}Navigated to {result.final_url} "
            f"(status={result.http_status}, strategy={result.strategy})"
        )
        return result

    async def _navigate_once(self, page: BrowserPage, url: str) -> NavigationResult:
        timeout_ms = self.settings.timeout_ms

        def attempt(wait_until: str):
            async def _go():
                return await page.goto(url, wait_until=wait_until, timeout_ms=timeout_ms)
            return _go

        try:
            strategy, status = await first_success(
                [(name, attempt(name)) for name in NAVIGATION_STRATEGIES],
                label="navigation",
            )
        except AllStrategiesFailed as e:
            raise NavigationError(f"Failed to navigate to {url}: {e.last_error}") from e

        if status is None:
            raise NavigationError(f"No response received from {url}")

        return NavigationResult(
            final_url=await page.current_url(),
            http_status=status,
            page_title=await page.title(),
            strategy=strategy,
        )

    # ------------------------------------------------------------------
    # Readiness
    # ------------------------------------------------------------------

    async def await_ready(self, url: str) -> str:
        """
        Best-effort wait until the page has rendered enough to audit.

        Returns the name of the strategy that succeeded, or "none" when every
        strategy failed. Never raises.
        """
        page = self._require_page()

        profile = match_profile(url)
        if profile is not None:
            try:
                await self._apply_profile(page, profile)
                return profile.name
            except Exception as e:
                logger.info(f"{self.log_prefix}Readiness profile '{profile.name}' failed ({e}), using default")

        try:
            return await self._default_ready(page)
        except Exception as e:
            logger.warning(f"{self.log_prefix}Readiness detection failed for {url}, proceeding anyway: {e}")
            return "none"

    async def _apply_profile(self, page: BrowserPage, profile: ReadinessProfile) -> None:
        selector_timeout = int(settings.READINESS_SELECTOR_TIMEOUT_SECONDS * 1000)

        found = 0
        for selector in profile.selectors:
            try:
                await page.wait_for_selector(selector, timeout_ms=selector_timeout)
            except Exception:
                logger.debug(f"{self.log_prefix}{profile.name}: selector {selector} not found")
                continue
            found += 1
            if found >= profile.required_matches:
                break

        if found < profile.required_matches:
            if profile.fallback_condition is None:
                raise TimeoutError(f"{found}/{profile.required_matches} readiness selectors attached")
            await page.wait_for_function(
                profile.fallback_condition,
                timeout_ms=int(settings.READINESS_FALLBACK_TIMEOUT_SECONDS * 1000),
            )
            return

        if profile.settle_ms:
            await asyncio.sleep(profile.settle_ms / 1000)

        if profile.extra_condition:
            try:
                await page.wait_for_function(profile.extra_condition, timeout_ms=profile.extra_timeout_ms)
            except Exception:
                logger.debug(f"{self.log_prefix}{profile.name}: extra readiness check timed out, continuing")

    async def _default_ready(self, page: BrowserPage) -> str:
        try:
            await page.wait_for_selector(
                self.settings.wait_for_selector,
                timeout_ms=int(settings.READINESS_SELECTOR_TIMEOUT_SECONDS * 1000),
            )
            return "selector"
        except Exception:
            await page.wait_for_function(
                DEFAULT_READY_EXPRESSION,
                timeout_ms=int(settings.READINESS_FALLBACK_TIMEOUT_SECONDS * 1000),
            )
            return "ready_state"

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def capture_page(self) -> PageMetadata:
        try:
            data = await self._require_page().evaluate(_PAGE_METADATA_SCRIPT) or {}
            return PageMetadata(**{key: str(data.get(key) or "") for key in PageMetadata.model_fields})
        except Exception as e:
            logger.warning(f"{self.log_prefix}Could not capture page metadata: {e}")
            return PageMetadata()

    async def screenshot(self, full_page: bool = False) -> Optional[bytes]:
        try:
            return await self._require_page().screenshot(full_page=full_page)
        except Exception as e:
            logger.warning(f"{self.log_prefix}Screenshot failed: {e}")
            return None

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        if self.page is None:
            return
        try:
            await self.page.close()
        except Exception as e:
            logger.warning(f"{self.log_prefix}Error closing browser: {e}")
