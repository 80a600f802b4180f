import asyncio
import base64
import json
import logging
from typing import Any, Dict, Optional

from selenium import webdriver
from selenium.common.exceptions import TimeoutException, WebDriverException
from selenium.webdriver.chrome.options import Options
from selenium.webdriver.chrome.service import Service
from selenium.webdriver.chrome.webdriver import WebDriver
from selenium.webdriver.common.by import By
from selenium.webdriver.support import expected_conditions as EC
from selenium.webdriver.support.ui import WebDriverWait
from webdriver_manager.chrome import ChromeDriverManager

from a11y_audit.features.scan.schemas.scan import ScanSettings
from a11y_audit.platform.config import settings

logger = logging.getLogger(__name__)

_STEALTH_SCRIPT = """
Object.defineProperty(navigator, 'webdriver', {get: () => undefined});
Object.defineProperty(navigator, 'languages', {get: () => ['en-US', 'en']});
window.chrome = window.chrome || {runtime: {}};
"""

# arguments[0]: timeOrigin of the document we navigated away from (or null)
# arguments[1]: network quiet window in ms
_READY_SCRIPTS = {
    "networkidle": """
        if (arguments[0] !== null && performance.timeOrigin === arguments[0]) return false;
        if (document.readyState !== 'complete') return false;
        var lastEnd = 0;
        performance.getEntriesByType('resource').forEach(function (e) {
            if (e.responseEnd > lastEnd) lastEnd = e.responseEnd;
        });
        return performance.now() - lastEnd >= arguments[1];
    """,
    "domcontentloaded": """
        if (arguments[0] !== null && performance.timeOrigin === arguments[0]) return false;
        return document.readyState === 'interactive' || document.readyState === 'complete';
    """,
    "load": """
        if (arguments[0] !== null && performance.timeOrigin === arguments[0]) return false;
        return document.readyState === 'complete';
    """,
}

_NAVIGATION_STATUS_SCRIPT = """
var entries = performance.getEntriesByType('navigation');
if (!entries.length || !entries[0].responseStatus) return null;
return entries[0].responseStatus;
"""


def build_driver(scan_settings: ScanSettings) -> WebDriver:
    """
    Build a headless Chrome driver for one scan.

    Page loads use the "none" strategy: `goto` decides when the document is
    ready itself, so one driver can honour networkidle / domcontentloaded / load.
    """
    chrome_options = Options()
    if settings.BROWSER_HEADLESS:
        chrome_options.add_argument("--headless=new")
    chrome_options.add_argument("--no-sandbox")
    chrome_options.add_argument("--disable-dev-shm-usage")
    chrome_options.add_argument("--disable-gpu")
    chrome_options.add_argument(
        f"--window-size={scan_settings.viewport.width},{scan_settings.viewport.height}"
    )
    chrome_options.add_argument(f"--user-agent={scan_settings.user_agent or settings.DEFAULT_USER_AGENT}")
    if settings.STEALTH_MODE:
        chrome_options.add_argument("--disable-blink-features=AutomationControlled")
        chrome_options.add_experimental_option("excludeSwitches", ["enable-automation"])
    if settings.CHROME_BINARY_PATH:
        chrome_options.binary_location = settings.CHROME_BINARY_PATH
    chrome_options.page_load_strategy = "none"
    chrome_options.set_capability("goog:loggingPrefs", {"performance": "ALL"})

    if settings.CHROMEDRIVER_PATH:
        driver_service = Service(executable_path=settings.CHROMEDRIVER_PATH)
        driver = webdriver.Chrome(service=driver_service, options=chrome_options)
    elif settings.USE_WEBDRIVER_MANAGER:
        driver_service = Service(ChromeDriverManager().install())
        driver = webdriver.Chrome(service=driver_service, options=chrome_options)
    else:
        driver = webdriver.Chrome(options=chrome_options)

    timeout_seconds = scan_settings.timeout_seconds
    driver.set_page_load_timeout(timeout_seconds)
    driver.set_script_timeout(timeout_seconds)

    if settings.STEALTH_MODE:
        driver.execute_cdp_cmd("Page.addScriptToEvaluateOnNewDocument", {"source": _STEALTH_SCRIPT})

    return driver


async def launch_page(scan_settings: ScanSettings) -> "SeleniumPage":
    driver = await asyncio.to_thread(build_driver, scan_settings)
    return SeleniumPage(driver)


class SeleniumPage:
    """
    BrowserPage backed by a Selenium Chrome driver.

    Selenium calls block, so each one runs in a worker thread. Timeouts are
    re-raised as the builtin TimeoutError.
    """

    def __init__(self, driver: WebDriver):
        self.driver = driver
        self._closed = False

    # ------------------------------------------------------------------
    # Navigation
    # ------------------------------------------------------------------

    async def goto(self, url: str, wait_until: str, timeout_ms: int) -> Optional[int]:
        return await asyncio.to_thread(self._navigate, url, wait_until, timeout_ms, False)

    async def reload(self, wait_until: str, timeout_ms: int) -> None:
        await asyncio.to_thread(self._navigate, None, wait_until, timeout_ms, True)

    def _navigate(self, url: Optional[str], wait_until: str, timeout_ms: int, reload: bool) -> Optional[int]:
        script = _READY_SCRIPTS.get(wait_until)
        if script is None:
            raise ValueError(f"Unknown wait condition: {wait_until}")

        previous_origin = self._time_origin()
        if reload:
            self.driver.refresh()
        else:
            self.driver.get(url)

        quiet_ms = settings.NETWORK_IDLE_QUIET_MS
        try:
            WebDriverWait(self.driver, timeout_ms / 1000, poll_frequency=0.1).until(
                lambda d: d.execute_script(script, previous_origin, quiet_ms)
            )
        except TimeoutException as e:
            raise TimeoutError(f"Timeout {timeout_ms}ms exceeded waiting for '{wait_until}'") from e

        return self._response_status()

    def _time_origin(self) -> Optional[float]:
        try:
            return self.driver.execute_script("return performance.timeOrigin;")
        except WebDriverException:
            return None

    def _response_status(self) -> Optional[int]:
        status = self.driver.execute_script(_NAVIGATION_STATUS_SCRIPT)
        if status:
            return int(status)

        # Older Chrome builds do not expose responseStatus; read the devtools log
        try:
            entries = self.driver.get_log("performance")
        except WebDriverException:
            return None
        status = None
        for entry in entries:
            try:
                message = json.loads(entry["message"])["message"]
            except (KeyError, ValueError):
                continue
            if message.get("method") != "Network.responseReceived":
                continue
            params = message.get("params", {})
            if params.get("type") == "Document":
                status = params.get("response", {}).get("status")
        return int(status) if status else None

    # ------------------------------------------------------------------
    # Waiting and scripting
    # ------------------------------------------------------------------

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None:
        def _wait():
            try:
                WebDriverWait(self.driver, timeout_ms / 1000).until(
                    EC.presence_of_element_located((By.CSS_SELECTOR, selector))
                )
            except TimeoutException as e:
                raise TimeoutError(f"Selector '{selector}' not attached after {timeout_ms}ms") from e

        await asyncio.to_thread(_wait)

    async def wait_for_function(self, expression: str, timeout_ms: int) -> None:
        def _wait():
            try:
                WebDriverWait(self.driver, timeout_ms / 1000, poll_frequency=0.2).until(
                    lambda d: d.execute_script(f"return !!({expression});")
                )
            except TimeoutException as e:
                raise TimeoutError(f"Condition not met after {timeout_ms}ms") from e

        await asyncio.to_thread(_wait)

    async def evaluate(self, script: str, *args: Any) -> Any:
        return await asyncio.to_thread(self.driver.execute_script, script, *args)

    async def evaluate_async(self, script: str, *args: Any, timeout_ms: int) -> Any:
        def _run():
            self.driver.set_script_timeout(timeout_ms / 1000)
            try:
                return self.driver.execute_async_script(script, *args)
            except TimeoutException as e:
                raise TimeoutError(f"Script did not finish within {timeout_ms}ms") from e

        return await asyncio.to_thread(_run)

    async def add_init_script(self, source: str) -> None:
        await asyncio.to_thread(
            self.driver.execute_cdp_cmd, "Page.addScriptToEvaluateOnNewDocument", {"source": source}
        )

    async def set_extra_headers(self, headers: Dict[str, str]) -> None:
        def _set():
            self.driver.execute_cdp_cmd("Network.enable", {})
            self.driver.execute_cdp_cmd("Network.setExtraHTTPHeaders", {"headers": headers})

        await asyncio.to_thread(_set)

    # ------------------------------------------------------------------
    # Capture
    # ------------------------------------------------------------------

    async def screenshot(self, full_page: bool = False) -> bytes:
        if not full_page:
            return await asyncio.to_thread(self.driver.get_screenshot_as_png)

        def _full_page():
            metrics = self.driver.execute_cdp_cmd("Page.getLayoutMetrics", {})
            size = metrics.get("cssContentSize") or metrics.get("contentSize") or {}
            result = self.driver.execute_cdp_cmd(
                "Page.captureScreenshot",
                {
                    "format": "png",
                    "captureBeyondViewport": True,
                    "clip": {
                        "x": 0,
                        "y": 0,
                        "width": size.get("width", 0),
                        "height": size.get("height", 0),
                        "scale": 1,
                    },
                },
            )
            return base64.b64decode(result["data"])

        return await asyncio.to_thread(_full_page)

    async def title(self) -> str:
        return await asyncio.to_thread(lambda: self.driver.title)

    async def current_url(self) -> str:
        return await asyncio.to_thread(lambda: self.driver.current_url)

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        await asyncio.to_thread(self.driver.quit)
