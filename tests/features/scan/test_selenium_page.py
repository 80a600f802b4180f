import json
from unittest.mock import MagicMock, patch

import pytest

from a11y_audit.features.scan.schemas.scan import ScanSettings, Viewport
from a11y_audit.features.scan.services.browser.selenium_page import SeleniumPage, build_driver


def make_driver(ready=True, status=200, log_entries=None):
    driver = MagicMock()

    def execute_script(script, *args):
        if script == "return performance.timeOrigin;":
            return 1000.0
        if "getEntriesByType('navigation')" in script:
            return status
        return ready

    driver.execute_script.side_effect = execute_script
    driver.get_log.return_value = log_entries or []
    driver.title = "Example Domain"
    driver.current_url = "https://example.com/"
    return driver


def document_response(status):
    message = {
        "message": {
            "method": "Network.responseReceived",
            "params": {"type": "Document", "response": {"status": status}},
        }
    }
    return {"message": json.dumps(message)}


class TestSeleniumPage:

    @pytest.mark.asyncio
    async def test_goto_returns_navigation_status(self):
        driver = make_driver(status=200)
        page = SeleniumPage(driver)

        status = await page.goto("https://example.com", wait_until="load", timeout_ms=1000)

        assert status == 200
        driver.get.assert_called_once_with("https://example.com")

    @pytest.mark.asyncio
    async def test_status_from_performance_log(self):
        driver = make_driver(
            status=None,
            log_entries=[{"message": "not json"}, document_response(404)],
        )
        page = SeleniumPage(driver)

        assert await page.goto("https://example.com/x", wait_until="domcontentloaded", timeout_ms=1000) == 404

    @pytest.mark.asyncio
    async def test_no_status_available(self):
        page = SeleniumPage(make_driver(status=None))

        assert await page.goto("https://example.com", wait_until="networkidle", timeout_ms=1000) is None

    @pytest.mark.asyncio
    async def test_wait_timeout_becomes_builtin_timeout(self):
        page = SeleniumPage(make_driver(ready=False))

        with pytest.raises(TimeoutError, match="'load'"):
            await page.goto("https://example.com", wait_until="load", timeout_ms=200)

    @pytest.mark.asyncio
    async def test_unknown_wait_condition(self):
        page = SeleniumPage(make_driver())

        with pytest.raises(ValueError):
            await page.goto("https://example.com", wait_until="commit", timeout_ms=1000)

    @pytest.mark.asyncio
    async def test_reload_refreshes(self):
        driver = make_driver()

        await SeleniumPage(driver).reload(wait_until="load", timeout_ms=1000)

        driver.refresh.assert_called_once()
        driver.get.assert_not_called()

    @pytest.mark.asyncio
    async def test_extra_headers_use_cdp(self):
        driver = make_driver()

        await SeleniumPage(driver).set_extra_headers({"Accept-Language": "en-US"})

        driver.execute_cdp_cmd.assert_any_call(
            "Network.setExtraHTTPHeaders", {"headers": {"Accept-Language": "en-US"}}
        )

    @pytest.mark.asyncio
    async def test_full_page_screenshot(self):
        driver = make_driver()
        driver.execute_cdp_cmd.side_effect = [
            {"cssContentSize": {"width": 1280, "height": 4000}},
            {"data": "iVBORw0K"},
        ]

        png = await SeleniumPage(driver).screenshot(full_page=True)

        assert png == b"\x89PNG\r\n"
        clip = driver.execute_cdp_cmd.call_args_list[1].args[1]["clip"]
        assert (clip["width"], clip["height"]) == (1280, 4000)

    @pytest.mark.asyncio
    async def test_title_and_url(self):
        page = SeleniumPage(make_driver())

        assert await page.title() == "Example Domain"
        assert await page.current_url() == "https://example.com/"

    @pytest.mark.asyncio
    async def test_close_quits_once(self):
        driver = make_driver()
        page = SeleniumPage(driver)

        await page.close()
        await page.close()

        driver.quit.assert_called_once()


def test_build_driver_applies_scan_settings():
    scan_settings = ScanSettings(viewport=Viewport(width=1024, height=768), user_agent="A11yBot/1.0", timeout_ms=20000)

    with patch("a11y_audit.features.scan.services.browser.selenium_page.webdriver.Chrome") as chrome:
        driver = build_driver(scan_settings)

    options = chrome.call_args.kwargs["options"]
    assert "--window-size=1024,768" in options.arguments
    assert "--user-agent=A11yBot/1.0" in options.arguments
    assert options.page_load_strategy == "none"
    driver.set_page_load_timeout.assert_called_once_with(20.0)
    driver.set_script_timeout.assert_called_once_with(20.0)
