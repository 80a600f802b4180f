import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

from a11y_audit.features.scan.schemas.audit import RawAuditResult
from a11y_audit.features.scan.schemas.scan import ScanSettings, WcagLevel
from a11y_audit.features.scan.services.audit.engine_source import axe_source
from a11y_audit.features.scan.services.audit.heuristics import run_heuristic_audit
from a11y_audit.features.scan.services.browser.page_session import PageSession
from a11y_audit.features.scan.services.utils.fallback import AllStrategiesFailed, first_success
from a11y_audit.platform.config import settings
from a11y_audit.platform.exceptions import AuditTimeoutError, EngineInjectionError

logger = logging.getLogger(__name__)

WCAG_LEVEL_TAGS: Dict[WcagLevel, List[str]] = {
    WcagLevel.A: ["wcag2a", "wcag21a", "wcag22a"],
    WcagLevel.AA: ["wcag2a", "wcag21a", "wcag22a", "wcag2aa", "wcag21aa", "wcag22aa"],
    WcagLevel.AAA: [
        "wcag2a", "wcag21a", "wcag22a",
        "wcag2aa", "wcag21aa", "wcag22aa",
        "wcag2aaa", "wcag21aaa",
    ],
}

RESULT_TYPES = ["violations", "passes", "incomplete", "inapplicable"]

_AXE_PRESENT = "return typeof window.axe !== 'undefined' && typeof window.axe.run === 'function';"

_SCRIPT_ELEMENT_INJECT = """
var script = document.createElement('script');
script.textContent = arguments[0];
(document.head || document.documentElement).appendChild(script);
"""

_IFRAME_INJECT = """
var iframe = document.createElement('iframe');
iframe.style.display = 'none';
document.body.appendChild(iframe);
var doc = iframe.contentDocument || iframe.contentWindow.document;
var script = doc.createElement('script');
script.textContent = arguments[0];
(doc.head || doc.documentElement).appendChild(script);
if (iframe.contentWindow.axe) {
    window.axe = iframe.contentWindow.axe;
}
"""

_RUN_AXE = """
var options = arguments[0];
var done = arguments[arguments.length - 1];
if (typeof window.axe === 'undefined') {
    done({error: 'axe-core not loaded'});
    return;
}
window.axe.run(document, options).then(function (results) {
    done({result: JSON.parse(JSON.stringify({
        violations: results.violations,
        passes: results.passes,
        incomplete: results.incomplete,
        inapplicable: results.inapplicable,
        testEngine: results.testEngine
    }))});
}, function (err) {
    done({error: String((err && err.message) || err)});
});
"""


def build_axe_options(scan_settings: ScanSettings) -> Dict[str, Any]:
    options: Dict[str, Any] = {
        "runOnly": {
            "type": "tag",
            "values": WCAG_LEVEL_TAGS[scan_settings.wcag_level] + ["best-practice"],
        },
        "resultTypes": list(RESULT_TYPES),
    }
    options.update(scan_settings.rule_options or {})
    return options


class AuditEngine:
    """
    Runs axe-core against an open PageSession.

    Injection tries direct evaluation, a <script> element, a hidden iframe
    and finally an init script plus reload. When none of them leaves
    `window.axe` behind, or the engine fails or times out, the heuristic
    checks run instead. Only a heuristic failure escapes.
    """

    def __init__(
        self,
        source_provider: Optional[Callable[[], Awaitable[str]]] = None,
        execution_timeout_seconds: Optional[float] = None,
    ):
        self._source_provider = source_provider or axe_source.load
        self.execution_timeout_seconds = (
            execution_timeout_seconds
            if execution_timeout_seconds is not None
            else settings.AUDIT_EXECUTION_TIMEOUT_SECONDS
        )

    async def run(self, session: PageSession, scan_settings: ScanSettings) -> RawAuditResult:
        page = session.page
        prefix = session.log_prefix

        try:
            source = await self._source_provider()
        except Exception as e:
            logger.warning(f"{prefix}axe-core source unavailable ({e}), using heuristic audit")
            return await run_heuristic_audit(page)

        try:
            strategy = await self.inject(session, source, scan_settings)
            logger.info(f"{prefix}axe-core injected via '{strategy}'")
        except EngineInjectionError as e:
            logger.warning(f"{prefix}{e}, using heuristic audit")
            return await run_heuristic_audit(page)

        try:
            return await self.execute(session, build_axe_options(scan_settings))
        except AuditTimeoutError as e:
            logger.warning(f"{prefix}{e}, using heuristic audit")
        except Exception as e:
            logger.warning(f"{prefix}axe-core execution failed ({e}), using heuristic audit")
        return await run_heuristic_audit(page)

    async def inject(self, session: PageSession, source: str, scan_settings: ScanSettings) -> str:
        page = session.page

        async def direct():
            await page.evaluate(source)
            return await page.evaluate(_AXE_PRESENT)

        async def script_element():
            await page.evaluate(_SCRIPT_ELEMENT_INJECT, source)
            return await page.evaluate(_AXE_PRESENT)

        async def iframe():
            await page.evaluate(_IFRAME_INJECT, source)
            return await page.evaluate(_AXE_PRESENT)

        async def init_script():
            await page.add_init_script(source)
            await page.reload(wait_until="load", timeout_ms=scan_settings.timeout_ms)
            await session.await_ready(await page.current_url())
            return await page.evaluate(_AXE_PRESENT)

        try:
            strategy, _ = await first_success(
                [
                    ("direct", direct),
                    ("script_element", script_element),
                    ("iframe", iframe),
                    ("init_script", init_script),
                ],
                accept=lambda present: present is True,
                label="axe injection",
            )
        except AllStrategiesFailed as e:
            raise EngineInjectionError(
                f"Failed to inject axe-core due to Content Security Policy restrictions ({e})"
            ) from e
        return strategy

    async def execute(self, session: PageSession, options: Dict[str, Any]) -> RawAuditResult:
        ceiling = self.execution_timeout_seconds
        try:
            payload = await asyncio.wait_for(
                session.page.evaluate_async(_RUN_AXE, options, timeout_ms=int(ceiling * 1000)),
                timeout=ceiling + 5,
            )
        except (asyncio.TimeoutError, TimeoutError) as e:
            raise AuditTimeoutError(f"Accessibility scan timeout after {ceiling:g}s") from e

        if not isinstance(payload, dict) or "result" not in payload:
            error = payload.get("error") if isinstance(payload, dict) else payload
            raise RuntimeError(f"axe.run failed: {error}")

        return RawAuditResult.model_validate(payload["result"])
