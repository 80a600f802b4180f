"""
Built-in accessibility checks used when axe-core cannot run in the page.

Each check is one row in HEURISTIC_CHECKS: a DOM probe plus the rule texts.
The probe returns one value (a count, a string or a list of counts); `outcome`
turns it into "violation", "pass" or None (not reported).
"""
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from a11y_audit.features.scan.schemas.audit import RawAuditResult
from a11y_audit.features.scan.services.browser.page import BrowserPage

logger = logging.getLogger(__name__)

HEURISTIC_ENGINE_NAME = "basic-accessibility-analyzer"
HEURISTIC_ENGINE_VERSION = "1.0.0"

_HELP_BASE = "https://dequeuniversity.com/rules/axe/4.10/"

_TEXT_INPUTS = (
    'input:not([type]), input[type="text"], input[type="email"], input[type="password"], '
    'input[type="search"], input[type="tel"], input[type="url"], input[type="number"], '
    "textarea, select"
)


@dataclass(frozen=True)
class HeuristicCheck:
    rule_id: str
    impact: str
    tags: Tuple[str, ...]
    probe: str
    outcome: Callable[[Any], Optional[str]]
    violation_text: Tuple[str, str]
    pass_text: Tuple[str, str]
    node: Callable[[Any], Dict[str, Any]]

    @property
    def help_url(self) -> str:
        return _HELP_BASE + self.rule_id


def _count_outcome(count) -> str:
    return "violation" if int(count or 0) > 0 else "pass"


def _title_outcome(title) -> str:
    return "violation" if not (title or "").strip() else "pass"


def _label_outcome(counts) -> Optional[str]:
    # counts = [text-entry controls, unlabeled ones]; pages without forms report nothing
    total, unlabeled = counts or (0, 0)
    if not total:
        return None
    return "violation" if unlabeled > 0 else "pass"


def _heading_outcome(count) -> Optional[str]:
    count = int(count or 0)
    if count == 0:
        return "violation"
    if count == 1:
        return "pass"
    return None


HEURISTIC_CHECKS: Tuple[HeuristicCheck, ...] = (
    HeuristicCheck(
        rule_id="image-alt",
        impact="serious",
        tags=("wcag2a", "wcag111"),
        probe="""
            return Array.prototype.filter.call(document.querySelectorAll('img'), function (img) {
                return !img.getAttribute('alt') && !img.getAttribute('aria-label')
                    && !img.getAttribute('aria-labelledby');
            }).length;
        """,
        outcome=_count_outcome,
        violation_text=(
            "Images must have alternate text",
            "All images must have alternative text to be accessible to screen readers",
        ),
        pass_text=("Images have alternate text", "All images have appropriate alternative text"),
        node=lambda count: {
            "html": f"Found {count} images without alt text",
            "target": ["img"],
            "failureSummary": f"{count} images are missing alternative text",
        },
    ),
    HeuristicCheck(
        rule_id="document-title",
        impact="serious",
        tags=("wcag2a", "wcag242"),
        probe="return document.title || '';",
        outcome=_title_outcome,
        violation_text=(
            "Documents must have a title",
            "Page must have a title to help users understand the content",
        ),
        pass_text=("Document has a title", "Page has an appropriate title"),
        node=lambda _title: {
            "html": "<title></title>",
            "target": ["title"],
            "failureSummary": "Document does not have a title",
        },
    ),
    HeuristicCheck(
        rule_id="page-has-heading-one",
        impact="moderate",
        tags=("wcag2a", "best-practice"),
        probe="return document.querySelectorAll('h1').length;",
        outcome=_heading_outcome,
        violation_text=(
            "Page should contain a level-one heading",
            "Pages should have a main heading (h1) for proper document structure",
        ),
        pass_text=("Page contains a level-one heading", "Page has appropriate heading structure"),
        node=lambda _count: {
            "html": "No h1 heading found",
            "target": ["html"],
            "failureSummary": "Page does not contain a level-one heading",
        },
    ),
    HeuristicCheck(
        rule_id="label",
        impact="critical",
        tags=("wcag2a", "wcag412"),
        probe="""
            var controls = document.querySelectorAll(arguments[0]);
            var unlabeled = Array.prototype.filter.call(controls, function (el) {
                var labelled = el.labels && el.labels.length > 0;
                return !labelled && !el.getAttribute('aria-label') && !el.getAttribute('aria-labelledby');
            }).length;
            return [controls.length, unlabeled];
        """,
        outcome=_label_outcome,
        violation_text=(
            "Form elements must have labels",
            "All form elements must have labels for accessibility",
        ),
        pass_text=("Form elements have labels", "All form elements have appropriate labels"),
        node=lambda counts: {
            "html": f"Found {counts[1]} unlabeled form elements",
            "target": ["input", "textarea", "select"],
            "failureSummary": f"{counts[1]} form elements are missing labels",
        },
    ),
)

_PROBE_ARGS = {"label": (_TEXT_INPUTS,)}


async def run_heuristic_audit(page: BrowserPage) -> RawAuditResult:
    """Run every heuristic check against the live DOM. Probe failures propagate."""
    violations, passes = [], []

    for check in HEURISTIC_CHECKS:
        value = await page.evaluate(check.probe, *_PROBE_ARGS.get(check.rule_id, ()))
        outcome = check.outcome(value)
        if outcome is None:
            continue

        description, help_text = check.violation_text if outcome == "violation" else check.pass_text
        entry = {
            "id": check.rule_id,
            "impact": check.impact if outcome == "violation" else None,
            "tags": list(check.tags),
            "description": description,
            "help": help_text,
            "helpUrl": check.help_url,
            "nodes": [check.node(value)] if outcome == "violation" else [],
        }
        (violations if outcome == "violation" else passes).append(entry)

    logger.info(f"Heuristic audit finished: {len(violations)} violations, {len(passes)} passes")
    return RawAuditResult.model_validate(
        {
            "violations": violations,
            "passes": passes,
            "incomplete": [],
            "inapplicable": [],
            "testEngine": {"name": HEURISTIC_ENGINE_NAME, "version": HEURISTIC_ENGINE_VERSION},
        }
    )
