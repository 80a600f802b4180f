from typing import Dict, Optional

# Guidance for the rules that show up most often; anything else falls back to axe's `help` text.
REMEDIATION_GUIDANCE: Dict[str, str] = {
    "color-contrast": (
        "Ensure text has sufficient color contrast against its background. Use a contrast "
        "ratio of at least 4.5:1 for normal text and 3:1 for large text."
    ),
    "image-alt": 'Add descriptive alt text to images. Use alt="" for decorative images.',
    "heading-order": "Use heading tags (h1-h6) in logical order without skipping levels.",
    "link-name": "Ensure all links have descriptive text or accessible names.",
    "button-name": "Provide accessible names for all buttons using text content or aria-label.",
    "form-field-multiple-labels": "Ensure form fields have unique, descriptive labels.",
    "landmark-one-main": "Include exactly one main landmark per page.",
    "page-has-heading-one": "Include exactly one h1 heading per page.",
    "region": "Ensure all content is contained within landmark regions.",
}

PRIORITY_BY_IMPACT = {"critical": 1, "serious": 2, "moderate": 3, "minor": 4}
DEFAULT_PRIORITY = 4

EFFORT_BASE_BY_IMPACT = {"critical": 4, "serious": 3, "moderate": 2, "minor": 1}
EFFORT_ELEMENT_CAP = 10


def remediation_for(rule_id: str, fallback: str) -> str:
    return REMEDIATION_GUIDANCE.get(rule_id) or fallback


def priority_for(impact: Optional[str]) -> int:
    return PRIORITY_BY_IMPACT.get(impact or "", DEFAULT_PRIORITY)


def estimate_effort(impact: Optional[str], affected_elements: int) -> str:
    effort = EFFORT_BASE_BY_IMPACT.get(impact or "", 1) * min(affected_elements, EFFORT_ELEMENT_CAP)
    if effort <= 2:
        return "Low"
    if effort <= 6:
        return "Medium"
    if effort <= 12:
        return "High"
    return "Very High"
