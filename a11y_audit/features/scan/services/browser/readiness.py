"""
Readiness profiles for JavaScript-heavy sites.

Navigation finishing does not mean the app shell has rendered. Hosts listed
here get a selector-based wait tuned to their markup; everything else uses
the default profile built from the scan's `wait_for_selector`.
"""
from dataclasses import dataclass
from typing import Optional, Tuple
from urllib.parse import urlparse

DEFAULT_READY_EXPRESSION = "document.readyState === 'complete' && document.body"


@dataclass(frozen=True)
class ReadinessProfile:
    name: str
    hosts: Tuple[str, ...]
    selectors: Tuple[str, ...]
    required_matches: int = 1
    settle_ms: int = 0
    # Best-effort condition checked after the selectors; a timeout is ignored
    extra_condition: Optional[str] = None
    extra_timeout_ms: int = 10000
    # Waited on when no selector attached; failure makes the profile fail
    fallback_condition: Optional[str] = None

    def matches(self, hostname: str) -> bool:
        return any(host in hostname for host in self.hosts)


READINESS_PROFILES: Tuple[ReadinessProfile, ...] = (
    ReadinessProfile(
        name="youtube",
        hosts=("youtube.com",),
        selectors=("ytd-app", "#content", "ytd-masthead", '[role="main"]'),
        settle_ms=2000,
        fallback_condition=(
            "document.readyState === 'complete' && document.body && document.body.children.length > 0"
        ),
    ),
    ReadinessProfile(
        name="linkedin",
        hosts=("linkedin.com",),
        selectors=(".application-outlet", ".global-nav", '[data-test-id="nav-top"]', "body"),
    ),
    ReadinessProfile(
        name="keysight",
        hosts=("keysight.com",),
        selectors=("main", ".main-content", '[role="main"]', "header", "nav", "body"),
        settle_ms=3000,
        extra_condition=(
            "document.readyState === 'complete' && (!window.jQuery || window.jQuery.active === 0)"
        ),
    ),
)


def match_profile(url: str) -> Optional[ReadinessProfile]:
    hostname = (urlparse(url).hostname or "").lower()
    if not hostname:
        return None
    for profile in READINESS_PROFILES:
        if profile.matches(hostname):
            return profile
    return None
