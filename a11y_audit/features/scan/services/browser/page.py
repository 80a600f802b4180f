"""
Browser page abstraction.

PageSession, AuditEngine and the heuristic checks only talk to this protocol,
so tests drive them with an AsyncMock and the Selenium implementation stays
swappable.
"""
from typing import Any, Dict, Optional, Protocol, runtime_checkable


@runtime_checkable
class BrowserPage(Protocol):
    async def goto(self, url: str, wait_until: str, timeout_ms: int) -> Optional[int]:
        """Navigate and wait for `wait_until`; return the main document HTTP status."""
        ...

    async def wait_for_selector(self, selector: str, timeout_ms: int) -> None: ...

    async def wait_for_function(self, expression: str, timeout_ms: int) -> None: ...

    async def evaluate(self, script: str, *args: Any) -> Any: ...

    async def evaluate_async(self, script: str, *args: Any, timeout_ms: int) -> Any: ...

    async def add_init_script(self, source: str) -> None: ...

    async def set_extra_headers(self, headers: Dict[str, str]) -> None: ...

    async def reload(self, wait_until: str, timeout_ms: int) -> None: ...

    async def screenshot(self, full_page: bool = False) -> bytes: ...

    async def title(self) -> str: ...

    async def current_url(self) -> str: ...

    async def close(self) -> None: ...
