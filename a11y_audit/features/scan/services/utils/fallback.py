import logging
from typing import Any, Awaitable, Callable, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

Strategy = Tuple[str, Callable[[], Awaitable[Any]]]


class AllStrategiesFailed(Exception):
    """Every strategy in a fallback chain failed; `failures` keeps (name, error) pairs."""

    def __init__(self, failures: List[Tuple[str, BaseException]]):
        self.failures = failures
        detail = "; ".join(f"{name}: {error}" for name, error in failures) or "no strategies"
        super().__init__(f"All strategies failed ({detail})")

    @property
    def last_error(self) -> Optional[BaseException]:
        return self.failures[-1][1] if self.failures else None


async def first_success(
    strategies: Sequence[Strategy],
    accept: Optional[Callable[[Any], bool]] = None,
    label: str = "fallback",
) -> Tuple[str, Any]:
    """
    Run strategies in order and return (name, result) of the first one that
    completes without raising and whose result passes `accept`.

    Later strategies never run once one succeeds.
    """
    failures: List[Tuple[str, BaseException]] = []
    for name, attempt in strategies:
        try:
            result = await attempt()
        except Exception as e:
            logger.debug(f"{label}: strategy '{name}' failed: {e}")
            failures.append((name, e))
            continue

        if accept is not None and not accept(result):
            logger.debug(f"{label}: strategy '{name}' result rejected")
            failures.append((name, ValueError(f"result rejected by {label}")))
            continue

        return name, result

    raise AllStrategiesFailed(failures)
