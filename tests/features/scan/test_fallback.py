import pytest

from a11y_audit.features.scan.services.utils.fallback import AllStrategiesFailed, first_success


def strategy(name, result=None, error=None, calls=None):
    async def _run():
        if calls is not None:
            calls.append(name)
        if error is not None:
            raise error
        return result
    return name, _run


@pytest.mark.asyncio
async def test_first_success_stops_at_winner():
    calls = []

    name, result = await first_success(
        [
            strategy("a", error=TimeoutError("slow"), calls=calls),
            strategy("b", result=42, calls=calls),
            strategy("c", result=0, calls=calls),
        ]
    )

    assert (name, result) == ("b", 42)
    assert calls == ["a", "b"]


@pytest.mark.asyncio
async def test_rejected_results_count_as_failures():
    name, _ = await first_success(
        [strategy("a", result=False), strategy("b", result=True)],
        accept=lambda value: value is True,
    )

    assert name == "b"


@pytest.mark.asyncio
async def test_all_failed_keeps_every_error():
    with pytest.raises(AllStrategiesFailed) as exc_info:
        await first_success(
            [strategy("a", error=ValueError("one")), strategy("b", error=RuntimeError("two"))],
            label="navigation",
        )

    failures = exc_info.value.failures
    assert [name for name, _ in failures] == ["a", "b"]
    assert str(exc_info.value.last_error) == "two"
    assert "a: one" in str(exc_info.value)


@pytest.mark.asyncio
async def test_empty_chain():
    with pytest.raises(AllStrategiesFailed) as exc_info:
        await first_success([])

    assert exc_info.value.last_error is None
