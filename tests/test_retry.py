"""Tests for retry with exponential backoff."""

import asyncio

import pytest

from guest_gallery.errors import NetworkError
from guest_gallery.services.retry import retry_operation


def test_retry_exhausts_attempts_with_doubling_delays() -> None:
    attempts: list[int] = []
    delays: list[float] = []

    async def operation() -> str:
        attempts.append(len(attempts) + 1)
        raise NetworkError(f"attempt {len(attempts)} failed")

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    with pytest.raises(NetworkError, match="attempt 3 failed"):
        asyncio.run(
            retry_operation(operation, max_retries=3, base_delay_ms=100, sleep=fake_sleep)
        )

    assert attempts == [1, 2, 3]
    assert delays == pytest.approx([0.1, 0.2])


def test_retry_returns_first_success() -> None:
    calls = 0
    delays: list[float] = []

    async def operation() -> str:
        nonlocal calls
        calls += 1
        if calls == 1:
            raise NetworkError("flaky")
        return "ok"

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    result = asyncio.run(
        retry_operation(operation, max_retries=3, base_delay_ms=50, sleep=fake_sleep)
    )

    assert result == "ok"
    assert calls == 2
    assert delays == pytest.approx([0.05])


def test_retry_uses_real_sleep_by_default() -> None:
    async def operation() -> int:
        return 7

    assert asyncio.run(retry_operation(operation, max_retries=1)) == 7


def test_single_attempt_raises_without_sleeping() -> None:
    delays: list[float] = []

    async def operation() -> str:
        raise NetworkError("offline")

    async def fake_sleep(seconds: float) -> None:
        delays.append(seconds)

    with pytest.raises(NetworkError, match="offline"):
        asyncio.run(retry_operation(operation, max_retries=1, sleep=fake_sleep))

    assert delays == []
