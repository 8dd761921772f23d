from __future__ import annotations

import pytest
from tenacity import AsyncRetrying, RetryCallState, RetryError
from tenacity.retry import retry_if_exception_type

from llm_core.retry import (
    RetryPolicy,
    build_capped_exponential_retrying,
    wait_capped_exponential,
)

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    ("attempts", "base_delay", "max_delay", "message"),
    [
        (0, 0.1, 1.0, "attempts must be >= 1"),
        (1, -0.1, 1.0, "base_delay must be >= 0"),
        (1, 0.0, -0.1, "max_delay must be >= 0"),
        (1, 2.0, 1.0, "max_delay must be >= base_delay"),
    ],
)
async def test_retry_policy_validation(
    attempts: int,
    base_delay: float,
    max_delay: float,
    message: str,
) -> None:
    with pytest.raises(ValueError, match=message):
        RetryPolicy(attempts=attempts, base_delay=base_delay, max_delay=max_delay)


@pytest.mark.parametrize(
    ("max_retries", "attempts"),
    [(0, 1), (1, 1), (3, 3), (10, 10)],
)
async def test_from_max_retries_always_allows_one_attempt(
    max_retries: int, attempts: int
) -> None:
    assert RetryPolicy.from_max_retries(max_retries).attempts == attempts


async def test_delay_doubles_until_capped() -> None:
    policy = RetryPolicy(attempts=10)

    delays = [policy.delay_for(failed) for failed in (1, 2, 3, 8, 9, 200)]

    assert delays == [
        pytest.approx(0.2),
        pytest.approx(0.4),
        pytest.approx(0.8),
        pytest.approx(25.6),
        30.0,
        30.0,
    ]


async def test_wait_strategy_uses_attempt_number() -> None:
    wait = wait_capped_exponential(RetryPolicy(attempts=3, base_delay=1.0))
    state = RetryCallState(retry_object=AsyncRetrying(), fn=None, args=(), kwargs={})
    state.attempt_number = 2

    assert wait(state) == 4.0


async def test_build_retrying_without_optional_hooks() -> None:
    retrying = build_capped_exponential_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryPolicy(attempts=2),
    )

    assert isinstance(retrying, AsyncRetrying)


async def test_build_retrying_sleeps_with_capped_delays() -> None:
    sleep_calls: list[float] = []
    before_sleep_calls: list[int] = []

    async def _sleep(delay: float) -> None:
        sleep_calls.append(delay)

    def _before_sleep(state: RetryCallState) -> None:
        before_sleep_calls.append(state.attempt_number)

    retrying = build_capped_exponential_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryPolicy(attempts=4, base_delay=0.5, max_delay=1.5),
        sleep=_sleep,
        before_sleep=_before_sleep,
    )

    attempts = 0
    with pytest.raises(ValueError, match="boom"):
        async for attempt in retrying:
            with attempt:
                attempts += 1
                raise ValueError("boom")

    assert attempts == 4
    assert sleep_calls == [1.0, 1.5, 1.5]
    assert before_sleep_calls == [1, 2, 3]


async def test_build_retrying_does_not_retry_other_exceptions() -> None:
    sleep_calls: list[float] = []

    async def _sleep(delay: float) -> None:
        sleep_calls.append(delay)

    retrying = build_capped_exponential_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryPolicy(attempts=3),
        sleep=_sleep,
    )

    with pytest.raises(KeyError):
        async for attempt in retrying:
            with attempt:
                raise KeyError("fatal")

    assert sleep_calls == []


async def test_build_retrying_with_reraise_disabled() -> None:
    async def _sleep(delay: float) -> None:
        return None

    retrying = build_capped_exponential_retrying(
        retry=retry_if_exception_type(ValueError),
        policy=RetryPolicy(attempts=2),
        sleep=_sleep,
        reraise=False,
    )

    with pytest.raises(RetryError):
        async for attempt in retrying:
            with attempt:
                raise ValueError("boom")
