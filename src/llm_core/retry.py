from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from tenacity import AsyncRetrying, RetryCallState, stop_after_attempt
from tenacity.retry import retry_base
from tenacity.wait import wait_base

# Exponents past this point are always clamped to the cap.
_MAX_EXPONENT = 64


@dataclass(frozen=True)
class RetryPolicy:
    """Attempt count and capped exponential backoff for one logical request."""

    attempts: int
    base_delay: float = 0.1
    max_delay: float = 30.0

    def __post_init__(self) -> None:
        if self.attempts < 1:
            raise ValueError("attempts must be >= 1")
        if self.base_delay < 0:
            raise ValueError("base_delay must be >= 0")
        if self.max_delay < 0:
            raise ValueError("max_delay must be >= 0")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")

    @classmethod
    def from_max_retries(
        cls,
        max_retries: int,
        *,
        base_delay: float = 0.1,
        max_delay: float = 30.0,
    ) -> RetryPolicy:
        """Build a policy where ``max_retries`` bounds total attempts.

        ``0`` still performs the single initial attempt.
        """
        return cls(
            attempts=max(max_retries, 1),
            base_delay=base_delay,
            max_delay=max_delay,
        )

    def delay_for(self, failed_attempts: int) -> float:
        """Return ``min(2**failed_attempts * base_delay, max_delay)``."""
        if failed_attempts >= _MAX_EXPONENT:
            return self.max_delay
        return min((2**failed_attempts) * self.base_delay, self.max_delay)


class wait_capped_exponential(wait_base):  # noqa: N801
    """Wait ``2**attempt * base_delay`` seconds, capped at ``max_delay``."""

    def __init__(self, policy: RetryPolicy) -> None:
        self.policy = policy

    def __call__(self, retry_state: RetryCallState) -> float:
        return self.policy.delay_for(retry_state.attempt_number)


def build_capped_exponential_retrying(
    *,
    retry: retry_base,
    policy: RetryPolicy,
    sleep: Callable[[float], Awaitable[None]] | None = None,
    before_sleep: Callable[[RetryCallState], None] | None = None,
    reraise: bool = True,
) -> AsyncRetrying:
    """Build an ``AsyncRetrying`` with capped exponential backoff."""
    options: dict[str, Any] = {
        "retry": retry,
        "wait": wait_capped_exponential(policy),
        "stop": stop_after_attempt(policy.attempts),
        "reraise": reraise,
    }
    if sleep is not None:
        options["sleep"] = sleep
    if before_sleep is not None:
        options["before_sleep"] = before_sleep
    return AsyncRetrying(**options)
