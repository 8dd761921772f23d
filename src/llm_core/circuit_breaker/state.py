"""Circuit breaker state primitives."""

from dataclasses import dataclass
from datetime import datetime
from enum import StrEnum
from typing import NamedTuple


class CircuitState(StrEnum):
    """Circuit breaker state values."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class EndpointKey(NamedTuple):
    """Circuit key: URL host plus its first two path segments."""

    host: str
    path_prefix: str

    def __str__(self) -> str:
        return f"{self.host}{self.path_prefix}"


@dataclass(frozen=True)
class CircuitSnapshot:
    """Point-in-time view of one endpoint circuit.

    Attributes:
        endpoint: Endpoint the circuit guards.
        state: Current circuit state.
        consecutive_failures: Failures since the last success or close.
        last_failure_at: Timestamp of the last recorded failure, if any.
        half_open_successes: Successes recorded while ``HALF_OPEN``.
    """

    endpoint: EndpointKey
    state: CircuitState
    consecutive_failures: int
    last_failure_at: datetime | None
    half_open_successes: int
