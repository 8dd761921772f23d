"""Per-endpoint async circuit breaker.

This package implements the circuit breaker pattern from *Release It!*,
keyed by :class:`EndpointKey` so that logical endpoints on the same host fail
independently.

Key behavior notes:
  - Circuits are created lazily in ``CLOSED`` state on first reference.
  - ``OPEN`` rejects calls with :class:`CircuitOpenError` until the cooldown
    since the last failure has elapsed, then moves to ``HALF_OPEN``.
  - ``HALF_OPEN`` admits every caller. ``success_threshold`` successes close
    the circuit; a single failure reopens it.
  - Distinct ``CircuitBreaker`` instances never share circuits.
"""

from llm_core.circuit_breaker.breaker import CircuitBreaker, CircuitBreakerConfig
from llm_core.circuit_breaker.exceptions import (
    CircuitBreakerError,
    CircuitOpenError,
)
from llm_core.circuit_breaker.metrics import BreakerListener
from llm_core.circuit_breaker.state import CircuitSnapshot, CircuitState, EndpointKey
from llm_core.circuit_breaker.storage import (
    AbstractCircuitStorage,
    InMemoryCircuitStorage,
)

__all__ = [
    "AbstractCircuitStorage",
    "BreakerListener",
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerError",
    "CircuitOpenError",
    "CircuitSnapshot",
    "CircuitState",
    "EndpointKey",
    "InMemoryCircuitStorage",
]
