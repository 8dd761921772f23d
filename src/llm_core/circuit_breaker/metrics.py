"""Observability hooks for circuit breakers."""

from typing import Protocol

from llm_core.circuit_breaker.state import CircuitState, EndpointKey


class BreakerListener(Protocol):
    """Listener protocol for circuit breaker events.

    Notes:
        Listener failures never affect breaker behavior.
    """

    async def on_state_change(
        self, endpoint: EndpointKey, old: CircuitState, new: CircuitState
    ) -> None:
        """Handle circuit state transitions."""

    async def on_call_rejected(self, endpoint: EndpointKey) -> None:
        """Handle call rejection while the circuit is open."""
