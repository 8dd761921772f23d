"""Circuit breaker exceptions."""

from llm_core.circuit_breaker.state import EndpointKey
from llm_core.errors import LLMError


class CircuitBreakerError(LLMError):
    """Base exception for the circuit breaker package."""


class CircuitOpenError(CircuitBreakerError):
    """Raised when a call is rejected because the circuit is open.

    No network call is attempted. Treat as "service currently unavailable".

    Attributes:
        endpoint: Endpoint whose circuit rejected the call.
        retry_after: Seconds until a half-open trial call may be attempted.
    """

    def __init__(self, endpoint: EndpointKey, retry_after: float) -> None:
        """Initialize a circuit-open exception payload.

        Args:
            endpoint: Endpoint whose circuit is open.
            retry_after: Seconds until the cooldown elapses.
        """
        self.endpoint = endpoint
        self.retry_after = retry_after
        super().__init__(
            "Service temporarily unavailable "
            f"(circuit breaker open for {endpoint}, retry_after={retry_after:g}s)",
            status_code=503,
        )
