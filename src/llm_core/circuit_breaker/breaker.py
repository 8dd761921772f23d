"""Core circuit breaker implementation."""

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import UTC, datetime

from llm_core.circuit_breaker.exceptions import CircuitOpenError
from llm_core.circuit_breaker.metrics import BreakerListener
from llm_core.circuit_breaker.state import CircuitSnapshot, CircuitState, EndpointKey
from llm_core.circuit_breaker.storage import (
    AbstractCircuitStorage,
    InMemoryCircuitStorage,
)
from llm_core.logging import StructuredLogger, get_logger, log_info, log_warning

_TRANSITION_EVENTS: dict[tuple[CircuitState, CircuitState], str] = {
    (CircuitState.CLOSED, CircuitState.OPEN): "circuit.opened",
    (CircuitState.OPEN, CircuitState.HALF_OPEN): "circuit.half_open",
    (CircuitState.HALF_OPEN, CircuitState.CLOSED): "circuit.closed",
    (CircuitState.HALF_OPEN, CircuitState.OPEN): "circuit.reopened",
}


def _utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(slots=True)
class CircuitBreakerConfig:
    """Circuit breaker configuration values.

    Attributes:
        failure_threshold: Consecutive failures while ``CLOSED`` before opening.
        cooldown_seconds: Seconds to wait while ``OPEN`` before a half-open trial call.
        success_threshold: Successes while ``HALF_OPEN`` required to close.
    """

    failure_threshold: int = 5
    cooldown_seconds: float = 30.0
    success_threshold: int = 2

    def __post_init__(self) -> None:
        if self.failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if self.cooldown_seconds < 0:
            raise ValueError("cooldown_seconds must be >= 0")
        if self.success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")


class CircuitBreaker:
    """Per-endpoint failure isolation for outbound provider calls.

    Callers invoke :meth:`allow_request` before network I/O and then exactly
    one of :meth:`record_success` or :meth:`record_failure`. Only
    connection-level and server (5xx) failures should be recorded; well-formed
    4xx responses are valid protocol answers.

    ``HALF_OPEN`` admits every caller; each success counts toward
    ``success_threshold`` and any failure reopens the circuit.
    """

    def __init__(
        self,
        *,
        config: CircuitBreakerConfig | None = None,
        storage: AbstractCircuitStorage | None = None,
        listeners: Sequence[BreakerListener] | None = None,
        logger: StructuredLogger | None = None,
    ) -> None:
        """Build a circuit breaker with optional custom dependencies.

        Args:
            config: Breaker thresholds. Defaults to ``CircuitBreakerConfig()``.
            storage: Circuit storage backend. Defaults to in-memory storage.
            listeners: Optional listener hooks for breaker events.
            logger: Structured logger. Defaults to the module logger.
        """
        self.config = CircuitBreakerConfig() if config is None else config
        self._storage = InMemoryCircuitStorage() if storage is None else storage
        self._listeners = tuple(listeners) if listeners is not None else ()
        self._logger = get_logger(__name__) if logger is None else logger

    async def _emit_state_change(
        self, endpoint: EndpointKey, old: CircuitState, new: CircuitState
    ) -> None:
        for listener in self._listeners:
            try:
                await listener.on_state_change(endpoint, old, new)
            except Exception:
                continue

    async def _emit_call_rejected(self, endpoint: EndpointKey) -> None:
        for listener in self._listeners:
            try:
                await listener.on_call_rejected(endpoint)
            except Exception:
                continue

    async def _announce(
        self, previous: CircuitSnapshot, updated: CircuitSnapshot
    ) -> None:
        if previous.state == updated.state:
            return
        event = _TRANSITION_EVENTS.get((previous.state, updated.state))
        fields: dict[str, object] = {
            "endpoint": str(updated.endpoint),
            "failures": previous.consecutive_failures,
        }
        if event in {"circuit.opened", "circuit.reopened"}:
            fields["threshold"] = self.config.failure_threshold
            log_warning(self._logger, event, **fields)
        else:
            log_info(self._logger, event or "circuit.state_changed", **fields)
        await self._emit_state_change(updated.endpoint, previous.state, updated.state)

    def _remaining_cooldown(self, snapshot: CircuitSnapshot, now: datetime) -> float:
        if snapshot.last_failure_at is None:
            return 0.0
        elapsed = (now - snapshot.last_failure_at).total_seconds()
        return max(self.config.cooldown_seconds - elapsed, 0.0)

    async def allow_request(self, endpoint: EndpointKey) -> None:
        """Gate one request to ``endpoint``.

        Raises:
            CircuitOpenError: When the circuit is open and the cooldown has not
                elapsed. No state changes in that case.
        """
        now = _utcnow()
        rejected_after: float | None = None

        def _apply(snapshot: CircuitSnapshot) -> CircuitSnapshot:
            nonlocal rejected_after
            if snapshot.state != CircuitState.OPEN:
                return snapshot
            remaining = self._remaining_cooldown(snapshot, now)
            if remaining > 0:
                rejected_after = remaining
                return snapshot
            return replace(snapshot, state=CircuitState.HALF_OPEN)

        previous, updated = await self._storage.update(endpoint, _apply)
        if rejected_after is not None:
            log_warning(
                self._logger,
                "circuit.rejected",
                endpoint=str(endpoint),
                failures=updated.consecutive_failures,
                cooldown_remaining=rejected_after,
            )
            await self._emit_call_rejected(endpoint)
            raise CircuitOpenError(endpoint, retry_after=rejected_after)
        await self._announce(previous, updated)

    async def record_success(self, endpoint: EndpointKey) -> None:
        """Record a successful response from ``endpoint``."""

        def _apply(snapshot: CircuitSnapshot) -> CircuitSnapshot:
            if snapshot.state == CircuitState.HALF_OPEN:
                successes = snapshot.half_open_successes + 1
                if successes >= self.config.success_threshold:
                    return replace(
                        snapshot,
                        state=CircuitState.CLOSED,
                        consecutive_failures=0,
                        half_open_successes=0,
                    )
                return replace(snapshot, half_open_successes=successes)
            if snapshot.state == CircuitState.CLOSED and snapshot.consecutive_failures:
                return replace(snapshot, consecutive_failures=0)
            return snapshot

        previous, updated = await self._storage.update(endpoint, _apply)
        await self._announce(previous, updated)

    async def record_failure(self, endpoint: EndpointKey) -> None:
        """Record a connection-level or server failure from ``endpoint``."""
        now = _utcnow()

        def _apply(snapshot: CircuitSnapshot) -> CircuitSnapshot:
            if snapshot.state == CircuitState.HALF_OPEN:
                return replace(
                    snapshot,
                    state=CircuitState.OPEN,
                    last_failure_at=now,
                    half_open_successes=0,
                )
            failures = snapshot.consecutive_failures + 1
            state = snapshot.state
            if (
                state == CircuitState.CLOSED
                and failures >= self.config.failure_threshold
            ):
                state = CircuitState.OPEN
            return replace(
                snapshot,
                state=state,
                consecutive_failures=failures,
                last_failure_at=now,
            )

        previous, updated = await self._storage.update(endpoint, _apply)
        await self._announce(previous, updated)

    async def is_open(self, endpoint: EndpointKey) -> bool:
        """Return true when the circuit for ``endpoint`` is ``OPEN``."""
        snapshot = await self._storage.get_state(endpoint)
        return snapshot.state == CircuitState.OPEN

    async def get_circuit_state(self, endpoint: EndpointKey) -> CircuitSnapshot:
        """Return the current circuit snapshot without side effects."""
        return await self._storage.get_state(endpoint)

    async def reset(self, endpoint: EndpointKey) -> None:
        """Clear the circuit for one endpoint."""
        await self._storage.reset(endpoint)

    async def reset_all(self) -> None:
        """Clear every circuit held by this breaker."""
        await self._storage.reset_all()
