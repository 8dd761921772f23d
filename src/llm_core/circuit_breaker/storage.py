"""State storage for circuit breakers.

The breaker computes transitions and the storage applies them atomically
per endpoint. Custom backends (for example Redis) can implement the
interface for multi-process coordination.
"""

import asyncio
import sys
import threading
from abc import ABC, abstractmethod
from collections import defaultdict
from collections.abc import AsyncIterator, Callable
from contextlib import asynccontextmanager

from llm_core.circuit_breaker.state import CircuitSnapshot, CircuitState, EndpointKey

SnapshotUpdate = Callable[[CircuitSnapshot], CircuitSnapshot]


def default_snapshot(endpoint: EndpointKey) -> CircuitSnapshot:
    """Return the initial ``CLOSED`` snapshot for an unseen endpoint."""
    return CircuitSnapshot(
        endpoint=endpoint,
        state=CircuitState.CLOSED,
        consecutive_failures=0,
        last_failure_at=None,
        half_open_successes=0,
    )


class AbstractCircuitStorage(ABC):
    """Abstract circuit storage interface."""

    @abstractmethod
    async def get_state(self, endpoint: EndpointKey) -> CircuitSnapshot:
        """Return the current snapshot for ``endpoint``."""

    @abstractmethod
    async def update(
        self, endpoint: EndpointKey, apply: SnapshotUpdate
    ) -> tuple[CircuitSnapshot, CircuitSnapshot]:
        """Atomically replace the snapshot with ``apply(current)``.

        Returns:
            The ``(previous, updated)`` snapshot pair.
        """

    @abstractmethod
    async def reset(self, endpoint: EndpointKey) -> None:
        """Forget the circuit for ``endpoint``."""

    @abstractmethod
    async def reset_all(self) -> None:
        """Forget every circuit."""


class InMemoryCircuitStorage(AbstractCircuitStorage):
    """In-memory storage with per-endpoint cooperative + optional thread locks."""

    def __init__(self) -> None:
        """Initialize in-memory snapshot and lock registries."""
        self._snapshots: dict[EndpointKey, CircuitSnapshot] = {}
        self._async_locks: dict[EndpointKey, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._thread_locks: dict[EndpointKey, threading.Lock] = defaultdict(
            threading.Lock
        )
        is_gil_enabled = getattr(sys, "_is_gil_enabled", None)
        self._gil_enabled = True if is_gil_enabled is None else bool(is_gil_enabled())

    @asynccontextmanager
    async def _locked(self, endpoint: EndpointKey) -> AsyncIterator[None]:
        async_lock = self._async_locks[endpoint]
        if self._gil_enabled:
            await async_lock.acquire()
            try:
                yield
            finally:
                async_lock.release()
            return

        thread_lock = self._thread_locks[endpoint]
        thread_lock.acquire()
        try:
            await async_lock.acquire()
        except Exception:
            thread_lock.release()
            raise
        try:
            yield
        finally:
            async_lock.release()
            thread_lock.release()

    def _current(self, endpoint: EndpointKey) -> CircuitSnapshot:
        snapshot = self._snapshots.get(endpoint)
        if snapshot is None:
            snapshot = default_snapshot(endpoint)
            self._snapshots[endpoint] = snapshot
        return snapshot

    async def get_state(self, endpoint: EndpointKey) -> CircuitSnapshot:
        """Return the current snapshot, creating a default one if missing."""
        async with self._locked(endpoint):
            return self._current(endpoint)

    async def update(
        self, endpoint: EndpointKey, apply: SnapshotUpdate
    ) -> tuple[CircuitSnapshot, CircuitSnapshot]:
        """Apply one transition under the endpoint lock."""
        async with self._locked(endpoint):
            previous = self._current(endpoint)
            updated = apply(previous)
            self._snapshots[endpoint] = updated
            return previous, updated

    async def reset(self, endpoint: EndpointKey) -> None:
        """Drop the stored circuit; the next lookup starts ``CLOSED``."""
        async with self._locked(endpoint):
            self._snapshots.pop(endpoint, None)

    async def reset_all(self) -> None:
        """Drop every stored circuit."""
        self._snapshots.clear()
