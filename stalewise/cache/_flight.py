"""
Single-flight — at most one in-flight computation per key.

Callers arriving while a computation runs join it instead of starting
another. Background refreshes are registered the same way, so a caller
that finds a refresh running for an expired key waits on the refresh.

Note: Check-and-register never awaits in between.
Почему: On one event loop that makes it atomic per key without a lock,
and keys never contend with each other.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Coroutine
from dataclasses import dataclass, field
from typing import Any

from stalewise._logging import get_logger
from stalewise.cache._types import CacheKey

log = get_logger(__name__)

type Work[R] = Callable[[Flight[R]], Coroutine[Any, Any, R]]


# ═══════════════════════════════════════════════════════════════════════════════
# Flight — one running computation
# ═══════════════════════════════════════════════════════════════════════════════


@dataclass(eq=False)
class Flight[R]:
    """
    In-flight computation for one key.

    Only the flight registered for its address may write its result; a
    forgotten flight still answers its own waiters.
    """

    address: CacheKey
    background: bool
    task: asyncio.Task[R] = field(init=False)


# ═══════════════════════════════════════════════════════════════════════════════
# Single-Flight Registry
# ═══════════════════════════════════════════════════════════════════════════════


class SingleFlight[R]:
    """
    Registry of in-flight computations keyed by (topic, key).

    Usage:
        flight = flights.current(address)
        if flight is None:
            flight = flights.start(address, work)
        result = await flights.wait(flight)
    """

    def __init__(self) -> None:
        self._flights: dict[CacheKey, Flight[R]] = {}
        self._tasks: set[asyncio.Task[R]] = set()

    def __len__(self) -> int:
        return len(self._flights)

    def current(self, address: CacheKey) -> Flight[R] | None:
        """Flight registered for address, if any."""
        return self._flights.get(address)

    def start(self, address: CacheKey, work: Work[R], *, background: bool = False) -> Flight[R]:
        """
        Register and launch a computation for address.

        Caller must have checked current() without awaiting since.
        The task is detached: cancelling a waiter does not cancel it.
        """
        if address in self._flights:
            raise RuntimeError(f"Flight already registered for {address}")

        flight: Flight[R] = Flight(address=address, background=background)
        flight.task = asyncio.create_task(self._run(flight, work), name=f"stalewise:{address}")
        self._flights[address] = flight
        self._tasks.add(flight.task)
        flight.task.add_done_callback(self._tasks.discard)
        return flight

    async def wait(self, flight: Flight[R]) -> R:
        """Await flight result; shielded so one caller's cancellation spares the rest."""
        return await asyncio.shield(flight.task)

    def is_current(self, flight: Flight[R]) -> bool:
        """False once the flight was forgotten or superseded."""
        return self._flights.get(flight.address) is flight

    def forget(self, address: CacheKey) -> None:
        """
        Drop registration for address.

        Running task keeps going for its waiters but loses its right to write.
        """
        if self._flights.pop(address, None) is not None:
            log.debug("flight.forgotten", topic=address.topic, key=address.key)

    def forget_topic(self, topic: str) -> int:
        """forget() every registered flight in topic. Returns count."""
        doomed = [a for a in self._flights if a.topic == topic]
        for address in doomed:
            self.forget(address)
        return len(doomed)

    async def drain(self, *, cancel: bool = False) -> None:
        """Wait for (or cancel) every running task, registered or orphaned."""
        tasks = list(self._tasks)
        if not tasks:
            return
        if cancel:
            for task in tasks:
                task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    async def _run(self, flight: Flight[R], work: Work[R]) -> R:
        try:
            return await work(flight)
        finally:
            # Release before waiters resume; a later caller must re-read the store.
            if self._flights.get(flight.address) is flight:
                del self._flights[flight.address]


__all__ = ("Flight", "SingleFlight", "Work")
