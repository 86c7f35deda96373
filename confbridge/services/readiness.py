"""Readiness tracking for the call-control provider and its resources.

A ReadinessLatch is a one-shot flag: once set it stays set. Latches can be set
from any thread (vendor adapters often deliver events on their own dispatch
threads) and waited on either by blocking a thread or by awaiting a coroutine.
"""

import asyncio
import logging
import threading
from collections.abc import Iterable

logger = logging.getLogger(__name__)


def _resolve(fut: asyncio.Future) -> None:
    if not fut.done():
        fut.set_result(True)


class ReadinessLatch:
    """One-shot, thread-safe readiness flag."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._waiters: list[tuple[asyncio.AbstractEventLoop, asyncio.Future]] = []

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    def set(self) -> None:
        """Set the latch. Idempotent and non-blocking."""
        with self._lock:
            if self._event.is_set():
                return
            self._event.set()
            waiters, self._waiters = self._waiters, []

        logger.info("Readiness latch '%s' set", self.name)
        for loop, fut in waiters:
            if not loop.is_closed():
                loop.call_soon_threadsafe(_resolve, fut)

    def wait_true(self, timeout: float | None = None) -> bool:
        """Block the calling thread until set. Returns False on timeout."""
        return self._event.wait(timeout)

    async def wait(self, timeout: float | None = None) -> bool:
        """Suspend until set. Returns False on timeout."""
        loop = asyncio.get_running_loop()
        with self._lock:
            if self._event.is_set():
                return True
            fut = loop.create_future()
            waiter = (loop, fut)
            self._waiters.append(waiter)

        try:
            await asyncio.wait_for(fut, timeout=timeout)
            return True
        except asyncio.TimeoutError:
            return False
        finally:
            with self._lock:
                if waiter in self._waiters:
                    self._waiters.remove(waiter)

    def __repr__(self) -> str:
        return f"<ReadinessLatch {self.name} set={self.is_set}>"


class ReadinessTracker:
    """Holds the readiness latches for the provider and the monitored resources.

    The route-point latches are set only for the terminal and address names the
    tracker was built with; the generic latches are set by any in-service event.
    ``call_active`` is exposed for status reporting but no handler sets it.
    """

    def __init__(
        self,
        route_point_terminals: Iterable[str] = (),
        route_point_addresses: Iterable[str] = (),
    ) -> None:
        self.route_point_terminals = frozenset(route_point_terminals)
        self.route_point_addresses = frozenset(route_point_addresses)

        self.provider = ReadinessLatch("provider")
        self.route_point_address = ReadinessLatch("route_point_address")
        self.route_point_terminal = ReadinessLatch("route_point_terminal")
        self.terminal = ReadinessLatch("terminal")
        self.address = ReadinessLatch("address")
        self.call_active = ReadinessLatch("call_active")

    @property
    def latches(self) -> list[ReadinessLatch]:
        return [
            self.provider,
            self.route_point_address,
            self.route_point_terminal,
            self.terminal,
            self.address,
            self.call_active,
        ]

    def terminal_in_service(self, name: str) -> None:
        if name in self.route_point_terminals:
            self.route_point_terminal.set()
        self.terminal.set()

    def address_in_service(self, name: str) -> None:
        if name in self.route_point_addresses:
            self.route_point_address.set()
        self.address.set()

    def snapshot(self) -> dict[str, bool]:
        return {latch.name: latch.is_set for latch in self.latches}
