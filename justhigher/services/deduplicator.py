"""
SingleFlight - Collapses concurrent cache misses for the same key.

When several requests miss the cache for the same key at once, only the
first one runs the loader. The rest await the same task and receive the
same result or the same exception.
"""

import asyncio
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from loguru import logger

T = TypeVar("T")


class SingleFlight:
    """
    Per-key in-flight load registry.

    Usage:
        flight = SingleFlight()

        async def load_post(slug: str):
            return await flight.run(f"posts:slug:{slug}", lambda: repo.get(slug))

    A caller that gets cancelled stops waiting, but the shared load keeps
    running for the other waiters (it is shielded).
    """

    def __init__(self, debug: bool = False):
        self._in_flight: dict[str, asyncio.Task[Any]] = {}
        self._lock = asyncio.Lock()
        self._debug = debug
        self._stats = SingleFlightStats()

    async def run(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        """Run ``loader`` unless a load for ``key`` is already in flight."""
        async with self._lock:
            task = self._in_flight.get(key)
            if task is not None:
                self._stats.shared += 1
                self._log(f"JOIN: {key[:50]}")
            else:
                self._stats.started += 1
                self._log(f"START: {key[:50]}")
                task = asyncio.create_task(self._run_and_forget(key, loader))
                task.add_done_callback(_consume_exception)
                self._in_flight[key] = task

        return await asyncio.shield(task)

    async def _run_and_forget(
        self, key: str, loader: Callable[[], Awaitable[T]]
    ) -> T:
        try:
            return await loader()
        finally:
            async with self._lock:
                self._in_flight.pop(key, None)
            self._log(f"DONE: {key[:50]}")

    def is_in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def cancel_all(self) -> int:
        """Cancel every in-flight load. Used on shutdown."""
        async with self._lock:
            tasks = list(self._in_flight.values())
            self._in_flight.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            self._log(f"CANCEL_ALL: {len(tasks)} loads cancelled")
        return len(tasks)

    def get_stats(self) -> "SingleFlightStats":
        self._stats.in_flight = len(self._in_flight)
        return self._stats

    def _log(self, message: str) -> None:
        if self._debug:
            logger.debug(f"[SingleFlight] {message}")


def _consume_exception(task: asyncio.Task[Any]) -> None:
    # Waiters may all have been cancelled; mark the exception as retrieved.
    if not task.cancelled():
        task.exception()


@dataclass
class SingleFlightStats:
    """Counters for collapsed loads."""

    started: int = 0
    shared: int = 0
    in_flight: int = 0

    @property
    def share_rate(self) -> float:
        total = self.started + self.shared
        if total == 0:
            return 0.0
        return self.shared / total

    def to_dict(self) -> dict[str, Any]:
        return {
            "started": self.started,
            "shared": self.shared,
            "in_flight": self.in_flight,
            "share_rate": f"{self.share_rate:.2%}",
        }
