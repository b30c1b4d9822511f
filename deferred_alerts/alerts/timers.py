"""Named one-shot timers.

A ``TimerService`` arms a wake-up for an absolute time under a name and
reports ``(name, scheduled_for)`` to its listeners when it is due. Arming a
name that is already armed replaces the earlier timer, so at most one timer
per name is ever live.
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from typing import Callable

logger = logging.getLogger(__name__)

FireListener = Callable[[str, int], None]


def now_millis() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class TimerService(ABC):
    """Arms and cancels named one-shot wake-ups."""

    def __init__(self) -> None:
        self._listeners: list[FireListener] = []

    def on_fire(self, listener: FireListener) -> None:
        """Register a callback invoked with ``(name, scheduled_for)``."""
        self._listeners.append(listener)

    def _emit(self, name: str, scheduled_for: int) -> None:
        for listener in self._listeners:
            listener(name, scheduled_for)

    @abstractmethod
    async def arm(self, name: str, when_ms: int) -> None:
        """Schedule ``name`` for ``when_ms``, replacing any earlier timer."""

    @abstractmethod
    async def cancel(self, name: str) -> bool:
        """Cancel ``name``. Once this returns the timer can no longer fire.

        Returns:
            True if a pending timer was cancelled.
        """

    async def close(self) -> None:
        """Release resources held by the service."""


class AsyncioTimerService(TimerService):
    """Timers backed by one sleeping asyncio task per name.

    Past-due times fire on the next loop iteration. Timers live only as long
    as the process; ``AlertEngine.restore()`` re-arms them after a restart.
    """

    def __init__(self, clock: Callable[[], int] = now_millis) -> None:
        super().__init__()
        self._clock = clock
        self._tasks: dict[str, asyncio.Task] = {}

    @property
    def armed(self) -> frozenset[str]:
        """Names with a pending timer."""
        return frozenset(self._tasks)

    async def arm(self, name: str, when_ms: int) -> None:
        # Swap before awaiting so overlapping arms never orphan a task
        previous = self._tasks.pop(name, None)
        self._tasks[name] = asyncio.create_task(
            self._wait(name, when_ms), name=f"timer:{name}",
        )
        logger.debug("Timer %s armed for %d", name, when_ms)
        if previous is not None:
            await self._stop(previous)

    async def cancel(self, name: str) -> bool:
        task = self._tasks.pop(name, None)
        if task is None:
            return False

        await self._stop(task)
        logger.debug("Timer %s cancelled", name)
        return True

    @staticmethod
    async def _stop(task: asyncio.Task) -> None:
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

    async def close(self) -> None:
        for name in list(self._tasks):
            await self.cancel(name)

    async def _wait(self, name: str, when_ms: int) -> None:
        delay = max(0.0, (when_ms - self._clock()) / 1000)
        await asyncio.sleep(delay)

        # Unregister before emitting: no await separates the two, so a
        # concurrent cancel() either wins entirely or finds nothing.
        if self._tasks.get(name) is not asyncio.current_task():
            return
        del self._tasks[name]

        try:
            self._emit(name, when_ms)
        except Exception as e:
            logger.error("Timer %s listener failed: %s", name, e, exc_info=True)
