"""Single ingress for timer and notification events.

Collaborator callbacks are synchronous and may run on any task, so they
only enqueue. One background task drains the queue in arrival order and
hands each event to the engine. A failing handler is logged and counted;
it never stops the loop, since there is no caller to report to.
"""

import asyncio
import logging
from typing import Awaitable, Callable

from deferred_alerts.alerts.events import AlertEvent
from deferred_alerts.observability.logging import bind_context, clear_context
from deferred_alerts.observability.metrics import get_metrics

logger = logging.getLogger(__name__)

EventHandler = Callable[[AlertEvent], Awaitable[None]]


class EventDispatcher:
    """Queues alert events and runs their handler one at a time.

    Lifecycle:
        1. ``start()`` - spawn the consumer task
        2. ``submit(event)`` - enqueue from any callback
        3. ``stop()`` - cancel the consumer; queued events are dropped
    """

    def __init__(self, handler: EventHandler, max_size: int = 1000) -> None:
        self._handler = handler
        self._queue: asyncio.Queue[AlertEvent] = asyncio.Queue(maxsize=max_size)
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def pending(self) -> int:
        """Number of events waiting to be handled."""
        return self._queue.qsize()

    def submit(self, event: AlertEvent) -> None:
        """Enqueue an event.

        Raises:
            asyncio.QueueFull: If ``max_size`` events are already waiting.
        """
        self._queue.put_nowait(event)
        get_metrics().set_event_queue_depth(self._queue.qsize())

    async def start(self) -> None:
        if self.running:
            return
        self._task = asyncio.create_task(self._run(), name="alert-event-dispatcher")
        logger.info("EventDispatcher started")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info("EventDispatcher stopped (%d events dropped)", self.pending)

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def _run(self) -> None:
        while True:
            event = await self._queue.get()
            get_metrics().set_event_queue_depth(self._queue.qsize())
            try:
                bind_context(event=event.kind, alert_id=event.alert_id)
                await self._handler(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                get_metrics().record_handler_failure(event.kind)
                logger.error(
                    "Handler for %s (alert %s) failed: %s",
                    event.kind, event.alert_id, e, exc_info=True,
                )
            finally:
                clear_context()
                self._queue.task_done()
