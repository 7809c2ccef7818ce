"""In-process event queue feeding the onboarding dispatcher.

mautrix runs every event handler as its own task. The bot handlers only
enqueue ``(room_id, raw_event)``; a fixed number of worker tasks drain the
queue, so with the default single worker events are handled one at a time,
in delivery order.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

logger = logging.getLogger(__name__)

EventHandler = Callable[[str, dict[str, Any]], Awaitable[Any]]


class EventQueue:
    """FIFO of room events drained by ``workers`` tasks."""

    def __init__(self, handler: EventHandler, workers: int = 1) -> None:
        """Initialize the queue.

        Args:
            handler: Coroutine called with ``(room_id, raw_event)`` per event.
            workers: Number of concurrent consumer tasks.
        """
        self.handler = handler
        self.workers = max(1, workers)
        self._queue: asyncio.Queue[tuple[str, dict[str, Any]]] = asyncio.Queue()
        self._tasks: list[asyncio.Task] = []

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    def start(self) -> None:
        if self._tasks:
            return
        self._tasks = [
            asyncio.create_task(self._worker(), name=f"event-worker-{i}")
            for i in range(self.workers)
        ]
        logger.info("Event queue started with %d worker(s)", self.workers)

    async def put(self, room_id: str, raw_event: dict[str, Any]) -> None:
        await self._queue.put((room_id, raw_event))

    async def join(self) -> None:
        """Wait until every queued event has been handled."""
        await self._queue.join()

    async def stop(self) -> None:
        for task in self._tasks:
            task.cancel()
        await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks = []
        logger.info("Event queue stopped (%d event(s) left unprocessed)", self._queue.qsize())

    async def _worker(self) -> None:
        while True:
            room_id, raw_event = await self._queue.get()
            try:
                await self.handler(room_id, raw_event)
            except Exception:
                # One bad event must not stop the worker.
                logger.exception("Unhandled error processing event in %s", room_id)
            finally:
                self._queue.task_done()
