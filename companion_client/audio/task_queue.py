"""Serialized queue of playback-gated tasks."""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from typing import Awaitable, Callable, Optional

LOGGER = logging.getLogger(__name__)

TaskFactory = Callable[[], Awaitable[None]]
ErrorCallback = Callable[[Exception], None]


class AudioTaskQueue:
    """Strict FIFO running at most one task at a time.

    A task is only created (``factory()`` called) when its turn comes, so
    ``clear_queue`` discards work that has not started yet while the task in
    flight always settles normally.
    """

    def __init__(self, *, on_error: Optional[ErrorCallback] = None) -> None:
        self._pending: deque[TaskFactory] = deque()
        self._running = False
        self._worker: Optional[asyncio.Task[None]] = None
        self._idle = asyncio.Event()
        self._idle.set()
        self._on_error = on_error

    def add_task(self, factory: TaskFactory) -> None:
        """Append a task; it starts once every earlier task has settled."""
        self._pending.append(factory)
        self._idle.clear()
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(self._drain())

    def clear_queue(self) -> None:
        """Drop all pending tasks (the running one completes)."""
        dropped = len(self._pending)
        self._pending.clear()
        if dropped:
            LOGGER.debug("Audio queue cleared (%d pending dropped)", dropped)
        if not self._running:
            self._idle.set()

    def has_task(self) -> bool:
        """True while a task is pending or running."""
        return self._running or bool(self._pending)

    async def join(self) -> None:
        """Wait until the queue is drained."""
        await self._idle.wait()

    async def close(self) -> None:
        """Drop pending work and cancel the worker."""
        self._pending.clear()
        worker = self._worker
        self._worker = None
        if worker is not None and not worker.done():
            worker.cancel()
            try:
                await worker
            except asyncio.CancelledError:
                pass
        self._running = False
        self._idle.set()

    async def _drain(self) -> None:
        while self._pending:
            factory = self._pending.popleft()
            self._running = True
            try:
                await factory()
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                LOGGER.exception("Audio task failed")
                if self._on_error is not None:
                    self._on_error(exc)
            finally:
                self._running = False
        self._idle.set()
