"""Explicit deferred-task queue.

Notifications and bridge pushes never run inside the call that caused
them. They are queued here and run, in FIFO order, when the queue is
drained:

- inside a running asyncio loop the queue schedules its own drain with
  ``loop.call_soon`` (the "next tick");
- without a loop, the owner calls :meth:`Scheduler.drain` at a point of
  its choosing (tests, synchronous scripts).

Tasks queued while draining run in the same drain, after everything
already queued.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)


class Scheduler:
    def __init__(self, *, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._queue: deque[tuple[Callable[..., Any], tuple[Any, ...]]] = deque()
        self._drain_scheduled = False
        self._draining = False

    @property
    def pending(self) -> int:
        """Number of queued tasks."""
        return len(self._queue)

    def call_soon(self, callback: Callable[..., Any], *args: Any) -> None:
        """Queue *callback* to run on the next drain."""
        self._queue.append((callback, args))
        self._kick()

    def _kick(self) -> None:
        if self._drain_scheduled or self._draining:
            return
        loop = self._loop
        if loop is None:
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                return
        if loop.is_closed():
            return
        self._drain_scheduled = True
        loop.call_soon(self._drain_from_loop)

    def _drain_from_loop(self) -> None:
        self._drain_scheduled = False
        self.drain()

    def drain(self) -> int:
        """Run queued tasks until the queue is empty; return how many ran.

        A failing task is logged and does not stop the drain.
        """
        if self._draining:
            return 0
        self._draining = True
        count = 0
        try:
            while self._queue:
                callback, args = self._queue.popleft()
                count += 1
                try:
                    callback(*args)
                except Exception:
                    _logger.exception("Scheduled task %r failed", callback)
        finally:
            self._draining = False
        return count
