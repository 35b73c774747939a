"""Minimal synchronous event emitter.

Listeners run in registration order. A listener that raises is logged
and the remaining listeners still run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

_logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Listener:
        self._listeners.setdefault(str(event), []).append(listener)
        return listener

    def off(self, event: str, listener: Listener) -> None:
        listeners = self._listeners.get(str(event))
        if not listeners:
            return
        try:
            listeners.remove(listener)
        except ValueError:
            return

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(str(event), ()))

    def emit(self, event: str, *args: Any) -> bool:
        """Call every listener of *event*; return whether any existed."""
        listeners = list(self._listeners.get(str(event), ()))
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                _logger.exception("Listener for %s failed", event)
        return bool(listeners)
