"""Event emitter - per-connection fan-out of protocol events.

Each connection owns its own emitter, so several sessions can live in one
process without seeing each other's events. Listeners are plain callables
invoked synchronously, in registration order, while the triggering frame is
being handled. A failing listener is logged and the remaining listeners still
run.

Usage:
    emitter = EventEmitter()
    unsubscribe = emitter.on("message_ack", lambda ack: print(ack.id))
    emitter.emit("message_ack", ack)
    unsubscribe()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

logger = logging.getLogger(__name__)

Listener = Callable[..., Any]


class EventEmitter:
    """Multi-listener registry keyed by event name."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = {}

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe to an event.

        Args:
            event: Event name
            listener: Called with the emitted arguments

        Returns:
            Unsubscribe function
        """
        self._listeners.setdefault(event, []).append(listener)

        def unsubscribe() -> None:
            self.off(event, listener)

        return unsubscribe

    def off(self, event: str, listener: Listener) -> None:
        """Remove a listener (no-op if it is not registered)."""
        listeners = self._listeners.get(event)
        if listeners and listener in listeners:
            listeners.remove(listener)

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every listener for `event` with `args`."""
        # Snapshot so listeners may (un)subscribe while we iterate
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args)
            except Exception:
                logger.exception(f"Error in listener for {event!r}")

    def listener_count(self, event: str) -> int:
        return len(self._listeners.get(event, ()))

    def clear(self) -> None:
        """Drop every listener."""
        self._listeners.clear()
