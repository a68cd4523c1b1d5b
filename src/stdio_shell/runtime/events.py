"""Event channels.

stdio-shell runtime v0.1.0

One subscriber list per event kind. Every registered listener receives
every emitted item, in registration order.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from .types import SessionEvent

__all__ = ["Listener", "EventChannel", "EventHub"]

Listener = Callable[..., Any]

logger = logging.getLogger(__name__)


class EventChannel:
    """Subscriber list for a single event kind."""

    def __init__(self, name: str) -> None:
        self.name = name
        self._listeners: list[Listener] = []

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def unsubscribe(self, listener: Listener) -> bool:
        """Remove one registration of a listener.

        Returns:
            True if the listener was registered
        """
        try:
            self._listeners.remove(listener)
            return True
        except ValueError:
            return False

    @property
    def listeners(self) -> list[Listener]:
        return list(self._listeners)

    def __len__(self) -> int:
        return len(self._listeners)

    def emit(self, *args: Any) -> int:
        """Deliver an item to every listener.

        A listener that raises is logged and skipped; the remaining
        listeners still run.

        Returns:
            Number of listeners invoked
        """
        # snapshot: listeners may (un)subscribe while we iterate
        listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(*args)
            except Exception:
                logger.exception(f"Error in {self.name!r} listener {listener!r}")
        return len(listeners)


class EventHub:
    """The set of channels a session exposes, keyed by SessionEvent."""

    def __init__(self) -> None:
        self._channels = {event: EventChannel(event.value) for event in SessionEvent}

    def channel(self, event: SessionEvent | str) -> EventChannel:
        try:
            return self._channels[SessionEvent(event)]
        except ValueError:
            raise ValueError(f"unknown event: {event!r}") from None

    def on(self, event: SessionEvent | str, listener: Listener) -> None:
        self.channel(event).subscribe(listener)

    def off(self, event: SessionEvent | str, listener: Listener) -> bool:
        return self.channel(event).unsubscribe(listener)

    def emit(self, event: SessionEvent | str, *args: Any) -> int:
        return self.channel(event).emit(*args)

    def has_listeners(self, event: SessionEvent | str) -> bool:
        return len(self.channel(event)) > 0
