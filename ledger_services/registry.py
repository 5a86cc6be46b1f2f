"""
HandlerRegistry -- maps an event type to the one integrator that handles it.

Contract:
    - ``register()`` adds a handler; raises DuplicateHandlerError when the
      event type already has one.
    - ``get()`` retrieves by event type; raises HandlerNotFoundError.
    - ``event_types()`` returns the registered event types, sorted.
"""

from __future__ import annotations

from typing import Any, Protocol

from ledger_kernel.exceptions import DuplicateHandlerError, HandlerNotFoundError


class EventHandler(Protocol):
    """What the bus needs from a handler."""

    name: str
    event_type: str

    def handle(self, event: Any) -> Any: ...


class HandlerRegistry:
    def __init__(self) -> None:
        self._handlers: dict[str, EventHandler] = {}

    def register(self, handler: EventHandler) -> None:
        if handler.event_type in self._handlers:
            raise DuplicateHandlerError(handler.event_type)
        self._handlers[handler.event_type] = handler

    def get(self, event_type: str) -> EventHandler:
        try:
            return self._handlers[event_type]
        except KeyError:
            raise HandlerNotFoundError(event_type, self.event_types()) from None

    def event_types(self) -> tuple[str, ...]:
        return tuple(sorted(self._handlers))

    def __len__(self) -> int:
        return len(self._handlers)

    def __contains__(self, event_type: str) -> bool:
        return event_type in self._handlers
