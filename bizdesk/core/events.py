from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any


@dataclass(frozen=True)
class InternalEvent:
    name: str
    payload: dict[str, Any]
    occurred_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


EventHandler = Callable[[InternalEvent], None]
Unsubscribe = Callable[[], None]


class EventBus:
    """Synchronous in-process publish/subscribe keyed by event name."""

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def subscribe(self, event_name: str, handler: EventHandler) -> Unsubscribe:
        self._handlers.setdefault(event_name, []).append(handler)

        def unsubscribe() -> None:
            handlers = self._handlers.get(event_name, [])
            if handler in handlers:
                handlers.remove(handler)

        return unsubscribe

    def has_subscribers(self, event_name: str) -> bool:
        return bool(self._handlers.get(event_name))

    def publish(self, event_name: str, payload: dict[str, Any]) -> InternalEvent:
        event = InternalEvent(name=event_name, payload=payload)
        # Handlers may unsubscribe while the event is being delivered.
        for handler in tuple(self._handlers.get(event_name, ())):
            handler(event)
        return event


event_bus = EventBus()
