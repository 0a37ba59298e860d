"""Event bus for host and engine lifecycle events.

The host adapter publishes scene/token/actor lifecycle events and the
engine subscribes to them; the engine in turn publishes its own
connection events for whoever embeds it.

Host events:
- scene.ready: a scene finished loading ({"scene_id", "scene_name"})
- token.created / token.updated / token.deleted ({"token_id", "changes"?})
- actor.changed: an actor was created, updated or deleted

Engine events:
- bifrost.connected
- bifrost.disconnected ({"code", "reason"})
- bifrost.reconnect_failed ({"attempts"})

Usage:
    bus = EventBus()

    @bus.on("token.deleted")
    async def handle_deleted(event_type, data):
        logger.info(f"Token gone: {data['token_id']}")

    await bus.emit("token.deleted", {"token_id": "abc"})
"""
from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from uuid import uuid4

logger = logging.getLogger("host")

SCENE_READY = "scene.ready"
TOKEN_CREATED = "token.created"
TOKEN_UPDATED = "token.updated"
TOKEN_DELETED = "token.deleted"
ACTOR_CHANGED = "actor.changed"

BIFROST_CONNECTED = "bifrost.connected"
BIFROST_DISCONNECTED = "bifrost.disconnected"
BIFROST_RECONNECT_FAILED = "bifrost.reconnect_failed"


class EventHandler(Protocol):
    """Protocol for async event handlers."""

    async def __call__(self, event_type: str, data: dict[str, Any]) -> None:
        ...


@dataclass
class Event:
    """Event data structure.

    Attributes:
        id: Unique event identifier
        type: Event type identifier (e.g., "token.created")
        data: Event payload
        timestamp: When the event was created
    """

    id: str = field(default_factory=lambda: str(uuid4()))
    type: str = ""
    data: dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(UTC))


class EventBus:
    """Event bus for publish-subscribe communication.

    Handler failures are logged and do not stop the remaining handlers.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, list[EventHandler]] = {}

    def on(
        self,
        event_type: str,
    ) -> Callable[[EventHandler], EventHandler]:
        """Decorator to register an event handler.

        Args:
            event_type: The event type to subscribe to

        Returns:
            Decorator function
        """
        def decorator(handler: EventHandler) -> EventHandler:
            self.subscribe(event_type, handler)
            return handler
        return decorator

    def subscribe(self, event_type: str, handler: EventHandler) -> None:
        """Register a handler for an event type."""
        self._handlers.setdefault(event_type, []).append(handler)

    def off(
        self,
        event_type: str,
        handler: EventHandler | None = None,
    ) -> None:
        """Unregister event handlers.

        Args:
            event_type: The event type
            handler: Specific handler to remove, or None to remove all
        """
        if handler is None:
            self._handlers.pop(event_type, None)
        else:
            handlers = self._handlers.get(event_type, [])
            self._handlers[event_type] = [h for h in handlers if h != handler]

    async def emit(self, event_type: str, data: dict[str, Any] | None = None) -> list[Any]:
        """Publish an event.

        Args:
            event_type: The event type identifier
            data: Event payload

        Returns:
            List of handler return values
        """
        event = Event(type=event_type, data=data or {})

        results = []
        for handler in self._handlers.get(event_type, [])[:]:
            try:
                results.append(await handler(event.type, event.data))
            except Exception as e:
                logger.error(
                    f"Event handler failed: {event_type}",
                    extra={"service": "host", "error": str(e)},
                    exc_info=e,
                )
        return results

    def get_handlers(self, event_type: str) -> list[EventHandler]:
        """Get registered handlers for an event type."""
        return self._handlers.get(event_type, [])[:]

    def clear(self) -> None:
        """Drop all handlers."""
        self._handlers.clear()
