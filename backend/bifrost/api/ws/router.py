"""Inbound frame dispatcher for the tracker link."""

import json
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any

from pydantic import BaseModel, ValidationError

from bifrost.domains.sync.snapshot import SnapshotService
from bifrost.domains.tracking.registry import MarkerRegistry
from bifrost.exceptions import AppError, InvalidMessageError, UnknownMessageTypeError
from bifrost.logging_config import clear_request_context, set_request_context
from bifrost.ports import HostPort, SettingsStore
from bifrost.schemas.messages import inbound_adapter, to_wire

logger = logging.getLogger("ws")

SendCallback = Callable[[BaseModel | dict[str, Any]], Awaitable[bool]]
HandlerResult = BaseModel | dict[str, Any] | None


@dataclass
class HandlerContext:
    """Collaborators available to every message handler."""

    host: HostPort
    registry: MarkerRegistry
    snapshots: SnapshotService
    settings_store: SettingsStore
    send: SendCallback


# Type alias for message handlers
MessageHandler = Callable[[Any, HandlerContext], Awaitable[HandlerResult]]


class HandlerGroup:
    """Handlers declared by one module, collected by ``create_router``."""

    def __init__(self) -> None:
        self.handlers: dict[str, MessageHandler] = {}

    def handler(self, message_type: str) -> Callable[[MessageHandler], MessageHandler]:
        """Decorator to register a message handler.

        Usage:
            @handlers.handler("ping")
            async def handle_ping(message, ctx):
                ...
        """

        def decorator(func: MessageHandler) -> MessageHandler:
            self.handlers[message_type] = func
            return func

        return decorator


class MessageRouter:
    """Decodes inbound frames and routes them to handlers.

    Frames are validated against the inbound message union before a
    handler sees them. A response is returned only when the frame carried
    a correlation ``id`` (which is echoed back), except for ``pong``,
    which is always answered.
    """

    def __init__(self) -> None:
        self._handlers: dict[str, MessageHandler] = {}

    @property
    def message_types(self) -> list[str]:
        return sorted(self._handlers)

    def register(self, message_type: str, handler: MessageHandler) -> None:
        """Register a handler for a message type.

        Args:
            message_type: The message type to handle (e.g., 'marker_detected')
            handler: Async function to handle the message
        """
        self._handlers[message_type] = handler
        logger.debug(
            "Handler registered",
            extra={"service": "ws", "message_type": message_type},
        )

    def include(self, group: HandlerGroup) -> None:
        for message_type, handler in group.handlers.items():
            self.register(message_type, handler)

    async def dispatch(self, raw: str | bytes | dict[str, Any], ctx: HandlerContext) -> dict[str, Any] | None:
        """Handle one inbound frame.

        Args:
            raw: The frame as received (text, bytes or an already parsed dict)
            ctx: Handler collaborators

        Returns:
            The wire-ready response to send, or None
        """
        try:
            frame = _decode(raw)
        except InvalidMessageError as e:
            logger.error(
                "Dropped malformed frame",
                extra={"service": "ws", "error_code": e.code, "error": e.message},
            )
            return None

        correlation_id = frame.get("id")
        correlation_id = str(correlation_id) if correlation_id is not None else None
        message_type = frame.get("type")
        scene = ctx.host.active_scene()
        set_request_context(request_id=correlation_id, scene_id=scene.id if scene else None)

        try:
            response = await self._route(message_type, frame, ctx)
        finally:
            clear_request_context()

        if response is None:
            return None

        payload = to_wire(response)
        if correlation_id is not None:
            payload["id"] = correlation_id
            return payload
        if payload.get("type") == "pong":
            return payload
        return None

    async def _route(self, message_type: Any, frame: dict[str, Any], ctx: HandlerContext) -> HandlerResult:
        handler = self._handlers.get(message_type) if isinstance(message_type, str) else None
        if handler is None:
            error = UnknownMessageTypeError(message_type)
            logger.warning(
                "Unknown message type",
                extra={"service": "ws", "message_type": str(message_type)},
            )
            return error.to_result()

        try:
            message = inbound_adapter.validate_python(frame)
        except ValidationError as e:
            error = InvalidMessageError(
                f"Invalid {message_type} message: {e.error_count()} validation error(s)",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
            logger.warning(
                "Invalid message",
                extra={
                    "service": "ws",
                    "message_type": message_type,
                    "error_code": error.code,
                    "error": error.message,
                },
            )
            return error.to_result(details=error.details)

        logger.debug(
            "Routing message",
            extra={"service": "ws", "message_type": message_type},
        )

        try:
            return await handler(message, ctx)
        except AppError as e:
            logger.warning(
                "Handler rejected message",
                extra={
                    "service": "ws",
                    "message_type": message_type,
                    "error_code": e.code,
                    "error": e.message,
                },
            )
            return e.to_result()
        except Exception as e:
            logger.error(
                "Handler error",
                extra={
                    "service": "ws",
                    "message_type": message_type,
                    "error": str(e),
                },
                exc_info=True,
            )
            return {
                "success": False,
                "error": "An error occurred processing the message",
                "code": "HANDLER_ERROR",
            }


def _decode(raw: str | bytes | dict[str, Any]) -> dict[str, Any]:
    if isinstance(raw, dict):
        return raw
    try:
        frame = json.loads(raw)
    except (TypeError, ValueError, RecursionError) as e:
        raise InvalidMessageError(f"Malformed frame: {e}") from e
    if not isinstance(frame, dict):
        raise InvalidMessageError("Frame must be a JSON object")
    return frame


def create_router() -> MessageRouter:
    """Build a router with every inbound handler registered."""
    from bifrost.api.ws.handlers import calibration, markers, ping, scene, tokens

    router = MessageRouter()
    for module in (ping, markers, calibration, scene, tokens):
        router.include(module.handlers)

    logger.info(
        "Handlers registered",
        extra={"service": "ws", "count": len(router.message_types)},
    )
    return router
