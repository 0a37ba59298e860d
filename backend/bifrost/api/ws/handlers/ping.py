"""Ping/pong handler for keepalive."""

import logging

from bifrost.api.ws.router import HandlerContext, HandlerGroup
from bifrost.schemas.messages import PingMessage, PongMessage

logger = logging.getLogger("ws")
handlers = HandlerGroup()


@handlers.handler("ping")
async def handle_ping(_message: PingMessage, _ctx: HandlerContext) -> PongMessage:
    """Handle ping message - respond with pong."""
    logger.debug("Ping/pong", extra={"service": "ws"})
    return PongMessage()
