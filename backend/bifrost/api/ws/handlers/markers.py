"""Marker lifecycle handlers: detected, updated, lost."""

import logging

from bifrost.api.ws.router import HandlerContext, HandlerGroup
from bifrost.logging_config import set_request_context
from bifrost.schemas.messages import MarkerDetectedMessage, MarkerLostMessage, MarkerUpdatedMessage
from bifrost.schemas.results import TrackingResult

logger = logging.getLogger("ws")
handlers = HandlerGroup()


@handlers.handler("marker_detected")
async def handle_marker_detected(message: MarkerDetectedMessage, ctx: HandlerContext) -> TrackingResult:
    set_request_context(marker_id=message.marker_id)
    result = await ctx.registry.detect(
        message.marker_id,
        message.token_name,
        message.x,
        message.y,
        message.token_type,
        message.metadata,
    )
    logger.info(
        "Marker detected",
        extra={
            "service": "ws",
            "marker_id": message.marker_id,
            "marker_type": message.token_type,
            "action": result.action,
        },
    )
    return result


@handlers.handler("marker_updated")
async def handle_marker_updated(message: MarkerUpdatedMessage, ctx: HandlerContext) -> TrackingResult:
    """Move a known marker's token; an unknown marker is handled as a detection."""
    set_request_context(marker_id=message.marker_id)
    if not ctx.registry.is_tracked(message.marker_id):
        return await ctx.registry.detect(
            message.marker_id,
            message.token_name,
            message.x,
            message.y,
            message.token_type,
            message.metadata,
        )

    result = await ctx.registry.update(message.marker_id, message.x, message.y, message.metadata)
    logger.debug("Updated marker", extra={"service": "ws", "marker_id": message.marker_id})
    return result


@handlers.handler("marker_lost")
async def handle_marker_lost(message: MarkerLostMessage, ctx: HandlerContext) -> TrackingResult:
    set_request_context(marker_id=message.marker_id)
    result = await ctx.registry.remove(message.marker_id)
    logger.info("Marker lost", extra={"service": "ws", "marker_id": message.marker_id})
    return result
