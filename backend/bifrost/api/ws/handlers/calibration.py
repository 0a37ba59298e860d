"""Camera calibration handler."""

import logging
from typing import Any

from bifrost.api.ws.router import HandlerContext, HandlerGroup
from bifrost.core.clock import epoch_ms
from bifrost.schemas.messages import CalibrationUpdateMessage

logger = logging.getLogger("ws")
handlers = HandlerGroup()

CALIBRATION_KEY = "calibrationData"


@handlers.handler("calibration_update")
async def handle_calibration_update(message: CalibrationUpdateMessage, ctx: HandlerContext) -> dict[str, Any]:
    """Store the calibration payload for coordinate transformation."""
    await ctx.settings_store.set(
        CALIBRATION_KEY,
        {
            "corners": message.corners,
            "scene_bounds": message.scene_bounds,
            "updated_at": epoch_ms(),
        },
    )
    logger.info(
        "Camera calibration updated",
        extra={"service": "ws", "count": len(message.corners)},
    )
    return {"success": True, "message": "Calibration updated"}
