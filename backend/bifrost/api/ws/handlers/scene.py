"""Scene and tracking-state handlers."""

from typing import Any

from bifrost.api.ws.router import HandlerContext, HandlerGroup
from bifrost.exceptions import SceneNotAvailableError
from bifrost.schemas.messages import ClearAllTrackingMessage, GetSceneInfoMessage, GetTrackedTokensMessage

handlers = HandlerGroup()


@handlers.handler("get_scene_info")
async def handle_get_scene_info(_message: GetSceneInfoMessage, ctx: HandlerContext) -> dict[str, Any]:
    scene = ctx.snapshots.scene_details()
    if scene is None:
        raise SceneNotAvailableError()
    return {"success": True, "scene": scene}


@handlers.handler("get_tracked_tokens")
async def handle_get_tracked_tokens(_message: GetTrackedTokensMessage, ctx: HandlerContext) -> dict[str, Any]:
    return {"success": True, "tracked_tokens": ctx.registry.status()}


@handlers.handler("clear_all_tracking")
async def handle_clear_all_tracking(_message: ClearAllTrackingMessage, ctx: HandlerContext) -> dict[str, Any]:
    ctx.registry.clear()
    return {"success": True, "message": "All tracking cleared"}
