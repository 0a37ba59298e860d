"""Token query, list and comparison handlers."""

import logging
from typing import Any

from bifrost.api.ws.router import HandlerContext, HandlerGroup
from bifrost.schemas.messages import CompareTokenStateMessage, QueryTokensMessage, RequestTokenListMessage

logger = logging.getLogger("ws")
handlers = HandlerGroup()


@handlers.handler("query_tokens")
async def handle_query_tokens(message: QueryTokensMessage, ctx: HandlerContext) -> dict[str, Any]:
    return ctx.snapshots.handle_query(message.query_type, message.parameters)


@handlers.handler("request_token_list")
async def handle_request_token_list(message: RequestTokenListMessage, ctx: HandlerContext) -> dict[str, Any]:
    """Push a full token list tagged with the requester's id, then acknowledge."""
    update = ctx.snapshots.build_token_list(message.parameters, request_id=message.id)
    sent = await ctx.send(update)
    logger.info(
        "Token list requested",
        extra={"service": "ws", "count": len(update.tokens), "status": "sent" if sent else "not_sent"},
    )
    return {"success": True, "message": "Token list sent"}


@handlers.handler("compare_token_state")
async def handle_compare_token_state(message: CompareTokenStateMessage, ctx: HandlerContext) -> dict[str, Any]:
    comparison = ctx.snapshots.diff(message.tokens)
    return {"success": True, "comparison": comparison}
