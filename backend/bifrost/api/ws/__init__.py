"""Tracker link: websocket transport and inbound dispatcher."""

from bifrost.api.ws.connection import ConnectionManager
from bifrost.api.ws.router import HandlerContext, MessageRouter, create_router

__all__ = [
    "ConnectionManager",
    "HandlerContext",
    "MessageRouter",
    "create_router",
]
