"""Data records used across bifrost."""

from bifrost.models.host import FLAG_SCOPE, Actor, DisplayMode, Disposition, Scene, Token
from bifrost.models.tracking import ConnectionPhase, ConnectionState, MarkerRecord, MarkerType

__all__ = [
    "FLAG_SCOPE",
    "Actor",
    "ConnectionPhase",
    "ConnectionState",
    "DisplayMode",
    "Disposition",
    "MarkerRecord",
    "MarkerType",
    "Scene",
    "Token",
]
