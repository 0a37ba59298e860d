"""Marker tracking and connection state records."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any


class MarkerType(str, Enum):
    """Semantic type announced for a physical marker."""

    PLAYER = "player"
    ENEMY = "enemy"
    ITEM = "item"
    NPC = "npc"
    UNKNOWN = "unknown"
    CUSTOM = "custom"
    CORNER = "corner"

    @classmethod
    def normalize(cls, value: Any) -> str:
        """Lower-cased type string; missing values become ``unknown``."""
        if value is None:
            return cls.UNKNOWN.value
        text = str(value.value if isinstance(value, Enum) else value).strip().lower()
        return text or cls.UNKNOWN.value


@dataclass
class MarkerRecord:
    """Mapping of one marker to the token it drives.

    The token itself belongs to the host; the record only keeps its id.
    """

    marker_id: str
    token_id: str
    semantic_type: str
    created_at: int
    last_update: int


class ConnectionPhase(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RECONNECTING = "reconnecting"


@dataclass
class ConnectionState:
    """Transport bookkeeping; one instance per connection manager."""

    phase: ConnectionPhase = ConnectionPhase.DISCONNECTED
    attempt_count: int = 0
    last_attempt_at: int | None = None
    last_close_code: int | None = None
    last_close_reason: str | None = None
    gave_up: bool = False

    @property
    def is_connected(self) -> bool:
        return self.phase is ConnectionPhase.CONNECTED
