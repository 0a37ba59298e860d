"""Host-side documents as the engine sees them.

The host application owns these objects; bifrost only reads them and
asks the host to create, update or delete them through ``HostPort``.
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any

FLAG_SCOPE = "bifrost"


class Disposition(IntEnum):
    """Token disposition toward the players."""

    SECRET = -2
    HOSTILE = -1
    NEUTRAL = 0
    FRIENDLY = 1


class DisplayMode(IntEnum):
    """When a token's name or bars are shown."""

    NONE = 0
    CONTROL = 10
    OWNER_HOVER = 20
    HOVER = 30
    OWNER = 40
    ALWAYS = 50


@dataclass
class Scene:
    id: str
    name: str
    width: int = 4000
    height: int = 3000
    grid_size: int = 100
    grid_type: int = 1


@dataclass
class Actor:
    id: str
    name: str
    type: str = "character"
    img: str | None = None
    prototype_token: dict[str, Any] = field(default_factory=dict)
    system: dict[str, Any] = field(default_factory=dict)
    ownership: dict[str, int] = field(default_factory=dict)
    item_count: int = 0
    effect_count: int = 0


@dataclass
class Token:
    """A token placed on the active scene."""

    id: str
    name: str
    x: float = 0
    y: float = 0
    width: float = 1
    height: float = 1
    rotation: float = 0
    elevation: float = 0
    hidden: bool = False
    locked: bool = False
    img: str | None = None
    scale: float = 1.0
    alpha: float = 1.0
    disposition: int = Disposition.NEUTRAL
    vision: bool = False
    sight_range: float = 0
    light_bright: float = 0
    light_dim: float = 0
    display_name: int = DisplayMode.HOVER
    display_bars: int = DisplayMode.NONE
    actor_id: str | None = None
    actor_link: bool = False
    flags: dict[str, Any] = field(default_factory=dict)
    created_time: int | None = None
    modified_time: int | None = None

    def get_flag(self, scope: str, key: str) -> Any:
        """Read a flag value; ``key`` may be dotted (``aruco.markerId``)."""
        value: Any = self.flags.get(scope)
        for part in key.split("."):
            if not isinstance(value, dict):
                return None
            value = value.get(part)
        return value

    def copy(self) -> Token:
        return copy.deepcopy(self)


# Field names a token descriptor or an update may carry.
TOKEN_FIELDS = frozenset(Token.__dataclass_fields__) - {"id", "created_time", "modified_time"}
