"""Pydantic schemas for token snapshots and reconciliation results.

Snapshots are rebuilt from host state on every request and never stored.
Field names are camelCase on the wire.
"""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field
from pydantic.alias_generators import to_camel


def _as_str(value: Any) -> Any:
    if isinstance(value, int | float) and not isinstance(value, bool):
        return str(value)
    return value


# Marker and token ids arrive as strings or numbers depending on the tracker.
WireId = Annotated[str, BeforeValidator(_as_str)]


class WireModel(BaseModel):
    """Base for camelCase wire payloads."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class Position(WireModel):
    x: float
    y: float


class TokenProperties(WireModel):
    width: float
    height: float
    rotation: float
    elevation: float
    hidden: bool
    locked: bool


class TokenDisplay(WireModel):
    img: str | None = None
    scale: float = 1.0
    alpha: float = 1.0
    disposition: int = 0


class TokenVision(WireModel):
    vision: bool = False
    bright_sight: float = 0
    dim_sight: float = 0
    bright_light: float = 0
    dim_light: float = 0


class ActorSummary(WireModel):
    id: str
    name: str
    type: str
    is_linked: bool
    img: str | None = None
    system: dict[str, Any] = Field(default_factory=dict)
    ownership: dict[str, int] = Field(default_factory=dict)
    items: int = 0
    effects: int = 0


class MarkerInfo(WireModel):
    """Tracking metadata stored on a token by the registry."""

    marker_id: WireId | None = None
    type: str | None = None
    created_at: int | None = None
    last_update: int | None = None


class TrackingInfo(WireModel):
    is_tracked: bool = False
    ar_uco_marker: MarkerInfo | None = None
    last_update: int | None = None
    created_by: str = "manual"


class TokenSnapshot(WireModel):
    """Read-only projection of one host token."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: str
    name: str
    type: str
    position: Position
    properties: TokenProperties
    display: TokenDisplay
    vision: TokenVision
    actor: ActorSummary | None = None
    bifrost: TrackingInfo
    flags: dict[str, Any] = Field(default_factory=dict)
    created_time: int | None = None
    modified_time: int | None = None


class SceneDimensions(WireModel):
    width: int | None = None
    height: int | None = None
    grid_size: int | None = None


class SceneInfo(WireModel):
    id: str | None = None
    name: str | None = None
    dimensions: SceneDimensions = Field(default_factory=SceneDimensions)


class SnapshotSummary(WireModel):
    total: int
    by_type: dict[str, int]
    tracked: int
    untracked: int


class RemoteToken(WireModel):
    """Token as reported by the tracking server."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: WireId
    position: Position


class PositionMismatch(WireModel):
    token: TokenSnapshot
    remote_position: Position
    local_position: Position
    difference: float


class SyncComparison(WireModel):
    """Partition of local and remote tokens; each id lands in exactly one list."""

    only_local: list[TokenSnapshot] = Field(default_factory=list)
    only_remote: list[RemoteToken] = Field(default_factory=list)
    position_mismatches: list[PositionMismatch] = Field(default_factory=list)
    in_sync: list[TokenSnapshot] = Field(default_factory=list)


class TokenMappingCandidate(WireModel):
    id: str
    name: str
    type: str
    position: Position
    suggested_marker_id: str | None = None


class SnapshotOptions(WireModel):
    """Filters for a scene snapshot; accepts camelCase or snake_case keys."""

    include_hidden: bool = False
    filter_types: list[str] | None = None
    include_actor_data: bool = True
