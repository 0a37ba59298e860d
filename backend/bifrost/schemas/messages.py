"""Wire message schemas for the tracking-server link.

Every frame is a JSON object with a ``type`` field. Inbound frames are
validated against a closed, discriminated union; any kind outside it is
reported as unknown rather than silently ignored. Outbound messages are
pydantic models serialised with camelCase aliases where the tracker
expects them.
"""

import json
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter
from pydantic_core import to_jsonable_python

from bifrost.core.clock import epoch_ms
from bifrost.schemas.snapshot import (
    Position,
    RemoteToken,
    SceneInfo,
    SnapshotSummary,
    TokenMappingCandidate,
    TokenSnapshot,
    WireId,
    WireModel,
)


def _or_empty(value: Any) -> Any:
    return {} if value is None else value


Metadata = Annotated[dict[str, Any], BeforeValidator(_or_empty)]


# ---------------------------------------------------------------------------
# Inbound (tracker -> bifrost)
# ---------------------------------------------------------------------------


class InboundMessage(BaseModel):
    """Base for tracker frames; unknown extra fields are ignored."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    id: WireId | None = None


class PingMessage(InboundMessage):
    type: Literal["ping"]
    timestamp: int | None = None


class MarkerDetectedMessage(InboundMessage):
    type: Literal["marker_detected"]
    marker_id: WireId
    token_name: str = ""
    x: float
    y: float
    token_type: str = "unknown"
    metadata: Metadata = Field(default_factory=dict)


class MarkerUpdatedMessage(InboundMessage):
    type: Literal["marker_updated"]
    marker_id: WireId
    x: float
    y: float
    token_name: str = ""
    token_type: str = "unknown"
    metadata: Metadata = Field(default_factory=dict)


class MarkerLostMessage(InboundMessage):
    type: Literal["marker_lost"]
    marker_id: WireId


class CalibrationUpdateMessage(InboundMessage):
    type: Literal["calibration_update"]
    corners: list[Any] = Field(default_factory=list)
    scene_bounds: dict[str, Any] | None = None


class GetSceneInfoMessage(InboundMessage):
    type: Literal["get_scene_info"]


class GetTrackedTokensMessage(InboundMessage):
    type: Literal["get_tracked_tokens"]


class ClearAllTrackingMessage(InboundMessage):
    type: Literal["clear_all_tracking"]


class QueryTokensMessage(InboundMessage):
    type: Literal["query_tokens"]
    query_type: str = Field(default="all_tokens", alias="queryType")
    parameters: Metadata = Field(default_factory=dict)


class RequestTokenListMessage(InboundMessage):
    type: Literal["request_token_list"]
    parameters: Metadata = Field(default_factory=dict)


class CompareTokenStateMessage(InboundMessage):
    type: Literal["compare_token_state"]
    tokens: list[RemoteToken] = Field(default_factory=list)


InboundFrame = Annotated[
    Union[
        PingMessage,
        MarkerDetectedMessage,
        MarkerUpdatedMessage,
        MarkerLostMessage,
        CalibrationUpdateMessage,
        GetSceneInfoMessage,
        GetTrackedTokensMessage,
        ClearAllTrackingMessage,
        QueryTokensMessage,
        RequestTokenListMessage,
        CompareTokenStateMessage,
    ],
    Field(discriminator="type"),
]

inbound_adapter: TypeAdapter[InboundFrame] = TypeAdapter(InboundFrame)

INBOUND_TYPES: frozenset[str] = frozenset(
    {
        "ping",
        "marker_detected",
        "marker_updated",
        "marker_lost",
        "calibration_update",
        "get_scene_info",
        "get_tracked_tokens",
        "clear_all_tracking",
        "query_tokens",
        "request_token_list",
        "compare_token_state",
    }
)


# ---------------------------------------------------------------------------
# Outbound (bifrost -> tracker)
# ---------------------------------------------------------------------------


class OutboundMessage(BaseModel):
    """Base for frames sent to the tracker.

    Top-level keys are snake_case; nested snapshots use camelCase.
    """

    model_config = ConfigDict(populate_by_name=True)

    type: str
    timestamp: int = Field(default_factory=epoch_ms)


class HandshakeMessage(OutboundMessage):
    type: Literal["handshake"] = "handshake"
    client: str = "bifrost"
    version: str
    host_version: str
    scene_id: str | None = None


class PingOut(OutboundMessage):
    type: Literal["ping"] = "ping"


class PongMessage(OutboundMessage):
    type: Literal["pong"] = "pong"


class SceneChangedMessage(OutboundMessage):
    type: Literal["scene_changed"] = "scene_changed"
    scene_id: str | None = None
    scene_name: str | None = None


class TokenSyncMessage(OutboundMessage):
    type: Literal["token_sync"] = "token_sync"
    token: TokenSnapshot


class TokenDeletedMessage(OutboundMessage):
    type: Literal["token_deleted"] = "token_deleted"
    token_id: str = Field(alias="tokenId")


class TokenListUpdateMessage(OutboundMessage):
    type: Literal["token_list_update"] = "token_list_update"
    scene: SceneInfo
    tokens: list[TokenSnapshot]
    summary: SnapshotSummary
    request_id: str | None = Field(default=None, alias="requestId")


class UntrackedTokensMessage(OutboundMessage):
    type: Literal["untracked_tokens"] = "untracked_tokens"
    scene_id: str | None = None
    tokens: list[TokenSnapshot]


class RequestTokenMappingMessage(OutboundMessage):
    type: Literal["request_token_mapping"] = "request_token_mapping"
    tokens: list[TokenMappingCandidate]


class StartCalibrationMessage(OutboundMessage):
    type: Literal["start_calibration"] = "start_calibration"


class AssignedToken(WireModel):
    id: str
    name: str
    position: Position


class AssignMarkerToTokenMessage(OutboundMessage):
    type: Literal["assign_marker_to_token"] = "assign_marker_to_token"
    token: AssignedToken


def to_wire(payload: BaseModel | dict[str, Any]) -> dict[str, Any]:
    """JSON-ready dict for a model or plain response dict.

    Top-level ``None`` values are dropped so optional correlation fields
    do not appear as nulls.
    """
    if isinstance(payload, BaseModel):
        data = payload.model_dump(mode="json", by_alias=True)
    else:
        data = to_jsonable_python(payload, by_alias=True, fallback=str)
    return {key: value for key, value in data.items() if value is not None}


def encode_message(payload: BaseModel | dict[str, Any]) -> str:
    return json.dumps(to_wire(payload), default=str)
