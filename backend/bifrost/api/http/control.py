"""Local control API for the bifrost engine.

Exposes connect/disconnect/status, raw sends, token syncs, auto-sync
and tracking controls to whatever hosts the engine.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, ConfigDict, Field

from bifrost.api.http.dependencies import get_engine
from bifrost.core.engine import BifrostEngine
from bifrost.schemas.snapshot import SnapshotOptions

router = APIRouter(prefix="/api/v1/bifrost", tags=["bifrost"])


class SendRequest(BaseModel):
    """Arbitrary outbound frame; ``type`` is required."""

    model_config = ConfigDict(extra="allow")

    type: str


class SyncRequest(BaseModel):
    include_hidden: bool = False
    filter_types: list[str] | None = None


class MappingRequest(BaseModel):
    token_ids: list[str] = Field(min_length=1)


class AutoSyncRequest(BaseModel):
    interval_seconds: float | None = Field(default=None, gt=0)


class SentResponse(BaseModel):
    sent: bool


# =============================================================================
# Connection
# =============================================================================


@router.get("/status")
async def get_status(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    return engine.status()


@router.post("/connect")
async def connect(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    connected = await engine.connect()
    return {"connected": connected, "websocket": engine.connection.status()}


@router.post("/disconnect")
async def disconnect(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    await engine.disconnect()
    return {"connected": False, "websocket": engine.connection.status()}


@router.post("/send", response_model=SentResponse)
async def send(
    request: SendRequest,
    engine: BifrostEngine = Depends(get_engine),
) -> SentResponse:
    """Send a raw frame to Heimdall."""
    sent = await engine.send(request.model_dump())
    return SentResponse(sent=sent)


# =============================================================================
# Token sync
# =============================================================================


@router.post("/sync", response_model=SentResponse)
async def sync_tokens(
    request: SyncRequest | None = None,
    engine: BifrostEngine = Depends(get_engine),
) -> SentResponse:
    request = request or SyncRequest()
    options = SnapshotOptions(include_hidden=request.include_hidden, filter_types=request.filter_types)
    return SentResponse(sent=await engine.sync_tokens(options))


@router.post("/sync/players", response_model=SentResponse)
async def sync_players(engine: BifrostEngine = Depends(get_engine)) -> SentResponse:
    return SentResponse(sent=await engine.sync_players())


@router.post("/sync/untracked", response_model=SentResponse)
async def sync_untracked(engine: BifrostEngine = Depends(get_engine)) -> SentResponse:
    return SentResponse(sent=await engine.send_untracked_tokens())


@router.post("/sync/mapping", response_model=SentResponse)
async def request_token_mapping(
    request: MappingRequest,
    engine: BifrostEngine = Depends(get_engine),
) -> SentResponse:
    return SentResponse(sent=await engine.request_token_mapping(request.token_ids))


@router.get("/tokens")
async def get_tokens(
    include_hidden: bool = False,
    types: list[str] | None = Query(default=None),
    engine: BifrostEngine = Depends(get_engine),
) -> dict[str, Any]:
    """Snapshot of the active scene's tokens."""
    tokens = engine.get_tokens(SnapshotOptions(include_hidden=include_hidden, filter_types=types))
    return {
        "tokens": [token.model_dump(mode="json", by_alias=True) for token in tokens],
        "summary": engine.snapshots.summarize(tokens).model_dump(mode="json", by_alias=True),
    }


def _require_token(engine: BifrostEngine, token_id: str) -> None:
    if engine.host.get_token(token_id) is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Token {token_id} not found",
        )


@router.post("/tokens/{token_id}/sync", response_model=SentResponse)
async def sync_token(token_id: str, engine: BifrostEngine = Depends(get_engine)) -> SentResponse:
    _require_token(engine, token_id)
    return SentResponse(sent=await engine.sync_token(token_id))


@router.post("/tokens/{token_id}/assign-marker", response_model=SentResponse)
async def assign_marker(token_id: str, engine: BifrostEngine = Depends(get_engine)) -> SentResponse:
    _require_token(engine, token_id)
    return SentResponse(sent=await engine.assign_marker_to_token(token_id))


@router.post("/tokens/{token_id}/untrack")
async def untrack_token(token_id: str, engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    _require_token(engine, token_id)
    return {"untracked": await engine.untrack_token(token_id)}


# =============================================================================
# Tracking
# =============================================================================


@router.get("/tracking")
async def get_tracking(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    tracked = engine.registry.status()
    return {"tracked_tokens": tracked, "count": len(tracked)}


@router.post("/tracking/clear")
async def clear_tracking(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    return {"cleared": engine.clear_tracking()}


# =============================================================================
# Auto-sync and calibration
# =============================================================================


@router.post("/auto-sync/start")
async def start_auto_sync(
    request: AutoSyncRequest | None = None,
    engine: BifrostEngine = Depends(get_engine),
) -> dict[str, Any]:
    interval = engine.start_auto_sync(request.interval_seconds if request else None)
    return {"running": True, "interval_seconds": interval}


@router.post("/auto-sync/stop")
async def stop_auto_sync(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    engine.stop_auto_sync()
    return {"running": False}


@router.post("/calibration/start", response_model=SentResponse)
async def start_calibration(engine: BifrostEngine = Depends(get_engine)) -> SentResponse:
    return SentResponse(sent=await engine.start_calibration())


@router.get("/calibration")
async def get_calibration(engine: BifrostEngine = Depends(get_engine)) -> dict[str, Any]:
    return {"calibration": engine.calibration_data()}
