"""Scene snapshots and local/remote reconciliation.

Snapshots are a pure function of the host scene at sample time: nothing
here is cached, and every call re-reads the host. Tracking state comes
from the registry, so a token only reports ``isTracked`` while the
registry maps its marker back to it.
"""

import logging
import math
from collections import Counter
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import TypeAdapter

from bifrost.domains.tracking.registry import TRACKING_FLAG, MarkerRegistry
from bifrost.exceptions import UnknownQueryTypeError
from bifrost.models.host import FLAG_SCOPE, Disposition, Token
from bifrost.models.tracking import MarkerType
from bifrost.ports import HostPort
from bifrost.schemas.messages import (
    RequestTokenMappingMessage,
    TokenListUpdateMessage,
    TokenSyncMessage,
    UntrackedTokensMessage,
)
from bifrost.schemas.snapshot import (
    ActorSummary,
    MarkerInfo,
    Position,
    PositionMismatch,
    RemoteToken,
    SceneDimensions,
    SceneInfo,
    SnapshotOptions,
    SnapshotSummary,
    SyncComparison,
    TokenDisplay,
    TokenMappingCandidate,
    TokenProperties,
    TokenSnapshot,
    TokenVision,
    TrackingInfo,
)

logger = logging.getLogger("sync")

# Positions closer than this many scene units are considered in sync.
POSITION_TOLERANCE = 10.0

_remote_tokens = TypeAdapter(list[RemoteToken])

_PLAYER_SLOTS = (
    ("player 1", "pc1", "aruco_0"),
    ("player 2", "pc2", "aruco_1"),
    ("player 3", "pc3", "aruco_2"),
    ("player 4", "pc4", "aruco_3"),
)


class SnapshotService:
    """Builds token snapshots and compares them with the tracker's view."""

    def __init__(
        self,
        host: HostPort,
        registry: MarkerRegistry,
        tolerance: float = POSITION_TOLERANCE,
    ) -> None:
        self._host = host
        self._registry = registry
        self.tolerance = tolerance

    # ------------------------------------------------------------------
    # Classification
    # ------------------------------------------------------------------

    def classify(self, token: Token) -> str:
        """Semantic type of a token.

        Tracking flags win over the linked actor, which wins over the
        token's name.
        """
        flagged = token.get_flag(FLAG_SCOPE, f"{TRACKING_FLAG}.type")
        if flagged:
            return str(flagged)

        actor = self._host.get_actor(token.actor_id) if token.actor_id else None
        if token.actor_link and actor is not None:
            if actor.type == "character":
                return MarkerType.PLAYER.value
            if actor.type == "npc":
                if token.disposition == Disposition.FRIENDLY:
                    return "ally"
                if token.disposition == Disposition.HOSTILE:
                    return MarkerType.ENEMY.value
                return MarkerType.NPC.value
            return actor.type

        if not token.actor_id:
            name = token.name.lower()
            if "player" in name or "pc" in name:
                return MarkerType.PLAYER.value
            if "item" in name or "treasure" in name:
                return MarkerType.ITEM.value
            if token.disposition == Disposition.HOSTILE:
                return MarkerType.ENEMY.value

        return MarkerType.UNKNOWN.value

    # ------------------------------------------------------------------
    # Snapshots
    # ------------------------------------------------------------------

    def snapshot_token(self, token: Token, include_actor_data: bool = True) -> TokenSnapshot:
        marker = token.get_flag(FLAG_SCOPE, TRACKING_FLAG)
        marker = marker if isinstance(marker, dict) else None

        return TokenSnapshot(
            id=token.id,
            name=token.name,
            type=self.classify(token),
            position=Position(x=token.x, y=token.y),
            properties=TokenProperties(
                width=token.width,
                height=token.height,
                rotation=token.rotation,
                elevation=token.elevation,
                hidden=token.hidden,
                locked=token.locked,
            ),
            display=TokenDisplay(
                img=token.img,
                scale=token.scale,
                alpha=token.alpha,
                disposition=int(token.disposition),
            ),
            vision=TokenVision(
                vision=token.vision,
                bright_sight=token.sight_range,
                dim_sight=token.sight_range,
                bright_light=token.light_bright,
                dim_light=token.light_dim,
            ),
            actor=self._actor_summary(token) if include_actor_data else None,
            bifrost=TrackingInfo(
                is_tracked=self._registry.is_token_tracked(token),
                ar_uco_marker=MarkerInfo.model_validate(marker) if marker else None,
                last_update=marker.get("lastUpdate") if marker else None,
                created_by=(marker or {}).get("type") or "manual",
            ),
            flags=token.flags,
            created_time=token.created_time,
            modified_time=token.modified_time,
        )

    def snapshot(self, options: SnapshotOptions | Mapping[str, Any] | None = None) -> list[TokenSnapshot]:
        """Snapshot every token on the active scene that passes ``options``."""
        options = _coerce_options(options)
        if self._host.active_scene() is None:
            logger.warning("No active scene", extra={"service": "sync"})
            return []

        wanted = set(options.filter_types) if options.filter_types is not None else None
        snapshots = []
        for token in self._host.list_tokens():
            if token.hidden and not options.include_hidden:
                continue
            if wanted is not None and self.classify(token) not in wanted:
                continue
            snapshots.append(self.snapshot_token(token, options.include_actor_data))
        return snapshots

    def scene_info(self) -> SceneInfo:
        scene = self._host.active_scene()
        if scene is None:
            return SceneInfo()
        return SceneInfo(
            id=scene.id,
            name=scene.name,
            dimensions=SceneDimensions(
                width=scene.width,
                height=scene.height,
                grid_size=scene.grid_size,
            ),
        )

    @staticmethod
    def summary_by_type(tokens: Iterable[TokenSnapshot]) -> dict[str, int]:
        return dict(Counter(token.type for token in tokens))

    def summarize(self, tokens: list[TokenSnapshot]) -> SnapshotSummary:
        tracked = sum(1 for token in tokens if token.bifrost.is_tracked)
        return SnapshotSummary(
            total=len(tokens),
            by_type=self.summary_by_type(tokens),
            tracked=tracked,
            untracked=len(tokens) - tracked,
        )

    # ------------------------------------------------------------------
    # Outbound messages
    # ------------------------------------------------------------------

    def build_token_list(
        self,
        options: SnapshotOptions | Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ) -> TokenListUpdateMessage:
        """Full ``token_list_update`` frame for the current scene."""
        tokens = self.snapshot(options)
        return TokenListUpdateMessage(
            scene=self.scene_info(),
            tokens=tokens,
            summary=self.summarize(tokens),
            request_id=request_id,
        )

    def build_untracked(self) -> UntrackedTokensMessage:
        scene = self._host.active_scene()
        tokens = [token for token in self.snapshot() if not token.bifrost.is_tracked]
        return UntrackedTokensMessage(scene_id=scene.id if scene else None, tokens=tokens)

    def build_token_sync(self, token_id: str) -> TokenSyncMessage | None:
        token = self._host.get_token(token_id)
        if token is None:
            logger.warning("Token not found", extra={"service": "sync", "token_id": token_id})
            return None
        return TokenSyncMessage(token=self.snapshot_token(token))

    def suggest_marker_id(self, token: Token) -> str | None:
        """Marker id for the numbered player tokens; ``None`` lets the tracker choose."""
        if self.classify(token) != MarkerType.PLAYER.value:
            return None
        name = token.name.lower()
        for long_name, short_name, marker_id in _PLAYER_SLOTS:
            if long_name in name or short_name in name:
                return marker_id
        return None

    def build_mapping_request(self, token_ids: Iterable[str]) -> RequestTokenMappingMessage:
        """Ask the tracker to map markers to tokens; unknown ids are skipped."""
        candidates = []
        for token_id in token_ids:
            token = self._host.get_token(token_id)
            if token is None:
                continue
            candidates.append(
                TokenMappingCandidate(
                    id=token.id,
                    name=token.name,
                    type=self.classify(token),
                    position=Position(x=token.x, y=token.y),
                    suggested_marker_id=self.suggest_marker_id(token),
                )
            )
        return RequestTokenMappingMessage(tokens=candidates)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def handle_query(self, query_type: str, parameters: Mapping[str, Any] | None = None) -> dict[str, Any]:
        """Answer a ``query_tokens`` request.

        Raises:
            UnknownQueryTypeError: If ``query_type`` is not supported
        """
        parameters = dict(parameters or {})

        if query_type == "all_tokens":
            return {"success": True, "tokens": self.snapshot(parameters)}

        if query_type == "players_only":
            return {
                "success": True,
                "tokens": self.snapshot({"filterTypes": [MarkerType.PLAYER.value], **parameters}),
            }

        if query_type == "untracked_only":
            tokens = self.snapshot(parameters)
            return {"success": True, "tokens": [t for t in tokens if not t.bifrost.is_tracked]}

        if query_type == "by_type":
            options = {"filterTypes": parameters.get("types") or [], **parameters}
            return {"success": True, "tokens": self.snapshot(options)}

        if query_type == "token_summary":
            tokens = self.snapshot()
            scene = self.scene_info()
            return {
                "success": True,
                "summary": {
                    "total": len(tokens),
                    "byType": self.summary_by_type(tokens),
                    "tracked": sum(1 for t in tokens if t.bifrost.is_tracked),
                    "scene": {"id": scene.id, "name": scene.name},
                },
            }

        raise UnknownQueryTypeError(query_type)

    def scene_details(self) -> dict[str, Any] | None:
        """Static metadata of the active scene, or ``None`` without one."""
        scene = self._host.active_scene()
        if scene is None:
            return None
        return {
            "id": scene.id,
            "name": scene.name,
            "width": scene.width,
            "height": scene.height,
            "grid_size": scene.grid_size,
            "grid_type": scene.grid_type,
            "token_count": len(self._host.list_tokens()),
        }

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------

    def diff(self, remote_tokens: Iterable[RemoteToken | Mapping[str, Any]]) -> SyncComparison:
        """Partition local and remote tokens by id and position agreement.

        Remote duplicates collapse to their last entry, so every id lands
        in exactly one partition. Distances at or beyond the tolerance
        count as mismatches.
        """
        remote_by_id: dict[str, RemoteToken] = {}
        for remote in _remote_tokens.validate_python(list(remote_tokens)):
            remote_by_id[remote.id] = remote

        comparison = SyncComparison()
        local_ids = set()
        for local in self.snapshot():
            local_ids.add(local.id)
            remote = remote_by_id.get(local.id)
            if remote is None:
                comparison.only_local.append(local)
                continue

            distance = math.hypot(
                local.position.x - remote.position.x,
                local.position.y - remote.position.y,
            )
            if distance < self.tolerance:
                comparison.in_sync.append(local)
            else:
                comparison.position_mismatches.append(
                    PositionMismatch(
                        token=local,
                        remote_position=remote.position,
                        local_position=local.position,
                        difference=distance,
                    )
                )

        comparison.only_remote.extend(r for r in remote_by_id.values() if r.id not in local_ids)

        logger.debug(
            "Token state compared",
            extra={
                "service": "sync",
                "metadata": {
                    "only_local": len(comparison.only_local),
                    "only_remote": len(comparison.only_remote),
                    "position_mismatches": len(comparison.position_mismatches),
                    "in_sync": len(comparison.in_sync),
                },
            },
        )
        return comparison

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _actor_summary(self, token: Token) -> ActorSummary | None:
        actor = self._host.get_actor(token.actor_id) if token.actor_id else None
        if actor is None:
            return None
        return ActorSummary(
            id=actor.id,
            name=actor.name,
            type=actor.type,
            is_linked=token.actor_link,
            img=actor.img,
            system={
                "attributes": actor.system.get("attributes") or {},
                "details": actor.system.get("details") or {},
            },
            ownership=actor.ownership,
            items=actor.item_count,
            effects=actor.effect_count,
        )


def _coerce_options(options: SnapshotOptions | Mapping[str, Any] | None) -> SnapshotOptions:
    if options is None:
        return SnapshotOptions()
    if isinstance(options, SnapshotOptions):
        return options
    return SnapshotOptions.model_validate(dict(options))
