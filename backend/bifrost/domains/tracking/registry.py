"""Marker tracking registry.

Maps external marker ids to host token ids and decides when tokens are
created, moved or removed. The host owns the tokens; the registry keeps
only their ids, plus a token-id back index so that no two markers ever
drive the same token.

Every public operation returns a ``TrackingResult``. Tracking and host
errors are reported as failures and never leave the registry in a
half-updated state.
"""

import logging
from typing import Any

from bifrost.core.clock import Clock, epoch_ms
from bifrost.domains.tracking.token_config import player_descriptor, standalone_descriptor
from bifrost.exceptions import (
    ActorNotFoundError,
    AppError,
    MarkerNotFoundError,
    StaleTokenError,
    TokenCreationDisabledError,
)
from bifrost.models.host import FLAG_SCOPE, Token
from bifrost.models.tracking import MarkerRecord, MarkerType
from bifrost.ports import HostPort
from bifrost.schemas.results import TrackingResult

logger = logging.getLogger("tracking")

TRACKING_FLAG = "aruco"


class MarkerRegistry:
    """Authoritative marker → token mapping for the active scene."""

    def __init__(
        self,
        host: HostPort,
        *,
        clock: Clock = epoch_ms,
        auto_create: bool = True,
    ) -> None:
        """Initialize the registry.

        Args:
            host: Host port used to read and mutate tokens
            clock: Millisecond clock for record timestamps
            auto_create: Whether unmapped markers may create tokens
        """
        self._host = host
        self._clock = clock
        self.auto_create = auto_create
        self._records: dict[str, MarkerRecord] = {}
        self._by_token: dict[str, str] = {}

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @property
    def tracked_count(self) -> int:
        return len(self._records)

    def get(self, marker_id: Any) -> MarkerRecord | None:
        return self._records.get(str(marker_id))

    def records(self) -> list[MarkerRecord]:
        return list(self._records.values())

    def is_tracked(self, marker_id: Any) -> bool:
        return str(marker_id) in self._records

    def marker_for_token(self, token_id: str) -> str | None:
        return self._by_token.get(token_id)

    def is_token_tracked(self, token: Token) -> bool:
        """Whether ``token`` carries a marker id that currently maps back to it."""
        marker_id = token.get_flag(FLAG_SCOPE, f"{TRACKING_FLAG}.markerId")
        if marker_id is None:
            return False
        record = self._records.get(str(marker_id))
        return record is not None and record.token_id == token.id

    # ------------------------------------------------------------------
    # Marker events
    # ------------------------------------------------------------------

    async def detect(
        self,
        marker_id: Any,
        name: str,
        x: float,
        y: float,
        marker_type: Any = MarkerType.UNKNOWN,
        metadata: dict[str, Any] | None = None,
    ) -> TrackingResult:
        """Handle a marker sighting.

        A mapped marker is treated as a position update, so repeated
        detections never create a second token. An unmapped marker gets
        a new token (or, for players, the actor's token already on the
        scene).
        """
        marker_id = str(marker_id)
        metadata = metadata or {}

        if marker_id in self._records:
            return await self.update(marker_id, x, y, metadata)

        semantic_type = MarkerType.normalize(marker_type)
        try:
            if not self.auto_create:
                raise TokenCreationDisabledError(marker_id)
            return await self._create(marker_id, name, x, y, semantic_type, metadata)
        except AppError as exc:
            logger.warning(
                "Marker detection failed",
                extra={
                    "service": "tracking",
                    "marker_id": marker_id,
                    "marker_type": semantic_type,
                    "error_code": exc.code,
                    "error": exc.message,
                },
            )
            return TrackingResult.failure(exc, marker_id=marker_id)

    async def update(
        self,
        marker_id: Any,
        x: float,
        y: float,
        metadata: dict[str, Any] | None = None,
    ) -> TrackingResult:
        """Move the token of a mapped marker.

        A record whose token has vanished from the scene is pruned and the
        update reports failure; the next detection starts over.
        """
        marker_id = str(marker_id)
        metadata = metadata or {}

        try:
            record = self._records.get(marker_id)
            if record is None:
                raise MarkerNotFoundError(marker_id)

            token = self._host.get_token(record.token_id)
            if token is None:
                self._forget(marker_id)
                logger.info(
                    "Pruned stale marker record",
                    extra={
                        "service": "tracking",
                        "marker_id": marker_id,
                        "token_id": record.token_id,
                    },
                )
                raise StaleTokenError(marker_id, record.token_id)

            changes = {"x": x, "y": y}
            for key in ("rotation", "elevation", "hidden"):
                value = metadata.get(key)
                changes[key] = getattr(token, key) if value is None else value
            await self._host.update_token(token.id, changes)

            now = self._clock()
            record.last_update = now
            await self._host.set_token_flag(token.id, f"{TRACKING_FLAG}.lastUpdate", now)
        except AppError as exc:
            logger.warning(
                "Marker update failed",
                extra={
                    "service": "tracking",
                    "marker_id": marker_id,
                    "error_code": exc.code,
                    "error": exc.message,
                },
            )
            return TrackingResult.failure(exc, marker_id=marker_id)

        logger.debug(
            "Marker position updated",
            extra={"service": "tracking", "marker_id": marker_id, "token_id": token.id},
        )
        return TrackingResult(
            success=True,
            marker_id=marker_id,
            token_id=token.id,
            token_name=token.name,
            action="position_updated",
            message=f"Updated token position to ({x}, {y})",
        )

    async def remove(self, marker_id: Any) -> TrackingResult:
        """Delete the marker's token (if still present) and forget the marker."""
        marker_id = str(marker_id)
        record = self._records.get(marker_id)
        if record is None:
            exc = MarkerNotFoundError(marker_id, f"No token tracked for marker {marker_id}")
            logger.info(
                "Nothing to remove for marker",
                extra={"service": "tracking", "marker_id": marker_id},
            )
            return TrackingResult.failure(exc, marker_id=marker_id)

        try:
            if self._host.get_token(record.token_id) is not None:
                await self._host.delete_token(record.token_id)
        except AppError as exc:
            return TrackingResult.failure(exc, marker_id=marker_id, token_id=record.token_id)
        finally:
            self._forget(marker_id)

        logger.info(
            "Marker removed",
            extra={
                "service": "tracking",
                "marker_id": marker_id,
                "token_id": record.token_id,
                "action": "token_removed",
            },
        )
        return TrackingResult(
            success=True,
            marker_id=marker_id,
            token_id=record.token_id,
            action="token_removed",
            message=f"Removed token for marker {marker_id}",
        )

    def clear(self) -> int:
        """Forget every marker; host tokens are left untouched."""
        count = len(self._records)
        self._records.clear()
        self._by_token.clear()
        logger.info("Cleared all token tracking data", extra={"service": "tracking", "count": count})
        return count

    def forget_token(self, token_id: str) -> str | None:
        """Drop the record that drives ``token_id``, if any."""
        marker_id = self._by_token.get(token_id)
        if marker_id is not None:
            self._forget(marker_id)
        return marker_id

    async def untrack_token(self, token_id: str) -> bool:
        """Stop tracking a token and strip its tracking flag; the token stays."""
        marker_id = self.forget_token(token_id)
        if self._host.get_token(token_id) is not None:
            await self._host.unset_token_flag(token_id, TRACKING_FLAG)
        if marker_id is not None:
            logger.info(
                "Token untracked",
                extra={"service": "tracking", "marker_id": marker_id, "token_id": token_id},
            )
        return marker_id is not None

    def status(self) -> list[dict[str, Any]]:
        """One entry per record, resolved against the current scene."""
        entries = []
        for record in self._records.values():
            token = self._host.get_token(record.token_id)
            flags = token.get_flag(FLAG_SCOPE, TRACKING_FLAG) if token else None
            flags = flags if isinstance(flags, dict) else {}
            entries.append(
                {
                    "markerId": record.marker_id,
                    "tokenId": record.token_id,
                    "exists": token is not None,
                    "name": token.name if token else None,
                    "type": flags.get("type", record.semantic_type),
                    "position": {"x": token.x, "y": token.y} if token else None,
                    "lastUpdate": flags.get("lastUpdate", record.last_update),
                }
            )
        return entries

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    async def _create(
        self,
        marker_id: str,
        name: str,
        x: float,
        y: float,
        semantic_type: str,
        metadata: dict[str, Any],
    ) -> TrackingResult:
        if semantic_type == MarkerType.PLAYER.value:
            token, action, message = await self._place_player(name, x, y, metadata)
        else:
            descriptor = standalone_descriptor(name, x, y, semantic_type, metadata)
            [token] = await self._host.create_tokens([descriptor])
            action = "created_standalone"
            message = f'Created standalone {semantic_type} token "{name}"'

        now = self._clock()
        self._bind(MarkerRecord(marker_id, token.id, semantic_type, now, now))
        await self._host.set_token_flag(
            token.id,
            TRACKING_FLAG,
            {
                "markerId": marker_id,
                "type": semantic_type,
                "createdAt": now,
                "lastUpdate": now,
            },
        )

        logger.info(
            "Marker mapped to token",
            extra={
                "service": "tracking",
                "marker_id": marker_id,
                "token_id": token.id,
                "marker_type": semantic_type,
                "action": action,
            },
        )
        return TrackingResult(
            success=True,
            marker_id=marker_id,
            token_id=token.id,
            token_name=token.name,
            action=action,
            message=message,
        )

    async def _place_player(
        self,
        name: str,
        x: float,
        y: float,
        metadata: dict[str, Any],
    ) -> tuple[Token, str, str]:
        actor = self._host.find_actor_by_name(name)
        if actor is None:
            raise ActorNotFoundError(name, [a.name for a in self._host.list_actors()])

        existing = next((t for t in self._host.list_tokens() if t.actor_id == actor.id), None)
        if existing is not None:
            token = await self._host.update_token(existing.id, {"x": x, "y": y})
            return token, "updated_existing", f'Updated existing token for player "{name}"'

        descriptor = player_descriptor(actor.id, actor.name, actor.prototype_token, x, y, metadata)
        [token] = await self._host.create_tokens([descriptor])
        return token, "created_player", f'Created player token for "{name}" linked to Actor'

    def _bind(self, record: MarkerRecord) -> None:
        previous = self._by_token.get(record.token_id)
        if previous is not None and previous != record.marker_id:
            self._records.pop(previous, None)
            logger.warning(
                "Token re-bound to a new marker",
                extra={
                    "service": "tracking",
                    "marker_id": record.marker_id,
                    "token_id": record.token_id,
                    "metadata": {"previous_marker_id": previous},
                },
            )
        self._records[record.marker_id] = record
        self._by_token[record.token_id] = record.marker_id

    def _forget(self, marker_id: str) -> None:
        record = self._records.pop(marker_id, None)
        if record is not None and self._by_token.get(record.token_id) == marker_id:
            del self._by_token[record.token_id]
