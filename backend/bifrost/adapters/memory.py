"""In-memory host adapter.

Implements ``HostPort`` over plain dataclasses and publishes host
lifecycle events on the shared ``EventBus``. Used by the standalone
control app and by the tests.
"""

from __future__ import annotations

import copy
import logging
from dataclasses import replace
from typing import Any
from uuid import uuid4

from bifrost.core.clock import epoch_ms
from bifrost.exceptions import SceneNotAvailableError, TokenNotFoundError
from bifrost.models.host import FLAG_SCOPE, TOKEN_FIELDS, Actor, Scene, Token
from bifrost.ports import HostPort, SettingsStore
from bifrost.services import events as host_events
from bifrost.services.events import EventBus

logger = logging.getLogger("host")


def _new_id() -> str:
    return uuid4().hex[:16]


class InMemoryHost(HostPort):
    """Single-process host with one active scene at a time."""

    def __init__(
        self,
        events: EventBus | None = None,
        version: str = "memory",
    ) -> None:
        self._events = events or EventBus()
        self._version = version
        self._scene: Scene | None = None
        self._tokens_by_scene: dict[str, dict[str, Token]] = {}
        self._actors: dict[str, Actor] = {}

    @property
    def events(self) -> EventBus:
        return self._events

    @property
    def host_version(self) -> str:
        return self._version

    # ------------------------------------------------------------------
    # Scenes
    # ------------------------------------------------------------------

    def active_scene(self) -> Scene | None:
        return self._scene

    async def activate_scene(self, scene: Scene) -> None:
        """Make ``scene`` the active one and announce it."""
        self._scene = scene
        self._tokens_by_scene.setdefault(scene.id, {})
        await self._events.emit(
            host_events.SCENE_READY,
            {"scene_id": scene.id, "scene_name": scene.name},
        )

    def _scene_tokens(self) -> dict[str, Token]:
        if self._scene is None:
            return {}
        return self._tokens_by_scene.setdefault(self._scene.id, {})

    # ------------------------------------------------------------------
    # Tokens
    # ------------------------------------------------------------------

    def list_tokens(self) -> list[Token]:
        return [token.copy() for token in self._scene_tokens().values()]

    def get_token(self, token_id: str) -> Token | None:
        token = self._scene_tokens().get(token_id)
        return token.copy() if token else None

    async def create_tokens(self, descriptors: list[dict[str, Any]]) -> list[Token]:
        if self._scene is None:
            raise SceneNotAvailableError()

        created: list[Token] = []
        for descriptor in descriptors:
            fields = copy.deepcopy({k: v for k, v in descriptor.items() if k in TOKEN_FIELDS})
            now = epoch_ms()
            token = Token(
                id=descriptor.get("id") or _new_id(),
                created_time=now,
                modified_time=now,
                **fields,
            )
            self._scene_tokens()[token.id] = token
            created.append(token.copy())

        for token in created:
            await self._events.emit(host_events.TOKEN_CREATED, {"token_id": token.id})
        return created

    async def update_token(self, token_id: str, changes: dict[str, Any]) -> Token:
        tokens = self._scene_tokens()
        token = tokens.get(token_id)
        if token is None:
            raise TokenNotFoundError(token_id)

        applied = copy.deepcopy({k: v for k, v in changes.items() if k in TOKEN_FIELDS})
        updated = replace(token, modified_time=epoch_ms(), **applied)
        tokens[token_id] = updated
        await self._events.emit(
            host_events.TOKEN_UPDATED,
            {"token_id": token_id, "changes": applied},
        )
        return updated.copy()

    async def set_token_flag(self, token_id: str, key: str, value: Any) -> None:
        token = self._scene_tokens().get(token_id)
        if token is None:
            raise TokenNotFoundError(token_id)

        node = token.flags.setdefault(FLAG_SCOPE, {})
        *parents, leaf = key.split(".")
        for part in parents:
            child = node.get(part)
            if not isinstance(child, dict):
                child = node[part] = {}
            node = child
        node[leaf] = value

    async def unset_token_flag(self, token_id: str, key: str) -> None:
        token = self._scene_tokens().get(token_id)
        if token is None:
            raise TokenNotFoundError(token_id)

        node: Any = token.flags.get(FLAG_SCOPE)
        *parents, leaf = key.split(".")
        for part in parents:
            if not isinstance(node, dict):
                return
            node = node.get(part)
        if isinstance(node, dict):
            node.pop(leaf, None)

    async def delete_token(self, token_id: str) -> None:
        if self._scene_tokens().pop(token_id, None) is None:
            return
        await self._events.emit(host_events.TOKEN_DELETED, {"token_id": token_id})

    # ------------------------------------------------------------------
    # Actors
    # ------------------------------------------------------------------

    def list_actors(self) -> list[Actor]:
        return list(self._actors.values())

    def get_actor(self, actor_id: str) -> Actor | None:
        return self._actors.get(actor_id)

    async def add_actor(self, actor: Actor) -> Actor:
        self._actors[actor.id] = actor
        await self._events.emit(host_events.ACTOR_CHANGED, {"actor_id": actor.id})
        return actor


class InMemorySettingsStore(SettingsStore):
    """Settings blob kept in a dict."""

    def __init__(self, initial: dict[str, Any] | None = None) -> None:
        self._values: dict[str, Any] = dict(initial or {})

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        logger.debug("Setting stored", extra={"service": "host", "operation": key})
