"""Bifrost engine: wires transport, dispatcher, registry and sync together.

The engine is built once and handed to whatever owns its lifecycle (the
HTTP app, a host adapter or a test). Nothing looks it up globally.
"""

import logging
from collections.abc import Iterable, Mapping
from typing import Any

from pydantic import BaseModel

from bifrost.adapters.memory import InMemoryHost, InMemorySettingsStore
from bifrost.adapters.settings_file import JsonFileSettingsStore
from bifrost.api.ws.connection import ConnectionManager, Connector
from bifrost.api.ws.router import HandlerContext, MessageRouter, create_router
from bifrost.config import Settings, get_settings
from bifrost.core.clock import Clock, epoch_ms
from bifrost.domains.sync.scheduler import AutoSyncScheduler
from bifrost.domains.sync.snapshot import SnapshotService
from bifrost.domains.tracking.registry import MarkerRegistry
from bifrost.logging_config import scene_id_var
from bifrost.models.host import Scene
from bifrost.ports import HostPort, SettingsStore
from bifrost.schemas.messages import (
    AssignedToken,
    AssignMarkerToTokenMessage,
    HandshakeMessage,
    SceneChangedMessage,
    StartCalibrationMessage,
    TokenDeletedMessage,
)
from bifrost.schemas.snapshot import Position, SnapshotOptions, TokenSnapshot
from bifrost.services import events as bus_events
from bifrost.services.events import EventBus
from bifrost.services.tasks import TaskScheduler

logger = logging.getLogger("app")

AUTO_CONNECT_TASK = "auto_connect"
SCENE_PUSH_TASK = "scene_push"

# Token changes that are worth a token_sync frame.
SYNCED_TOKEN_FIELDS = frozenset({"x", "y", "hidden", "name"})


class BifrostEngine:
    """Marker synchronization engine for one host."""

    def __init__(
        self,
        host: HostPort,
        settings: Settings,
        *,
        events: EventBus | None = None,
        settings_store: SettingsStore | None = None,
        connector: Connector | None = None,
        tasks: TaskScheduler | None = None,
        clock: Clock = epoch_ms,
    ) -> None:
        self.settings = settings
        self.host = host
        self.events = events or EventBus()
        self.settings_store = settings_store or InMemorySettingsStore()
        self.tasks = tasks or TaskScheduler()

        self.registry = MarkerRegistry(host, clock=clock, auto_create=settings.auto_create_tokens)
        self.snapshots = SnapshotService(host, self.registry)
        self.router: MessageRouter = create_router()
        self.context = HandlerContext(
            host=host,
            registry=self.registry,
            snapshots=self.snapshots,
            settings_store=self.settings_store,
            send=self.send,
        )
        self.connection = ConnectionManager(
            settings.websocket_url,
            self.tasks,
            on_frame=self._on_frame,
            handshake=self._handshake,
            events=self.events,
            on_teardown=self.registry.clear,
            connector=connector,
            connect_timeout=settings.connect_timeout_seconds,
            reconnect_base_delay=settings.reconnect_base_delay_seconds,
            max_reconnect_attempts=settings.max_reconnect_attempts,
            auto_heartbeat=settings.auto_heartbeat,
            heartbeat_interval=settings.heartbeat_interval_seconds,
            clock=clock,
        )
        self.auto_sync = AutoSyncScheduler(
            self.tasks,
            is_connected=lambda: self.connection.is_connected,
            push=self.sync_tokens,
            default_interval=settings.auto_sync_interval_seconds,
        )

        self.initialized = True
        self.ready = False
        self._subscriptions = (
            (bus_events.SCENE_READY, self._on_scene_ready),
            (bus_events.TOKEN_CREATED, self._on_token_created),
            (bus_events.TOKEN_UPDATED, self._on_token_updated),
            (bus_events.TOKEN_DELETED, self._on_token_deleted),
        )

    @property
    def is_connected(self) -> bool:
        return self.connection.is_connected

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Subscribe to host events and schedule the auto-connect."""
        if self.ready:
            logger.warning("Engine already started", extra={"service": "app"})
            return

        for event_type, handler in self._subscriptions:
            self.events.subscribe(event_type, handler)

        if self.settings.auto_connect:
            self.tasks.after(
                AUTO_CONNECT_TASK,
                self.settings.auto_connect_delay_seconds,
                self._auto_connect,
            )

        self.ready = True
        logger.info(
            "Engine started",
            extra={"service": "app", "metadata": {"auto_connect": self.settings.auto_connect}},
        )

    async def shutdown(self) -> None:
        """Stop auto-sync, disconnect and forget all tracking."""
        logger.info("Shutting down engine", extra={"service": "app"})
        self.auto_sync.stop()
        await self.connection.disconnect()
        self.registry.clear()
        await self.tasks.cancel_all()

        for event_type, handler in self._subscriptions:
            self.events.off(event_type, handler)
        self.ready = False
        logger.info("Engine shutdown complete", extra={"service": "app"})

    async def _auto_connect(self) -> None:
        await self.connect()

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        return await self.connection.connect()

    async def disconnect(self) -> None:
        await self.connection.disconnect()

    async def send(self, message: BaseModel | dict[str, Any]) -> bool:
        return await self.connection.send(message)

    def status(self) -> dict[str, Any]:
        return {
            "initialized": self.initialized,
            "ready": self.ready,
            "websocket": self.connection.status(),
            "tokenManager": {"trackedTokens": self.registry.tracked_count},
            "autoSync": {"running": self.auto_sync.running, "interval": self.auto_sync.interval},
            "config": self.settings.public_summary(),
        }

    # ------------------------------------------------------------------
    # Outbound sync
    # ------------------------------------------------------------------

    def get_tokens(self, options: SnapshotOptions | Mapping[str, Any] | None = None) -> list[TokenSnapshot]:
        return self.snapshots.snapshot(options)

    async def sync_tokens(
        self,
        options: SnapshotOptions | Mapping[str, Any] | None = None,
        request_id: str | None = None,
    ) -> bool:
        """Push a full ``token_list_update``."""
        message = self.snapshots.build_token_list(options, request_id=request_id)
        sent = await self.send(message)
        if sent:
            logger.info(
                "Sent token list to Heimdall",
                extra={"service": "sync", "count": len(message.tokens)},
            )
        return sent

    async def sync_players(self) -> bool:
        return await self.sync_tokens(SnapshotOptions(filter_types=["player"], include_hidden=False))

    async def send_untracked_tokens(self) -> bool:
        return await self.send(self.snapshots.build_untracked())

    async def request_token_mapping(self, token_ids: Iterable[str]) -> bool:
        return await self.send(self.snapshots.build_mapping_request(token_ids))

    async def sync_token(self, token_id: str) -> bool:
        message = self.snapshots.build_token_sync(token_id)
        if message is None:
            return False
        return await self.send(message)

    async def start_calibration(self) -> bool:
        return await self.send(StartCalibrationMessage())

    async def assign_marker_to_token(self, token_id: str) -> bool:
        """Ask the tracker to bind a marker to an existing token."""
        token = self.host.get_token(token_id)
        if token is None:
            logger.warning("Token not found", extra={"service": "sync", "token_id": token_id})
            return False
        return await self.send(
            AssignMarkerToTokenMessage(
                token=AssignedToken(id=token.id, name=token.name, position=Position(x=token.x, y=token.y))
            )
        )

    def start_auto_sync(self, interval: float | None = None) -> float:
        return self.auto_sync.start(interval)

    def stop_auto_sync(self) -> bool:
        return self.auto_sync.stop()

    # ------------------------------------------------------------------
    # Tracking
    # ------------------------------------------------------------------

    def clear_tracking(self) -> int:
        return self.registry.clear()

    async def untrack_token(self, token_id: str) -> bool:
        return await self.registry.untrack_token(token_id)

    def calibration_data(self) -> dict[str, Any]:
        return self.settings_store.get("calibrationData", {}) or {}

    # ------------------------------------------------------------------
    # Wiring
    # ------------------------------------------------------------------

    async def _on_frame(self, raw: str | bytes) -> dict[str, Any] | None:
        return await self.router.dispatch(raw, self.context)

    def _handshake(self) -> HandshakeMessage:
        scene = self.host.active_scene()
        return HandshakeMessage(
            version=self.settings.client_version,
            host_version=self.host.host_version,
            scene_id=scene.id if scene else None,
        )

    def _live(self) -> bool:
        return self.ready and self.connection.is_connected

    async def _on_scene_ready(self, _event_type: str, data: dict[str, Any]) -> None:
        scene: Scene | None = self.host.active_scene()
        scene_id = scene.id if scene else data.get("scene_id")
        context = scene_id_var.set(scene_id)
        try:
            logger.info("Scene ready", extra={"service": "app"})
            self.registry.clear()
            if self._live():
                await self._announce_scene(scene, data)
        finally:
            scene_id_var.reset(context)

    async def _announce_scene(self, scene: Scene | None, data: dict[str, Any]) -> None:
        await self.send(
            SceneChangedMessage(
                scene_id=scene.id if scene else data.get("scene_id"),
                scene_name=scene.name if scene else data.get("scene_name"),
            )
        )
        self.tasks.after(
            SCENE_PUSH_TASK,
            self.settings.scene_change_sync_delay_seconds,
            self._push_after_scene_change,
        )

    async def _push_after_scene_change(self) -> None:
        await self.sync_tokens()

    async def _on_token_created(self, _event_type: str, data: dict[str, Any]) -> None:
        if self._live():
            await self.sync_token(data["token_id"])

    async def _on_token_updated(self, _event_type: str, data: dict[str, Any]) -> None:
        if not self._live():
            return
        changes = data.get("changes") or {}
        if SYNCED_TOKEN_FIELDS.intersection(changes):
            await self.sync_token(data["token_id"])

    async def _on_token_deleted(self, _event_type: str, data: dict[str, Any]) -> None:
        token_id = data["token_id"]
        self.registry.forget_token(token_id)
        if self._live():
            await self.send(TokenDeletedMessage(token_id=token_id))


def build_engine(
    settings: Settings | None = None,
    host: HostPort | None = None,
    *,
    events: EventBus | None = None,
    connector: Connector | None = None,
) -> BifrostEngine:
    """Build an engine from settings.

    Without a host, an ``InMemoryHost`` sharing the engine's event bus is
    used. The settings blob is file-backed when ``settings_file`` is set.
    """
    settings = settings or get_settings()
    if host is None:
        events = events or EventBus()
        host = InMemoryHost(events)
    elif events is None:
        events = getattr(host, "events", None) or EventBus()

    store: SettingsStore
    if settings.settings_file is not None:
        store = JsonFileSettingsStore(settings.settings_file)
    else:
        store = InMemorySettingsStore()

    return BifrostEngine(host, settings, events=events, settings_store=store, connector=connector)
