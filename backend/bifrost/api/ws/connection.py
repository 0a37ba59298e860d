"""Client connection to the Heimdall tracking server.

Owns the single websocket, its receive loop, the heartbeat and the
reconnection sequence. Inbound frames are handed to ``on_frame`` one at a
time in arrival order; whatever it returns is sent back.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any

import websockets
from pydantic import BaseModel
from websockets.exceptions import ConnectionClosed

from bifrost.core.clock import Clock, epoch_ms
from bifrost.models.tracking import ConnectionPhase, ConnectionState
from bifrost.schemas.messages import PingOut, encode_message
from bifrost.services import events as bus_events
from bifrost.services.events import EventBus
from bifrost.services.tasks import TaskScheduler

logger = logging.getLogger("ws")

NORMAL_CLOSURE = 1000
INTENTIONAL_DISCONNECT = "Intentional disconnect"
INTERNAL_ERROR = 1011
RECEIVE_STOPPED = "Receive loop stopped"

HEARTBEAT_TASK = "heartbeat"
RECONNECT_TASK = "reconnect"
RECEIVE_TASK = "receive"

# Opens a socket for a URL; the default is ``websockets.connect``.
Connector = Callable[[str], Awaitable[Any]]
FrameHandler = Callable[[str | bytes], Awaitable[dict[str, Any] | None]]
HandshakeFactory = Callable[[], BaseModel | dict[str, Any]]


def _default_connector(url: str) -> Awaitable[Any]:
    # Heartbeats are application-level pings; protocol pings stay off.
    return websockets.connect(url, ping_interval=None)


class ConnectionManager:
    """Manages the tracker websocket."""

    def __init__(
        self,
        url: str,
        tasks: TaskScheduler,
        on_frame: FrameHandler,
        handshake: HandshakeFactory,
        *,
        events: EventBus | None = None,
        on_teardown: Callable[[], Any] | None = None,
        connector: Connector | None = None,
        connect_timeout: float = 10.0,
        reconnect_base_delay: float = 5.0,
        max_reconnect_attempts: int = 5,
        auto_heartbeat: bool = True,
        heartbeat_interval: float = 30.0,
        clock: Clock = epoch_ms,
    ) -> None:
        self.url = url
        self.state = ConnectionState()
        self._tasks = tasks
        self._on_frame = on_frame
        self._handshake = handshake
        self._events = events or EventBus()
        self._on_teardown = on_teardown
        self._connector = connector or _default_connector
        self.connect_timeout = connect_timeout
        self.reconnect_base_delay = reconnect_base_delay
        self.max_reconnect_attempts = max_reconnect_attempts
        self.auto_heartbeat = auto_heartbeat
        self.heartbeat_interval = heartbeat_interval
        self._clock = clock
        self._ws: Any = None
        self._lock = asyncio.Lock()

    @property
    def is_connected(self) -> bool:
        return self._ws is not None and self.state.is_connected

    def reconnect_delay(self, attempt: int) -> float:
        """Seconds to wait before reconnection attempt ``attempt`` (linear)."""
        return self.reconnect_base_delay * attempt

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def connect(self) -> bool:
        """Open the socket; True once it is open, False on timeout or error.

        An explicit connect starts a fresh reconnection budget.
        """
        if self.is_connected:
            logger.info("Already connected to Heimdall", extra={"service": "ws", "url": self.url})
            return True

        self._tasks.cancel(RECONNECT_TASK)
        self.state.attempt_count = 0
        self.state.gave_up = False

        if await self._open():
            return True
        await self._after_failed_attempt()
        return False

    async def disconnect(self) -> None:
        """Close deliberately; no reconnection follows."""
        self._tasks.cancel(RECONNECT_TASK)
        self._tasks.cancel(HEARTBEAT_TASK)

        ws, self._ws = self._ws, None
        self.state.phase = ConnectionPhase.DISCONNECTED

        if ws is not None:
            try:
                await ws.close(code=NORMAL_CLOSURE, reason=INTENTIONAL_DISCONNECT)
            except Exception as e:
                logger.warning(
                    "Error closing socket",
                    extra={"service": "ws", "error": str(e)},
                )
            self._tasks.cancel(RECEIVE_TASK)
            self.state.last_close_code = NORMAL_CLOSURE
            self.state.last_close_reason = INTENTIONAL_DISCONNECT

        if self._on_teardown is not None:
            self._on_teardown()

        logger.info("Disconnected from Heimdall", extra={"service": "ws", "url": self.url})

        if ws is not None:
            await self._events.emit(
                bus_events.BIFROST_DISCONNECTED,
                {"code": NORMAL_CLOSURE, "reason": INTENTIONAL_DISCONNECT},
            )

    async def send(self, message: BaseModel | dict[str, Any]) -> bool:
        """Serialize and send one frame. Never raises."""
        ws = self._ws
        message_type = _message_type(message)
        if ws is None or not self.state.is_connected:
            logger.warning(
                "Cannot send message: not connected",
                extra={"service": "ws", "message_type": message_type},
            )
            return False

        try:
            await ws.send(encode_message(message))
        except Exception as e:
            logger.error(
                "Failed to send message",
                extra={"service": "ws", "message_type": message_type, "error": str(e)},
            )
            return False

        logger.debug("Sent message", extra={"service": "ws", "message_type": message_type})
        return True

    def status(self) -> dict[str, Any]:
        return {
            "connected": self.is_connected,
            "url": self.url,
            "reconnect_attempts": self.state.attempt_count,
            "phase": self.state.phase.value,
            "socket_state": _socket_state(self._ws),
        }

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def _open(self) -> bool:
        async with self._lock:
            if self.is_connected:
                return True

            if self.state.phase is not ConnectionPhase.RECONNECTING:
                self.state.phase = ConnectionPhase.CONNECTING
            self.state.last_attempt_at = self._clock()
            logger.info(
                "Attempting to connect to Heimdall",
                extra={"service": "ws", "url": self.url, "attempt": self.state.attempt_count},
            )

            try:
                ws = await asyncio.wait_for(self._connector(self.url), timeout=self.connect_timeout)
            except TimeoutError:
                logger.warning(
                    "Connection timeout",
                    extra={"service": "ws", "url": self.url, "duration_ms": int(self.connect_timeout * 1000)},
                )
                self.state.phase = ConnectionPhase.DISCONNECTED
                return False
            except Exception as e:
                logger.error(
                    "Connection failed",
                    extra={"service": "ws", "url": self.url, "error": str(e)},
                )
                self.state.phase = ConnectionPhase.DISCONNECTED
                return False

            self._ws = ws
            self.state.phase = ConnectionPhase.CONNECTED
            self.state.attempt_count = 0
            self.state.gave_up = False

        logger.info("Connected to Heimdall successfully", extra={"service": "ws", "url": self.url})
        self._tasks.spawn(RECEIVE_TASK, self._receive_loop(ws))
        await self.send(self._handshake())
        if self.auto_heartbeat:
            self._tasks.every(HEARTBEAT_TASK, self.heartbeat_interval, self._heartbeat)
        await self._events.emit(bus_events.BIFROST_CONNECTED, {"url": self.url})
        return True

    async def _receive_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                try:
                    response = await self._on_frame(raw)
                except Exception as e:
                    logger.error(
                        "Failed to handle inbound frame",
                        extra={"service": "ws", "error": str(e)},
                        exc_info=e,
                    )
                    continue
                if response is not None:
                    await self.send(response)
        except ConnectionClosed:
            pass
        finally:
            if self._ws is ws:
                await self._handle_close(ws)

    async def _handle_close(self, ws: Any) -> None:
        code = getattr(ws, "close_code", None)
        reason = getattr(ws, "close_reason", None) or ""

        self._ws = None
        if code is None:
            # Receive loop ended while the socket is still open.
            try:
                await ws.close(code=INTERNAL_ERROR, reason=RECEIVE_STOPPED)
            except Exception as e:
                logger.warning(
                    "Error closing socket",
                    extra={"service": "ws", "error": str(e)},
                )
        self.state.phase = ConnectionPhase.DISCONNECTED
        self.state.last_close_code = code
        self.state.last_close_reason = reason
        self._tasks.cancel(HEARTBEAT_TASK)

        logger.warning(
            "Connection closed",
            extra={"service": "ws", "close_code": code, "close_reason": reason},
        )
        await self._events.emit(bus_events.BIFROST_DISCONNECTED, {"code": code, "reason": reason})

        if code != NORMAL_CLOSURE and self.state.attempt_count < self.max_reconnect_attempts:
            self._schedule_reconnect()

    async def _heartbeat(self) -> None:
        await self.send(PingOut())

    # ------------------------------------------------------------------
    # Reconnection
    # ------------------------------------------------------------------

    def _schedule_reconnect(self) -> None:
        self.state.attempt_count += 1
        self.state.phase = ConnectionPhase.RECONNECTING
        delay = self.reconnect_delay(self.state.attempt_count)

        logger.info(
            "Attempting reconnection",
            extra={
                "service": "ws",
                "attempt": self.state.attempt_count,
                "max_attempts": self.max_reconnect_attempts,
                "delay_ms": int(delay * 1000),
            },
        )
        self._tasks.after(RECONNECT_TASK, delay, self._reconnect)

    async def _reconnect(self) -> None:
        if await self._open():
            return
        await self._after_failed_attempt()

    async def _after_failed_attempt(self) -> None:
        if self.state.attempt_count < self.max_reconnect_attempts:
            self._schedule_reconnect()
            return

        self.state.gave_up = True
        self.state.phase = ConnectionPhase.DISCONNECTED
        logger.error(
            "Max reconnection attempts reached",
            extra={
                "service": "ws",
                "attempt": self.state.attempt_count,
                "max_attempts": self.max_reconnect_attempts,
            },
        )
        await self._events.emit(
            bus_events.BIFROST_RECONNECT_FAILED,
            {"attempts": self.state.attempt_count},
        )


def _message_type(message: BaseModel | dict[str, Any]) -> str | None:
    value = message.get("type") if isinstance(message, dict) else getattr(message, "type", None)
    return str(value) if value is not None else None


def _socket_state(ws: Any) -> str | None:
    if ws is None:
        return None
    state = getattr(ws, "state", None)
    if isinstance(state, Enum):
        return state.name.lower()
    return str(state) if state is not None else None
