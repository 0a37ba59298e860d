"""Custom exceptions for bifrost.

Errors carry a machine-readable code so the registry and the protocol
dispatcher can turn them into structured failure results.

Exception Hierarchy:
- AppError (base)
  ├── ProtocolError
  │   ├── InvalidMessageError
  │   └── UnknownMessageTypeError
  ├── TrackingError
  │   ├── ActorNotFoundError
  │   ├── MarkerNotFoundError
  │   ├── StaleTokenError
  │   └── TokenCreationDisabledError
  ├── TransportError
  │   ├── NotConnectedError
  │   └── ConnectTimeoutError
  └── HostError
      ├── TokenNotFoundError
      └── SceneNotAvailableError

Usage:
    try:
        await registry.update_marker(marker_id, x, y)
    except MarkerNotFoundError as e:
        return e.to_result()
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


class AppError(Exception):
    """Base exception for bifrost errors.

    Attributes:
        code: Machine-readable error code
        message: Human-readable error message
        details: Additional context for debugging
        retryable: Whether the operation can be retried
        timestamp: When the error occurred
    """

    code: str = "APP_ERROR"
    message: str = "An unexpected error occurred"
    retryable: bool = False

    def __init__(
        self,
        message: str | None = None,
        details: dict[str, Any] | None = None,
        retryable: bool | None = None,
    ) -> None:
        """Initialize error with optional message and details."""
        self.message = message or self.message
        self.details = details or {}
        self.retryable = type(self).retryable if retryable is None else retryable
        self.timestamp = datetime.now(UTC)
        super().__init__(self.message)

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for JSON serialization."""
        return {
            "error": {
                "code": self.code,
                "message": self.message,
                "details": self.details,
                "retryable": self.retryable,
                "timestamp": self.timestamp.isoformat(),
            }
        }

    def to_result(self, **extra: Any) -> dict[str, Any]:
        """Flat failure result as sent over the wire."""
        result: dict[str, Any] = {"success": False, "error": self.message, "code": self.code}
        result.update(extra)
        return result

    def __str__(self) -> str:
        """String representation with code."""
        return f"[{self.code}] {self.message}"


# =============================================================================
# Protocol
# =============================================================================


class ProtocolError(AppError):
    """Base exception for wire protocol faults."""

    code = "PROTOCOL_ERROR"
    message = "Protocol error"


class InvalidMessageError(ProtocolError):
    """Raised when an inbound frame cannot be decoded or validated."""

    code = "INVALID_MESSAGE"
    message = "Invalid message"


class UnknownMessageTypeError(ProtocolError):
    """Raised when an inbound frame names a kind nobody handles."""

    code = "UNKNOWN_MESSAGE_TYPE"

    def __init__(self, message_type: Any) -> None:
        self.message_type = message_type
        super().__init__(
            message=f"Unknown message type: {message_type}",
            details={"message_type": message_type},
        )


class UnknownQueryTypeError(ProtocolError):
    """Raised when ``query_tokens`` names an unsupported query."""

    code = "UNKNOWN_QUERY_TYPE"

    def __init__(self, query_type: Any) -> None:
        self.query_type = query_type
        super().__init__(
            message=f"Unknown query type: {query_type}",
            details={"query_type": query_type},
        )


# =============================================================================
# Tracking
# =============================================================================


class TrackingError(AppError):
    """Base exception for marker tracking faults."""

    code = "TRACKING_ERROR"
    message = "Tracking error"


class ActorNotFoundError(TrackingError):
    """Raised when a player marker names an actor that does not exist.

    Attributes:
        name: The name that failed to match
        candidates: Names of the actors that do exist
    """

    code = "ACTOR_NOT_FOUND"

    def __init__(self, name: str, candidates: list[str]) -> None:
        self.name = name
        self.candidates = candidates
        super().__init__(
            message=(
                f'Player Actor "{name}" not found. '
                f"Available actors: {', '.join(candidates)}"
            ),
            details={"name": name, "candidates": candidates},
        )


class MarkerNotFoundError(TrackingError):
    """Raised when an operation targets a marker that is not mapped."""

    code = "MARKER_NOT_FOUND"

    def __init__(self, marker_id: str, message: str | None = None) -> None:
        self.marker_id = marker_id
        super().__init__(
            message=message or f"No such marker: {marker_id}",
            details={"marker_id": marker_id},
        )


class StaleTokenError(TrackingError):
    """Raised when a mapped token was deleted behind the registry's back."""

    code = "STALE_TOKEN"
    retryable = True

    def __init__(self, marker_id: str, token_id: str) -> None:
        self.marker_id = marker_id
        self.token_id = token_id
        super().__init__(
            message=f"Token {token_id} no longer exists",
            details={"marker_id": marker_id, "token_id": token_id},
            retryable=True,
        )


class TokenCreationDisabledError(TrackingError):
    """Raised when an unmapped marker arrives with auto-create turned off."""

    code = "TOKEN_CREATION_DISABLED"

    def __init__(self, marker_id: str) -> None:
        self.marker_id = marker_id
        super().__init__(
            message=f"Automatic token creation is disabled; marker {marker_id} left unmapped",
            details={"marker_id": marker_id},
        )


# =============================================================================
# Transport
# =============================================================================


class TransportError(AppError):
    """Base exception for socket level faults."""

    code = "TRANSPORT_ERROR"
    message = "Transport error"
    retryable = True


class NotConnectedError(TransportError):
    """Raised when sending without an open connection."""

    code = "NOT_CONNECTED"
    message = "Not connected to Heimdall"


class ConnectTimeoutError(TransportError):
    """Raised when the socket does not open in time."""

    code = "CONNECT_TIMEOUT"

    def __init__(self, url: str, timeout: float) -> None:
        super().__init__(
            message=f"Connection to {url} timed out after {timeout:g}s",
            details={"url": url, "timeout": timeout},
            retryable=True,
        )


# =============================================================================
# Host
# =============================================================================


class HostError(AppError):
    """Base exception for host collaborator faults."""

    code = "HOST_ERROR"
    message = "Host error"


class TokenNotFoundError(HostError):
    """Raised when the host has no token with the given id."""

    code = "TOKEN_NOT_FOUND"

    def __init__(self, token_id: str) -> None:
        self.token_id = token_id
        super().__init__(
            message=f"Token {token_id} not found",
            details={"token_id": token_id},
        )


class SceneNotAvailableError(HostError):
    """Raised when an operation needs an active scene and there is none."""

    code = "NO_ACTIVE_SCENE"
    message = "No active scene"
