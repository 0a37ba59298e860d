"""Port interfaces for the host application.

The engine never touches host documents directly; it reads the active
scene through ``HostPort`` and asks the host to mutate it. Persisted
configuration (calibration data) lives behind ``SettingsStore``.
"""

from abc import ABC, abstractmethod
from typing import Any

from bifrost.models.host import Actor, Scene, Token


class HostPort(ABC):
    """Host scene, token and actor access.

    Reads reflect the host's current state and may change between calls;
    callers must not hold on to returned objects as if they were live.
    """

    @property
    def host_version(self) -> str:
        """Version string of the host application."""
        return "unknown"

    @abstractmethod
    def active_scene(self) -> Scene | None:
        """The scene currently displayed, if any."""

    @abstractmethod
    def list_tokens(self) -> list[Token]:
        """Tokens on the active scene (empty without a scene)."""

    @abstractmethod
    def get_token(self, token_id: str) -> Token | None:
        """Token on the active scene by id."""

    @abstractmethod
    async def create_tokens(self, descriptors: list[dict[str, Any]]) -> list[Token]:
        """Create tokens on the active scene from field descriptors."""

    @abstractmethod
    async def update_token(self, token_id: str, changes: dict[str, Any]) -> Token:
        """Apply field changes to a token.

        Raises:
            TokenNotFoundError: If the token does not exist
        """

    @abstractmethod
    async def set_token_flag(self, token_id: str, key: str, value: Any) -> None:
        """Set a bifrost flag on a token; ``key`` may be dotted."""

    @abstractmethod
    async def unset_token_flag(self, token_id: str, key: str) -> None:
        """Remove a bifrost flag from a token."""

    @abstractmethod
    async def delete_token(self, token_id: str) -> None:
        """Delete a token; deleting a missing token is a no-op."""

    @abstractmethod
    def list_actors(self) -> list[Actor]:
        """All actors known to the host."""

    @abstractmethod
    def get_actor(self, actor_id: str) -> Actor | None:
        """Actor by id."""

    def find_actor_by_name(self, name: str) -> Actor | None:
        """Actor whose name matches ``name`` case-insensitively."""
        wanted = name.strip().lower()
        for actor in self.list_actors():
            if actor.name.lower() == wanted:
                return actor
        return None


class SettingsStore(ABC):
    """Small persisted key/value blob owned by the host."""

    @abstractmethod
    def get(self, key: str, default: Any = None) -> Any:
        """Read a stored value."""

    @abstractmethod
    async def set(self, key: str, value: Any) -> None:
        """Persist a value."""


__all__ = ["HostPort", "SettingsStore"]
