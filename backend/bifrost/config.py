"""Application configuration using pydantic-settings."""

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

logger = logging.getLogger("config")

# Every logger namespace used by the package; debug_mode enables all of them.
BIFROST_NAMESPACES = ("app", "config", "host", "sync", "tracking", "ws")


class Settings(BaseSettings):
    """Bifrost settings loaded from environment variables (``BIFROST_`` prefix)."""

    model_config = SettingsConfigDict(
        env_prefix="BIFROST_",
        env_file=(".env", "../.env"),
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ==========================================================================
    # Heimdall connection
    # ==========================================================================
    heimdall_host: str = Field(
        default="localhost",
        description="Hostname or IP address of the Heimdall server",
    )
    heimdall_port: int = Field(
        default=3001,
        description="Port number for the Heimdall WebSocket server",
    )
    auto_connect: bool = Field(
        default=False,
        description="Automatically connect to Heimdall when the engine starts",
    )
    auto_connect_delay_seconds: float = Field(
        default=2.0,
        description="Delay before the automatic connection attempt",
    )
    connect_timeout_seconds: float = Field(
        default=10.0,
        description="Seconds to wait for the socket to open",
    )
    reconnect_base_delay_seconds: float = Field(
        default=5.0,
        description="Base delay for reconnection; attempt n waits base * n",
    )
    max_reconnect_attempts: int = Field(
        default=5,
        description="Reconnection attempts before giving up",
    )

    # ==========================================================================
    # Heartbeat / sync
    # ==========================================================================
    auto_heartbeat: bool = Field(
        default=True,
        description="Send ping frames to Heimdall while connected",
    )
    heartbeat_interval_seconds: float = Field(
        default=30.0,
        description="Heartbeat period in seconds",
    )
    auto_sync_interval_seconds: float = Field(
        default=30.0,
        description="Default period for automatic token list pushes",
    )
    scene_change_sync_delay_seconds: float = Field(
        default=1.0,
        description="Delay before pushing the token list after a scene change",
    )

    # ==========================================================================
    # Tokens
    # ==========================================================================
    auto_create_tokens: bool = Field(
        default=True,
        description="Automatically create tokens for markers when detected",
    )

    # ==========================================================================
    # Persistence
    # ==========================================================================
    settings_file: Path | None = Field(
        default=None,
        description="JSON file holding persisted data (calibration). In-memory when unset",
    )

    # ==========================================================================
    # Logging
    # ==========================================================================
    debug_mode: bool = Field(
        default=False,
        description="Enable detailed logging for every bifrost namespace",
    )
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_debug_namespaces: str = Field(
        default="",
        description="Comma-separated list of namespaces to enable debug logging",
    )

    client_version: str = Field(
        default="1.0.0",
        description="Client version announced in the handshake",
    )

    # ==========================================================================
    # Computed Properties
    # ==========================================================================
    @computed_field
    @property
    def websocket_url(self) -> str:
        """Heimdall WebSocket URL."""
        return f"ws://{self.heimdall_host}:{self.heimdall_port}"

    @computed_field
    @property
    def debug_namespaces(self) -> list[str]:
        """Parse debug namespaces into a list."""
        if self.debug_mode:
            return list(BIFROST_NAMESPACES)
        if not self.log_debug_namespaces:
            return []
        return [ns.strip() for ns in self.log_debug_namespaces.split(",") if ns.strip()]

    def log_config_summary(self) -> None:
        """Log a summary of the configuration."""
        logger.info(
            "Bifrost configuration loaded",
            extra={
                "service": "config",
                "metadata": {
                    "websocket_url": self.websocket_url,
                    "auto_connect": self.auto_connect,
                    "auto_create_tokens": self.auto_create_tokens,
                    "auto_heartbeat": self.auto_heartbeat,
                    "debug_mode": self.debug_mode,
                    "max_reconnect_attempts": self.max_reconnect_attempts,
                    "settings_file": str(self.settings_file) if self.settings_file else None,
                },
            },
        )

    def public_summary(self) -> dict[str, object]:
        """Settings reported by status queries."""
        return {
            "heimdallHost": self.heimdall_host,
            "heimdallPort": self.heimdall_port,
            "autoConnect": self.auto_connect,
            "autoCreateTokens": self.auto_create_tokens,
            "autoHeartbeat": self.auto_heartbeat,
            "debugMode": self.debug_mode,
        }


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    settings = Settings()
    return settings
