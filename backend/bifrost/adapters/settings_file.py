"""JSON file backed settings store."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from bifrost.ports import SettingsStore

logger = logging.getLogger("config")


class JsonFileSettingsStore(SettingsStore):
    """Keeps the settings blob in a single JSON document on disk."""

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._values: dict[str, Any] = self._load()

    @property
    def path(self) -> Path:
        return self._path

    def _load(self) -> dict[str, Any]:
        if not self._path.exists():
            return {}
        try:
            data = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning(
                "Settings file unreadable, starting empty",
                extra={"service": "config", "error": str(e), "metadata": {"path": str(self._path)}},
            )
            return {}
        return data if isinstance(data, dict) else {}

    def get(self, key: str, default: Any = None) -> Any:
        return self._values.get(key, default)

    async def set(self, key: str, value: Any) -> None:
        self._values[key] = value
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._values, indent=2, default=str), encoding="utf-8")
        tmp_path.replace(self._path)
        logger.debug(
            "Settings file written",
            extra={"service": "config", "operation": key, "metadata": {"path": str(self._path)}},
        )
