"""Host and settings adapters."""

from bifrost.adapters.memory import InMemoryHost, InMemorySettingsStore
from bifrost.adapters.settings_file import JsonFileSettingsStore

__all__ = ["InMemoryHost", "InMemorySettingsStore", "JsonFileSettingsStore"]
