"""Structured JSON logging configuration.

Thin shim over :mod:`bifrost.infrastructure.logging` so callers can keep
importing from :mod:`bifrost.logging_config`.
"""

from bifrost.infrastructure.logging import *  # noqa: F401,F403
