"""Bifrost: keeps tabletop tokens in step with Heimdall marker tracking."""

__version__ = "1.0.0"
