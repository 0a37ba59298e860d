"""Tracking domain - marker to token mapping.

Services:
    - MarkerRegistry: creation, update and removal decisions per marker
"""

from bifrost.domains.tracking.registry import MarkerRegistry

__all__ = ["MarkerRegistry"]
