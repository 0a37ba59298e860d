"""Tracker message handlers package.

Each module declares a ``handlers`` group; ``create_router`` imports them
explicitly and registers their ``@handlers.handler(...)`` functions.
"""

__all__: list[str] = []
