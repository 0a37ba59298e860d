"""Common HTTP dependencies."""

from fastapi import HTTPException, Request, status

from bifrost.core.engine import BifrostEngine


def get_engine(request: Request) -> BifrostEngine:
    """The engine owned by the running application."""
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Bifrost engine is not running",
        )
    return engine
