"""Structured operation results returned across component boundaries."""

from typing import Any

from bifrost.exceptions import ActorNotFoundError, AppError
from bifrost.schemas.snapshot import WireModel


class TrackingResult(WireModel):
    """Outcome of one registry operation.

    Failures carry ``error`` and ``code``; nothing is raised to the caller.
    """

    success: bool
    marker_id: str | None = None
    token_id: str | None = None
    token_name: str | None = None
    action: str | None = None
    message: str | None = None
    error: str | None = None
    code: str | None = None
    candidates: list[str] | None = None

    @classmethod
    def failure(cls, exc: AppError, **fields: Any) -> "TrackingResult":
        if isinstance(exc, ActorNotFoundError):
            fields.setdefault("candidates", exc.candidates)
        return cls(success=False, error=exc.message, code=exc.code, **fields)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
