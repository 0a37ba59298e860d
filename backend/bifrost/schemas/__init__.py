"""Pydantic schemas for wire messages, snapshots and results."""

from bifrost.schemas.messages import (  # noqa: F401
    InboundFrame,
    OutboundMessage,
    encode_message,
    inbound_adapter,
    to_wire,
)
from bifrost.schemas.results import TrackingResult  # noqa: F401
from bifrost.schemas.snapshot import (  # noqa: F401
    RemoteToken,
    SnapshotOptions,
    SnapshotSummary,
    SyncComparison,
    TokenSnapshot,
)
