"""Sync domain - scene snapshots, reconciliation and periodic pushes.

Services:
    - SnapshotService: token snapshots, queries and local/remote diffs
    - AutoSyncScheduler: timer-driven token list pushes
"""

from bifrost.domains.sync.scheduler import AutoSyncScheduler
from bifrost.domains.sync.snapshot import SnapshotService

__all__ = ["AutoSyncScheduler", "SnapshotService"]
