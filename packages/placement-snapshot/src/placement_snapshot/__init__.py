"""
Snapshot providers for the placement engine.

Implements the placement_protocols provider interfaces over a JSON cluster
snapshot, so policies can be evaluated and placements reproduced offline.

Key components:
- ClusterSnapshot: Pydantic model of the snapshot document
- SnapshotProvider: ClusterStateProvider and NodeStateProvider in one
- load_snapshot / create_snapshot_provider: Factory functions
"""

from placement_snapshot.factory import create_snapshot_provider, load_snapshot
from placement_snapshot.provider import SnapshotProvider
from placement_snapshot.types import (
    ClusterSnapshot,
    SnapshotCollection,
    SnapshotReplica,
    SnapshotShard,
)

__all__ = [
    "ClusterSnapshot",
    "SnapshotCollection",
    "SnapshotReplica",
    "SnapshotShard",
    "SnapshotProvider",
    "create_snapshot_provider",
    "load_snapshot",
]
