"""
Factory functions for snapshot providers.

Lets the placement-core CLI build providers from a snapshot file without
importing the snapshot models directly.
"""

import json
from pathlib import Path
from typing import Any, Mapping

from placement_snapshot.provider import SnapshotProvider
from placement_snapshot.types import ClusterSnapshot


def create_snapshot_provider(data: "Mapping[str, Any] | ClusterSnapshot") -> SnapshotProvider:
    """
    Create a provider from a parsed snapshot document.

    Args:
        data: Snapshot mapping (liveNodes, nodeValues, replicaInfo,
            collections, policyMapping) or an already validated model

    Returns:
        SnapshotProvider usable as both cluster-state and node-state
        provider.

    Raises:
        pydantic.ValidationError: If the document does not match the
            snapshot schema.

    Example:
        provider = create_snapshot_provider({
            "liveNodes": ["node1", "node2"],
            "nodeValues": {"node1": {"cores": 1}, "node2": {"cores": 0}},
        })
    """
    if not isinstance(data, ClusterSnapshot):
        data = ClusterSnapshot.model_validate(dict(data))
    return SnapshotProvider(data)


def load_snapshot(path: str | Path) -> SnapshotProvider:
    """
    Create a provider from a snapshot JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        pydantic.ValidationError: If the document does not match the
            snapshot schema.
    """
    return create_snapshot_provider(json.loads(Path(path).read_text()))
