"""
Protocol definitions for the replica placement engine.

This package provides the provider Protocols the engine consumes and the
replica value types the providers return. It has zero dependencies on
other placement-* packages.

Key protocols:
- ClusterStateProvider: Interface for live-node discovery
- NodeStateProvider: Interface for node attributes and hosted replicas

Key types:
- ReplicaInfo: One hosted copy of a shard
- ReplicaType: Replica kind (NRT, TLOG, PULL)
- NodeId: Type alias for node identifiers
"""

from placement_protocols.providers import ClusterStateProvider, NodeStateProvider
from placement_protocols.types import (
    CollectionName,
    NodeId,
    ReplicaInfo,
    ReplicaMap,
    ReplicaType,
    ShardName,
)

__all__ = [
    # Protocols
    "ClusterStateProvider",
    "NodeStateProvider",
    # Data types
    "ReplicaInfo",
    "ReplicaType",
    "ReplicaMap",
    "NodeId",
    "CollectionName",
    "ShardName",
]
