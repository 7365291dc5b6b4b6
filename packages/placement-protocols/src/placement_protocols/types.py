"""
Generic types for the placement protocol system.

This module defines the data structures exchanged between the placement
engine and the providers that describe a cluster. These types are generic
and can be produced by any provider implementation (a live cluster client,
a snapshot file, a test fixture).

All types use @dataclass for simplicity and immutability.
"""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import Any, Mapping, Sequence


# Type aliases for common patterns
NodeId = str
"""Unique identifier for a node that can host replicas."""

CollectionName = str
"""Name of a logical dataset composed of shards."""

ShardName = str
"""Name of one partition of a collection."""


class ReplicaType(str, Enum):
    """
    Kinds of replica a shard can have.

    - NRT: full index, indexes locally and can become leader
    - TLOG: keeps a transaction log, can become leader
    - PULL: search-only copy that pulls the index from the leader
    """

    NRT = "NRT"
    TLOG = "TLOG"
    PULL = "PULL"

    @classmethod
    def get(cls, value: "str | ReplicaType | None") -> "ReplicaType":
        """
        Resolve a replica type from user input.

        None or an empty string means the default type (NRT). Names are
        matched case-insensitively.

        Raises:
            ValueError: If the name is not a known replica type.
        """
        if isinstance(value, ReplicaType):
            return value
        if not value:
            return cls.NRT
        try:
            return cls(str(value).upper())
        except ValueError:
            raise ValueError(
                f"Unknown replica type '{value}'. "
                f"Expected one of: {', '.join(t.value for t in cls)}"
            ) from None


@dataclass(frozen=True)
class ReplicaInfo:
    """
    One hosted copy of a shard.

    Attributes:
        name: Replica identifier, unique within the collection
            (e.g., "core_node3").
        core: Core name on the hosting node.
        collection: Collection the replica belongs to.
        shard: Shard the replica belongs to.
        type: Replica kind.
        node: Node currently hosting the replica.
        attributes: Opaque attributes copied from the source state
            (e.g., {"leader": "true", "INDEX.sizeInBytes": 300}).
    """

    name: str
    core: str
    collection: CollectionName
    shard: ShardName
    type: ReplicaType = ReplicaType.NRT
    node: NodeId = ""
    attributes: Mapping[str, Any] = field(default_factory=dict, compare=False)

    def __post_init__(self) -> None:
        # Freeze the attribute bag so the value object can be shared freely
        object.__setattr__(self, "attributes", MappingProxyType(dict(self.attributes)))

    @property
    def is_leader(self) -> bool:
        """Return True if the source state marks this replica as shard leader."""
        return str(self.attributes.get("leader", "")).lower() == "true"

    def on_node(self, node: NodeId) -> "ReplicaInfo":
        """Return a copy of this replica hosted on another node."""
        return ReplicaInfo(
            name=self.name,
            core=self.core,
            collection=self.collection,
            shard=self.shard,
            type=self.type,
            node=node,
            attributes=dict(self.attributes),
        )

    def to_dict(self) -> dict[str, Any]:
        """Render as a plain mapping for reports and JSON output."""
        return {
            "name": self.name,
            "core": self.core,
            "collection": self.collection,
            "shard": self.shard,
            "type": self.type.value,
            "node": self.node,
        }


ReplicaMap = Mapping[CollectionName, Mapping[ShardName, Sequence[ReplicaInfo]]]
"""Replicas hosted on one node: collection -> shard -> ordered replicas."""
