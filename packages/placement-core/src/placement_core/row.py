"""
Row: immutable snapshot of one node.

A Row holds the observed attribute values (tags) of a node and the replicas
it hosts. Rows never change after construction: adding or removing a
replica returns a new Row, so sessions that share a Row are unaffected by
what a suggester simulates.
"""

import logging
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Collection, Iterator, Mapping

from placement_protocols import NodeId, NodeStateProvider, ReplicaInfo, ReplicaType

from placement_core.validation import to_number, validate

logger = logging.getLogger(__name__)

INDEX_SIZE = "INDEX.sizeInBytes"
"""Replica attribute holding the index size, in freedisk units."""


def _freeze_replicas(
    replicas: Mapping[str, Mapping[str, Any]],
) -> Mapping[str, Mapping[str, tuple[ReplicaInfo, ...]]]:
    return MappingProxyType(
        {
            collection: MappingProxyType(
                {shard: tuple(items) for shard, items in shards.items() if items}
            )
            for collection, shards in replicas.items()
            if any(shards.values())
        }
    )


@dataclass(frozen=True)
class Row:
    """
    One node's observed state.

    Attributes:
        node: Node identifier
        tags: Observed attribute values, coerced per attribute rules
        replicas: Hosted replicas, collection -> shard -> replicas
        is_live: False for rows added to drain a node outside the live set
        order: Discovery order, the final sort tie-breaker
    """

    node: NodeId
    tags: Mapping[str, Any] = field(default_factory=dict)
    replicas: Mapping[str, Mapping[str, tuple[ReplicaInfo, ...]]] = field(default_factory=dict)
    is_live: bool = True
    order: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "tags", MappingProxyType(dict(self.tags)))
        object.__setattr__(self, "replicas", _freeze_replicas(self.replicas))

    @classmethod
    def build(
        cls,
        node: NodeId,
        params: Collection[str],
        node_state: NodeStateProvider,
        is_live: bool = True,
        order: int = 0,
    ) -> "Row":
        """
        Fetch a node's state from the provider.

        Only the attributes in params are requested. Provider errors
        propagate to the caller.
        """
        values = node_state.node_values(node, params) or {}
        tags = {
            name: validate(name, value, is_rule_val=False)
            for name, value in values.items()
            if value is not None
        }

        replicas: dict[str, dict[str, list[ReplicaInfo]]] = {}
        for collection, shards in (node_state.replica_info(node, None) or {}).items():
            for shard, items in shards.items():
                replicas.setdefault(collection, {})[shard] = [
                    replica if replica.node else replica.on_node(node) for replica in items
                ]

        return cls(node=node, tags=tags, replicas=replicas, is_live=is_live, order=order)

    def get(self, name: str) -> Any:
        """Return a tag value; "node" is the node id itself."""
        if name == "node":
            return self.node
        return self.tags.get(name)

    @property
    def collections(self) -> list[str]:
        return list(self.replicas)

    def replicas_of(self, collection: str, shard: str) -> tuple[ReplicaInfo, ...]:
        return self.replicas.get(collection, {}).get(shard, ())

    def iter_replicas(self, collection: str | None = None) -> Iterator[ReplicaInfo]:
        """Yield hosted replicas in collection/shard order."""
        for name, shards in self.replicas.items():
            if collection is not None and name != collection:
                continue
            for items in shards.values():
                yield from items

    def replica_count(self) -> int:
        return sum(1 for _ in self.iter_replicas())

    def _adjusted_tags(self, replica: ReplicaInfo, sign: int) -> dict[str, Any]:
        tags = dict(self.tags)
        cores = to_number(tags.get("cores"))
        if cores is not None:
            tags["cores"] = int(cores + sign) if cores.is_integer() else cores + sign
        freedisk = to_number(tags.get("freedisk"))
        size = to_number(replica.attributes.get(INDEX_SIZE))
        if freedisk is not None and size is not None:
            tags["freedisk"] = freedisk - sign * size
        return tags

    def with_added_replica(
        self,
        collection: str,
        shard: str,
        replica_type: ReplicaType = ReplicaType.NRT,
        replica: ReplicaInfo | None = None,
    ) -> "Row":
        """
        Return a copy of this row hosting one more replica.

        Args:
            collection: Collection of the new replica
            shard: Shard of the new replica
            replica_type: Type used when synthesizing a new replica
            replica: Existing replica being moved here, if any
        """
        existing = self.replicas_of(collection, shard)
        if replica is None:
            name = f"{collection}_{shard}_replica_{replica_type.value[0].lower()}{len(existing) + 1}"
            replica = ReplicaInfo(
                name=name,
                core=name,
                collection=collection,
                shard=shard,
                type=replica_type,
                node=self.node,
            )
        else:
            replica = replica.on_node(self.node)

        replicas = {c: dict(s) for c, s in self.replicas.items()}
        replicas.setdefault(collection, {})[shard] = existing + (replica,)
        return replace(self, tags=self._adjusted_tags(replica, +1), replicas=replicas)

    def with_removed_replica(
        self,
        collection: str,
        shard: str,
        replica_name: str | None = None,
        replica_type: ReplicaType | None = None,
    ) -> "tuple[Row, ReplicaInfo] | None":
        """
        Return a copy of this row without one replica.

        Removes the named replica, or else the last replica of the shard
        matching replica_type (any type when None).

        Returns:
            Tuple of (new row, removed replica), or None if no replica
            matches.
        """
        existing = self.replicas_of(collection, shard)
        index = None
        for i in range(len(existing) - 1, -1, -1):
            candidate = existing[i]
            if replica_name is not None and candidate.name != replica_name:
                continue
            if replica_type is not None and candidate.type is not replica_type:
                continue
            index = i
            break
        if index is None:
            return None

        removed = existing[index]
        replicas = {c: dict(s) for c, s in self.replicas.items()}
        replicas[collection][shard] = existing[:index] + existing[index + 1 :]
        row = replace(self, tags=self._adjusted_tags(removed, -1), replicas=replicas)
        return row, removed

    def to_dict(self) -> dict[str, Any]:
        """Render as a plain mapping for reports and JSON output."""
        return {
            "node": self.node,
            "isLive": self.is_live,
            "attributes": dict(self.tags),
            "replicas": {
                collection: {
                    shard: [replica.to_dict() for replica in items]
                    for shard, items in shards.items()
                }
                for collection, shards in self.replicas.items()
            },
        }
