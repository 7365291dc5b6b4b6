"""
Snapshot-backed providers.

SnapshotProvider implements both ClusterStateProvider and
NodeStateProvider over a ClusterSnapshot document. Replicas are indexed
once at construction; the providers are read-only afterwards.

Some node values are derived when the snapshot does not carry them:
- cores: number of replicas the node hosts
- host, port: parsed from node ids of the form "10.0.0.1:8983_solr"
"""

import logging
from typing import Any, Collection

from placement_protocols import NodeId, ReplicaInfo, ReplicaMap, ReplicaType

from placement_snapshot.types import ClusterSnapshot

logger = logging.getLogger(__name__)


def _split_node_id(node: NodeId) -> tuple[str | None, int | None]:
    address = node.split("_", 1)[0]
    if ":" not in address:
        return None, None
    host, _, port = address.rpartition(":")
    try:
        return host, int(port)
    except ValueError:
        return host, None


class SnapshotProvider:
    """
    Cluster and node state read from a snapshot document.

    Example:
        provider = SnapshotProvider(ClusterSnapshot.model_validate(data))
        session = policy.create_session(provider, provider)
    """

    def __init__(self, snapshot: ClusterSnapshot) -> None:
        self.snapshot = snapshot
        self._replicas: dict[NodeId, dict[str, dict[str, list[ReplicaInfo]]]] = {}
        self._index_replica_info()
        self._index_collections()
        hosted = sum(
            len(items)
            for collections in self._replicas.values()
            for shards in collections.values()
            for items in shards.values()
        )
        logger.debug(f"Snapshot indexed: {len(snapshot.live_nodes)} live node(s), {hosted} replica(s)")

    def _add(self, replica: ReplicaInfo) -> None:
        shards = self._replicas.setdefault(replica.node, {}).setdefault(replica.collection, {})
        existing = shards.setdefault(replica.shard, [])
        if any(item.name == replica.name for item in existing):
            return
        existing.append(replica)

    def _index_replica_info(self) -> None:
        for node, collections in self.snapshot.replica_info.items():
            for collection, shards in collections.items():
                for shard, entries in shards.items():
                    for entry in entries:
                        for name, attributes in entry.items():
                            self._add(
                                ReplicaInfo(
                                    name=name,
                                    core=str(attributes.get("core", name)),
                                    collection=collection,
                                    shard=shard,
                                    type=ReplicaType.get(attributes.get("type")),
                                    node=node,
                                    attributes=attributes,
                                )
                            )

    def _index_collections(self) -> None:
        for collection, state in self.snapshot.collections.items():
            for shard, shard_state in state.shards.items():
                for name, replica in shard_state.replicas.items():
                    attributes = replica.model_dump(exclude_none=True)
                    self._add(
                        ReplicaInfo(
                            name=name,
                            core=replica.core or name,
                            collection=collection,
                            shard=shard,
                            type=ReplicaType.get(replica.type),
                            node=replica.node_name,
                            attributes=attributes,
                        )
                    )

    # -- ClusterStateProvider -------------------------------------------------

    def live_nodes(self) -> list[NodeId]:
        return list(self.snapshot.live_nodes)

    def policy_name_for_collection(self, collection: str) -> str | None:
        """Named policy: policyMapping first, then the collection state."""
        if collection in self.snapshot.policy_mapping:
            return self.snapshot.policy_mapping[collection]
        state = self.snapshot.collections.get(collection)
        return state.policy if state is not None else None

    # -- NodeStateProvider ----------------------------------------------------

    def node_values(self, node: NodeId, names: Collection[str]) -> dict[str, Any]:
        values = self.snapshot.node_values.get(node, {})
        result = {name: values[name] for name in names if name in values}

        if "cores" in names and "cores" not in result:
            result["cores"] = sum(
                len(items)
                for shards in self._replicas.get(node, {}).values()
                for items in shards.values()
            )
        if ("host" in names and "host" not in result) or ("port" in names and "port" not in result):
            host, port = _split_node_id(node)
            if "host" in names and host is not None:
                result.setdefault("host", host)
            if "port" in names and port is not None:
                result.setdefault("port", port)
        return result

    def replica_info(self, node: NodeId, collections: Collection[str] | None) -> ReplicaMap:
        hosted = self._replicas.get(node, {})
        return {
            collection: {shard: list(items) for shard, items in shards.items()}
            for collection, shards in hosted.items()
            if collections is None or collection in collections
        }

