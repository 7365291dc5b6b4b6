"""
Provider protocol definitions.

The placement engine never talks to a cluster directly. It consumes two
read-only providers supplied by the caller:

- ClusterStateProvider: who the live nodes are, and which named policy a
  collection uses
- NodeStateProvider: observed attribute values of a node, and the replicas
  it currently hosts

Both are synchronous: the engine fetches everything it needs once, at
session construction time. Errors raised by a provider are not handled by
the engine and propagate unchanged to the caller.
"""

from typing import Any, Collection, Iterable, Mapping, Protocol, runtime_checkable

from placement_protocols.types import NodeId, ReplicaMap


@runtime_checkable
class ClusterStateProvider(Protocol):
    """
    Protocol for cluster topology sources.

    Implementations may additionally define
    ``policy_name_for_collection(collection) -> str | None`` to map a
    collection onto one of the named policies of the policy document.
    The engine looks the method up with getattr, so it is optional.
    """

    def live_nodes(self) -> Iterable[NodeId]:
        """
        Return the nodes currently able to host replicas.

        Returns:
            Node identifiers. Ordered iterables are used in their given
            order (discovery order); sets are sorted by node id so repeated
            runs over the same input stay deterministic.
        """
        ...


@runtime_checkable
class NodeStateProvider(Protocol):
    """
    Protocol for per-node observations.

    Example:
        values = provider.node_values("node1", ["cores", "freedisk"])
        # {"cores": 12, "freedisk": 334.0}

        replicas = provider.replica_info("node1", None)
        # {"gettingstarted": {"shard1": [ReplicaInfo(...), ...]}}
    """

    def node_values(self, node: NodeId, names: Collection[str]) -> Mapping[str, Any]:
        """
        Fetch attribute values for a node.

        Args:
            node: Node to query.
            names: Attribute names the active policy references. Providers
                should return only these; missing attributes may be absent
                from the result or mapped to None.

        Returns:
            Mapping of attribute name to observed value.
        """
        ...

    def replica_info(
        self, node: NodeId, collections: Collection[str] | None
    ) -> ReplicaMap:
        """
        Fetch the replicas hosted on a node.

        Args:
            node: Node to query.
            collections: Restrict the result to these collections, or None
                for every collection.

        Returns:
            Mapping collection -> shard -> ordered sequence of ReplicaInfo.
        """
        ...
