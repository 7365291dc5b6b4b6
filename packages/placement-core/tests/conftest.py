"""Shared fixtures for placement-core tests."""

from typing import Any, Collection, Iterable, Mapping

import pytest

from placement_core.policy import Policy
from placement_core.session import Session
from placement_protocols import ReplicaInfo, ReplicaType


class FakeCluster:
    """
    In-memory cluster and node state provider.

    replicas maps node -> list of (collection, shard, name[, type]) tuples.
    """

    def __init__(
        self,
        live: Iterable[str],
        values: Mapping[str, Mapping[str, Any]] | None = None,
        replicas: Mapping[str, list[tuple]] | None = None,
        policies: Mapping[str, str] | None = None,
    ) -> None:
        self.live = live
        self.values = {node: dict(attrs) for node, attrs in (values or {}).items()}
        self.replicas = dict(replicas or {})
        self.policies = dict(policies or {})
        self.node_value_calls: list[tuple[str, tuple[str, ...]]] = []

    def live_nodes(self) -> Iterable[str]:
        return self.live

    def policy_name_for_collection(self, collection: str) -> str | None:
        return self.policies.get(collection)

    def node_values(self, node: str, names: Collection[str]) -> dict[str, Any]:
        self.node_value_calls.append((node, tuple(names)))
        values = self.values.get(node, {})
        return {name: values[name] for name in names if name in values}

    def replica_info(self, node: str, collections: Collection[str] | None) -> dict:
        result: dict[str, dict[str, list[ReplicaInfo]]] = {}
        for entry in self.replicas.get(node, []):
            collection, shard, name = entry[:3]
            replica_type = ReplicaType.get(entry[3] if len(entry) > 3 else None)
            if collections is not None and collection not in collections:
                continue
            result.setdefault(collection, {}).setdefault(shard, []).append(
                ReplicaInfo(
                    name=name,
                    core=name,
                    collection=collection,
                    shard=shard,
                    type=replica_type,
                    node=node,
                )
            )
        return result


def build_session(
    document: Mapping[str, Any],
    live: Iterable[str],
    values: Mapping[str, Mapping[str, Any]] | None = None,
    replicas: Mapping[str, list[tuple]] | None = None,
    policies: Mapping[str, str] | None = None,
) -> Session:
    """Build a session over a FakeCluster."""
    cluster = FakeCluster(live, values, replicas, policies)
    return Policy(document).create_session(cluster, cluster)


@pytest.fixture
def fake_cluster():
    """Factory fixture for FakeCluster instances."""
    return FakeCluster


@pytest.fixture
def make_session():
    """Factory fixture: make_session(document, live, values, replicas, policies)."""
    return build_session
