"""
Pydantic models for cluster snapshot documents.

A snapshot captures what the providers would report for a cluster at one
point in time, so placement decisions can be reproduced offline:

    {
        "liveNodes": ["node1", "node2"],
        "nodeValues": {
            "node1": {"cores": 2, "freedisk": 334, "sysprop.fs": "ssd"},
            "node2": {"cores": 1, "freedisk": 749}
        },
        "replicaInfo": {
            "node1": {
                "gettingstarted": {
                    "shard1": [{"r1": {"type": "NRT", "INDEX.sizeInBytes": 10}}]
                }
            }
        },
        "collections": {
            "gettingstarted": {
                "policy": "policy1",
                "shards": {
                    "shard2": {
                        "replicas": {
                            "r2": {"core": "r2", "node_name": "node2", "leader": "true"}
                        }
                    }
                }
            }
        },
        "policyMapping": {"gettingstarted": "policy1"}
    }

replicaInfo is keyed by node; collections uses the cluster-state layout
keyed by collection. Either or both may be given.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class SnapshotReplica(BaseModel):
    """
    One replica in cluster-state form.

    Unknown keys (state, base_url, leader, metrics) are kept as replica
    attributes.
    """

    model_config = ConfigDict(extra="allow")

    core: str | None = None
    node_name: str
    type: str | None = None


class SnapshotShard(BaseModel):
    """Shard entry in cluster-state form."""

    model_config = ConfigDict(extra="allow")

    replicas: dict[str, SnapshotReplica] = Field(default_factory=dict)


class SnapshotCollection(BaseModel):
    """Collection entry in cluster-state form."""

    model_config = ConfigDict(extra="allow")

    policy: str | None = None
    shards: dict[str, SnapshotShard] = Field(default_factory=dict)


class ClusterSnapshot(BaseModel):
    """
    Complete snapshot document.

    Replica lists in replicaInfo hold single-key mappings of replica name
    to attributes, e.g. [{"r1": {"type": "TLOG"}}].
    """

    model_config = ConfigDict(populate_by_name=True)

    live_nodes: list[str] = Field(alias="liveNodes")
    node_values: dict[str, dict[str, Any]] = Field(default_factory=dict, alias="nodeValues")
    replica_info: dict[str, dict[str, dict[str, list[dict[str, dict[str, Any]]]]]] = Field(
        default_factory=dict, alias="replicaInfo"
    )
    collections: dict[str, SnapshotCollection] = Field(default_factory=dict)
    policy_mapping: dict[str, str] = Field(default_factory=dict, alias="policyMapping")
