"""
Violations and the computation that finds them.

A Violation is one breach of a clause in one scope instance: a collection,
a shard (or "#ANY" when the clause aggregates every shard) and a tag
partition. Violations are identified across sessions by
(clause, collection, shard, partition), which is how a suggester tells
whether a simulated operation fixed, kept or worsened a breach.

Partitioning follows the tag operand:
- the `node` tag and `<`, `>`, `!` tags partition per node
- equality and wildcard tags partition per tag value, so
  {"replica": 2, "sysprop.fs": "ssd"} counts replicas over all ssd nodes

Zero-count partitions are evaluated too, so greedy and `>` clauses report
"too few" before any replica exists.
"""

from dataclasses import dataclass
from typing import Any, Iterable, Sequence

from placement_protocols import ReplicaInfo

from placement_core.clause import Clause
from placement_core.operand import Operand
from placement_core.row import Row
from placement_core.validation import ANY, EACH


@dataclass(frozen=True)
class Violation:
    """
    One breached clause instance.

    Attributes:
        clause: The breached clause
        collection: Collection in scope, None for cluster node-attribute
            clauses
        shard: Shard in scope, "#ANY" for aggregated clauses
        node: Node, when the partition is a single node
        partition: Partition key (node id or tag value)
        actual: Observed replica count, or attribute value for
            node-attribute clauses
        expected: Boundary in condition form (e.g., "<2")
        delta: Positive means too many/too high, negative too few/too low;
            None when not numeric
        replicas: Replicas counted in the breach
        nodes: Nodes forming the partition
    """

    clause: Clause
    collection: str | None
    shard: str | None
    node: str | None
    partition: Any
    actual: Any
    expected: str
    delta: float | None
    replicas: tuple[ReplicaInfo, ...] = ()
    nodes: tuple[str, ...] = ()

    @property
    def key(self) -> tuple:
        """Identity of the breach across sessions."""
        return (self.clause, self.collection, self.shard, self.partition)

    @property
    def is_too_many(self) -> bool:
        return self.delta is not None and self.delta > 0

    @property
    def is_too_few(self) -> bool:
        return self.delta is not None and self.delta < 0

    @property
    def is_node_attribute(self) -> bool:
        return not self.clause.is_replica_clause

    def severity(self) -> float:
        """Absolute distance to the boundary; unknown distances count as 1."""
        return abs(self.delta) if self.delta is not None else 1

    def sort_key(self) -> tuple:
        return (
            self.clause.sort_key(),
            self.collection or "",
            self.shard or "",
            str(self.partition),
        )

    def to_dict(self) -> dict[str, Any]:
        """Render as a plain mapping for reports and JSON output."""
        data: dict[str, Any] = {
            "clause": self.clause.to_dict(),
            "collection": self.collection,
            "shard": self.shard,
            "node": self.node,
            "tagKey": self.partition,
            "violation": {
                "actual": self.actual,
                "expected": self.expected,
                "delta": self.delta,
            },
            "replicas": [replica.to_dict() for replica in self.replicas],
        }
        if not self.clause.strict:
            data["strict"] = False
        return data


def _partition_key(clause: Clause, row: Row) -> Any:
    tag = clause.tag
    if tag.name == "node" or tag.operand in (
        Operand.LESS_THAN,
        Operand.GREATER_THAN,
        Operand.NOT_EQUAL,
    ):
        return row.node
    return row.get(tag.name)


def _shard_instances(clause: Clause, shards: Iterable[str]) -> list[str]:
    mode = clause.shard_mode
    if mode == ANY:
        return [ANY]
    if mode == EACH:
        return list(shards)
    return [mode]


def replica_violations(
    clause: Clause,
    rows: Sequence[Row],
    collection: str,
    shards: Iterable[str],
) -> list[Violation]:
    """
    Evaluate a replica-count clause for one collection.

    Args:
        clause: Replica clause that applies to the collection
        rows: Rows in session order; only live rows are counted
        collection: Collection being evaluated
        shards: Every shard of the collection known to the session

    Returns:
        One Violation per breaching (shard, partition).
    """
    partitions: dict[Any, list[Row]] = {}
    for row in rows:
        if not row.is_live:
            continue
        if not clause.matches_node(row.node, row.get(clause.tag.name)):
            continue
        partitions.setdefault(_partition_key(clause, row), []).append(row)

    violations = []
    for shard in _shard_instances(clause, shards):
        for partition, members in partitions.items():
            counted = [
                replica
                for row in members
                for replica in row.iter_replicas(collection)
                if (shard == ANY or replica.shard == shard)
                and clause.applies_to_type(replica.type)
            ]
            count = len(counted)
            if clause.replica.is_pass(count):
                continue
            nodes = tuple(row.node for row in members)
            violations.append(
                Violation(
                    clause=clause,
                    collection=collection,
                    shard=shard,
                    node=nodes[0] if len(nodes) == 1 else None,
                    partition=partition,
                    actual=count,
                    expected=clause.replica.text,
                    delta=clause.replica.delta(count),
                    replicas=tuple(counted),
                    nodes=nodes,
                )
            )
    return violations


def node_violations(
    clause: Clause,
    rows: Sequence[Row],
    collection: str | None = None,
) -> list[Violation]:
    """
    Evaluate a node-attribute clause such as {"cores": "<10", "node": "#ANY"}.

    Rows whose attribute is unknown are skipped. Each failing row yields
    one Violation listing its replicas (of the collection, when given).
    """
    violations = []
    for row in rows:
        if not row.is_live:
            continue
        if clause.node is not None and not clause.node.is_pass(row.node):
            continue
        value = row.get(clause.tag.name)
        if value is None or clause.tag.is_pass(value):
            continue
        violations.append(
            Violation(
                clause=clause,
                collection=collection,
                shard=None,
                node=row.node,
                partition=row.node,
                actual=value,
                expected=clause.tag.text,
                delta=clause.tag.delta(value),
                replicas=tuple(row.iter_replicas(collection)),
                nodes=(row.node,),
            )
        )
    return violations


def sort_violations(violations: Iterable[Violation]) -> list[Violation]:
    """Return violations in clause priority order."""
    return sorted(violations, key=Violation.sort_key)
