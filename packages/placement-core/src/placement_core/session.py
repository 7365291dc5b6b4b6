"""
Session: an immutable snapshot of the cluster evaluated against a policy.

A Session is built once from the providers: one Row per live node, sorted
best-first by the policy preferences. Violations are computed lazily and
memoized. Every placement decision produces a new Session (version + 1)
holding the changed rows; the old session stays valid, so callers can keep
it as a baseline.

Example:
    ```python
    session = policy.create_session(cluster_state, node_state)
    for violation in session.get_violations():
        print(violation.to_dict())

    suggestion = (
        session.get_suggester(CollectionAction.ADDREPLICA)
        .hint(Hint.COLL_SHARD, ("gettingstarted", "shard1"))
        .get_suggestion()
    )
    ```
"""

import logging
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from placement_protocols import ClusterStateProvider, NodeId, NodeStateProvider

from placement_core.clause import Clause
from placement_core.policy import Policy, sort_rows
from placement_core.row import Row
from placement_core.violation import (
    Violation,
    node_violations,
    replica_violations,
    sort_violations,
)

if TYPE_CHECKING:
    from placement_core.suggester import CollectionAction, Suggester

logger = logging.getLogger(__name__)


def _ordered_live_nodes(cluster_state: ClusterStateProvider) -> list[NodeId]:
    live = cluster_state.live_nodes()
    if isinstance(live, (set, frozenset)):
        return sorted(live)
    return list(live)


class Session:
    """
    Sorted rows plus the violations they produce under a policy.

    Treat instances as immutable. Memoized values are computed once and
    never change.

    Attributes:
        policy: Policy the session evaluates
        rows: Rows sorted best-first
        version: Generation number, +1 per placement decision
        cluster_state: Provider the session was built from, if any
        node_state: Provider the session was built from, if any
        policy_mapping: Explicit collection -> policy name mapping
    """

    def __init__(
        self,
        policy: Policy,
        rows: Iterable[Row],
        cluster_state: ClusterStateProvider | None = None,
        node_state: NodeStateProvider | None = None,
        policy_mapping: Mapping[str, str] | None = None,
        version: int = 0,
    ) -> None:
        self.policy = policy
        self.rows: tuple[Row, ...] = tuple(sort_rows(policy.preferences, rows))
        self.cluster_state = cluster_state
        self.node_state = node_state
        self.policy_mapping = dict(policy_mapping or {})
        self.version = version

        self._violations: list[Violation] | None = None
        self._violations_for: dict[tuple[str, str | None], list[Violation]] = {}
        self._cluster_node_violations: list[Violation] | None = None

    @classmethod
    def build(
        cls,
        policy: Policy,
        cluster_state: ClusterStateProvider,
        node_state: NodeStateProvider,
        policy_mapping: Mapping[str, str] | None = None,
    ) -> "Session":
        """
        Fetch every live node's state and build a session.

        Provider errors propagate unchanged.
        """
        params = policy.params
        rows = [
            Row.build(node, params, node_state, is_live=True, order=order)
            for order, node in enumerate(_ordered_live_nodes(cluster_state))
        ]
        logger.debug(f"Built session over {len(rows)} live node(s), params={params}")
        return cls(
            policy,
            rows,
            cluster_state=cluster_state,
            node_state=node_state,
            policy_mapping=policy_mapping,
        )

    # -- lookups --------------------------------------------------------------

    def row(self, node: NodeId) -> Row | None:
        for row in self.rows:
            if row.node == node:
                return row
        return None

    @property
    def live_rows(self) -> list[Row]:
        return [row for row in self.rows if row.is_live]

    @property
    def collections(self) -> list[str]:
        """Collections hosted anywhere in the session, in discovery order."""
        seen: dict[str, None] = {}
        for row in sorted(self.rows, key=lambda r: r.order):
            for collection in row.collections:
                seen.setdefault(collection)
        return list(seen)

    def shards_of(self, collection: str) -> list[str]:
        """Shards of a collection hosted anywhere in the session."""
        seen: dict[str, None] = {}
        for row in sorted(self.rows, key=lambda r: r.order):
            for shard in row.replicas.get(collection, {}):
                seen.setdefault(shard)
        return list(seen)

    def policy_name(self, collection: str) -> str | None:
        """Named policy for a collection: explicit mapping, then the provider."""
        if collection in self.policy_mapping:
            return self.policy_mapping[collection]
        lookup = getattr(self.cluster_state, "policy_name_for_collection", None)
        return lookup(collection) if lookup is not None else None

    def clauses_for(self, collection: str) -> list[Clause]:
        return self.policy.clauses_for(collection, self.policy_name(collection))

    # -- violations -----------------------------------------------------------

    def _cluster_node_clause_violations(self) -> list[Violation]:
        if self._cluster_node_violations is None:
            found = []
            for clause in self.policy.cluster_clauses:
                if clause.is_replica_clause:
                    continue
                if clause.collection is None or clause.collection.is_wildcard:
                    found.extend(node_violations(clause, self.rows))
            self._cluster_node_violations = found
        return self._cluster_node_violations

    def _collection_violations(self, collection: str, shard: str | None) -> list[Violation]:
        shards = self.shards_of(collection)
        if shard is not None and shard not in shards:
            shards.append(shard)

        found = []
        for clause in self.clauses_for(collection):
            if clause.is_replica_clause:
                found.extend(replica_violations(clause, self.rows, collection, shards))
            elif clause.collection is not None and not clause.collection.is_wildcard:
                found.extend(node_violations(clause, self.rows, collection))
        return found

    @property
    def violations(self) -> list[Violation]:
        """Every violation in the session, in clause priority order."""
        if self._violations is None:
            found = list(self._cluster_node_clause_violations())
            for collection in self.collections:
                found.extend(self._collection_violations(collection, None))
            self._violations = sort_violations(found)
            logger.debug(f"Session v{self.version}: {len(self._violations)} violation(s)")
        return self._violations

    def get_violations(self, strict_only: bool = False) -> list[Violation]:
        """Return violations, optionally only those of strict clauses."""
        if strict_only:
            return [violation for violation in self.violations if violation.clause.strict]
        return list(self.violations)

    def violations_for(self, collection: str, shard: str | None = None) -> list[Violation]:
        """
        Violations relevant to placing a replica of collection/shard.

        Evaluates the clauses applying to the collection, with shard as a
        scope instance even when none of its replicas exist yet, plus the
        cluster node-attribute clauses.
        """
        key = (collection, shard)
        found = self._violations_for.get(key)
        if found is None:
            found = sort_violations(
                self._cluster_node_clause_violations()
                + self._collection_violations(collection, shard)
            )
            self._violations_for[key] = found
        return found

    # -- derived sessions -----------------------------------------------------

    def with_rows(self, changed: Iterable[Row]) -> "Session":
        """Return the next session with some rows replaced."""
        replacements = {row.node: row for row in changed}
        rows = [replacements.pop(row.node, row) for row in self.rows]
        rows.extend(replacements.values())
        return Session(
            self.policy,
            rows,
            cluster_state=self.cluster_state,
            node_state=self.node_state,
            policy_mapping=self.policy_mapping,
            version=self.version + 1,
        )

    def with_policy_mapping(self, policy_mapping: Mapping[str, str]) -> "Session":
        """Return this session with extra collection -> policy name entries."""
        merged = {**self.policy_mapping, **policy_mapping}
        if merged == self.policy_mapping:
            return self
        return Session(
            self.policy,
            self.rows,
            cluster_state=self.cluster_state,
            node_state=self.node_state,
            policy_mapping=merged,
            version=self.version,
        )

    def including_node(self, node: NodeId) -> "Session":
        """
        Return a session that also holds a non-live row for node.

        Used to drain replicas off a node that left the live set.

        Raises:
            ValueError: If the node is unknown and the session has no
                node-state provider to fetch it from.
        """
        if self.row(node) is not None:
            return self
        if self.node_state is None:
            raise ValueError(f"Cannot fetch state of node {node}: session has no node-state provider")
        row = Row.build(
            node,
            self.policy.params,
            self.node_state,
            is_live=False,
            order=max((r.order for r in self.rows), default=-1) + 1,
        )
        logger.debug(f"Including non-live node {node} with {row.replica_count()} replica(s)")
        return Session(
            self.policy,
            list(self.rows) + [row],
            cluster_state=self.cluster_state,
            node_state=self.node_state,
            policy_mapping=self.policy_mapping,
            version=self.version,
        )

    def get_suggester(self, action: "CollectionAction | str") -> "Suggester":
        """Return a suggester builder for the action on this session."""
        from placement_core.suggester import Suggester

        return Suggester.for_action(self, action)

    def to_dict(self) -> dict[str, Any]:
        """Render as a plain mapping for reports and JSON output."""
        return {
            "version": self.version,
            "sortedNodes": [row.to_dict() for row in self.rows],
            "violations": [violation.to_dict() for violation in self.violations],
        }
