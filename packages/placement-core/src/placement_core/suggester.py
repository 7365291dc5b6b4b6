"""
Suggesters: greedy search for the next placement operation.

A suggester is a builder over one Session:

    suggestion = (
        session.get_suggester(CollectionAction.MOVEREPLICA)
        .hint(Hint.SRC_NODE, "node1")
        .get_suggestion()
    )

get_suggestion() returns a Suggestion (the operation plus the Session it
leads to) or None when the policy is satisfied for the request or no
improving operation exists. Callers chain by asking suggestion.session for
the next suggester.

The search runs in two passes. In the first every clause is binding, so
advisory clauses steer the choice. In the second only strict clauses are
binding. A candidate is rejected when a binding clause gains a violation or
one of its existing violations gets worse.

Per project patterns:
- str enums for actions and hints
- Pydantic model for the emitted operation descriptor
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ClassVar, Iterable, Iterator

from pydantic import BaseModel, Field, computed_field

from placement_protocols import NodeId, ReplicaInfo, ReplicaType

from placement_core.clause import Clause
from placement_core.policy import compare_rows
from placement_core.row import Row
from placement_core.session import Session
from placement_core.validation import ANY
from placement_core.violation import Violation

logger = logging.getLogger(__name__)


class CollectionAction(str, Enum):
    """Operations a suggester can emit."""

    ADDREPLICA = "addreplica"
    """Create a new replica of a shard on a node."""

    MOVEREPLICA = "movereplica"
    """Relocate an existing replica to another node."""

    @property
    def command(self) -> str:
        """Command name used in the operation descriptor."""
        return "add-replica" if self is CollectionAction.ADDREPLICA else "move-replica"


class Hint(str, Enum):
    """Constraints a caller places on the search."""

    COLL = "coll"
    """Restrict to collections (any-of)."""

    COLL_SHARD = "coll_shard"
    """Restrict to (collection, shard) pairs (any-of)."""

    SRC_NODE = "src_node"
    """Move replicas off these nodes (any-of)."""

    TARGET_NODE = "target_node"
    """Place replicas only on these nodes (any-of)."""

    REPLICATYPE = "replicatype"
    """Type of replica to add (last value wins, default NRT)."""

    @property
    def is_multi_valued(self) -> bool:
        return self is not Hint.REPLICATYPE


class OperationDescriptor(BaseModel):
    """
    Description of a collection operation for an external executor.

    The engine never executes operations; it emits this descriptor.
    """

    action: CollectionAction = Field(description="Operation kind")
    method: str = Field(default="POST", description="HTTP method")
    path: str = Field(description="Request path, e.g. /c/gettingstarted")
    params: dict[str, str] = Field(default_factory=dict, description="Operation parameters")

    @computed_field
    @property
    def command(self) -> dict[str, dict[str, str]]:
        """Request body in command form, e.g. {"move-replica": {...}}."""
        return {self.action.command: dict(self.params)}

    def to_dict(self) -> dict[str, Any]:
        return {"method": self.method, "path": self.path, "command": self.command}


@dataclass(frozen=True)
class Suggestion:
    """
    One suggested operation and the session it leads to.

    Attributes:
        action: Operation kind
        collection: Collection of the replica
        shard: Shard of the replica
        replica_type: Type of the replica
        target_node: Node receiving the replica
        session: Session after the operation
        source_node: Node losing the replica (move only)
        replica: Replica being moved (move only)
        violation: Violation the operation addresses, if any
    """

    action: CollectionAction
    collection: str
    shard: str
    replica_type: ReplicaType
    target_node: NodeId
    session: Session
    source_node: NodeId | None = None
    replica: ReplicaInfo | None = None
    violation: Violation | None = None

    def to_operation(self) -> OperationDescriptor:
        """Build the operation descriptor for an external executor."""
        if self.action is CollectionAction.ADDREPLICA:
            params = {
                "collection": self.collection,
                "shard": self.shard,
                "node": self.target_node,
                "type": self.replica_type.value,
            }
        else:
            params = {
                "collection": self.collection,
                "shard": self.shard,
                "replica": self.replica.name if self.replica else "",
                "targetNode": self.target_node,
                "sourceNode": self.source_node or "",
                "type": self.replica_type.value,
            }
        return OperationDescriptor(
            action=self.action,
            path=f"/c/{self.collection}",
            params=params,
        )

    def __str__(self) -> str:
        if self.action is CollectionAction.ADDREPLICA:
            return f"add {self.replica_type.value} replica of {self.collection}/{self.shard} on {self.target_node}"
        return (
            f"move {self.replica.name if self.replica else '?'} of {self.collection}/{self.shard} "
            f"from {self.source_node} to {self.target_node}"
        )


BindingFilter = Callable[[Clause], bool]

_PASSES: tuple[tuple[str, BindingFilter], ...] = (
    ("all clauses", lambda clause: True),
    ("strict clauses", lambda clause: clause.strict),
)


def _is_acceptable(
    baseline: Iterable[Violation],
    candidate: Iterable[Violation],
    binding: BindingFilter,
) -> bool:
    """True when no binding clause gains a violation or gets worse."""
    before = {v.key: v for v in baseline if binding(v.clause)}
    for violation in candidate:
        if not binding(violation.clause):
            continue
        prior = before.get(violation.key)
        if prior is None or violation.severity() > prior.severity():
            return False
    return True


class Suggester:
    """
    Base suggester builder.

    Hints accumulate through hint(); the result is computed on the first
    get_suggestion() call and memoized until the hints change.
    """

    action: ClassVar[CollectionAction]

    def __init__(self, session: Session) -> None:
        self.session = session
        self.hints: dict[Hint, Any] = {}
        self._computed = False
        self._suggestion: Suggestion | None = None

    @staticmethod
    def for_action(session: Session, action: "CollectionAction | str") -> "Suggester":
        action = CollectionAction(action)
        if action is CollectionAction.ADDREPLICA:
            return AddReplicaSuggester(session)
        return MoveReplicaSuggester(session)

    def hint(self, hint: "Hint | str", value: Any) -> "Suggester":
        """
        Add a hint and return the suggester for chaining.

        Multi-valued hints accept a single value or an iterable of values.
        COLL_SHARD values are (collection, shard) tuples.
        """
        hint = Hint(hint)
        if hint is Hint.REPLICATYPE:
            self.hints[hint] = ReplicaType.get(value)
        else:
            values = self.hints.setdefault(hint, [])
            if isinstance(value, str) or (
                hint is Hint.COLL_SHARD and isinstance(value, tuple) and len(value) == 2
                and all(isinstance(part, str) for part in value)
            ):
                value = [value]
            for item in value:
                if hint is Hint.COLL_SHARD:
                    item = tuple(item)
                if item not in values:
                    values.append(item)
        self._computed = False
        return self

    # -- hint accessors -------------------------------------------------------

    @property
    def replica_type(self) -> ReplicaType:
        return self.hints.get(Hint.REPLICATYPE, ReplicaType.NRT)

    @property
    def coll_shards(self) -> list[tuple[str, str]]:
        return list(self.hints.get(Hint.COLL_SHARD, []))

    @property
    def collections(self) -> set[str]:
        names = set(self.hints.get(Hint.COLL, []))
        names.update(collection for collection, _ in self.coll_shards)
        return names

    @property
    def target_nodes(self) -> list[NodeId] | None:
        return self.hints.get(Hint.TARGET_NODE)

    @property
    def source_nodes(self) -> list[NodeId] | None:
        return self.hints.get(Hint.SRC_NODE)

    def allows_target(self, row: Row) -> bool:
        targets = self.target_nodes
        return row.is_live and (targets is None or row.node in targets)

    def allows_replica(self, replica: ReplicaInfo) -> bool:
        """True when a replica falls inside the COLL/COLL_SHARD hints."""
        collections = self.hints.get(Hint.COLL)
        pairs = self.coll_shards
        if not collections and not pairs:
            return True
        if collections and replica.collection in collections:
            return True
        return (replica.collection, replica.shard) in pairs

    # -- results --------------------------------------------------------------

    def get_suggestion(self) -> Suggestion | None:
        """Return the next operation, or None when there is nothing to do."""
        if not self._computed:
            self._suggestion = self.compute()
            self._computed = True
            if self._suggestion is None:
                logger.debug(f"{self.action.value}: no suggestion for hints {self.hints}")
            else:
                logger.debug(f"{self.action.value}: {self._suggestion}")
        return self._suggestion

    def get_session(self) -> Session:
        """Session after the suggested operation, or the current one."""
        suggestion = self.get_suggestion()
        return suggestion.session if suggestion is not None else self.session

    def compute(self) -> Suggestion | None:
        raise NotImplementedError


class AddReplicaSuggester(Suggester):
    """Find a node for a new replica of a shard."""

    action = CollectionAction.ADDREPLICA

    def compute(self) -> Suggestion | None:
        pairs = self.coll_shards
        if not pairs:
            raise ValueError("add-replica requires a COLL_SHARD hint naming the collection and shard")

        for label, binding in _PASSES:
            for collection, shard in pairs:
                suggestion = self._place(collection, shard, binding)
                if suggestion is not None:
                    logger.debug(f"add-replica placed with {label} binding")
                    return suggestion
        return None

    def _pruned(self, clauses: list[Clause], collection: str, shard: str, row: Row) -> bool:
        replica_type = self.replica_type
        return any(
            clause.strict
            and clause.is_zero_bound
            and clause.counts(collection, shard, replica_type)
            and clause.matches_node(row.node, row.get(clause.tag.name))
            for clause in clauses
        )

    def _greedy_nodes(self, baseline: list[Violation], collection: str, shard: str) -> set[NodeId]:
        nodes: set[NodeId] = set()
        for violation in baseline:
            clause = violation.clause
            if not (clause.is_greedy and violation.is_too_few):
                continue
            if violation.shard not in (shard, ANY):
                continue
            if clause.counts(collection, shard, self.replica_type):
                nodes.update(violation.nodes)
        return nodes

    def candidate_rows(self, collection: str, shard: str) -> list[Row]:
        """Rows to try, greedy-unmet rows first, then best-first order."""
        session = self.session
        clauses = session.clauses_for(collection)
        baseline = session.violations_for(collection, shard)
        rows = [
            row
            for row in session.rows
            if self.allows_target(row) and not self._pruned(clauses, collection, shard, row)
        ]
        greedy = self._greedy_nodes(baseline, collection, shard)
        return [row for row in rows if row.node in greedy] + [
            row for row in rows if row.node not in greedy
        ]

    def _place(self, collection: str, shard: str, binding: BindingFilter) -> Suggestion | None:
        session = self.session
        baseline = session.violations_for(collection, shard)
        for row in self.candidate_rows(collection, shard):
            changed = row.with_added_replica(collection, shard, self.replica_type)
            candidate = session.with_rows([changed])
            if _is_acceptable(baseline, candidate.violations_for(collection, shard), binding):
                return Suggestion(
                    action=self.action,
                    collection=collection,
                    shard=shard,
                    replica_type=self.replica_type,
                    target_node=row.node,
                    session=candidate,
                )
        return None


class MoveReplicaSuggester(Suggester):
    """Find a replica relocation that fixes a violation or drains a node."""

    action = CollectionAction.MOVEREPLICA

    def __init__(self, session: Session) -> None:
        super().__init__(session)
        # self.session plus non-live rows for SRC_NODE hints
        self._working = session

    def compute(self) -> Suggestion | None:
        session = self.session
        for node in self.source_nodes or []:
            if session.row(node) is None:
                session = session.including_node(node)
        self._working = session

        for label, binding in _PASSES:
            suggestion = self._fix_violations(binding)
            if suggestion is not None:
                logger.debug(f"move-replica fixes a violation with {label} binding")
                return suggestion

        for label, binding in _PASSES:
            if self.source_nodes:
                suggestion = self._drain(binding)
            elif self.target_nodes:
                suggestion = self._rebalance(binding)
            else:
                suggestion = None
            if suggestion is not None:
                logger.debug(f"move-replica fallback with {label} binding")
                return suggestion
        return None

    # -- helpers --------------------------------------------------------------

    def _matches_hints(self, violation: Violation) -> bool:
        if violation.collection is None:
            return any(self.allows_replica(replica) for replica in violation.replicas)
        collections = self.hints.get(Hint.COLL)
        pairs = self.coll_shards
        if not collections and not pairs:
            return True
        if collections and violation.collection in collections:
            return True
        return any(
            collection == violation.collection and violation.shard in (shard, ANY)
            for collection, shard in pairs
        )

    def _allows_source(self, replica: ReplicaInfo) -> bool:
        sources = self.source_nodes
        return sources is None or replica.node in sources

    def _destinations(self, source: NodeId) -> Iterator[Row]:
        for row in self._working.rows:
            if row.node != source and self.allows_target(row):
                yield row

    def _try_move(
        self,
        replica: ReplicaInfo,
        destination: Row,
        binding: BindingFilter,
        violation: Violation | None = None,
    ) -> Suggestion | None:
        session = self._working
        source = session.row(replica.node)
        if source is None:
            return None
        removed = source.with_removed_replica(replica.collection, replica.shard, replica.name)
        if removed is None:
            return None
        source_after, _ = removed
        destination_after = destination.with_added_replica(
            replica.collection, replica.shard, replica.type, replica
        )
        candidate = session.with_rows([source_after, destination_after])

        if violation is not None:
            remaining = {v.key: v for v in candidate.violations}
            after = remaining.get(violation.key)
            if after is not None and after.severity() >= violation.severity():
                return None

        baseline = session.violations_for(replica.collection, replica.shard)
        if not _is_acceptable(
            baseline, candidate.violations_for(replica.collection, replica.shard), binding
        ):
            return None

        return Suggestion(
            action=self.action,
            collection=replica.collection,
            shard=replica.shard,
            replica_type=replica.type,
            target_node=destination.node,
            source_node=source.node,
            replica=replica,
            violation=violation,
            session=candidate,
        )

    def _violation_moves(self, violation: Violation) -> Iterator[tuple[ReplicaInfo, list[Row]]]:
        """Yield (replica, destinations) pairs that may reduce a violation."""
        session = self._working
        if violation.is_too_few:
            clause = violation.clause
            inside = set(violation.nodes)
            destinations = [row for row in session.rows if row.node in inside]
            for row in session.rows:
                if row.node in inside or not row.is_live:
                    continue
                for replica in row.iter_replicas(violation.collection):
                    if violation.shard not in (ANY, replica.shard):
                        continue
                    if clause.applies_to_type(replica.type):
                        yield replica, destinations
            return

        for replica in violation.replicas:
            yield replica, list(self._destinations(replica.node))

    def _fix_violations(self, binding: BindingFilter) -> Suggestion | None:
        for violation in self._working.violations:
            if not binding(violation.clause) or not self._matches_hints(violation):
                continue
            if not (violation.is_too_many or violation.is_too_few or violation.is_node_attribute):
                continue
            for replica, destinations in self._violation_moves(violation):
                if not (self.allows_replica(replica) and self._allows_source(replica)):
                    continue
                for destination in destinations:
                    if destination.node == replica.node or not self.allows_target(destination):
                        continue
                    suggestion = self._try_move(replica, destination, binding, violation)
                    if suggestion is not None:
                        return suggestion
        return None

    def _drain(self, binding: BindingFilter) -> Suggestion | None:
        """Move any replica off the SRC_NODE nodes."""
        for node in self.source_nodes or []:
            source = self._working.row(node)
            if source is None:
                continue
            for replica in source.iter_replicas():
                if not self.allows_replica(replica):
                    continue
                for destination in self._destinations(node):
                    suggestion = self._try_move(replica, destination, binding)
                    if suggestion is not None:
                        return suggestion
        return None

    def _rebalance(self, binding: BindingFilter) -> Suggestion | None:
        """Move a replica from the worst rows onto a TARGET_NODE node."""
        preferences = self._working.policy.preferences
        targets = [row for row in self._working.rows if self.allows_target(row)]
        for source in reversed(self._working.live_rows):
            if source.node in (self.target_nodes or []):
                continue
            for target in targets:
                if compare_rows(preferences, target, source) >= 0:
                    continue
                for replica in source.iter_replicas():
                    if not self.allows_replica(replica):
                        continue
                    suggestion = self._try_move(replica, target, binding)
                    if suggestion is None:
                        continue
                    after = suggestion.session
                    if compare_rows(preferences, after.row(target.node), after.row(source.node)) <= 0:
                        return suggestion
        return None
