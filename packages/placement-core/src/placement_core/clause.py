"""
Clause model.

A Clause is one declarative placement constraint parsed from an
attribute-bag document such as:

    {"replica": "<2", "shard": "#EACH", "node": "#ANY"}
    {"replica": 0, "nodeRole": "overseer", "strict": false}
    {"replica": 2, "sysprop.fs": "ssd", "shard": "#EACH", "type": "TLOG"}
    {"cores": "<10", "node": "#ANY"}

Reserved keys (replica, shard, collection, node, type, strict) set the
replica-count condition and the scope. The single remaining key is the tag
condition. When `node` is the only attribute it is itself the tag; otherwise
it filters the rows the clause looks at. A clause without `replica` is a
node-attribute clause: it constrains a node's own attribute (e.g. cores)
and is violated by the node, not by a replica count.

Raw values are resolved once, here, into typed Conditions. Evaluation never
re-interprets the document.
"""

from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Iterable, Mapping

from placement_protocols import ReplicaType

from placement_core.exceptions import ValidationError
from placement_core.operand import Condition, Operand
from placement_core.validation import ANY, EACH, to_number, validate

RESERVED_KEYS = frozenset({"replica", "shard", "collection", "node", "type", "strict"})


@dataclass(frozen=True, eq=False)
class Clause:
    """
    One constraint over replica placement.

    Clauses compare by identity: two clauses parsed from equal documents
    are distinct constraints (one may come from a collection policy and one
    from the cluster policy).

    Attributes:
        original: The document mapping the clause was parsed from
        tag: Attribute predicate a node must pass to be counted
        replica: Replica-count condition, None for node-attribute clauses
        collection: Collection scope, None meaning any collection
        shard: Shard scope ("#EACH", "#ANY" or a name), None meaning "#ANY"
        type: Replica type scope, None meaning any type
        node: Node filter when the tag is not the node itself
        strict: False marks the clause advisory
    """

    original: Mapping[str, Any] = field(repr=True)
    tag: Condition
    replica: Condition | None = None
    collection: Condition | None = None
    shard: Condition | None = None
    type: ReplicaType | None = None
    node: Condition | None = None
    strict: bool = True

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Clause":
        """
        Parse a clause document.

        Collects every problem in the document before raising.

        Raises:
            ValidationError: If any value is malformed or out of range, or
                the document does not name exactly one attribute condition.
        """
        errors: list[str] = []

        def parse(name: str, raw: Any) -> Condition | None:
            try:
                return Condition.parse(name, raw)
            except ValidationError as e:
                errors.extend(f"{name}: {msg}" for msg in e.errors)
                return None

        attributes = [key for key in data if key not in RESERVED_KEYS]
        tag: Condition | None = None
        node: Condition | None = None
        if len(attributes) > 1:
            errors.append(
                f"only one attribute condition is allowed per clause, found: {', '.join(attributes)}"
            )
        elif attributes:
            tag = parse(attributes[0], data[attributes[0]])
            if "node" in data:
                node = parse("node", data["node"])
        elif "node" in data:
            tag = parse("node", data["node"])
        else:
            errors.append("clause must name a node or an attribute condition")

        replica = parse("replica", data["replica"]) if "replica" in data else None
        if "replica" not in data and tag is not None and tag.name == "node":
            errors.append("a clause without 'replica' must constrain a node attribute")

        collection = parse("collection", data["collection"]) if "collection" in data else None
        shard = parse("shard", data["shard"]) if "shard" in data else None

        replica_type: ReplicaType | None = None
        if data.get("type") not in (None, ANY):
            try:
                replica_type = ReplicaType.get(validate("type", str(data["type"]).upper()))
            except ValidationError as e:
                errors.extend(f"type: {msg}" for msg in e.errors)

        strict = True
        if "strict" in data:
            try:
                strict = validate("strict", data["strict"])
            except ValidationError as e:
                errors.extend(f"strict: {msg}" for msg in e.errors)

        if errors:
            raise ValidationError(f"clause {dict(data)}", errors)

        return cls(
            original=MappingProxyType(dict(data)),
            tag=tag,
            replica=replica,
            collection=collection,
            shard=shard,
            type=replica_type,
            node=node,
            strict=strict,
        )

    # -- derived properties ---------------------------------------------------

    @property
    def is_replica_clause(self) -> bool:
        """True when the clause bounds a replica count."""
        return self.replica is not None

    @property
    def is_greedy(self) -> bool:
        """
        True for clauses that actively pack replicas onto matching nodes.

        An exact positive replica count combined with a concrete, positive
        tag ("exactly 2 replicas on sysprop.fs=ssd nodes").
        """
        if self.replica is None or self.replica.operand is not Operand.EQUAL:
            return False
        count = to_number(self.replica.value)
        return (
            count is not None
            and count > 0
            and not self.tag.is_wildcard
            and not self.tag.is_negated
        )

    @property
    def is_exclusion(self) -> bool:
        """True for `{replica: 0, tag: '!value'}` clauses."""
        return self.is_zero_bound and self.tag.is_negated

    @property
    def is_zero_bound(self) -> bool:
        """True when nodes passing the tag may host no replica at all."""
        return (
            self.replica is not None
            and self.replica.operand is Operand.EQUAL
            and to_number(self.replica.value) == 0
            and not self.tag.is_wildcard
        )

    @property
    def shard_mode(self) -> str:
        """"#EACH", "#ANY" or the named shard."""
        if self.shard is None:
            return ANY
        return str(self.shard.value)

    # -- scope checks ---------------------------------------------------------

    def applies_to_collection(self, collection: str) -> bool:
        if self.collection is None or self.collection.is_wildcard:
            return True
        return self.collection.is_pass(collection)

    def applies_to_shard(self, shard: str) -> bool:
        mode = self.shard_mode
        return mode in (ANY, EACH) or mode == shard

    def applies_to_type(self, replica_type: ReplicaType) -> bool:
        return self.type is None or self.type is replica_type

    def counts(self, collection: str, shard: str, replica_type: ReplicaType) -> bool:
        """True when a replica with this scope is counted by the clause."""
        return (
            self.applies_to_collection(collection)
            and self.applies_to_shard(shard)
            and self.applies_to_type(replica_type)
        )

    def matches_node(self, node: str, value: Any) -> bool:
        """True when a node with this tag value falls inside the clause."""
        if self.node is not None and not self.node.is_pass(node):
            return False
        return self.tag.is_pass(value)

    def does_override(self, other: "Clause") -> bool:
        """
        True when this (collection policy) clause replaces a cluster clause.

        A collection clause overrides a cluster clause constraining the same
        tag attribute whose collection scope covers this clause's collection.
        """
        if self.tag.name != other.tag.name:
            return False
        if other.collection is None or other.collection.is_wildcard:
            return True
        return _scope_text(self.collection) == _scope_text(other.collection)

    # -- ordering -------------------------------------------------------------

    def sort_key(self) -> tuple:
        """
        Total order used for merge and evaluation priority.

        (a) concrete tag and replica tests before ranges and wildcards, with
        larger exact counts and tighter `<` bounds first; (b) named
        collection/shard before "#EACH" before "#ANY"; (c) tag name;
        (d) tag value text.
        """
        if self.replica is None:
            replica_key: tuple = (1, 0, 0.0)
        else:
            count = to_number(self.replica.value) or 0.0
            rank = count if self.replica.operand is Operand.LESS_THAN else -count
            replica_key = (0, self.replica.operand.priority, rank)

        collection_rank = 0 if _scope_text(self.collection) != ANY else 1
        shard_mode = self.shard_mode
        shard_rank = 2 if shard_mode == ANY else 1 if shard_mode == EACH else 0

        return (
            self.tag.operand.priority,
            replica_key,
            collection_rank,
            shard_rank,
            self.tag.name,
            str(self.tag.value),
        )

    def __lt__(self, other: "Clause") -> bool:
        return self.sort_key() < other.sort_key()

    def to_dict(self) -> dict[str, Any]:
        """Return the original document mapping."""
        return dict(self.original)

    def __str__(self) -> str:
        return str(self.to_dict())


def _scope_text(condition: Condition | None) -> str:
    if condition is None or condition.is_wildcard:
        return ANY
    return str(condition.value)


def sort_clauses(clauses: Iterable[Clause]) -> list[Clause]:
    """Return clauses in evaluation priority order."""
    return sorted(clauses, key=Clause.sort_key)
