"""
Placement policy: clauses, named collection policies and preferences.

A policy document looks like:

    {
        "cluster-policy": [
            {"replica": "<2", "shard": "#EACH", "node": "#ANY"},
            {"replica": 0, "nodeRole": "overseer", "strict": false}
        ],
        "cluster-preferences": [
            {"minimize": "cores", "precision": 1},
            {"maximize": "freedisk"}
        ],
        "policies": {
            "policy1": [{"replica": 1, "sysprop.fs": "ssd", "shard": "#EACH"}]
        }
    }

The document is parsed by the PolicyDocument pydantic model, then every
clause and preference is validated into typed values. A constructed Policy
is always evaluable: no evaluation step can raise ValidationError.

Per project patterns:
- Pydantic BaseModel for documents read from files
- Dataclasses for internal values
- Validation errors collected with context attributes
"""

import logging
import threading
from dataclasses import dataclass, replace
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Iterable, Mapping, Sequence

from pydantic import BaseModel, ConfigDict, Field

from placement_core.clause import Clause, sort_clauses
from placement_core.exceptions import ValidationError
from placement_core.operand import Condition, Operand
from placement_core.validation import to_number

if TYPE_CHECKING:
    from placement_protocols import ClusterStateProvider, NodeStateProvider

    from placement_core.row import Row
    from placement_core.session import Session

logger = logging.getLogger(__name__)


class PolicyDocument(BaseModel):
    """
    Policy document as stored in the cluster configuration.

    Keys use their document spelling through aliases; unset keys are not
    written back by Policy.to_document().
    """

    model_config = ConfigDict(populate_by_name=True)

    cluster_policy: list[dict[str, Any]] = Field(
        default_factory=list,
        alias="cluster-policy",
        description="Clauses applied to every collection",
    )
    cluster_preferences: list[dict[str, Any]] = Field(
        default_factory=list,
        alias="cluster-preferences",
        description="Ordered node sort preferences",
    )
    policies: dict[str, list[dict[str, Any]]] = Field(
        default_factory=dict,
        description="Named collection policies (name -> clauses)",
    )


class SortDirection(str, Enum):
    """Direction of a preference."""

    MINIMIZE = "minimize"
    """Smaller values rank better (e.g., cores)."""

    MAXIMIZE = "maximize"
    """Larger values rank better (e.g., freedisk)."""


@dataclass(frozen=True)
class Preference:
    """
    One node sort preference.

    Attributes:
        sort: Whether smaller or larger values rank better
        name: Attribute the preference reads from each row
        precision: Values within this distance of each other rank equal
    """

    sort: SortDirection
    name: str
    precision: float = 0

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Preference":
        """
        Parse `{"minimize": "cores", "precision": 1}`.

        Raises:
            ValidationError: If the document does not name exactly one of
                minimize/maximize, or the precision is not a non-negative
                number.
        """
        errors: list[str] = []
        directions = [d for d in SortDirection if d.value in data]
        if len(directions) != 1:
            errors.append("exactly one of 'minimize' or 'maximize' is required")

        precision = to_number(data.get("precision", 0))
        if precision is None or precision < 0:
            errors.append(f"precision '{data.get('precision')}' must be a non-negative number")

        unknown = set(data) - {"minimize", "maximize", "precision"}
        if unknown:
            errors.append(f"unknown keys: {', '.join(sorted(unknown))}")

        if errors:
            raise ValidationError(f"preference {dict(data)}", errors)

        sort = directions[0]
        return cls(sort=sort, name=str(data[sort.value]), precision=precision)

    def compare(self, left: Any, right: Any) -> int:
        """
        Compare two observed values.

        Returns:
            Negative if left ranks better, positive if right ranks better,
            0 if they are within precision of each other. Missing values
            rank worst.
        """
        a, b = to_number(left), to_number(right)
        if a is None or b is None:
            return (a is None) - (b is None)
        if abs(a - b) <= self.precision:
            return 0
        better = a < b if self.sort is SortDirection.MINIMIZE else a > b
        return -1 if better else 1

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {self.sort.value: self.name}
        if self.precision:
            data["precision"] = self.precision
        return data


DEFAULT_PREFERENCES: tuple[Preference, ...] = (
    Preference(sort=SortDirection.MINIMIZE, name="cores", precision=0),
)


def compare_rows(preferences: Sequence[Preference], left: "Row", right: "Row") -> int:
    """Compare two rows across preferences in significance order."""
    for preference in preferences:
        result = preference.compare(left.get(preference.name), right.get(preference.name))
        if result:
            return result
    return 0


def _bucket_ranks(preference: Preference, rows: Sequence["Row"]) -> dict[str, int]:
    """
    Rank rows for one preference.

    Rows are sorted exactly, then chained into buckets: a value within
    precision of the previous value joins its bucket. Rows missing the value
    share the bucket after the last one.
    """
    present = []
    for row in rows:
        value = to_number(row.get(preference.name))
        if value is not None:
            present.append((value, row.node))
    present.sort(reverse=preference.sort is SortDirection.MAXIMIZE, key=lambda item: item[0])

    ranks: dict[str, int] = {}
    bucket = -1
    previous: float | None = None
    for value, node in present:
        if previous is None or abs(previous - value) > preference.precision:
            bucket += 1
        previous = value
        ranks[node] = bucket

    missing = bucket + 1
    return {row.node: ranks.get(row.node, missing) for row in rows}


def sort_rows(preferences: Sequence[Preference], rows: Iterable["Row"]) -> list["Row"]:
    """
    Order rows best-first.

    Live rows before non-live rows, then preference buckets in significance
    order, then discovery order.
    """
    rows = list(rows)
    ranks = [_bucket_ranks(preference, rows) for preference in preferences]
    return sorted(
        rows,
        key=lambda row: (
            not row.is_live,
            tuple(rank[row.node] for rank in ranks),
            row.order,
        ),
    )


def bind_to_collection(clause: Clause, collection: str) -> Clause:
    """Scope a collection-policy clause to its collection."""
    if clause.collection is not None and not clause.collection.is_wildcard:
        return clause
    original = dict(clause.original)
    original["collection"] = collection
    return replace(
        clause,
        original=MappingProxyType(original),
        collection=Condition(name="collection", operand=Operand.EQUAL, value=collection),
    )


def merge_policies(
    collection: str,
    collection_clauses: Iterable[Clause],
    cluster_clauses: Iterable[Clause],
) -> list[Clause]:
    """
    Merge a collection policy with the cluster policy.

    Returns the collection clauses (scoped to the collection) plus every
    cluster clause that no collection clause overrides, sorted by clause
    priority.
    """
    scoped = [bind_to_collection(clause, collection) for clause in collection_clauses]
    merged = list(scoped)
    for clause in cluster_clauses:
        if not clause.applies_to_collection(collection):
            continue
        if any(own.does_override(clause) for own in scoped):
            logger.debug(f"Cluster clause {clause} overridden for collection {collection}")
            continue
        merged.append(clause)
    return sort_clauses(merged)


class Policy:
    """
    A validated placement policy.

    Construction validates every clause and preference; merged clause lists
    are memoized per (collection, policy name).

    Attributes:
        document: The parsed PolicyDocument
        cluster_clauses: Cluster clauses in priority order
        policies: Named collection policies, clauses in document order
        preferences: Sort preferences in significance order
    """

    def __init__(self, document: "Mapping[str, Any] | PolicyDocument | None" = None) -> None:
        if document is None:
            document = PolicyDocument()
        elif not isinstance(document, PolicyDocument):
            document = PolicyDocument.model_validate(dict(document))
        self.document = document

        self.cluster_clauses: list[Clause] = sort_clauses(
            Clause.from_dict(data) for data in document.cluster_policy
        )
        self.policies: dict[str, list[Clause]] = {
            name: [Clause.from_dict(data) for data in clauses]
            for name, clauses in document.policies.items()
        }
        preferences = [Preference.from_dict(data) for data in document.cluster_preferences]
        self.preferences: tuple[Preference, ...] = tuple(preferences) or DEFAULT_PREFERENCES
        self._merged: dict[tuple[str, str | None], list[Clause]] = {}
        self._merge_lock = threading.Lock()

        logger.debug(
            f"Policy loaded: {len(self.cluster_clauses)} cluster clause(s), "
            f"{len(self.policies)} named policies, {len(self.preferences)} preference(s)"
        )

    @classmethod
    def from_json(cls, text: str) -> "Policy":
        """Parse a policy from its JSON document."""
        return cls(PolicyDocument.model_validate_json(text))

    def clauses_for(self, collection: str, policy_name: str | None = None) -> list[Clause]:
        """
        Return the clauses that apply to a collection, in priority order.

        Args:
            collection: Collection name
            policy_name: Named policy the collection uses, if any

        Unknown policy names fall back to the cluster policy.
        """
        key = (collection, policy_name)
        merged = self._merged.get(key)
        if merged is not None:
            return merged
        with self._merge_lock:
            # One merge per key: violations key on clause identity
            merged = self._merged.get(key)
            if merged is None:
                if policy_name is not None and policy_name not in self.policies:
                    logger.warning(
                        f"Collection {collection} references unknown policy '{policy_name}', "
                        "using the cluster policy"
                    )
                own = self.policies.get(policy_name, []) if policy_name else []
                merged = merge_policies(collection, own, self.cluster_clauses)
                self._merged[key] = merged
        return merged

    @property
    def params(self) -> list[str]:
        """Attribute names referenced by clauses and preferences."""
        names = {preference.name for preference in self.preferences}
        clauses = list(self.cluster_clauses)
        for own in self.policies.values():
            clauses.extend(own)
        for clause in clauses:
            names.add(clause.tag.name)
            if clause.node is not None:
                names.add("node")
        return sorted(names)

    def to_document(self) -> dict[str, Any]:
        """Render the policy document; keys absent on input stay absent."""
        return self.document.model_dump(by_alias=True, exclude_unset=True)

    def create_session(
        self,
        cluster_state: "ClusterStateProvider",
        node_state: "NodeStateProvider",
        policy_mapping: Mapping[str, str] | None = None,
    ) -> "Session":
        """Build a Session of the cluster against this policy."""
        from placement_core.session import Session

        return Session.build(self, cluster_state, node_state, policy_mapping)

    def __repr__(self) -> str:
        return f"Policy({self.to_document()!r})"
