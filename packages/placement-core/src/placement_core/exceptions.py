"""
Exception classes for the placement engine.

This module defines the error taxonomy of the engine:
- ValidationError: A clause or preference value is malformed or out of range
- PlacementError: Bulk placement could not find a legal node for a replica

"No suggestion" is not an exception: a suggester returning None
is a valid terminal outcome meaning the policy is satisfied for the request
or no improving operation exists.

Per project patterns:
- Store context data in attributes for error handling
- Include descriptive message with relevant details
"""

from placement_protocols import ReplicaType


class PlacementEngineError(Exception):
    """Base class for errors raised by the placement engine."""


class ValidationError(PlacementEngineError):
    """
    Raised when a policy value fails validation.

    Validation happens when a Clause, Preference or Policy is constructed,
    never during evaluation, so a constructed Policy is always evaluable.
    All problems found in one clause are collected before raising.

    Attributes:
        name: Attribute name or clause being validated
        errors: List of human-readable error messages
    """

    def __init__(self, name: str, errors: list[str]) -> None:
        self.name = name
        self.errors = errors
        super().__init__(str(self))

    def __str__(self) -> str:
        """Format as readable error message."""
        error_list = "; ".join(self.errors)
        return f"Validation failed for {self.name}: {error_list}"


class PlacementError(PlacementEngineError):
    """
    Raised when a required replica cannot be placed.

    The engine performs no retry. The caller decides whether to
    under-provision or abort.

    Attributes:
        collection: Collection being placed
        shard: Shard whose replica could not be placed
        replica_type: Type of the replica that could not be placed
        placed: Number of replicas successfully placed before the failure
    """

    def __init__(
        self,
        collection: str,
        shard: str,
        replica_type: ReplicaType,
        placed: int = 0,
    ) -> None:
        self.collection = collection
        self.shard = shard
        self.replica_type = replica_type
        self.placed = placed
        super().__init__(
            f"No node can host a new {replica_type.value} replica of "
            f"{collection}/{shard} without violating the policy "
            f"({placed} replica(s) placed before the failure)"
        )
