"""
Placement Core Library

Declarative replica placement for a sharded, replicated data cluster.
Given live nodes with observed attributes and a policy of clauses and
preferences, the engine decides where replicas should live, detects
violations of the current placement and proposes corrective operations.

This package provides:

- Clause/Operand: Parsed, validated placement constraints
- Policy: Cluster clauses, named collection policies and preferences
- Row/Session: Immutable cluster snapshots sorted by preference
- Violation: Detected breaches of clauses
- Suggester: Greedy search for the next add/move operation
- Helper: Bulk placement, batch suggestions and the session cache
- CLI infrastructure: Typer-based diagnostic commands
"""

__version__ = "0.1.0"

from placement_core.clause import Clause
from placement_core.config import PlacementConfig, load_config
from placement_core.exceptions import PlacementEngineError, PlacementError, ValidationError
from placement_core.helper import (
    ReplicaPosition,
    SessionCache,
    SessionRef,
    SuggestionInfo,
    get_replica_locations,
    get_suggestions,
)
from placement_core.operand import Condition, Operand
from placement_core.policy import Policy, PolicyDocument, Preference, SortDirection, merge_policies
from placement_core.row import Row
from placement_core.session import Session
from placement_core.suggester import (
    CollectionAction,
    Hint,
    OperationDescriptor,
    Suggester,
    Suggestion,
)
from placement_core.validation import ANY, EACH, validate
from placement_core.violation import Violation

__all__ = [
    "__version__",
    # Clauses and policy
    "Clause",
    "Condition",
    "Operand",
    "Policy",
    "PolicyDocument",
    "Preference",
    "SortDirection",
    "merge_policies",
    "validate",
    "ANY",
    "EACH",
    # Sessions
    "Row",
    "Session",
    "Violation",
    # Suggesters
    "CollectionAction",
    "Hint",
    "OperationDescriptor",
    "Suggester",
    "Suggestion",
    # Orchestration
    "PlacementConfig",
    "load_config",
    "ReplicaPosition",
    "SessionCache",
    "SessionRef",
    "SuggestionInfo",
    "get_replica_locations",
    "get_suggestions",
    # Errors
    "PlacementEngineError",
    "PlacementError",
    "ValidationError",
]
