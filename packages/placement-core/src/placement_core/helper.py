"""
Orchestration entry points and the session cache.

- get_replica_locations(): bulk placement of a new collection's replicas
- get_suggestions(): corrective operations for every current violation
- SessionCache: reference-counted sessions shared by concurrent callers

Building a session fetches every node's state, so callers placing many
collections in a row share one through the cache. A cached session is
reused while its policy is the same object as config.policy; a new config
invalidates it. Entries are replaced, never mutated, under a lock.
"""

import itertools
import logging
import threading
from dataclasses import dataclass
from typing import Any, Hashable, Iterable, Mapping

from placement_protocols import ClusterStateProvider, NodeId, NodeStateProvider, ReplicaType

from placement_core.config import PlacementConfig
from placement_core.exceptions import PlacementError
from placement_core.session import Session
from placement_core.suggester import CollectionAction, Hint, Suggestion
from placement_core.validation import ANY
from placement_core.violation import Violation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ReplicaPosition:
    """
    Where one replica of a new collection goes.

    Attributes:
        collection: Collection being placed
        shard: Shard of the replica
        index: Position of the replica within its shard
        type: Replica type
        node: Chosen node
    """

    collection: str
    shard: str
    index: int
    type: ReplicaType
    node: NodeId

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "shard": self.shard,
            "index": self.index,
            "type": self.type.value,
            "node": self.node,
        }


@dataclass(frozen=True)
class SuggestionInfo:
    """A violation paired with the operation suggested for it."""

    violation: Violation | None
    suggestion: Suggestion

    def to_dict(self) -> dict[str, Any]:
        return {
            "violation": self.violation.to_dict() if self.violation else None,
            "operation": self.suggestion.to_operation().to_dict(),
        }


_ref_ids = itertools.count(1)


class SessionRef:
    """Opaque handle naming a session cache scope."""

    def __init__(self, name: str | None = None) -> None:
        self.name = name or f"scope-{next(_ref_ids)}"

    def __repr__(self) -> str:
        return f"SessionRef({self.name!r})"


@dataclass(frozen=True)
class _CacheEntry:
    session: Session
    refcount: int
    version: int


class SessionCache:
    """
    Reference-counted session cache keyed by scope.

    Example:
        ```python
        session, version = cache.acquire(scope, config, cluster_state, node_state)
        try:
            ...
        finally:
            cache.release(scope, version, next_session)
        ```
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._entries: dict[Hashable, _CacheEntry] = {}
        self._versions = itertools.count(1)

    def acquire(
        self,
        scope: Hashable,
        config: PlacementConfig,
        cluster_state: ClusterStateProvider,
        node_state: NodeStateProvider,
        policy_mapping: Mapping[str, str] | None = None,
    ) -> tuple[Session, int]:
        """
        Return the scope's session and its cache version.

        Reuses the cached session when it was built from config.policy;
        otherwise builds a new one under a new version.
        """
        with self._lock:
            entry = self._entries.get(scope)
            if entry is not None and entry.session.policy is config.policy:
                self._entries[scope] = _CacheEntry(entry.session, entry.refcount + 1, entry.version)
                return entry.session, entry.version

            session = config.policy.create_session(cluster_state, node_state, policy_mapping)
            version = next(self._versions)
            self._entries[scope] = _CacheEntry(session, 1, version)
            logger.debug(f"Session cache: new session for {scope!r} at version {version}")
            return session, version

    def release(self, scope: Hashable, version: int, session: Session | None = None) -> None:
        """
        Release a session acquired at version.

        Publishes session as the scope's current session when given. The
        entry is evicted when its reference count reaches zero. Releases of
        a superseded version are ignored.
        """
        with self._lock:
            entry = self._entries.get(scope)
            if entry is None or entry.version != version:
                logger.debug(f"Session cache: ignoring stale release of {scope!r} v{version}")
                return
            refcount = max(entry.refcount - 1, 0)
            if refcount == 0:
                del self._entries[scope]
                return
            self._entries[scope] = _CacheEntry(session or entry.session, refcount, version)

    def get(self, scope: Hashable) -> Session | None:
        with self._lock:
            entry = self._entries.get(scope)
            return entry.session if entry else None

    def refcount(self, scope: Hashable) -> int:
        with self._lock:
            entry = self._entries.get(scope)
            return entry.refcount if entry else 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


DEFAULT_CACHE = SessionCache()


def get_replica_locations(
    collection: str,
    config: PlacementConfig,
    cluster_state: ClusterStateProvider,
    node_state: NodeStateProvider,
    policy_mapping: Mapping[str, str] | None,
    shard_names: Iterable[str],
    nrt_replicas: int,
    tlog_replicas: int = 0,
    pull_replicas: int = 0,
    node_list: Iterable[NodeId] | None = None,
    session_ref: SessionRef | None = None,
    cache: SessionCache | None = None,
) -> list[ReplicaPosition]:
    """
    Choose nodes for every replica of a new collection.

    Replicas are placed one at a time, each decision applied to the session
    before the next, per shard NRT then TLOG then PULL.

    Args:
        collection: Collection being created
        config: Placement configuration
        cluster_state: Live node provider
        node_state: Node attribute and replica provider
        policy_mapping: Collection -> named policy, if any
        shard_names: Shards to place
        nrt_replicas: NRT replicas per shard
        tlog_replicas: TLOG replicas per shard
        pull_replicas: PULL replicas per shard
        node_list: Restrict placement to these nodes
        session_ref: Cache scope shared with other calls; None builds a
            fresh session from the given providers and skips the cache
        cache: Session cache for session_ref, module default when None

    Raises:
        PlacementError: If a replica cannot be placed without breaking a
            binding clause.
    """
    if session_ref is None:
        cache = None
        version = 0
        session = config.policy.create_session(cluster_state, node_state, policy_mapping)
    else:
        cache = cache if cache is not None else DEFAULT_CACHE
        session, version = cache.acquire(session_ref, config, cluster_state, node_state, policy_mapping)
    if policy_mapping:
        session = session.with_policy_mapping(policy_mapping)
    targets = list(node_list) if node_list else None

    positions: list[ReplicaPosition] = []
    published: Session | None = None
    try:
        for shard in shard_names:
            index = 0
            for replica_type, count in (
                (ReplicaType.NRT, nrt_replicas),
                (ReplicaType.TLOG, tlog_replicas),
                (ReplicaType.PULL, pull_replicas),
            ):
                for _ in range(count):
                    suggester = (
                        session.get_suggester(CollectionAction.ADDREPLICA)
                        .hint(Hint.COLL_SHARD, (collection, shard))
                        .hint(Hint.REPLICATYPE, replica_type)
                    )
                    if targets:
                        suggester.hint(Hint.TARGET_NODE, targets)
                    suggestion = suggester.get_suggestion()
                    if suggestion is None:
                        raise PlacementError(collection, shard, replica_type, placed=len(positions))
                    positions.append(
                        ReplicaPosition(collection, shard, index, replica_type, suggestion.target_node)
                    )
                    session = suggestion.session
                    index += 1
        published = session
    finally:
        if cache is not None:
            cache.release(session_ref, version, published)

    logger.info(f"Placed {len(positions)} replica(s) of {collection}")
    return positions


def get_suggestions(
    config: PlacementConfig,
    cluster_state: ClusterStateProvider,
    node_state: NodeStateProvider,
    policy_mapping: Mapping[str, str] | None = None,
) -> list[SuggestionInfo]:
    """
    Suggest operations fixing the current violations.

    Each violation is worked on, in priority order, until it disappears or
    no legal move improves it. Every suggestion is applied to the session
    before the next one is computed.
    """
    session = config.policy.create_session(cluster_state, node_state, policy_mapping)
    results: list[SuggestionInfo] = []

    for violation in session.get_violations():
        limit = max(len(violation.replicas), int(abs(violation.delta or 0))) + 1
        for _ in range(limit):
            if violation.key not in {v.key for v in session.violations}:
                break
            suggester = session.get_suggester(CollectionAction.MOVEREPLICA)
            if violation.collection is not None:
                if violation.shard in (None, ANY):
                    suggester.hint(Hint.COLL, violation.collection)
                else:
                    suggester.hint(Hint.COLL_SHARD, (violation.collection, violation.shard))
            suggestion = suggester.get_suggestion()
            if suggestion is None:
                logger.info(f"No legal move improves violation of {violation.clause}")
                break
            results.append(SuggestionInfo(suggestion.violation or violation, suggestion))
            session = suggestion.session

    logger.info(f"Computed {len(results)} suggestion(s)")
    return results
