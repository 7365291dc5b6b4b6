"""
Placement configuration.

A PlacementConfig wraps the policy document read from the cluster
configuration store (or a file) and exposes the validated Policy. The
Policy is built once per config object; session caches rely on that object
identity to decide whether a cached session is still current.

Example:
    ```python
    from placement_core.config import load_config

    config = load_config("autoscaling.json")
    session = config.policy.create_session(cluster_state, node_state)
    ```
"""

import json
import logging
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from placement_core.policy import Policy

logger = logging.getLogger(__name__)


@dataclass
class PlacementConfig:
    """
    Placement configuration loaded from a policy document.

    Attributes:
        document: Raw policy document (cluster-policy, cluster-preferences,
            policies)
        source: Where the document was loaded from, for messages
    """

    document: dict[str, Any] = field(default_factory=dict)
    source: str | None = None
    _policy: Policy | None = field(default=None, init=False, repr=False, compare=False)
    _lock: threading.Lock = field(default_factory=threading.Lock, init=False, repr=False, compare=False)

    @property
    def policy(self) -> Policy:
        """The validated policy. Same object for the life of the config."""
        if self._policy is None:
            with self._lock:
                if self._policy is None:
                    self._policy = Policy(self.document)
        return self._policy


def load_config(path: str | Path) -> PlacementConfig:
    """
    Load a placement configuration from a JSON file.

    Raises:
        FileNotFoundError: If the file does not exist.
        json.JSONDecodeError: If the file is not valid JSON.
        ValidationError: If a clause or preference is invalid (raised when
            the policy is first accessed).
    """
    path = Path(path)
    document = json.loads(path.read_text())
    if not isinstance(document, dict):
        raise ValueError(f"Policy document {path} must be a JSON object")
    logger.debug(f"Loaded policy document from {path}")
    return PlacementConfig(document=document, source=str(path))
