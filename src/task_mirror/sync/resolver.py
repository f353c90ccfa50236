"""Automatic conflict resolution policies.

Provides the policies the sync manager consults right after a conflict
is raised:

- ``ManualPolicy``: never decides; every conflict waits for the user.
- ``LocalWinsPolicy``: the queued edit wins and is re-applied.
- ``RemoteWinsPolicy``: the server value wins and the edit is dropped.

Only ``diverged`` conflicts are ever decided automatically.  Deleted
records, rejected edits and exhausted retries always wait for a human.

The ``create_policy()`` factory maps config strategy strings to policy
instances.
"""

from __future__ import annotations

import logging
from typing import Protocol

from .models import ConflictReason, ConflictResolution, SyncConflict

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Protocol
# ---------------------------------------------------------------------------


class ConflictPolicy(Protocol):
    """Protocol that all conflict policies must satisfy."""

    def decide(self, conflict: SyncConflict) -> ConflictResolution | None:
        """Pick a side for a freshly raised conflict.

        Args:
            conflict: The pending conflict.

        Returns:
            ``KEEP_LOCAL`` or ``KEEP_SERVER`` to settle it automatically,
            or ``None`` to leave it for the user.
        """
        ...  # pragma: no cover


# ---------------------------------------------------------------------------
# Policies
# ---------------------------------------------------------------------------


class ManualPolicy:
    """Leave every conflict for the user."""

    def decide(self, conflict: SyncConflict) -> ConflictResolution | None:
        return None


class LocalWinsPolicy:
    """Always keep the local edit for diverged fields."""

    def decide(self, conflict: SyncConflict) -> ConflictResolution | None:
        if conflict.reason != ConflictReason.DIVERGED:
            return None
        logger.info("Auto-resolving %s: local wins", conflict.id)
        return ConflictResolution.KEEP_LOCAL


class RemoteWinsPolicy:
    """Always keep the server value for diverged fields."""

    def decide(self, conflict: SyncConflict) -> ConflictResolution | None:
        if conflict.reason != ConflictReason.DIVERGED:
            return None
        logger.info("Auto-resolving %s: server wins", conflict.id)
        return ConflictResolution.KEEP_SERVER


# ---------------------------------------------------------------------------
# Factory
# ---------------------------------------------------------------------------

_STRATEGY_MAP: dict[str, type] = {
    "manual": ManualPolicy,
    "local-wins": LocalWinsPolicy,
    "remote-wins": RemoteWinsPolicy,
}


def create_policy(strategy: str) -> ConflictPolicy:
    """Create a conflict policy for the given strategy string.

    Args:
        strategy: One of ``"manual"``, ``"local-wins"``, ``"remote-wins"``.

    Raises:
        ValueError: If the strategy string is not recognised.
    """
    cls = _STRATEGY_MAP.get(strategy)
    if cls is None:
        raise ValueError(
            f"Unknown conflict strategy: '{strategy}'. Valid strategies: {sorted(_STRATEGY_MAP.keys())}"
        )
    return cls()  # type: ignore[return-value]
