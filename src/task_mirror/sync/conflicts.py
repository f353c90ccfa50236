"""Durable set of conflicts awaiting a decision.

``ConflictStore`` only ever persists *pending* conflicts.  Resolving one
removes it from the stored collection; the resolved value is returned to
the caller for display or auditing.
"""

from __future__ import annotations

import asyncio
import logging

from ..core.async_utils import run_sync
from ..errors import ConflictNotFoundError
from .models import (
    ConflictReason,
    ConflictResolution,
    ConflictStatus,
    PendingMutation,
    SyncConflict,
    Task,
    generate_id,
    utc_now,
)
from .storage import BlobStore, StorageKeys, decode_collection, encode_collection

logger = logging.getLogger(__name__)


def create_conflict(
    mutation: PendingMutation,
    server_task: Task | None,
    reason: ConflictReason = ConflictReason.DIVERGED,
) -> SyncConflict:
    """Build a pending conflict for *mutation*."""
    return SyncConflict(
        id=generate_id("conflict-"),
        mutation=mutation,
        server_task=server_task,
        reason=reason,
        detected_at=utc_now(),
    )


class ConflictStore:
    """Persisted collection of pending ``SyncConflict`` values.

    Args:
        store: Blob store used for persistence.
    """

    def __init__(self, store: BlobStore) -> None:
        self._store = store
        self._conflicts: list[SyncConflict] = []
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        async with self._lock:
            data = await run_sync(
                self._store.read_blob, StorageKeys.SYNC_CONFLICTS
            )
            loaded = decode_collection(
                StorageKeys.SYNC_CONFLICTS, data, SyncConflict
            )
            self._conflicts = [
                c for c in loaded if c.status == ConflictStatus.PENDING
            ]
        logger.debug("Loaded %d pending conflicts", len(self._conflicts))

    async def _commit(self, new_conflicts: list[SyncConflict]) -> None:
        await run_sync(
            self._store.write_blob,
            StorageKeys.SYNC_CONFLICTS,
            encode_collection(new_conflicts),
        )
        self._conflicts = new_conflicts

    @property
    def pending(self) -> tuple[SyncConflict, ...]:
        return tuple(self._conflicts)

    @property
    def pending_count(self) -> int:
        return len(self._conflicts)

    def get(self, conflict_id: str) -> SyncConflict | None:
        for conflict in self._conflicts:
            if conflict.id == conflict_id:
                return conflict
        return None

    async def add_conflict(self, conflict: SyncConflict) -> None:
        async with self._lock:
            await self._commit([*self._conflicts, conflict])
        logger.warning(
            "Conflict %s (%s) on %s for task %s",
            conflict.id,
            conflict.reason.value,
            conflict.mutation.kind.value,
            conflict.mutation.task_id,
        )

    async def mark_resolved(
        self, conflict_id: str, resolution: ConflictResolution
    ) -> SyncConflict:
        """Resolve a pending conflict and drop it from storage.

        Returns:
            The conflict with ``status``, ``resolution`` and
            ``resolved_at`` set.

        Raises:
            ConflictNotFoundError: If no pending conflict has that id.
            StorageError: If the pruned collection cannot be persisted.
        """
        async with self._lock:
            current = self.get(conflict_id)
            if current is None:
                raise ConflictNotFoundError(conflict_id)
            resolved = current.model_copy(
                update={
                    "status": ConflictStatus.RESOLVED,
                    "resolution": ConflictResolution(resolution),
                    "resolved_at": utc_now(),
                }
            )
            await self._commit(
                [c for c in self._conflicts if c.id != conflict_id]
            )
        logger.info("Resolved conflict %s as %s", conflict_id, resolved.resolution.value)
        return resolved

    async def clear(self) -> None:
        async with self._lock:
            await self._commit([])
