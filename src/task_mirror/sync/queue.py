"""Ordered, durable queue of pending field-level edits.

``MutationQueue`` owns the pending-mutation collection exclusively.  It
keeps at most one entry per ``(task_id, kind)``: a newer edit of the same
kind for the same task replaces the queued one in place (coalescing).

Every mutating operation builds the new collection, writes it to the blob
store, and only then swaps it into memory.  A failed write therefore
leaves memory untouched and the ``StorageError`` reaches the caller.
Writers hold ``_lock`` from reading ``_queue`` until the swap, so an
enqueue that overlaps a drain never starts from a stale snapshot.
"""

from __future__ import annotations

import asyncio
import logging

from pydantic import BaseModel

from ..core.async_utils import run_sync
from ..errors import MutationValidationError
from .models import (
    PAYLOAD_TYPES,
    PendingMutation,
    Task,
    generate_id,
    utc_now,
)
from .storage import (
    BlobStore,
    StorageKeys,
    decode_collection,
    encode_collection,
)

logger = logging.getLogger(__name__)


class MutationQueue:
    """Persisted queue of ``PendingMutation`` entries.

    Args:
        store: Blob store used for persistence.
        preserve_baseline: When ``True`` a coalesced entry keeps the
            ``original_task`` of the entry it replaces, so conflict
            detection still compares against the state the first queued
            edit was made on.  When ``False`` the newest snapshot wins.
    """

    def __init__(self, store: BlobStore, preserve_baseline: bool = True) -> None:
        self._store = store
        self._preserve_baseline = preserve_baseline
        self._queue: list[PendingMutation] = []
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    async def load(self) -> None:
        """Replace the in-memory queue with the persisted one."""
        async with self._lock:
            data = await run_sync(
                self._store.read_blob, StorageKeys.MUTATION_QUEUE
            )
            self._queue = decode_collection(
                StorageKeys.MUTATION_QUEUE, data, PendingMutation
            )
        logger.debug("Loaded %d pending mutations", len(self._queue))

    async def _commit(self, new_queue: list[PendingMutation]) -> None:
        await run_sync(
            self._store.write_blob,
            StorageKeys.MUTATION_QUEUE,
            encode_collection(new_queue),
        )
        self._queue = new_queue

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    @property
    def mutations(self) -> tuple[PendingMutation, ...]:
        """Snapshot of the queue in processing order."""
        return tuple(self._queue)

    def __len__(self) -> int:
        return len(self._queue)

    def get(self, mutation_id: str) -> PendingMutation | None:
        for mutation in self._queue:
            if mutation.id == mutation_id:
                return mutation
        return None

    def get_mutations_for_task(self, task_id: str) -> list[PendingMutation]:
        """Return every queued mutation for *task_id* (at most one per kind)."""
        return [m for m in self._queue if m.task_id == task_id]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    async def add_mutation(
        self,
        task_id: str,
        payload: BaseModel,
        original_task: Task,
    ) -> str:
        """Queue an edit, coalescing with an existing one of the same kind.

        Args:
            task_id: Task being edited.
            payload: One of the ``MutationPayload`` models.
            original_task: Local snapshot of the task before the edit.

        Returns:
            The id of the new queue entry.

        Raises:
            MutationValidationError: If the arguments are malformed.
            StorageError: If the queue cannot be persisted.
        """
        self._validate(task_id, payload, original_task)

        mutation = PendingMutation(
            id=generate_id(),
            task_id=task_id,
            payload=payload,
            created_at=utc_now(),
            retry_count=0,
            original_task=original_task,
        )

        async with self._lock:
            new_queue = list(self._queue)
            index = self._find(task_id, mutation.kind)
            if index is None:
                new_queue.append(mutation)
            else:
                replaced = new_queue[index]
                if self._preserve_baseline:
                    mutation = mutation.model_copy(
                        update={"original_task": replaced.original_task}
                    )
                new_queue[index] = mutation
                logger.debug(
                    "Coalesced %s for task %s (replaced %s)",
                    mutation.kind.value,
                    task_id,
                    replaced.id,
                )

            await self._commit(new_queue)
        logger.info(
            "Queued %s for task %s (%d pending)",
            mutation.kind.value,
            task_id,
            len(new_queue),
        )
        return mutation.id

    async def remove_mutation(self, mutation_id: str) -> None:
        """Drop a mutation.  No-op if it is not queued."""
        async with self._lock:
            if self.get(mutation_id) is None:
                return
            await self._commit([m for m in self._queue if m.id != mutation_id])

    async def increment_retry_count(
        self, mutation_id: str, error: str | None = None
    ) -> PendingMutation | None:
        """Record a failed apply attempt.

        Returns:
            The updated mutation, or ``None`` if it is not queued.
        """
        async with self._lock:
            current = self.get(mutation_id)
            if current is None:
                return None
            updated = current.model_copy(
                update={
                    "retry_count": current.retry_count + 1,
                    "last_attempt_at": utc_now(),
                    "last_error": error,
                }
            )
            await self._commit(
                [updated if m.id == mutation_id else m for m in self._queue]
            )
        return updated

    async def reset_retry_count(self, mutation_id: str) -> None:
        """Clear the failure bookkeeping so the mutation is retried promptly."""
        async with self._lock:
            current = self.get(mutation_id)
            if current is None:
                return
            updated = current.model_copy(
                update={
                    "retry_count": 0,
                    "last_attempt_at": None,
                    "last_error": None,
                }
            )
            await self._commit(
                [updated if m.id == mutation_id else m for m in self._queue]
            )

    async def clear_queue(self) -> None:
        async with self._lock:
            await self._commit([])

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find(self, task_id: str, kind) -> int | None:
        for index, existing in enumerate(self._queue):
            if existing.task_id == task_id and existing.kind == kind:
                return index
        return None

    @staticmethod
    def _validate(task_id: str, payload: BaseModel, original_task: Task) -> None:
        if not task_id or not task_id.strip():
            raise MutationValidationError("Task id cannot be empty")
        if not isinstance(payload, PAYLOAD_TYPES):
            raise MutationValidationError(
                f"Unsupported mutation payload: {type(payload).__name__}"
            )
        if not isinstance(original_task, Task):
            raise MutationValidationError(
                "original_task must be a Task snapshot"
            )
        if original_task.id != task_id:
            raise MutationValidationError(
                f"Snapshot is for task '{original_task.id}', not '{task_id}'"
            )
