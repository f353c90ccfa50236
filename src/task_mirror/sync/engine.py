"""Sync manager that drains the offline queue against the server.

The ``SyncManager`` ties together the mutation queue, conflict store,
task cache, remote applier, conflict policy and retry policy.  A drain:

1. Takes a snapshot of the queue and walks it in order, one mutation at
   a time.
2. Skips mutations still inside their backoff window (unless forced).
3. Fetches the server's current record and runs field-level conflict
   detection against the mutation's baseline.
4. Applies non-conflicting edits and removes them from the queue.
5. Moves conflicting, rejected or exhausted edits into the conflict
   store and lets the configured policy settle what it can.
6. Fires the invalidation listeners and builds a ``DrainReport``.

Error handling is per-mutation: a single failed edit does not stop the
drain.  Losing connectivity (``RemoteUnavailableError``) or a failed
storage write aborts the pass and leaves the remaining edits queued.
"""

from __future__ import annotations

import logging
from typing import Any, Callable

from ..core.async_utils import call_maybe_async
from ..errors import (
    ConflictNotFoundError,
    ConflictResolutionError,
    MutationValidationError,
    PermanentRemoteError,
    RemoteError,
    RemoteNotFoundError,
    RemoteUnavailableError,
    StorageError,
    TransientRemoteError,
)
from .applier import RemoteApplier
from .cache import TaskCache
from .conflicts import ConflictStore, create_conflict
from .detector import apply_to_task, describe_conflict, detect_conflict, restore_field
from .models import (
    ConflictDescription,
    ConflictReason,
    ConflictResolution,
    DrainReport,
    MutationOutcome,
    MutationResult,
    PendingMutation,
    SyncConflict,
    SyncNowResult,
    SyncStatus,
    Task,
    utc_now,
)
from .network import NetworkState, ReachabilityTracker
from .queue import MutationQueue
from .resolver import ConflictPolicy, ManualPolicy
from .retry import RetryPolicy
from .storage import BlobStore

logger = logging.getLogger(__name__)

InvalidationListener = Callable[[], Any]


class SyncManager:
    """Own the offline queue and reconcile it with the server.

    Args:
        store: Blob store shared by the queue, conflicts and cache.
        applier: Remote read/write layer.
        policy: Automatic conflict policy (manual by default).
        retry_policy: Backoff and retry limit for failed edits.
        preserve_baseline: Passed to ``MutationQueue``.
    """

    def __init__(
        self,
        store: BlobStore,
        applier: RemoteApplier,
        policy: ConflictPolicy | None = None,
        retry_policy: RetryPolicy | None = None,
        preserve_baseline: bool = True,
    ) -> None:
        self.applier = applier
        self.policy = policy or ManualPolicy()
        self.retry_policy = retry_policy or RetryPolicy()

        self.queue = MutationQueue(store, preserve_baseline=preserve_baseline)
        self.conflicts = ConflictStore(store)
        self.cache = TaskCache(store)
        self.network = ReachabilityTracker()

        self._in_flight = False
        self._listeners: list[InvalidationListener] = []

    async def load(self) -> None:
        """Hydrate the queue, conflicts and cache from storage."""
        await self.queue.load()
        await self.conflicts.load()
        await self.cache.load()
        logger.info(
            "Loaded %d pending mutations, %d conflicts, %d cached tasks",
            len(self.queue),
            self.conflicts.pending_count,
            len(self.cache.tasks),
        )

    # ------------------------------------------------------------------
    # Observation
    # ------------------------------------------------------------------

    @property
    def status(self) -> SyncStatus:
        """Derived from the conflict count, the in-flight flag and the queue.

        Queued work outside a drain reads as ``error`` until a drain
        empties the queue.
        """
        if self.conflicts.pending_count > 0:
            return SyncStatus.HAS_CONFLICTS
        if self._in_flight:
            return SyncStatus.SYNCING
        if len(self.queue) > 0:
            return SyncStatus.ERROR
        return SyncStatus.IDLE

    @property
    def is_syncing(self) -> bool:
        return self._in_flight

    @property
    def pending_count(self) -> int:
        return len(self.queue)

    @property
    def pending_conflicts(self) -> tuple[SyncConflict, ...]:
        return self.conflicts.pending

    def describe(self, conflict_id: str) -> ConflictDescription:
        conflict = self.conflicts.get(conflict_id)
        if conflict is None:
            raise ConflictNotFoundError(conflict_id)
        return describe_conflict(conflict)

    def local_task(self, task_id: str) -> Task | None:
        """The cached task with every queued edit applied on top."""
        cached = self.cache.get(task_id)
        if cached is None:
            return None
        return self._with_pending(cached)

    def add_invalidation_listener(self, listener: InvalidationListener) -> None:
        """Register a callback fired when server-derived data is stale."""
        self._listeners.append(listener)

    def remove_invalidation_listener(
        self, listener: InvalidationListener
    ) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # ------------------------------------------------------------------
    # Local edits
    # ------------------------------------------------------------------

    async def enqueue(self, task_id: str, payload: Any) -> str:
        """Queue an edit of a cached task and apply it optimistically.

        Returns:
            The id of the queued mutation.

        Raises:
            MutationValidationError: If the task is unknown or the
                payload is malformed.
            StorageError: If the queue cannot be persisted.
        """
        cached = self.cache.get(task_id)
        if cached is None:
            raise MutationValidationError(f"Unknown task '{task_id}'")

        mutation_id = await self.queue.add_mutation(task_id, payload, cached)
        mutation = self.queue.get(mutation_id)
        if mutation is not None:
            await self.cache.update_task(apply_to_task(cached, mutation))
        return mutation_id

    async def refresh(self) -> int:
        """Replace the cached task list with the server's.

        Returns:
            Number of tasks cached.
        """
        tasks = await self.applier.list_tasks()
        await self.cache.set_tasks([self._with_pending(t) for t in tasks])
        await self._emit_invalidation()
        return len(tasks)

    # ------------------------------------------------------------------
    # Draining
    # ------------------------------------------------------------------

    async def drain(self, force: bool = False) -> DrainReport:
        """Process the queue once, in order.

        Args:
            force: Ignore backoff windows (retry limits still apply).

        Returns:
            A ``DrainReport``; empty if another drain is in flight.
        """
        started_at = utc_now()
        if self._in_flight:
            logger.debug("Drain already in flight; skipping")
            return DrainReport(started_at=started_at, completed_at=utc_now())

        self._in_flight = True
        results: list[MutationResult] = []
        aborted = False
        error: str | None = None
        try:
            for mutation in self.queue.mutations:
                # Coalesced or removed since the snapshot was taken.
                if self.queue.get(mutation.id) is None:
                    continue
                try:
                    results.append(await self._process(mutation, force))
                except RemoteUnavailableError as exc:
                    logger.warning("Server unreachable; stopping drain: %s", exc)
                    aborted, error = True, str(exc)
                    break
                except StorageError as exc:
                    logger.error("Storage failure during drain: %s", exc)
                    aborted, error = True, str(exc)
                    break
        finally:
            self._in_flight = False

        report = DrainReport(
            started_at=started_at,
            completed_at=utc_now(),
            results=results,
            aborted=aborted,
            error=error,
        )
        if results:
            if not report.aborted and not report.failed:
                await self.cache.set_last_synced_at(report.completed_at)
            await self._emit_invalidation()

        logger.info(
            "Drain finished: %d applied, %d conflicts, %d failed, %d deferred%s",
            len(report.applied),
            len(report.conflicts),
            len(report.failed),
            len(report.deferred),
            " (aborted)" if report.aborted else "",
        )
        return report

    async def sync_now(self) -> SyncNowResult:
        """Manual "sync now": drain immediately, ignoring backoff."""
        if self.network.is_offline:
            return SyncNowResult(success=False, reason="offline")
        if self._in_flight:
            return SyncNowResult(success=False, reason="busy")
        if len(self.queue) == 0:
            return SyncNowResult(success=True)

        report = await self.drain(force=True)
        if report.aborted:
            return SyncNowResult(success=False, reason="error", report=report)
        return SyncNowResult(success=True, report=report)

    async def on_network_change(
        self, state: NetworkState | str
    ) -> DrainReport | None:
        """Feed a connectivity change; drain once when back online.

        Returns:
            The drain report if a drain ran, else ``None``.
        """
        if not self.network.update(NetworkState(state)):
            return None
        if len(self.queue) == 0:
            await self._emit_invalidation()
            return None
        if self._in_flight:
            return None
        return await self.drain()

    async def _process(
        self, mutation: PendingMutation, force: bool
    ) -> MutationResult:
        if not force and not self.retry_policy.is_ready(mutation):
            return self._result(mutation, MutationOutcome.DEFERRED)

        server_task: Task | None = None
        try:
            server_task = await self.applier.fetch_task(mutation.task_id)
            reason = detect_conflict(mutation, server_task)
            if reason is not None:
                conflict = await self._raise_conflict(mutation, server_task, reason)
                return self._result(
                    mutation, MutationOutcome.CONFLICT, conflict_id=conflict.id
                )
            await self.applier.apply(mutation)
        except RemoteUnavailableError:
            raise
        except TransientRemoteError as exc:
            return await self._record_failure(mutation, server_task, exc)
        except RemoteNotFoundError as exc:
            logger.info("Task %s vanished before apply: %s", mutation.task_id, exc)
            conflict = await self._raise_conflict(
                mutation, None, ConflictReason.DELETED
            )
            return self._result(
                mutation, MutationOutcome.CONFLICT, conflict_id=conflict.id
            )
        except PermanentRemoteError as exc:
            rejected = mutation.model_copy(
                update={"last_error": str(exc), "last_attempt_at": utc_now()}
            )
            conflict = await self._raise_conflict(
                rejected, server_task, ConflictReason.REJECTED
            )
            return self._result(
                mutation,
                MutationOutcome.CONFLICT,
                error=str(exc),
                conflict_id=conflict.id,
            )

        await self.queue.remove_mutation(mutation.id)
        if server_task is not None:
            await self.cache.update_task(
                self._with_pending(apply_to_task(server_task, mutation))
            )
        logger.debug("Applied %s for task %s", mutation.kind.value, mutation.task_id)
        return self._result(mutation, MutationOutcome.APPLIED)

    async def _record_failure(
        self,
        mutation: PendingMutation,
        server_task: Task | None,
        exc: RemoteError,
    ) -> MutationResult:
        updated = await self.queue.increment_retry_count(mutation.id, str(exc))
        if updated is None:
            return self._result(mutation, MutationOutcome.FAILED, error=str(exc))

        if self.retry_policy.is_exhausted(updated):
            logger.warning(
                "Giving up on %s for task %s after %d attempts",
                updated.kind.value,
                updated.task_id,
                updated.retry_count,
            )
            conflict = await self._raise_conflict(
                updated, server_task, ConflictReason.RETRIES_EXHAUSTED
            )
            return self._result(
                mutation,
                MutationOutcome.CONFLICT,
                error=str(exc),
                conflict_id=conflict.id,
            )

        logger.info(
            "Attempt %d for %s on task %s failed: %s",
            updated.retry_count,
            updated.kind.value,
            updated.task_id,
            exc,
        )
        return self._result(mutation, MutationOutcome.FAILED, error=str(exc))

    # ------------------------------------------------------------------
    # Conflicts
    # ------------------------------------------------------------------

    async def _raise_conflict(
        self,
        mutation: PendingMutation,
        server_task: Task | None,
        reason: ConflictReason,
    ) -> SyncConflict:
        # Conflict is persisted before the mutation leaves the queue.
        conflict = create_conflict(mutation, server_task, reason)
        await self.conflicts.add_conflict(conflict)
        await self.queue.remove_mutation(mutation.id)

        decision = self.policy.decide(conflict)
        if decision is not None:
            try:
                await self._settle(
                    conflict, decision, ConflictResolution.AUTO_RESOLVED
                )
            except ConflictResolutionError as exc:
                logger.warning("Automatic resolution failed: %s", exc)
        return conflict

    async def resolve_conflict(
        self, conflict_id: str, resolution: ConflictResolution | str
    ) -> SyncConflict:
        """Settle a pending conflict on behalf of the user.

        Args:
            conflict_id: Id of the pending conflict.
            resolution: ``keep_local`` re-applies the queued edit directly;
                ``keep_server`` discards it.

        Returns:
            The resolved conflict.

        Raises:
            ValueError: If *resolution* is not a user choice.
            ConflictNotFoundError: If no pending conflict has that id.
            ConflictResolutionError: If re-applying the local edit failed;
                the conflict stays pending.
        """
        resolution = ConflictResolution(resolution)
        if resolution == ConflictResolution.AUTO_RESOLVED:
            raise ValueError("auto_resolved is reserved for automatic policies")

        conflict = self.conflicts.get(conflict_id)
        if conflict is None:
            raise ConflictNotFoundError(conflict_id)

        resolved = await self._settle(conflict, resolution, resolution)
        await self._emit_invalidation()
        return resolved

    async def _settle(
        self,
        conflict: SyncConflict,
        side: ConflictResolution,
        recorded_as: ConflictResolution,
    ) -> SyncConflict:
        mutation = conflict.mutation
        if side == ConflictResolution.KEEP_LOCAL:
            try:
                await self.applier.apply(mutation)
            except RemoteError as exc:
                raise ConflictResolutionError(conflict.id, str(exc)) from exc
            resolved = await self.conflicts.mark_resolved(conflict.id, recorded_as)
            base = conflict.server_task or self.cache.get(mutation.task_id)
            if base is not None:
                await self.cache.update_task(
                    self._with_pending(apply_to_task(base, mutation))
                )
            return resolved

        resolved = await self.conflicts.mark_resolved(conflict.id, recorded_as)
        cached = self.cache.get(mutation.task_id)
        if conflict.reason == ConflictReason.DELETED:
            await self.cache.remove_task(mutation.task_id)
        elif cached is not None:
            source = conflict.server_task or mutation.original_task
            await self.cache.update_task(
                self._with_pending(restore_field(cached, source, mutation.kind))
            )
        return resolved

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _with_pending(self, task: Task) -> Task:
        for mutation in self.queue.get_mutations_for_task(task.id):
            task = apply_to_task(task, mutation)
        return task

    async def _emit_invalidation(self) -> None:
        for listener in list(self._listeners):
            try:
                await call_maybe_async(listener)
            except Exception:
                logger.exception("Invalidation listener failed")

    @staticmethod
    def _result(
        mutation: PendingMutation,
        outcome: MutationOutcome,
        error: str | None = None,
        conflict_id: str | None = None,
    ) -> MutationResult:
        return MutationResult(
            mutation_id=mutation.id,
            task_id=mutation.task_id,
            kind=mutation.kind,
            outcome=outcome,
            error=error,
            conflict_id=conflict_id,
        )
