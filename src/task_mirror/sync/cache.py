"""Persisted snapshot of the task list and the last successful sync time."""

from __future__ import annotations

import asyncio
import json
import logging

from ..core.async_utils import run_sync
from ..errors import StorageError
from .models import Task
from .storage import BlobStore, StorageKeys, decode_collection, encode_collection

logger = logging.getLogger(__name__)


class TaskCache:
    """Local copy of the task list used for offline reads.

    Like the queue, every write is persisted before the in-memory copy
    changes, and writers are serialized on ``_lock``.

    Args:
        store: Blob store used for persistence.
    """

    def __init__(self, store: BlobStore) -> None:
        self._store = store
        self._tasks: dict[str, Task] = {}
        self._last_synced_at: str | None = None
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        async with self._lock:
            data = await run_sync(self._store.read_blob, StorageKeys.CACHED_TASKS)
            tasks = decode_collection(StorageKeys.CACHED_TASKS, data, Task)
            self._tasks = {task.id: task for task in tasks}

            raw = await run_sync(self._store.read_blob, StorageKeys.LAST_SYNCED_AT)
            if raw is None:
                self._last_synced_at = None
            else:
                try:
                    self._last_synced_at = json.loads(raw.decode("utf-8"))
                except (UnicodeDecodeError, json.JSONDecodeError) as exc:
                    raise StorageError(
                        StorageKeys.LAST_SYNCED_AT, f"corrupt blob: {exc}"
                    ) from exc
        logger.debug("Loaded %d cached tasks", len(self._tasks))

    # ------------------------------------------------------------------
    # Tasks
    # ------------------------------------------------------------------

    @property
    def tasks(self) -> tuple[Task, ...]:
        return tuple(self._tasks.values())

    def get(self, task_id: str) -> Task | None:
        return self._tasks.get(task_id)

    def __contains__(self, task_id: object) -> bool:
        return task_id in self._tasks

    async def set_tasks(self, tasks: list[Task]) -> None:
        """Replace the whole snapshot (e.g. after a full refresh)."""
        async with self._lock:
            await self._commit({task.id: task for task in tasks})

    async def update_task(self, task: Task) -> None:
        """Insert or replace one task."""
        async with self._lock:
            new_tasks = dict(self._tasks)
            new_tasks[task.id] = task
            await self._commit(new_tasks)

    async def remove_task(self, task_id: str) -> None:
        async with self._lock:
            if task_id not in self._tasks:
                return
            new_tasks = {k: v for k, v in self._tasks.items() if k != task_id}
            await self._commit(new_tasks)

    async def _commit(self, new_tasks: dict[str, Task]) -> None:
        await run_sync(
            self._store.write_blob,
            StorageKeys.CACHED_TASKS,
            encode_collection(list(new_tasks.values())),
        )
        self._tasks = new_tasks

    # ------------------------------------------------------------------
    # Last sync
    # ------------------------------------------------------------------

    @property
    def last_synced_at(self) -> str | None:
        return self._last_synced_at

    async def set_last_synced_at(self, timestamp: str) -> None:
        async with self._lock:
            await run_sync(
                self._store.write_blob,
                StorageKeys.LAST_SYNCED_AT,
                json.dumps(timestamp).encode("utf-8"),
            )
            self._last_synced_at = timestamp

    async def clear(self) -> None:
        """Forget every cached task and the last sync time."""
        async with self._lock:
            await run_sync(self._store.delete_blob, StorageKeys.CACHED_TASKS)
            await run_sync(self._store.delete_blob, StorageKeys.LAST_SYNCED_AT)
            self._tasks = {}
            self._last_synced_at = None
