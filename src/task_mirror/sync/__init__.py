"""Offline mutation queue and conflict resolution.

Public API for recording task edits while offline and replaying them
against the remote database once connectivity returns.

Architecture
------------
Every edit is queued as a field-level ``PendingMutation`` carrying a
snapshot of the task it was made on.  When the queue drains, each
mutation's field is compared against the server's current value;
only a change to *that* field since the snapshot is a conflict.
Edits to unrelated fields never block each other.

Modules:

- ``engine``    -- ``SyncManager``: drains the queue and resolves conflicts.
- ``queue``     -- ``MutationQueue``: ordered, coalescing, durable queue.
- ``conflicts`` -- ``ConflictStore``: durable set of pending conflicts.
- ``detector``  -- field-level conflict detection and descriptions.
- ``applier``   -- ``RemoteApplier`` protocol and HTTP implementation.
- ``mapper``    -- raw page to ``Task`` conversion.
- ``cache``     -- ``TaskCache``: offline snapshot of the task list.
- ``storage``   -- ``BlobStore`` protocol and atomic file store.
- ``resolver``  -- automatic conflict policies.
- ``retry``     -- capped exponential backoff.
- ``network``   -- reconnect edge detection.
- ``models``    -- data contracts.
- ``reporter``  -- human-readable and JSON output.

Usage example
-------------
::

    from pathlib import Path
    from task_mirror.sync import FileBlobStore, SyncManager, TitlePayload

    manager = SyncManager(FileBlobStore(Path("~/.task_mirror/data")), applier)
    await manager.load()
    await manager.enqueue(task_id, TitlePayload(new_title="Buy milk"))

    # Later, when the device is back online
    await manager.on_network_change("online")
    for conflict in manager.pending_conflicts:
        print(manager.describe(conflict.id))
"""

from .applier import ClientApplier, RemoteApplier
from .cache import TaskCache
from .conflicts import ConflictStore, create_conflict
from .detector import describe_conflict, detect_conflict
from .engine import SyncManager
from .models import (
    CheckboxPayload,
    CompletedDatePayload,
    ConflictReason,
    ConflictResolution,
    DoDatePayload,
    DrainReport,
    DueDatePayload,
    MutationKind,
    PendingMutation,
    ProjectPayload,
    StatusPayload,
    SyncConflict,
    SyncNowResult,
    SyncStatus,
    Task,
    TaskStatus,
    TaskTypePayload,
    TitlePayload,
    UrlPayload,
)
from .network import NetworkState
from .queue import MutationQueue
from .reporter import format_conflicts, format_drain_report, report_to_json
from .resolver import create_policy
from .retry import RetryPolicy
from .storage import BlobStore, FileBlobStore

__all__ = [
    "BlobStore",
    "CheckboxPayload",
    "ClientApplier",
    "CompletedDatePayload",
    "ConflictReason",
    "ConflictResolution",
    "ConflictStore",
    "DoDatePayload",
    "DrainReport",
    "DueDatePayload",
    "FileBlobStore",
    "MutationKind",
    "MutationQueue",
    "NetworkState",
    "PendingMutation",
    "ProjectPayload",
    "RemoteApplier",
    "RetryPolicy",
    "StatusPayload",
    "SyncConflict",
    "SyncManager",
    "SyncNowResult",
    "SyncStatus",
    "Task",
    "TaskCache",
    "TaskStatus",
    "TaskTypePayload",
    "TitlePayload",
    "UrlPayload",
    "create_conflict",
    "create_policy",
    "describe_conflict",
    "detect_conflict",
    "format_conflicts",
    "format_drain_report",
    "report_to_json",
]
