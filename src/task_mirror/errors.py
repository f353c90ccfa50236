"""Exception hierarchy for task_mirror.

Errors are grouped by how the sync layer reacts to them:

- ``StorageError`` -- durable write/read failed; the mutating operation
  is aborted and in-memory state is left untouched.
- ``MutationValidationError`` -- an edit was rejected before it was
  queued.
- ``RemoteError`` and subclasses -- outcome of a remote read/write.
  ``TransientRemoteError`` keeps the mutation queued for a retry,
  ``RemoteUnavailableError`` aborts the whole drain, and
  ``PermanentRemoteError`` turns the mutation into a conflict.
- ``ConflictNotFoundError`` / ``ConflictResolutionError`` -- raised by
  the resolution protocol.

Conflicts themselves are data (``SyncConflict``), never exceptions.
"""


class TaskMirrorError(Exception):
    """Base class for all task_mirror errors."""


class StorageError(TaskMirrorError):
    """A blob could not be read, written, deleted or decoded."""

    def __init__(self, key: str, message: str) -> None:
        super().__init__(f"Storage error for '{key}': {message}")
        self.key = key


class MutationValidationError(TaskMirrorError, ValueError):
    """An edit was malformed or targets an unknown task."""


# ---------------------------------------------------------------------------
# Remote errors
# ---------------------------------------------------------------------------


class RemoteError(TaskMirrorError):
    """A call against the remote API failed.

    Attributes:
        status_code: HTTP status code if the server answered.
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class TransientRemoteError(RemoteError):
    """Timeout, rate limit or server-side failure; worth retrying."""


class RemoteUnavailableError(TransientRemoteError):
    """The remote could not be reached at all (no connectivity)."""


class PermanentRemoteError(RemoteError):
    """The remote refused the request; retrying will not help."""


class RemoteNotFoundError(PermanentRemoteError):
    """The requested record does not exist on the remote."""


class FieldNotConfiguredError(PermanentRemoteError):
    """A mutation targets a field with no property mapping."""

    def __init__(self, field_name: str) -> None:
        super().__init__(f"Field '{field_name}' is not configured")
        self.field_name = field_name


# ---------------------------------------------------------------------------
# Conflict resolution errors
# ---------------------------------------------------------------------------


class ConflictNotFoundError(TaskMirrorError, KeyError):
    """No pending conflict with the given id."""

    def __init__(self, conflict_id: str) -> None:
        super().__init__(conflict_id)
        self.conflict_id = conflict_id

    def __str__(self) -> str:
        return f"No pending conflict with id '{self.conflict_id}'"


class ConflictResolutionError(TaskMirrorError):
    """Re-applying the local side of a conflict failed.

    The conflict stays pending; ``__cause__`` holds the remote error.
    """

    def __init__(self, conflict_id: str, message: str) -> None:
        super().__init__(
            f"Could not resolve conflict '{conflict_id}': {message}"
        )
        self.conflict_id = conflict_id
