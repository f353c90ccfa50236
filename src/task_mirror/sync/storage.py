"""Durable key/value blob storage for the offline queue.

The queue, the conflict list, the cached task snapshot and the last-sync
timestamp are each stored as one whole-collection blob under a
well-known key (``StorageKeys``).  Every write replaces the entire blob,
so a reader never observes a partially updated collection.

Key design choices:

* **Atomic writes**: ``FileBlobStore.write_blob()`` writes to a temp
  file in the same directory then calls ``os.replace()``.
* **Errors surface**: every OS-level failure is re-raised as
  ``StorageError`` so callers can keep memory and disk consistent.
* **Blocking API**: the store is synchronous; async callers go through
  ``run_sync`` (see ``encode_collection`` / ``decode_collection`` for the
  JSON codec used on top of it).
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol, TypeVar

from pydantic import BaseModel, ValidationError

from ..errors import StorageError

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


class StorageKeys:
    """Well-known blob keys."""

    MUTATION_QUEUE = "mutation_queue"
    SYNC_CONFLICTS = "sync_conflicts"
    CACHED_TASKS = "cached_tasks"
    LAST_SYNCED_AT = "last_synced_at"


class BlobStore(Protocol):
    """Protocol that all blob stores must satisfy."""

    def read_blob(self, key: str) -> bytes | None:
        """Return the stored bytes, or ``None`` if the key is absent."""
        ...  # pragma: no cover

    def write_blob(self, key: str, data: bytes) -> None:
        """Replace the blob stored under *key*."""
        ...  # pragma: no cover

    def delete_blob(self, key: str) -> None:
        """Remove *key*.  No-op if absent."""
        ...  # pragma: no cover


class FileBlobStore:
    """Store each blob as ``<root_dir>/<key>.json``.

    Args:
        root_dir: Directory holding the blob files.  Created on first
            write.
    """

    def __init__(self, root_dir: Path) -> None:
        self._root_dir = Path(root_dir)

    @property
    def root_dir(self) -> Path:
        return self._root_dir

    def read_blob(self, key: str) -> bytes | None:
        path = self._blob_path(key)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc

    def write_blob(self, key: str, data: bytes) -> None:
        target = self._blob_path(key)
        try:
            self._root_dir.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(
                dir=str(self._root_dir), suffix=".tmp"
            )
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc

        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
                fh.flush()
                os.fsync(fh.fileno())
            os.replace(tmp_path, target)
        except BaseException as exc:
            # Clean up temp file on any failure.
            try:
                os.unlink(tmp_path)
            except OSError:
                pass
            if isinstance(exc, OSError):
                raise StorageError(key, str(exc)) from exc
            raise

    def delete_blob(self, key: str) -> None:
        try:
            self._blob_path(key).unlink(missing_ok=True)
        except OSError as exc:
            raise StorageError(key, str(exc)) from exc

    def _blob_path(self, key: str) -> Path:
        if not key or "/" in key or "\\" in key or ".." in key:
            raise StorageError(key, "invalid storage key")
        return self._root_dir / f"{key}.json"


# ---------------------------------------------------------------------------
# JSON codec
# ---------------------------------------------------------------------------


def encode_collection(items: list[BaseModel] | tuple[BaseModel, ...]) -> bytes:
    """Serialize a list of models as a JSON array."""
    payload = [item.model_dump(mode="json") for item in items]
    return json.dumps(payload, indent=2).encode("utf-8")


def decode_collection(
    key: str, data: bytes | None, model: type[M]
) -> list[M]:
    """Parse a JSON array blob back into models.

    Args:
        key: Storage key (used in error messages).
        data: Raw blob, or ``None`` for an absent key.
        model: Model class of the items.

    Returns:
        The decoded items; empty when *data* is ``None``.

    Raises:
        StorageError: If the blob is not valid JSON or an item does not
            match *model*.
    """
    if data is None:
        return []
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise StorageError(key, f"corrupt blob: {exc}") from exc
    if not isinstance(raw, list):
        raise StorageError(
            key, f"expected a JSON array, got {type(raw).__name__}"
        )
    try:
        return [model.model_validate(item) for item in raw]
    except ValidationError as exc:
        raise StorageError(key, f"invalid record: {exc}") from exc
