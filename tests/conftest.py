"""Shared pytest fixtures for task-mirror tests."""

from __future__ import annotations

import time
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from task_mirror.config import Config
from task_mirror.config_schema import FieldMapping
from task_mirror.errors import RemoteNotFoundError, StorageError
from task_mirror.sync.detector import apply_to_task
from task_mirror.sync.models import (
    PendingMutation,
    StatusGroup,
    Task,
    TaskStatus,
)
from task_mirror.sync.storage import FileBlobStore

TODO = TaskStatus(id="s-todo", name="To Do", color="gray", group=StatusGroup.TODO)
DOING = TaskStatus(
    id="s-doing", name="In Progress", color="blue", group=StatusGroup.IN_PROGRESS
)
DONE = TaskStatus(id="s-done", name="Done", color="green", group=StatusGroup.COMPLETE)


def make_task(task_id: str = "task-1", **overrides) -> Task:
    """Build a task with sensible defaults."""
    fields = {
        "id": task_id,
        "title": f"Task {task_id}",
        "status": TODO,
        "do_date": None,
        "due_date": "2026-01-15",
        "project": "Home",
    }
    fields.update(overrides)
    return Task(**fields)


class FakeApplier:
    """In-memory ``RemoteApplier``.

    ``server`` maps task ids to the server's current record.  Queue
    exceptions per task id in ``fetch_errors`` / ``apply_errors``; each
    entry is raised once, in order.
    """

    def __init__(self, tasks: list[Task] | None = None) -> None:
        self.server: dict[str, Task] = {t.id: t for t in tasks or []}
        self.fetch_errors: dict[str, list[Exception]] = {}
        self.apply_errors: dict[str, list[Exception]] = {}
        self.applied: list[PendingMutation] = []
        self.fetched: list[str] = []

    async def fetch_task(self, task_id: str) -> Task | None:
        self.fetched.append(task_id)
        errors = self.fetch_errors.get(task_id)
        if errors:
            raise errors.pop(0)
        return self.server.get(task_id)

    async def apply(self, mutation: PendingMutation) -> None:
        errors = self.apply_errors.get(mutation.task_id)
        if errors:
            raise errors.pop(0)
        current = self.server.get(mutation.task_id)
        if current is None:
            raise RemoteNotFoundError("Could not find page", status_code=404)
        self.server[mutation.task_id] = apply_to_task(current, mutation)
        self.applied.append(mutation)

    async def list_tasks(self) -> list[Task]:
        return list(self.server.values())


class FailingBlobStore:
    """Blob store wrapper whose writes can be switched to fail."""

    def __init__(self, inner: FileBlobStore) -> None:
        self.inner = inner
        self.fail_writes = False

    def read_blob(self, key: str) -> bytes | None:
        return self.inner.read_blob(key)

    def write_blob(self, key: str, data: bytes) -> None:
        if self.fail_writes:
            raise StorageError(key, "disk full")
        self.inner.write_blob(key, data)

    def delete_blob(self, key: str) -> None:
        if self.fail_writes:
            raise StorageError(key, "disk full")
        self.inner.delete_blob(key)


class SlowBlobStore:
    """Blob store wrapper whose writes block the worker thread briefly.

    Overlapping async writers interleave at the ``run_sync`` await.
    """

    def __init__(self, inner: FileBlobStore, delay: float = 0.05) -> None:
        self.inner = inner
        self.delay = delay

    def read_blob(self, key: str) -> bytes | None:
        return self.inner.read_blob(key)

    def write_blob(self, key: str, data: bytes) -> None:
        time.sleep(self.delay)
        self.inner.write_blob(key, data)

    def delete_blob(self, key: str) -> None:
        self.inner.delete_blob(key)


@pytest.fixture
def blob_store(tmp_path: Path) -> FileBlobStore:
    return FileBlobStore(tmp_path / "data")


@pytest.fixture
def failing_store(blob_store: FileBlobStore) -> FailingBlobStore:
    return FailingBlobStore(blob_store)


@pytest.fixture
def task1() -> Task:
    return make_task("task-1")


@pytest.fixture
def task2() -> Task:
    return make_task("task-2", title="Write report", project="Work")


@pytest.fixture
def fake_applier(task1: Task, task2: Task) -> FakeApplier:
    return FakeApplier([task1, task2])


@pytest.fixture
def field_mapping() -> FieldMapping:
    return FieldMapping(
        task_name="title",
        status="st%3A",
        task_type="ty%3A",
        project="pr%3A",
        do_date="dd%3A",
        due_date="du%3A",
        url="ur%3A",
        creation_date="cr%3A",
        completed_date="co%3A",
    )


@pytest.fixture
def mock_config(tmp_path: Path) -> Config:
    """Create a Config instance for testing."""
    return Config(
        api_token="secret_test",
        api_url="https://api.example.com",
        storage_dir=str(tmp_path / "data"),
    )


@pytest.fixture
def mock_notion_client(mock_config):
    """Create a mock NotionClient instance for testing."""
    from task_mirror.core.client import NotionClient

    client = MagicMock(spec=NotionClient)
    client.config = mock_config
    return client


@pytest.fixture
def slow_store(blob_store: FileBlobStore) -> SlowBlobStore:
    return SlowBlobStore(blob_store)
