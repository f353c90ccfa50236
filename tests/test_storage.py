"""Tests for the blob store and the JSON collection codec."""

import json

import pytest

from task_mirror.errors import StorageError
from task_mirror.sync.models import Task
from task_mirror.sync.storage import (
    FileBlobStore,
    StorageKeys,
    decode_collection,
    encode_collection,
)

from conftest import make_task


class TestFileBlobStore:
    """Round-trips and failure modes of the file-backed store."""

    def test_missing_key_reads_none(self, blob_store):
        assert blob_store.read_blob(StorageKeys.MUTATION_QUEUE) is None

    def test_write_then_read(self, blob_store):
        blob_store.write_blob("queue", b"[1, 2]")
        assert blob_store.read_blob("queue") == b"[1, 2]"
        assert (blob_store.root_dir / "queue.json").exists()

    def test_write_replaces_whole_blob(self, blob_store):
        blob_store.write_blob("queue", b"first, and longer")
        blob_store.write_blob("queue", b"second")
        assert blob_store.read_blob("queue") == b"second"

    def test_no_temp_files_left_behind(self, blob_store):
        blob_store.write_blob("queue", b"[]")
        leftovers = [p for p in blob_store.root_dir.iterdir() if p.suffix == ".tmp"]
        assert leftovers == []

    def test_delete_is_idempotent(self, blob_store):
        blob_store.write_blob("queue", b"[]")
        blob_store.delete_blob("queue")
        blob_store.delete_blob("queue")
        assert blob_store.read_blob("queue") is None

    @pytest.mark.parametrize("key", ["", "../escape", "a/b", "a\\b"])
    def test_invalid_keys_rejected(self, blob_store, key):
        with pytest.raises(StorageError, match="invalid storage key"):
            blob_store.write_blob(key, b"x")

    def test_unwritable_root_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("file in the way")
        store = FileBlobStore(blocker)

        with pytest.raises(StorageError) as exc_info:
            store.write_blob("queue", b"[]")

        assert exc_info.value.key == "queue"


class TestCollectionCodec:
    def test_encode_is_json_array(self):
        data = encode_collection([make_task("a"), make_task("b")])
        raw = json.loads(data)
        assert [item["id"] for item in raw] == ["a", "b"]

    def test_decode_absent_is_empty(self):
        assert decode_collection("cached_tasks", None, Task) == []

    def test_decode_round_trip(self):
        tasks = [make_task("a", url="https://x.test")]
        assert decode_collection("k", encode_collection(tasks), Task) == tasks

    def test_corrupt_json(self):
        with pytest.raises(StorageError, match="corrupt blob"):
            decode_collection("k", b"{not json", Task)

    def test_non_array(self):
        with pytest.raises(StorageError, match="expected a JSON array"):
            decode_collection("k", b'{"id": "a"}', Task)

    def test_invalid_record(self):
        with pytest.raises(StorageError, match="invalid record"):
            decode_collection("k", b'[{"id": "a"}]', Task)
