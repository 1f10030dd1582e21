"""Unit tests for label cache persistence."""

import json
from unittest.mock import MagicMock

from topicmap.labels import JsonFileStorage, LabelCache, MemoryStorage, load_cache, save_cache

KEY = "cluster-label-cache"


class TestMemoryStorage:
    """Tests for the in-process storage."""

    def test_save_and_load(self, label_cache, memory_storage) -> None:
        label_cache.add_or_update(["a", "b"], [1.0, 0.0], "ab")

        assert save_cache(memory_storage, label_cache, key=KEY)
        restored = load_cache(memory_storage, key=KEY, version=1)

        assert len(restored) == 1
        assert restored.entries[0].label == "ab"

    def test_missing_key_gives_empty_cache(self, memory_storage) -> None:
        assert len(load_cache(memory_storage, key=KEY)) == 0

    def test_delete(self, memory_storage) -> None:
        memory_storage.set(KEY, "x")
        memory_storage.delete(KEY)
        memory_storage.delete(KEY)
        assert memory_storage.get(KEY) is None


class TestJsonFileStorage:
    """Tests for the JSON file storage."""

    def test_roundtrip(self, tmp_path, label_cache) -> None:
        storage = JsonFileStorage(tmp_path / "nested" / "labels.json")
        label_cache.add_or_update(["x"], [0.0, 1.0], "x label")

        assert save_cache(storage, label_cache, key=KEY)
        assert (tmp_path / "nested" / "labels.json").exists()
        assert not (tmp_path / "nested" / "labels.json.tmp").exists()

        restored = load_cache(JsonFileStorage(tmp_path / "nested" / "labels.json"), key=KEY)
        assert restored.entries[0].label == "x label"

    def test_keys_are_independent(self, tmp_path) -> None:
        storage = JsonFileStorage(tmp_path / "kv.json")
        storage.set("a", "1")
        storage.set("b", "2")
        storage.delete("a")
        assert storage.get("a") is None
        assert storage.get("b") == "2"

    def test_unreadable_file_gives_empty_cache(self, tmp_path) -> None:
        path = tmp_path / "labels.json"
        path.write_text("{not json", encoding="utf-8")
        assert len(load_cache(JsonFileStorage(path), key=KEY)) == 0


class TestFailures:
    """Tests for storage failure handling."""

    def test_corrupt_payload(self, memory_storage) -> None:
        memory_storage.set(KEY, "not json at all")
        assert len(load_cache(memory_storage, key=KEY)) == 0

    def test_version_mismatch(self, memory_storage) -> None:
        memory_storage.set(KEY, json.dumps({"version": 99, "entries": []}))
        cache = load_cache(memory_storage, key=KEY, version=1)
        assert isinstance(cache, LabelCache)
        assert len(cache) == 0

    def test_get_failure(self) -> None:
        storage = MagicMock()
        storage.get.side_effect = OSError("disk gone")
        assert len(load_cache(storage, key=KEY)) == 0

    def test_save_failure_clears_stored_copy(self, label_cache) -> None:
        storage = MagicMock(spec=MemoryStorage)
        storage.set.side_effect = OSError("quota exceeded")

        assert save_cache(storage, label_cache, key=KEY) is False
        storage.delete.assert_called_once_with(KEY)

    def test_backend_errors_of_any_type(self, label_cache) -> None:
        storage = MagicMock(spec=MemoryStorage)
        storage.get.side_effect = RuntimeError("kv backend down")
        storage.set.side_effect = RuntimeError("kv backend down")
        storage.delete.side_effect = RuntimeError("kv backend down")

        assert len(load_cache(storage, key=KEY)) == 0
        assert save_cache(storage, label_cache, key=KEY) is False
        storage.delete.assert_called_once_with(KEY)
