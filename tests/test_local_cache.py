"""Tests for the local key-value caches."""

import json

from expense_sync.services.cache import JsonFileCache, MemoryCache


class TestMemoryCache:

    def test_set_get_remove(self):
        cache = MemoryCache({"a": "1"})
        assert cache.get_item("a") == "1"
        cache.set_item("b", "2")
        cache.remove_item("a")
        assert cache.get_item("a") is None
        assert cache.get_item("b") == "2"

    def test_remove_missing_key(self):
        MemoryCache().remove_item("nothing")


class TestJsonFileCache:

    def test_missing_file_is_empty(self, tmp_path):
        cache = JsonFileCache(str(tmp_path / "cache.json"))
        assert cache.get_item("key") is None

    def test_values_persist_across_instances(self, tmp_path):
        path = tmp_path / "nested" / "cache.json"
        JsonFileCache(str(path)).set_item("key", "value")
        assert JsonFileCache(str(path)).get_item("key") == "value"
        assert json.loads(path.read_text()) == {"key": "value"}

    def test_corrupt_file_is_treated_as_empty(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text("{broken")
        cache = JsonFileCache(str(path))
        assert cache.get_item("key") is None

        cache.set_item("key", "fresh")
        assert cache.get_item("key") == "fresh"

    def test_non_string_values_are_ignored(self, tmp_path):
        path = tmp_path / "cache.json"
        path.write_text(json.dumps({"good": "yes", "bad": 3}))
        cache = JsonFileCache(str(path))
        assert cache.get_item("good") == "yes"
        assert cache.get_item("bad") is None

    def test_remove_item(self, tmp_path):
        cache = JsonFileCache(str(tmp_path / "cache.json"))
        cache.set_item("a", "1")
        cache.remove_item("a")
        assert cache.get_item("a") is None

    def test_no_temp_files_left_behind(self, tmp_path):
        cache = JsonFileCache(str(tmp_path / "cache.json"))
        cache.set_item("a", "1")
        cache.set_item("b", "2")
        assert [p.name for p in tmp_path.iterdir()] == ["cache.json"]

    def test_default_path_from_settings(self, tmp_path):
        """LOCAL_CACHE_PATH is pointed at tmp_path by the autouse fixture."""
        assert JsonFileCache().path == tmp_path / "local-cache.json"
