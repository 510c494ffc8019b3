"""
Key-value store and feature flag tests.

Covers:
    1. MemoryKVStore JSON round-trip and prefix listing
    2. RedisKVStore against a mocked redis client (namespacing, malformed values)
    3. kv_store_from_url scheme selection
    4. FeatureFlags defaults, overrides and reset
"""

import json
from unittest.mock import MagicMock, patch

import pytest

from rentflow.services.feature_flags import DEFAULT_FLAGS, FeatureFlags
from rentflow.services.kv_store import MemoryKVStore, RedisKVStore, kv_store_from_url


class TestMemoryKVStore:

    def test_get_set_delete(self):
        store = MemoryKVStore({"a": 1})
        assert store.get("a") == 1
        store.set("b", {"nested": [1, 2]})
        assert store.get("b") == {"nested": [1, 2]}
        store.delete("a")
        store.delete("never-set")
        assert store.get("a", "fallback") == "fallback"

    def test_keys_by_prefix(self):
        store = MemoryKVStore({"flag:x": True, "flag:a": False, "other": 1})
        assert store.keys("flag:") == ["flag:a", "flag:x"]


class TestRedisKVStore:

    def test_values_are_namespaced_json(self):
        client = MagicMock()
        store = RedisKVStore(client, namespace="test:")
        store.set("flag:x", True)
        client.set.assert_called_once_with("test:flag:x", "true")

        client.get.return_value = json.dumps({"v": 1})
        assert store.get("k") == {"v": 1}
        client.get.assert_called_with("test:k")

        store.delete("k")
        client.delete.assert_called_once_with("test:k")

    def test_missing_and_malformed(self):
        client = MagicMock()
        store = RedisKVStore(client)
        client.get.return_value = None
        assert store.get("k", 5) == 5
        client.get.return_value = "{not json"
        assert store.get("k", 5) == 5

    def test_keys_strip_namespace(self):
        client = MagicMock()
        client.scan_iter.return_value = iter(["rentflow:flag:b", "rentflow:flag:a"])
        assert RedisKVStore(client).keys("flag:") == ["flag:a", "flag:b"]
        client.scan_iter.assert_called_once_with(match="rentflow:flag:*")


class TestKVStoreFromUrl:

    @pytest.mark.parametrize("url", [None, "", "memory://"])
    def test_memory(self, url):
        assert isinstance(kv_store_from_url(url), MemoryKVStore)

    @pytest.mark.parametrize("url", ["redis://localhost:6379/0", "rediss://user:pw@cache:6380/1"])
    def test_redis(self, url):
        with patch("rentflow.services.kv_store.redis.from_url") as from_url:
            store = kv_store_from_url(url)
        assert isinstance(store, RedisKVStore)
        from_url.assert_called_once_with(url, decode_responses=True)

    def test_unknown_scheme(self):
        with pytest.raises(ValueError):
            kv_store_from_url("etcd://cluster")


class TestFeatureFlags:

    def test_defaults(self):
        flags = FeatureFlags(MemoryKVStore())
        for key, value in DEFAULT_FLAGS.items():
            assert flags.is_enabled(key) is value
        assert flags.is_enabled("unknown_flag") is False

    def test_override_and_reset(self):
        store = MemoryKVStore()
        flags = FeatureFlags(store)
        flags.set("cleanup_orphaned_uploads", False)
        assert store.get("flag:cleanup_orphaned_uploads") is False
        assert flags.is_enabled("cleanup_orphaned_uploads") is False
        flags.reset("cleanup_orphaned_uploads")
        assert flags.is_enabled("cleanup_orphaned_uploads") is True

    def test_all_includes_stored_flags(self):
        flags = FeatureFlags(MemoryKVStore(), defaults={"a": True})
        flags.set("b", True)
        assert flags.all() == {"a": True, "b": True}

    def test_shared_store(self):
        store = MemoryKVStore()
        FeatureFlags(store).set("role_requests_open", False)
        assert FeatureFlags(store).is_enabled("role_requests_open") is False
