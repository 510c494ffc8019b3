"""
Key-value store behind feature flags and other small persisted settings.

Uses Redis when KV_STORE_URL is a redis:// URL, a process-local dict
otherwise. Values are stored as JSON strings in both backends.
"""

import json
import logging

import redis

logger = logging.getLogger(__name__)


class KVStore:
    """Interface: JSON-serialisable values under string keys."""

    def get(self, key, default=None):
        raise NotImplementedError

    def set(self, key, value):
        raise NotImplementedError

    def delete(self, key):
        raise NotImplementedError

    def keys(self, prefix=""):
        raise NotImplementedError


class MemoryKVStore(KVStore):
    """Dict-backed store for development and tests; one instance per app."""

    def __init__(self, initial=None):
        self._data = {k: json.dumps(v) for k, v in (initial or {}).items()}

    def get(self, key, default=None):
        raw = self._data.get(key)
        return default if raw is None else json.loads(raw)

    def set(self, key, value):
        self._data[key] = json.dumps(value)

    def delete(self, key):
        self._data.pop(key, None)

    def keys(self, prefix=""):
        return sorted(k for k in self._data if k.startswith(prefix))


class RedisKVStore(KVStore):
    def __init__(self, client, namespace="rentflow:"):
        self.client = client
        self.namespace = namespace

    @classmethod
    def from_url(cls, url, namespace="rentflow:"):
        return cls(redis.from_url(url, decode_responses=True), namespace=namespace)

    def _k(self, key):
        return f"{self.namespace}{key}"

    def get(self, key, default=None):
        raw = self.client.get(self._k(key))
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except (json.JSONDecodeError, TypeError):
            logger.warning("Discarding malformed KV value for %s", key)
            return default

    def set(self, key, value):
        self.client.set(self._k(key), json.dumps(value))

    def delete(self, key):
        self.client.delete(self._k(key))

    def keys(self, prefix=""):
        pattern = f"{self.namespace}{prefix}*"
        return sorted(k[len(self.namespace):] for k in self.client.scan_iter(match=pattern))


def kv_store_from_url(url):
    """``memory://`` -> MemoryKVStore; ``redis://...`` -> RedisKVStore."""
    if not url or url.startswith("memory://"):
        return MemoryKVStore()
    if url.startswith(("redis://", "rediss://", "unix://")):
        logger.info("KV store: using Redis at %s", url.split("@")[-1])
        return RedisKVStore.from_url(url)
    raise ValueError(f"Unsupported KV_STORE_URL scheme: {url!r}")
