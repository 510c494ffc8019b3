"""
Feature flags over an injected KVStore.

Flags are plain booleans keyed ``flag:<name>``. Unknown flags resolve to
False; the flags below resolve to their default until explicitly set.
"""

import logging

logger = logging.getLogger(__name__)

FLAG_PREFIX = "flag:"

DEFAULT_FLAGS = {
    # Delete already-stored documents when a later submission step fails
    "cleanup_orphaned_uploads": True,
    # Accept new role-change requests
    "role_requests_open": True,
}


class FeatureFlags:
    def __init__(self, store, defaults=None):
        self.store = store
        self.defaults = dict(DEFAULT_FLAGS if defaults is None else defaults)

    def is_enabled(self, key: str) -> bool:
        value = self.store.get(FLAG_PREFIX + key)
        if value is None:
            return bool(self.defaults.get(key, False))
        return bool(value)

    def set(self, key: str, enabled: bool) -> None:
        self.store.set(FLAG_PREFIX + key, bool(enabled))
        logger.info("Feature flag %s set to %s", key, bool(enabled))

    def reset(self, key: str) -> None:
        self.store.delete(FLAG_PREFIX + key)

    def all(self) -> dict:
        keys = set(self.defaults) | {k[len(FLAG_PREFIX):] for k in self.store.keys(FLAG_PREFIX)}
        return {k: self.is_enabled(k) for k in sorted(keys)}
