"""Resource-type scoped response cache."""

import hashlib
from typing import Any, Callable, Optional

from loguru import logger

from hueclient.errors import CacheError
from .backends import MISSING, CacheBackend, MemoryBackend, describe

# Seconds; bridge state that changes often gets short lifetimes.
DEFAULT_TTL = {
    "lights": 10,
    "groups": 30,
    "scenes": 60,
    "schedules": 60,
    "sensors": 5,
    "config": 300,
}
FALLBACK_TTL = 60


class ResponseCache:
    """
    Read-through cache for bridge responses.

    Entries are scoped by resource type, so invalidating one type never
    touches another. Backend failures are logged and treated as misses;
    the cache never makes a request fail.
    """

    def __init__(
        self,
        backend: Optional[CacheBackend] = None,
        ttl_overrides: Optional[dict[str, float]] = None,
    ):
        """
        Initialize the cache.

        Args:
            backend: Storage backend (defaults to in-memory).
            ttl_overrides: Per resource type TTLs replacing the defaults.
        """
        self.backend = backend if backend is not None else MemoryBackend()
        self.ttl_table = {**DEFAULT_TTL, **(ttl_overrides or {})}
        self.hits = 0
        self.misses = 0

    @staticmethod
    def build_key(resource_type: str, key: str) -> str:
        digest = hashlib.md5(key.encode("utf-8")).hexdigest()
        return f"{ResponseCache.prefix(resource_type)}{digest}"

    @staticmethod
    def prefix(resource_type: str) -> str:
        # Length-tagged so "sensors" is never a prefix of "sensors_extra"
        return f"hue_{len(resource_type)}_{resource_type}_"

    def ttl_for(self, resource_type: str) -> float:
        """Default TTL for a resource type."""
        return self.ttl_table.get(resource_type, FALLBACK_TTL)

    def get(
        self,
        resource_type: str,
        key: str,
        producer: Optional[Callable[[], Any]] = None,
    ) -> Any:
        """
        Look up a cached value.

        Args:
            resource_type: e.g. "lights", "config".
            key: Logical key; must capture everything that shapes the request.
            producer: Called on a miss; its result is cached and returned.
                Exceptions from the producer propagate untouched.

        Returns:
            The cached or produced value, or None on a miss without producer.
        """
        cache_key = self.build_key(resource_type, key)
        value = self._load(cache_key)

        if value is not MISSING:
            self.hits += 1
            logger.debug(f"Cache hit: {cache_key}")
            return value

        self.misses += 1
        if producer is None:
            return None

        logger.debug(f"Cache miss, fetching: {cache_key}")
        value = producer()
        self.set(resource_type, key, value)
        return value

    def set(
        self,
        resource_type: str,
        key: str,
        value: Any,
        ttl: Optional[float] = None,
    ) -> bool:
        """Store a value; returns False if the backend failed."""
        cache_key = self.build_key(resource_type, key)
        ttl = self.ttl_for(resource_type) if ttl is None else ttl

        try:
            stored = self._guard("store", lambda: self.backend.store(cache_key, value, ttl))
        except CacheError as e:
            logger.error(f"Failed to cache {cache_key}: {e}")
            return False

        if stored:
            logger.debug(f"Cached {cache_key} for {ttl}s")
        return bool(stored)

    def delete(self, resource_type: str, key: str) -> bool:
        cache_key = self.build_key(resource_type, key)
        try:
            deleted = self._guard("remove", lambda: self.backend.remove(cache_key))
        except CacheError as e:
            logger.error(f"Failed to delete {cache_key}: {e}")
            return False

        if deleted:
            logger.debug(f"Cache item deleted: {cache_key}")
        return bool(deleted)

    def invalidate(self, resource_type: str) -> bool:
        """
        Drop every entry of one resource type.

        Backends without prefix deletion fall back to clearing everything.
        """
        if not self.backend.supports_prefix_delete:
            logger.debug(
                f"{describe(self.backend)} cannot delete by prefix; "
                f"clearing cache to invalidate {resource_type}"
            )
            return self.clear()

        prefix = self.prefix(resource_type)
        try:
            removed = self._guard("remove_prefix", lambda: self.backend.remove_prefix(prefix))
        except CacheError as e:
            logger.error(f"Failed to invalidate {resource_type}: {e}")
            return False

        logger.debug(f"Invalidated {removed} {resource_type} cache entries")
        return True

    def clear(self) -> bool:
        try:
            cleared = self._guard("clear", self.backend.clear)
        except CacheError as e:
            logger.error(f"Failed to clear cache: {e}")
            return False

        if cleared:
            logger.info("Cache cleared")
        return bool(cleared)

    def stats(self) -> dict:
        """Return hit/miss counters and settings."""
        return {
            "backend": describe(self.backend),
            "hits": self.hits,
            "misses": self.misses,
            "default_ttl": dict(self.ttl_table),
        }

    def close(self):
        self.backend.close()

    def _load(self, cache_key: str) -> Any:
        try:
            return self._guard("load", lambda: self.backend.load(cache_key))
        except CacheError as e:
            logger.warning(f"Cache read failed for {cache_key}, treating as miss: {e}")
            return MISSING

    def _guard(self, operation: str, call: Callable[[], Any]) -> Any:
        try:
            return call()
        except Exception as e:
            raise CacheError(
                f"{describe(self.backend)}.{operation} failed: {e}"
            ) from e
