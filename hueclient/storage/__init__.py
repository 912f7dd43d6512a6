"""Response cache storage module."""

from .backends import CacheBackend, FilesystemBackend, MemoryBackend, RedisBackend, create_backend
from .cache import DEFAULT_TTL, ResponseCache

__all__ = [
    "CacheBackend",
    "DEFAULT_TTL",
    "FilesystemBackend",
    "MemoryBackend",
    "RedisBackend",
    "ResponseCache",
    "create_backend",
]
