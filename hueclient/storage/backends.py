"""Storage backends for the response cache."""

import json
import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Any, Callable, Optional

from loguru import logger
from redis import Redis
from sqlalchemy import Column, Float, String, Text, create_engine
from sqlalchemy.orm import Session, declarative_base, sessionmaker

if TYPE_CHECKING:
    from hueclient.hue.config import PipelineConfig

Base = declarative_base()

MISSING = object()


@dataclass
class CacheEntry:
    """A stored value; replaced wholesale on every write."""

    key: str
    value: Any
    expires_at: float

    def is_expired(self, now: float) -> bool:
        return self.expires_at <= now


class CacheBackend:
    """
    Key/value storage with per-entry expiry.

    Keys are plain strings. ``load`` returns ``MISSING`` for absent or
    expired entries so that a cached ``None`` is still a hit.
    """

    supports_prefix_delete = False

    def load(self, key: str) -> Any:
        raise NotImplementedError

    def store(self, key: str, value: Any, ttl: float) -> bool:
        raise NotImplementedError

    def remove(self, key: str) -> bool:
        raise NotImplementedError

    def remove_prefix(self, prefix: str) -> int:
        raise NotImplementedError

    def clear(self) -> bool:
        raise NotImplementedError

    def close(self):
        pass


class MemoryBackend(CacheBackend):
    """In-process dictionary backend."""

    supports_prefix_delete = True

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def load(self, key: str) -> Any:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return MISSING
            if entry.is_expired(self._clock()):
                del self._entries[key]
                return MISSING
            return entry.value

    def store(self, key: str, value: Any, ttl: float) -> bool:
        with self._lock:
            self._entries[key] = CacheEntry(key, value, self._clock() + ttl)
        return True

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def remove_prefix(self, prefix: str) -> int:
        with self._lock:
            doomed = [key for key in self._entries if key.startswith(prefix)]
            for key in doomed:
                del self._entries[key]
        return len(doomed)

    def clear(self) -> bool:
        with self._lock:
            self._entries.clear()
        return True

    def __len__(self) -> int:
        return len(self._entries)


class CacheRecord(Base):
    """Database model for one cached response."""

    __tablename__ = "cache_entries"

    key = Column(String(200), primary_key=True)
    value = Column(Text, nullable=False)  # JSON-encoded
    expires_at = Column(Float, nullable=False, index=True)

    def __repr__(self):
        return f"<CacheRecord {self.key} expires {self.expires_at}>"


class FilesystemBackend(CacheBackend):
    """SQLite file backend; values must be JSON-serializable."""

    supports_prefix_delete = True

    def __init__(
        self,
        cache_dir: str,
        filename: str = "responses.db",
        clock: Callable[[], float] = time.time,
    ):
        """
        Initialize the cache database.

        Args:
            cache_dir: Directory holding the SQLite file.
            filename: Database file name.
            clock: Wall clock for expiry (entries outlive the process).
        """
        self.db_path = Path(cache_dir) / filename
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._clock = clock

        self.engine = create_engine(
            f"sqlite:///{self.db_path}",
            echo=False,
            connect_args={"check_same_thread": False},
        )
        self.SessionLocal = sessionmaker(bind=self.engine)

        Base.metadata.create_all(self.engine)
        logger.debug(f"Response cache initialized at {self.db_path}")

    def get_session(self) -> Session:
        """Get a new database session."""
        return self.SessionLocal()

    def load(self, key: str) -> Any:
        with self.get_session() as session:
            record = session.get(CacheRecord, key)
            if record is None:
                return MISSING
            if record.expires_at <= self._clock():
                session.delete(record)
                session.commit()
                return MISSING
            return json.loads(record.value)

    def store(self, key: str, value: Any, ttl: float) -> bool:
        record = CacheRecord(
            key=key,
            value=json.dumps(value),
            expires_at=self._clock() + ttl,
        )
        with self.get_session() as session:
            session.merge(record)
            session.commit()
        return True

    def remove(self, key: str) -> bool:
        with self.get_session() as session:
            deleted = session.query(CacheRecord).filter(CacheRecord.key == key).delete()
            session.commit()
            return deleted > 0

    def remove_prefix(self, prefix: str) -> int:
        with self.get_session() as session:
            deleted = (
                session.query(CacheRecord)
                .filter(CacheRecord.key.startswith(prefix, autoescape=True))
                .delete(synchronize_session=False)
            )
            session.commit()
            return deleted

    def clear(self) -> bool:
        with self.get_session() as session:
            session.query(CacheRecord).delete()
            session.commit()
        return True

    def cleanup_expired(self) -> int:
        """Remove expired rows; returns the number removed."""
        with self.get_session() as session:
            deleted = (
                session.query(CacheRecord)
                .filter(CacheRecord.expires_at <= self._clock())
                .delete()
            )
            session.commit()
            if deleted:
                logger.debug(f"Cleaned up {deleted} expired cache entries")
            return deleted

    def close(self):
        self.engine.dispose()


class RedisBackend(CacheBackend):
    """Redis backend shared between processes; values must be JSON-serializable."""

    supports_prefix_delete = True

    def __init__(self, client=None, url: str = "redis://localhost:6379/0"):
        if client is None:
            client = Redis.from_url(url, decode_responses=True, encoding="utf-8")
        self.client = client

    def load(self, key: str) -> Any:
        raw = self.client.get(key)
        if raw is None:
            return MISSING
        return json.loads(raw)

    def store(self, key: str, value: Any, ttl: float) -> bool:
        # Redis expiry has whole-second granularity
        return bool(self.client.set(key, json.dumps(value), ex=max(1, int(ttl))))

    def remove(self, key: str) -> bool:
        return self.client.delete(key) > 0

    def remove_prefix(self, prefix: str) -> int:
        keys = list(self.client.scan_iter(match=f"{prefix}*"))
        if not keys:
            return 0
        return self.client.delete(*keys)

    def clear(self) -> bool:
        keys = list(self.client.scan_iter(match="hue_*"))
        if keys:
            self.client.delete(*keys)
        return True

    def close(self):
        self.client.close()


def create_backend(config: "PipelineConfig") -> CacheBackend:
    """Build the backend named by ``config.cache_backend``."""
    if config.cache_backend == "memory":
        return MemoryBackend()
    if config.cache_backend == "networked":
        return RedisBackend(url=config.redis_url)
    return FilesystemBackend(config.cache_dir)


def describe(backend: Optional[CacheBackend]) -> str:
    return type(backend).__name__ if backend is not None else "none"
