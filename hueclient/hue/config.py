"""Per-bridge connection settings."""

import os
import tempfile
from dataclasses import dataclass, field, fields
from typing import Optional

from loguru import logger

CACHE_BACKENDS = ("memory", "filesystem", "networked")


@dataclass(frozen=True)
class PipelineConfig:
    """
    Settings for one bridge connection.

    Attributes:
        timeout: Per-request timeout in seconds.
        verify_tls: Verify the bridge certificate (bridges ship self-signed ones).
        retry_attempts: Retries after the first attempt for retryable failures.
        retry_delays: Backoff in seconds before each retry; the last one repeats.
        cache_enabled: Cache GET responses.
        cache_backend: One of "memory", "filesystem", "networked".
        cache_dir: Directory for the filesystem backend.
        redis_url: Server for the networked backend.
    """

    timeout: float = 5
    verify_tls: bool = False
    retry_attempts: int = 3
    retry_delays: tuple[float, ...] = (1, 2, 4)
    cache_enabled: bool = True
    cache_backend: str = "filesystem"
    cache_dir: str = field(
        default_factory=lambda: os.path.join(tempfile.gettempdir(), "hue_cache")
    )
    redis_url: str = "redis://localhost:6379/0"

    def __post_init__(self):
        if self.timeout <= 0:
            raise ValueError(f"timeout must be positive, got {self.timeout}")
        if self.retry_attempts < 0:
            raise ValueError(
                f"retry_attempts must be >= 0, got {self.retry_attempts}"
            )
        # Accept lists from YAML but store an immutable tuple
        object.__setattr__(self, "retry_delays", tuple(self.retry_delays))
        if not self.retry_delays:
            raise ValueError("retry_delays must not be empty")
        if any(delay < 0 for delay in self.retry_delays):
            raise ValueError(f"retry_delays must be >= 0, got {self.retry_delays}")
        if self.cache_backend not in CACHE_BACKENDS:
            raise ValueError(
                f"cache_backend must be one of {CACHE_BACKENDS}, "
                f"got {self.cache_backend!r}"
            )

    @classmethod
    def from_dict(cls, options: Optional[dict]) -> "PipelineConfig":
        """
        Build a config from a YAML ``options`` mapping.

        Unknown keys are logged and ignored.
        """
        options = dict(options or {})
        known = {f.name for f in fields(cls)}

        for key in sorted(set(options) - known):
            logger.warning(f"Ignoring unknown bridge option: {key}")
            options.pop(key)

        return cls(**options)
