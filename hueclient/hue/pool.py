"""Connection pool coordinating several bridges."""

import threading
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional, TypeVar

from loguru import logger

from hueclient.storage.cache import ResponseCache
from .config import PipelineConfig
from .models import (
    HEALTHY,
    UNHEALTHY,
    BridgeEndpoint,
    BroadcastResult,
    HealthReport,
    PoolEntry,
)
from .pipeline import RequestPipeline

T = TypeVar("T")

PipelineFactory = Callable[[BridgeEndpoint], RequestPipeline]


class BridgePool:
    """
    Holds one RequestPipeline per bridge address.

    Pipelines are created on first use and kept for the pool's lifetime.
    Health checks and broadcasts fan out over a bounded thread pool; a
    failing bridge is reported in its own result entry and never affects
    the others.
    """

    def __init__(
        self,
        max_connections: int = 10,
        probe_timeout: float = 5,
        *,
        default_config: Optional[PipelineConfig] = None,
        cache: Optional[ResponseCache] = None,
        pipeline_factory: Optional[PipelineFactory] = None,
    ):
        """
        Initialize the pool.

        Args:
            max_connections: Maximum probes/actions in flight at once.
            probe_timeout: Timeout in seconds for each health probe.
            default_config: Settings for endpoints added without their own.
            cache: Response cache shared by every pipeline.
            pipeline_factory: Builds a pipeline for an endpoint.
        """
        if max_connections < 1:
            raise ValueError(f"max_connections must be >= 1, got {max_connections}")

        self.max_connections = max_connections
        self.probe_timeout = probe_timeout
        self.default_config = default_config or PipelineConfig()
        self.cache = cache
        self._factory = pipeline_factory or self._create_pipeline
        self._entries: dict[str, PoolEntry] = {}
        self._lock = threading.Lock()

    def add_endpoint(
        self,
        address: str,
        token: Optional[str],
        config: Optional[PipelineConfig] = None,
    ):
        """Register a bridge; replaces any existing entry for the address."""
        endpoint = BridgeEndpoint(address, token, config or self.default_config)
        with self._lock:
            old = self._entries.pop(address, None)
            self._entries[address] = PoolEntry(endpoint)
        if old is not None and old.pipeline is not None:
            old.pipeline.close()
        logger.info(f"Added bridge {address} to pool")

    def remove_endpoint(self, address: str) -> bool:
        with self._lock:
            entry = self._entries.pop(address, None)
        if entry is None:
            return False
        if entry.pipeline is not None:
            entry.pipeline.close()
        logger.info(f"Removed bridge {address} from pool")
        return True

    def get_pipeline(self, address: str) -> Optional[RequestPipeline]:
        """
        Get the pipeline for a bridge, creating it on first access.

        A new pipeline is probed once; the result is recorded but a failing
        bridge stays in the pool so a later call can still succeed.

        Returns:
            The pipeline, or None for an unknown address.
        """
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                return None
            if entry.pipeline is not None:
                return entry.pipeline
            entry.pipeline = self._factory(entry.endpoint)
            pipeline = entry.pipeline

        report = self._probe(address, pipeline)
        entry.last_health = report
        if report.is_healthy:
            logger.info(f"Connected to bridge {address}")
        else:
            logger.warning(f"Failed to connect to bridge {address}: {report.error}")
        return pipeline

    def addresses(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def entry(self, address: str) -> Optional[PoolEntry]:
        with self._lock:
            return self._entries.get(address)

    def bridge_count(self) -> int:
        return len(self._entries)

    def active_connections(self) -> int:
        """Number of bridges whose last probe succeeded."""
        with self._lock:
            return sum(
                1
                for entry in self._entries.values()
                if entry.pipeline is not None
                and entry.last_health is not None
                and entry.last_health.is_healthy
            )

    def health_check_all(self) -> dict[str, HealthReport]:
        """
        Probe every bridge concurrently.

        At most ``max_connections`` probes run at once and each is limited
        to ``probe_timeout`` seconds.

        Returns:
            One HealthReport per bridge address.
        """
        addresses = self.addresses()
        if not addresses:
            return {}

        results: dict[str, HealthReport] = {}
        with ThreadPoolExecutor(
            max_workers=min(self.max_connections, len(addresses)),
            thread_name_prefix="hue-health",
        ) as executor:
            futures = {
                executor.submit(self._check_one, address): address
                for address in addresses
            }
            for future, address in futures.items():
                results[address] = future.result()

        healthy = sum(1 for report in results.values() if report.is_healthy)
        logger.info(f"Health check: {healthy}/{len(results)} bridges healthy")
        return results

    def broadcast(self, action: Callable[[RequestPipeline], T]) -> dict[str, BroadcastResult]:
        """
        Run ``action`` against every bridge in the pool.

        Runs concurrently with the same bound as health checks. An exception
        from one bridge is captured in that bridge's result only.

        Returns:
            One BroadcastResult per bridge address.
        """
        addresses = self.addresses()
        if not addresses:
            return {}

        results: dict[str, BroadcastResult] = {}
        with ThreadPoolExecutor(
            max_workers=min(self.max_connections, len(addresses)),
            thread_name_prefix="hue-broadcast",
        ) as executor:
            futures = {
                executor.submit(self._run_action, address, action): address
                for address in addresses
            }
            for future, address in futures.items():
                results[address] = future.result()

        failed = [address for address, result in results.items() if not result.ok]
        if failed:
            logger.warning(f"Broadcast failed on {len(failed)} bridge(s): {', '.join(failed)}")
        return results

    def status(self) -> dict:
        """Summarize the pool for status displays."""
        with self._lock:
            entries = dict(self._entries)
        return {
            "bridges": len(entries),
            "active": self.active_connections(),
            "health": {
                address: entry.last_health.to_dict() if entry.last_health else None
                for address, entry in entries.items()
            },
        }

    def close(self):
        with self._lock:
            entries = list(self._entries.values())
        for entry in entries:
            if entry.pipeline is not None:
                entry.pipeline.close()
        if self.cache is not None:
            self.cache.close()

    def _create_pipeline(self, endpoint: BridgeEndpoint) -> RequestPipeline:
        return RequestPipeline(endpoint, cache=self.cache)

    def _probe(self, address: str, pipeline: RequestPipeline) -> HealthReport:
        try:
            latency = pipeline.probe(timeout=self.probe_timeout)
        except Exception as e:
            return HealthReport(status=UNHEALTHY, error=str(e))
        return HealthReport(status=HEALTHY, latency=latency)

    def _check_one(self, address: str) -> HealthReport:
        try:
            pipeline = self._pipeline_for(address)
            report = self._probe(address, pipeline)
        except Exception as e:
            report = HealthReport(status=UNHEALTHY, error=str(e))

        entry = self.entry(address)
        if entry is not None:
            entry.last_health = report
        if not report.is_healthy:
            logger.warning(f"Bridge {address} unhealthy: {report.error}")
        return report

    def _run_action(self, address: str, action: Callable[[RequestPipeline], T]) -> BroadcastResult:
        try:
            result = action(self._pipeline_for(address))
        except Exception as e:
            logger.error(f"Broadcast action failed on {address}: {e}")
            return BroadcastResult(ok=False, error=e)
        return BroadcastResult(ok=True, result=result)

    def _pipeline_for(self, address: str) -> RequestPipeline:
        """Pipeline for an address without the first-use probe."""
        with self._lock:
            entry = self._entries.get(address)
            if entry is None:
                raise KeyError(f"Bridge {address} was removed from the pool")
            if entry.pipeline is None:
                entry.pipeline = self._factory(entry.endpoint)
            return entry.pipeline
