"""Tests for the multi-bridge connection pool."""

import threading
import time

import pytest

from hueclient.errors import ProtocolError, TransportError
from hueclient.hue.config import PipelineConfig
from hueclient.hue.pool import BridgePool
from hueclient.storage.cache import ResponseCache


class FakePipeline:
    """Stands in for RequestPipeline; records probes and tracks concurrency."""

    tracker_lock = threading.Lock()

    def __init__(self, endpoint, fail=False, delay=0.0, tracker=None):
        self.endpoint = endpoint
        self.address = endpoint.address
        self.fail = fail
        self.delay = delay
        self.tracker = tracker
        self.probes = []
        self.closed = False

    def probe(self, timeout=None):
        self.probes.append(timeout)
        if self.tracker is not None:
            with self.tracker_lock:
                self.tracker["current"] += 1
                self.tracker["peak"] = max(self.tracker["peak"], self.tracker["current"])
        try:
            if self.delay:
                time.sleep(self.delay)
            if self.fail:
                raise TransportError("connection refused", self.address)
            return self.delay or 0.01
        finally:
            if self.tracker is not None:
                with self.tracker_lock:
                    self.tracker["current"] -= 1

    def close(self):
        self.closed = True


class Factory:
    """Pipeline factory recording every pipeline it builds."""

    def __init__(self, failing=(), delay=0.0, tracker=None, delays=None):
        self.failing = set(failing)
        self.delay = delay
        self.delays = delays or {}
        self.tracker = tracker
        self.created = {}

    def __call__(self, endpoint):
        pipeline = FakePipeline(
            endpoint,
            fail=endpoint.address in self.failing,
            delay=self.delays.get(endpoint.address, self.delay),
            tracker=self.tracker,
        )
        self.created.setdefault(endpoint.address, []).append(pipeline)
        return pipeline


def make_pool(addresses, **kwargs):
    factory = kwargs.pop("factory", None) or Factory()
    pool = BridgePool(pipeline_factory=factory, **kwargs)
    for address in addresses:
        pool.add_endpoint(address, "token")
    return pool, factory


def test_health_check_reports_each_bridge():
    """One unreachable bridge is reported unhealthy without affecting the others."""
    factory = Factory(failing={"10.0.0.2"})
    pool, _ = make_pool(["10.0.0.1", "10.0.0.2", "10.0.0.3"], factory=factory)

    results = pool.health_check_all()

    assert set(results) == {"10.0.0.1", "10.0.0.2", "10.0.0.3"}
    assert results["10.0.0.2"].status == "unhealthy"
    assert "connection refused" in results["10.0.0.2"].error
    assert results["10.0.0.1"].is_healthy
    assert results["10.0.0.3"].is_healthy
    assert results["10.0.0.1"].latency == 0.01
    assert pool.active_connections() == 2


def test_health_check_uses_probe_timeout():
    pool, factory = make_pool(["10.0.0.1"], probe_timeout=2.5)
    pool.health_check_all()
    assert factory.created["10.0.0.1"][0].probes == [2.5]


def test_health_check_respects_max_connections():
    tracker = {"current": 0, "peak": 0}
    factory = Factory(delay=0.05, tracker=tracker)
    addresses = [f"10.0.0.{i}" for i in range(1, 9)]
    pool, _ = make_pool(addresses, factory=factory, max_connections=3)

    results = pool.health_check_all()

    assert len(results) == 8
    assert all(report.is_healthy for report in results.values())
    assert 1 <= tracker["peak"] <= 3


def test_results_keyed_by_address_when_completing_out_of_order():
    """The first bridge submitted answers last; every report still lands under its own address."""
    delays = {"10.0.0.1": 0.15, "10.0.0.2": 0.05, "10.0.0.3": 0.01}
    factory = Factory(failing={"10.0.0.2"}, delays=delays)
    pool, _ = make_pool(list(delays), factory=factory, max_connections=3)

    results = pool.health_check_all()

    assert list(results) == ["10.0.0.1", "10.0.0.2", "10.0.0.3"]
    assert results["10.0.0.1"].latency == 0.15
    assert results["10.0.0.3"].latency == 0.01
    assert not results["10.0.0.2"].is_healthy
    assert "10.0.0.2" in results["10.0.0.2"].error
    assert pool.entry("10.0.0.1").last_health is results["10.0.0.1"]


def test_health_check_on_empty_pool():
    pool, _ = make_pool([])
    assert pool.health_check_all() == {}
    assert pool.broadcast(lambda pipeline: None) == {}


def test_broadcast_isolates_failures():
    pool, _ = make_pool(["10.0.0.1", "10.0.0.2", "10.0.0.3"])

    def action(pipeline):
        if pipeline.address == "10.0.0.2":
            raise ProtocolError("resource not available", pipeline.address, error_type=3)
        return f"ok {pipeline.address}"

    results = pool.broadcast(action)

    assert results["10.0.0.1"].ok
    assert results["10.0.0.1"].result == "ok 10.0.0.1"
    assert results["10.0.0.3"].result == "ok 10.0.0.3"
    assert not results["10.0.0.2"].ok
    assert isinstance(results["10.0.0.2"].error, ProtocolError)


def test_get_pipeline_is_lazy_and_reused():
    pool, factory = make_pool(["10.0.0.1"])
    assert factory.created == {}

    first = pool.get_pipeline("10.0.0.1")
    second = pool.get_pipeline("10.0.0.1")

    assert first is second
    assert len(factory.created["10.0.0.1"]) == 1
    assert first.probes == [5]
    assert pool.entry("10.0.0.1").last_health.is_healthy


def test_get_pipeline_unknown_address():
    pool, factory = make_pool(["10.0.0.1"])
    assert pool.get_pipeline("192.168.1.99") is None
    assert factory.created == {}


def test_unhealthy_bridge_stays_in_pool_until_it_recovers():
    factory = Factory(failing={"10.0.0.1"})
    pool, _ = make_pool(["10.0.0.1"], factory=factory)

    pipeline = pool.get_pipeline("10.0.0.1")

    assert pipeline is not None
    assert not pool.entry("10.0.0.1").last_health.is_healthy
    assert pool.active_connections() == 0

    pipeline.fail = False
    pool.health_check_all()
    assert pool.active_connections() == 1
    assert pool.get_pipeline("10.0.0.1") is pipeline


def test_add_and_remove_endpoint():
    pool, factory = make_pool(["10.0.0.1", "10.0.0.2"])
    pipeline = pool.get_pipeline("10.0.0.1")

    assert pool.remove_endpoint("10.0.0.1")
    assert pipeline.closed
    assert not pool.remove_endpoint("10.0.0.1")
    assert pool.addresses() == ["10.0.0.2"]
    assert pool.bridge_count() == 1
    assert pool.get_pipeline("10.0.0.1") is None


def test_re_adding_endpoint_replaces_pipeline():
    pool, factory = make_pool(["10.0.0.1"])
    old = pool.get_pipeline("10.0.0.1")

    pool.add_endpoint("10.0.0.1", "new-token")
    new = pool.get_pipeline("10.0.0.1")

    assert old.closed
    assert new is not old
    assert new.endpoint.token == "new-token"


def test_endpoints_use_pool_default_config():
    config = PipelineConfig(cache_backend="memory", timeout=2)
    pool = BridgePool(default_config=config, pipeline_factory=Factory())
    pool.add_endpoint("10.0.0.1", "token")
    pool.add_endpoint("10.0.0.2", "token", PipelineConfig(cache_enabled=False))

    assert pool.entry("10.0.0.1").endpoint.config is config
    assert pool.entry("10.0.0.2").endpoint.config.cache_enabled is False


def test_default_factory_shares_the_pool_cache():
    cache = ResponseCache()
    pool = BridgePool(default_config=PipelineConfig(cache_backend="memory"), cache=cache)
    pool.add_endpoint("10.0.0.1", "token")
    pool.add_endpoint("10.0.0.2", "token")

    results = pool.broadcast(lambda pipeline: pipeline)
    try:
        assert results["10.0.0.1"].result.cache is cache
        assert results["10.0.0.2"].result.cache is cache
        assert results["10.0.0.1"].result.endpoint.token == "token"
    finally:
        pool.close()


def test_status_summary():
    factory = Factory(failing={"10.0.0.2"})
    pool, _ = make_pool(["10.0.0.1", "10.0.0.2"], factory=factory)
    pool.health_check_all()

    status = pool.status()

    assert status["bridges"] == 2
    assert status["active"] == 1
    assert status["health"]["10.0.0.1"]["status"] == "healthy"
    assert status["health"]["10.0.0.2"]["status"] == "unhealthy"


def test_close_closes_pipelines():
    pool, factory = make_pool(["10.0.0.1", "10.0.0.2"])
    pool.health_check_all()
    pool.close()
    assert all(p.closed for created in factory.created.values() for p in created)


def test_invalid_max_connections():
    with pytest.raises(ValueError):
        BridgePool(max_connections=0)
