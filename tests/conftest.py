"""Shared fixtures: a scripted HTTP session, a fake clock and recorded sleeps."""

import json

import pytest
import requests

from hueclient.hue.config import PipelineConfig
from hueclient.hue.pipeline import RequestPipeline
from hueclient.hue.retry import RetryPolicy

BRIDGE = "10.0.0.1"
TOKEN = "test-token-0123456789"


def make_response(status: int, payload) -> requests.Response:
    """Build a real Response carrying ``payload`` (JSON-encoded unless a str)."""
    response = requests.Response()
    response.status_code = status
    body = payload if isinstance(payload, str) else json.dumps(payload)
    response._content = body.encode("utf-8")
    response.encoding = "utf-8"
    return response


class FakeSession(requests.Session):
    """Session that replays scripted outcomes instead of touching the network."""

    def __init__(self):
        super().__init__()
        self.outcomes = []
        self.calls = []

    def queue(self, *outcomes):
        """Queue ``(status, payload)`` tuples or exceptions to raise."""
        self.outcomes.extend(outcomes)

    def request(self, method, url, **kwargs):
        self.calls.append({"method": method, "url": url, **kwargs})
        if not self.outcomes:
            raise AssertionError(f"Unexpected request: {method} {url}")
        outcome = self.outcomes.pop(0)
        if isinstance(outcome, BaseException):
            raise outcome
        status, payload = outcome
        return make_response(status, payload)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def session():
    return FakeSession()


@pytest.fixture
def sleeps():
    """Delays passed to the retry policy's sleep, in order."""
    return []


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def make_pipeline(session, sleeps):
    """Build a pipeline wired to the fake session, memory cache and recorded sleeps."""
    created = []

    def factory(token=TOKEN, **options):
        options.setdefault("cache_backend", "memory")
        config = PipelineConfig(**options)
        pipeline = RequestPipeline(
            BRIDGE,
            token,
            config,
            session=session,
            retry_policy=RetryPolicy(
                max_retries=config.retry_attempts,
                delays=config.retry_delays,
                sleep=sleeps.append,
            ),
        )
        created.append(pipeline)
        return pipeline

    yield factory

    for pipeline in created:
        pipeline.close()
