"""Tests for retry classification and backoff."""

import pytest
import requests

from hueclient.errors import (
    AuthenticationError,
    LinkButtonPendingError,
    ProtocolError,
    ServerBusyError,
    TransportError,
)
from hueclient.hue.retry import RetryDecision, RetryPolicy, classify


def flaky(failures, error_factory, result="ok"):
    """Operation failing ``failures`` times before returning ``result``."""
    calls = []

    def operation():
        calls.append(len(calls))
        if len(calls) <= failures:
            raise error_factory()
        return result

    operation.calls = calls
    return operation


def http_error(status):
    response = requests.Response()
    response.status_code = status
    return requests.HTTPError(response=response)


@pytest.mark.parametrize(
    "error, decision",
    [
        (TransportError("refused"), RetryDecision.RETRY),
        (requests.ConnectionError("reset"), RetryDecision.RETRY),
        (requests.ReadTimeout("slow"), RetryDecision.RETRY),
        (ServerBusyError(500), RetryDecision.RETRY),
        (ServerBusyError(503), RetryDecision.RETRY),
        (ServerBusyError(408), RetryDecision.RETRY),
        (ServerBusyError(429), RetryDecision.RETRY),
        (http_error(502), RetryDecision.RETRY),
        (http_error(404), RetryDecision.FATAL),
        (ProtocolError("bad request", status_code=400), RetryDecision.FATAL),
        (ProtocolError("parameter not available", error_type=6), RetryDecision.FATAL),
        (AuthenticationError("unauthorized user"), RetryDecision.FATAL),
        (LinkButtonPendingError(), RetryDecision.FATAL),
        (ValueError("boom"), RetryDecision.FATAL),
    ],
)
def test_classify(error, decision):
    assert classify(error) is decision


def test_success_without_failures_does_not_sleep(sleeps):
    policy = RetryPolicy(sleep=sleeps.append)
    operation = flaky(0, lambda: TransportError("x"))

    assert policy.execute(operation) == "ok"
    assert len(operation.calls) == 1
    assert sleeps == []


@pytest.mark.parametrize("failures", [1, 2])
def test_recovers_after_k_failures_using_delay_table(sleeps, failures):
    policy = RetryPolicy(max_retries=3, delays=(1, 2, 4), sleep=sleeps.append)
    operation = flaky(failures, lambda: ServerBusyError(503))

    assert policy.execute(operation, "GET /lights") == "ok"
    assert len(operation.calls) == failures + 1
    assert sleeps == [1, 2, 4][:failures]


def test_last_delay_repeats_when_table_is_short(sleeps):
    policy = RetryPolicy(max_retries=5, delays=(1, 2), sleep=sleeps.append)
    operation = flaky(4, lambda: TransportError("timeout"))

    assert policy.execute(operation) == "ok"
    assert sleeps == [1, 2, 2, 2]


def test_fatal_error_raises_immediately(sleeps):
    policy = RetryPolicy(sleep=sleeps.append)
    operation = flaky(10, lambda: ProtocolError("invalid value", error_type=7))

    with pytest.raises(ProtocolError) as exc_info:
        policy.execute(operation)

    assert len(operation.calls) == 1
    assert sleeps == []
    assert exc_info.value.attempts == 1


def test_exhausted_retries_reraise_with_attempt_count(sleeps):
    policy = RetryPolicy(max_retries=3, delays=(1, 2, 4), sleep=sleeps.append)
    operation = flaky(100, lambda: ServerBusyError(503, "10.0.0.1"))

    with pytest.raises(ServerBusyError) as exc_info:
        policy.execute(operation, "GET /config")

    error = exc_info.value
    assert len(operation.calls) == 4
    assert sleeps == [1, 2, 4]
    assert error.attempts == 4
    assert error.status_code == 503
    assert "after 4 attempts" in str(error)


def test_zero_retries_means_single_attempt(sleeps):
    policy = RetryPolicy(max_retries=0, sleep=sleeps.append)
    operation = flaky(1, lambda: TransportError("down"))

    with pytest.raises(TransportError):
        policy.execute(operation)
    assert sleeps == []


def test_delay_for_clamps_to_last_entry():
    policy = RetryPolicy(delays=(0.5, 1.5))
    assert [policy.delay_for(i) for i in range(4)] == [0.5, 1.5, 1.5, 1.5]


@pytest.mark.parametrize(
    "kwargs",
    [{"max_retries": -1}, {"delays": ()}, {"delays": (1, -2)}],
)
def test_invalid_settings_are_rejected(kwargs):
    with pytest.raises(ValueError):
        RetryPolicy(**kwargs)


def test_statistics():
    assert RetryPolicy(2, (3, 5)).statistics() == {"max_retries": 2, "delays": [3, 5]}
