"""Retry with explicit backoff for bridge requests."""

import enum
import time
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, TypeVar

import requests
from loguru import logger

from hueclient.errors import TransportError

T = TypeVar("T")

RETRYABLE_STATUS_CODES = (408, 429)


class RetryDecision(enum.Enum):
    """What to do with a failed attempt."""

    RETRY = "retry"
    FATAL = "fatal"


@dataclass
class RetryAttempt:
    """One failed attempt that is about to be retried."""

    attempt_index: int
    delay: float
    cause: BaseException


def _status_code(error: BaseException) -> Optional[int]:
    status = getattr(error, "status_code", None)
    if status is None:
        response = getattr(error, "response", None)
        status = getattr(response, "status_code", None)
    return status if isinstance(status, int) else None


def classify(error: BaseException) -> RetryDecision:
    """
    Decide whether a failure is worth another attempt.

    Transport failures and HTTP 5xx/408/429 are retryable. Everything else,
    including error objects reported by the bridge, is fatal.
    """
    if isinstance(error, (TransportError, requests.ConnectionError, requests.Timeout)):
        return RetryDecision.RETRY

    status = _status_code(error)
    if status is not None and (status >= 500 or status in RETRYABLE_STATUS_CODES):
        return RetryDecision.RETRY

    return RetryDecision.FATAL


class RetryPolicy:
    """Runs an operation, retrying retryable failures with a fixed delay table."""

    def __init__(
        self,
        max_retries: int = 3,
        delays: Sequence[float] = (1, 2, 4),
        sleep: Callable[[float], None] = time.sleep,
    ):
        """
        Initialize the policy.

        Args:
            max_retries: Retries after the first attempt.
            delays: Seconds to wait before retry N; the last entry repeats.
            sleep: Blocking wait function (injectable for tests).
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if not delays:
            raise ValueError("delays must not be empty")
        if any(delay < 0 for delay in delays):
            raise ValueError(f"delays must be >= 0, got {list(delays)}")

        self.max_retries = max_retries
        self.delays = tuple(delays)
        self._sleep = sleep

    def delay_for(self, attempt_index: int) -> float:
        """Backoff before retrying after failed attempt ``attempt_index``."""
        return self.delays[min(attempt_index, len(self.delays) - 1)]

    def should_retry(self, error: BaseException) -> bool:
        return classify(error) is RetryDecision.RETRY

    def execute(self, operation: Callable[[], T], label: str = "operation") -> T:
        """
        Run ``operation`` until it succeeds or retrying stops making sense.

        Backoff blocks the calling thread, so no two attempts of the same
        call ever overlap.

        Args:
            operation: Zero-argument callable performing one attempt.
            label: Name used in log messages.

        Returns:
            The operation's result.

        Raises:
            The last failure, with ``attempts`` set to the total attempt count.
        """
        history: list[RetryAttempt] = []

        while True:
            attempt_index = len(history)
            try:
                result = operation()
            except Exception as e:
                if attempt_index >= self.max_retries or not self.should_retry(e):
                    total = attempt_index + 1
                    self._annotate(e, total)
                    if total > 1:
                        logger.error(
                            f"{label} failed after {total} attempts: {e}"
                        )
                    raise

                attempt = RetryAttempt(attempt_index, self.delay_for(attempt_index), e)
                history.append(attempt)
                logger.warning(
                    f"{label} failed (attempt {attempt_index + 1}/"
                    f"{self.max_retries + 1}), retrying in {attempt.delay}s: {e}"
                )
                self._sleep(attempt.delay)
                continue

            if history:
                logger.info(
                    f"{label} succeeded after {len(history)} "
                    f"retr{'y' if len(history) == 1 else 'ies'}"
                )
            return result

    @staticmethod
    def _annotate(error: Exception, attempts: int):
        try:
            error.attempts = attempts
        except AttributeError:
            # Some builtin exceptions reject new attributes
            pass

    def statistics(self) -> dict:
        """Return the policy settings."""
        return {"max_retries": self.max_retries, "delays": list(self.delays)}
