"""Retry configuration for tuberag.

Three flavours of retry, all built on tenacity and all logging through
``log_retry_attempt``:

* ``create_retry_decorator`` - exponential backoff for provider SDK calls.
* ``create_table_retry`` - a fixed escalating delay table, used by the quota
  scheduler for metered YouTube calls.
* ``create_linear_retry`` - ``attempt x base`` backoff, used for caption fetches.
"""

from __future__ import annotations

from collections.abc import Callable, Sequence
from typing import Any

from tenacity import (
    RetryCallState,
    retry_if_exception,
    retry_if_exception_type,
    stop_after_attempt,
    wait_chain,
    wait_exponential,
    wait_fixed,
    wait_incrementing,
)
from tenacity import (
    retry as tenacity_retry,
)

from tuberag.core.logging_config import get_logger

logger = get_logger(__name__)

# (exception, attempt_number) -> retry?
RetryPredicate = Callable[[BaseException, int], bool]


class RetryConfig:
    """Configuration for exponential retry behavior.

    Attributes:
        max_attempts: Maximum number of attempts, including the first
        min_wait_seconds: Minimum wait time between retries
        max_wait_seconds: Maximum wait time between retries
        exponential_multiplier: Multiplier for exponential backoff
    """

    def __init__(
        self,
        max_attempts: int = 3,
        min_wait_seconds: float = 4.0,
        max_wait_seconds: float = 60.0,
        exponential_multiplier: float = 1.0,
    ):
        self.max_attempts = max_attempts
        self.min_wait_seconds = min_wait_seconds
        self.max_wait_seconds = max_wait_seconds
        self.exponential_multiplier = exponential_multiplier

    @classmethod
    def from_config(cls, config: Any) -> RetryConfig:
        return cls(
            max_attempts=config.retry_max_attempts,
            min_wait_seconds=config.retry_min_wait_seconds,
            max_wait_seconds=config.retry_max_wait_seconds,
            exponential_multiplier=config.retry_exponential_multiplier,
        )


def log_retry_attempt(retry_state: RetryCallState) -> None:
    """Log retry attempts with structured context."""
    fn_name = getattr(retry_state.fn, "__name__", "unknown") if retry_state.fn else "unknown"
    exception = retry_state.outcome.exception() if retry_state.outcome else None

    logger.warning(
        "retry_attempt",
        function=fn_name,
        attempt=retry_state.attempt_number,
        max_attempts=getattr(retry_state.retry_object.stop, "max_attempt_number", None),
        wait_seconds=retry_state.next_action.sleep if retry_state.next_action else 0,
        error=str(exception) if exception else None,
        error_type=type(exception).__name__ if exception else None,
    )


def _retry_when(predicate: RetryPredicate) -> Callable[[RetryCallState], bool]:
    def _should_retry(retry_state: RetryCallState) -> bool:
        outcome = retry_state.outcome
        if outcome is None or not outcome.failed:
            return False
        exception = outcome.exception()
        if exception is None:
            return False
        return predicate(exception, retry_state.attempt_number)

    return _should_retry


def create_retry_decorator(
    config: RetryConfig,
    exception_types: tuple[type[Exception], ...],
    give_up: Callable[[BaseException], bool] | None = None,
) -> Any:
    """Create an exponential-backoff retry decorator.

    Args:
        config: Retry configuration
        exception_types: Tuple of exception types to retry on
        give_up: Errors of a retried type for which this returns True are
            raised at once
    """
    retry_condition = retry_if_exception_type(exception_types)
    if give_up is not None:
        retry_condition = retry_condition & retry_if_exception(lambda e: not give_up(e))
    return tenacity_retry(
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_exponential(
            multiplier=config.exponential_multiplier,
            min=config.min_wait_seconds,
            max=config.max_wait_seconds,
        ),
        retry=retry_condition,
        before_sleep=log_retry_attempt,
        reraise=True,
    )


def create_table_retry(
    delays: Sequence[float],
    max_attempts: int,
    predicate: RetryPredicate,
) -> Any:
    """Create a retry decorator that waits ``delays[n]`` before retry ``n + 1``.

    Retries past the end of the table reuse its last entry. The last error is
    re-raised once ``max_attempts`` is reached.
    """
    waits = [wait_fixed(delay) for delay in delays] or [wait_fixed(0)]
    return tenacity_retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_chain(*waits),
        retry=_retry_when(predicate),
        before_sleep=log_retry_attempt,
        reraise=True,
    )


def create_linear_retry(
    base_seconds: float,
    max_attempts: int,
    predicate: RetryPredicate,
) -> Any:
    """Create a retry decorator with ``attempt x base_seconds`` backoff."""
    return tenacity_retry(
        stop=stop_after_attempt(max_attempts),
        wait=wait_incrementing(start=base_seconds, increment=base_seconds),
        retry=_retry_when(predicate),
        before_sleep=log_retry_attempt,
        reraise=True,
    )


RETRY_CONFIG_DEFAULT = RetryConfig()

# Backoff used by the quota scheduler for metered calls.
QUOTA_RETRY_DELAYS: tuple[float, ...] = (0.5, 1.0, 2.0, 5.0, 10.0)

VECTOR_STORE_EXCEPTIONS: tuple[type[Exception], ...] = (
    ConnectionError,
    TimeoutError,
)
