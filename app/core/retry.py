"""
Retry with jittered exponential backoff, built on tenacity.

Only the startup bind of the datastore retries. Per-message processing never
does: every fault is terminal for that message.
"""
from dataclasses import dataclass
from typing import Callable, Optional, Tuple, Type

import structlog
from pymongo.errors import ConnectionFailure
from tenacity import (
    RetryCallState,
    retry,
    retry_if_exception_type,
    stop_after_attempt,
    wait_random_exponential,
)

logger = structlog.get_logger(__name__)


@dataclass
class RetryConfig:
    """Attempts, backoff bounds and the exceptions worth retrying."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    retryable_exceptions: Tuple[Type[BaseException], ...] = (
        ConnectionError,
        TimeoutError,
        OSError,
    )


def create_async_retry_decorator(
    config: Optional[RetryConfig] = None,
    service_name: str = "Unknown Service",
) -> Callable:
    """Decorator retrying an async callable per ``config``; the last error is re-raised."""
    config = config or RetryConfig()
    log = logger.bind(service=service_name, max_attempts=config.max_attempts)

    def log_attempt(retry_state: RetryCallState) -> None:
        log.warning(
            "Attempt failed, backing off",
            attempt=retry_state.attempt_number,
            delay=round(retry_state.next_action.sleep, 2),
            error=str(retry_state.outcome.exception()),
        )

    return retry(
        retry=retry_if_exception_type(config.retryable_exceptions),
        stop=stop_after_attempt(config.max_attempts),
        wait=wait_random_exponential(multiplier=config.base_delay, max=config.max_delay),
        before_sleep=log_attempt,
        reraise=True,
    )


def get_database_retry_config(max_attempts: int = 3) -> RetryConfig:
    """Short backoff for the MongoDB ping at startup."""
    return RetryConfig(
        max_attempts=max_attempts,
        base_delay=0.5,
        max_delay=10.0,
        retryable_exceptions=(ConnectionFailure, ConnectionError, TimeoutError, OSError),
    )
