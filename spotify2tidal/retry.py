"""Retry with exponential backoff around catalog API calls."""

import random
import time
from dataclasses import dataclass
from typing import Callable, Optional, TypeVar

from spotify2tidal.errors import (
    DEFAULT_RATE_LIMIT_DELAY_MS,
    ClassifiedError,
    ErrorKind,
    RetryExhaustedError,
    classify_error,
)
from spotify2tidal.utils.logger import get_logger


logger = get_logger()

T = TypeVar('T')


@dataclass(frozen=True)
class RetryPolicy:
    """Retry configuration shared by every wrapped call."""
    max_attempts: int = 3
    base_delay_ms: int = 1000
    max_delay_ms: int = 30000
    backoff_multiplier: float = 2.0
    jitter_enabled: bool = True
    rate_limit_fallback_ms: int = DEFAULT_RATE_LIMIT_DELAY_MS

    def __post_init__(self):
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.base_delay_ms < 0 or self.max_delay_ms < 0:
            raise ValueError("delays must not be negative")
        if self.backoff_multiplier <= 1:
            raise ValueError("backoff_multiplier must be greater than 1")


DEFAULT_RETRY_POLICY = RetryPolicy()


class RetryExecutor:
    """
    Runs an operation, classifying failures and retrying the retryable ones.

    Per call: Attempting(n) -> Success | Retrying(delay) | Failed.
    Non-retryable errors (auth, client errors, unknown) fail immediately;
    rate limits wait for the server's Retry-After when one was sent.

    ``sleep`` takes seconds like time.sleep; tests pass a recorder instead
    so backoff can be checked against a virtual clock.
    """

    def __init__(
        self,
        policy: RetryPolicy = DEFAULT_RETRY_POLICY,
        sleep: Callable[[float], None] = time.sleep,
        random_fn: Callable[[], float] = random.random,
        service: str = "catalog"
    ):
        self.policy = policy
        self.sleep = sleep
        self.random_fn = random_fn
        self.service = service

    def execute(self, operation: Callable[[], T], operation_name: Optional[str] = None, service: Optional[str] = None) -> T:
        """
        Execute an operation with retry and exponential backoff.

        Args:
            operation: Zero-argument callable performing the remote call
            operation_name: Label used in logs and the final error message
            service: Catalog name used when classifying failures

        Returns:
            Whatever the operation returns

        Raises:
            ClassifiedError: Non-retryable failure (raised on first occurrence)
            RetryExhaustedError: Retryable failure still failing after max_attempts
        """
        service = service or self.service
        last_error: Optional[ClassifiedError] = None

        for attempt in range(1, self.policy.max_attempts + 1):
            try:
                return operation()
            except Exception as e:
                last_error = classify_error(e, service)
                last_error.attempts = attempt

                if not last_error.retryable:
                    if last_error is e:
                        raise
                    raise last_error from e

                if attempt == self.policy.max_attempts:
                    break

                delay_ms = self.delay_for(last_error, attempt)
                target = f" for {operation_name}" if operation_name else ""
                logger.warning(
                    f"{last_error.kind.value}{target}. Retrying in {delay_ms}ms "
                    f"(attempt {attempt}/{self.policy.max_attempts}): {last_error.message}"
                )
                self.sleep(delay_ms / 1000)

        raise RetryExhaustedError(last_error, self.policy.max_attempts, operation_name) from last_error.original

    def delay_for(self, error: ClassifiedError, attempt: int) -> int:
        """Milliseconds to wait before the attempt after ``attempt``."""
        if error.kind == ErrorKind.RATE_LIMIT:
            if error.retry_after_ms is not None:
                return error.retry_after_ms
            return self.policy.rate_limit_fallback_ms
        return self.compute_backoff_ms(attempt)

    def compute_backoff_ms(self, attempt: int) -> int:
        """Exponential backoff capped at max_delay_ms, with optional jitter."""
        delay = self.policy.base_delay_ms * (self.policy.backoff_multiplier ** (attempt - 1))
        delay = min(delay, self.policy.max_delay_ms)

        # Jitter keeps concurrent callers from retrying in lockstep
        if self.policy.jitter_enabled:
            delay = delay * (0.5 + self.random_fn() * 0.5)

        return int(delay)
