"""Retry policy for idempotent registry requests.

GET and HEAD requests (manifest, blob and token fetches, blob existence
checks) are retried on transport failures and 5xx responses with
exponential backoff and jitter. Uploads, mounts and manifest publishes are
never retried.

Example:
    >>> from registry_rebase.oci.resilience import RetryPolicy
    >>> from registry_rebase.schemas.config import RetryConfig
    >>>
    >>> policy = RetryPolicy(RetryConfig(max_attempts=3))
    >>> for attempt in policy.attempts():
    ...     try:
    ...         response = send()
    ...         break
    ...     except RegistryUnavailableError as e:
    ...         if not attempt.should_retry(e):
    ...             raise
    ...         attempt.wait()
"""

from __future__ import annotations

import random
import time

import structlog

from registry_rebase.oci.errors import RegistryUnavailableError
from registry_rebase.schemas.config import RetryConfig

logger = structlog.get_logger(__name__)


class RetryPolicy:
    """Retry policy with exponential backoff and jitter.

    Retry Timeline (default config):
    - Attempt 1: Immediate
    - Attempt 2: ~0.5s delay (with jitter)
    - Attempt 3: ~1s delay (with jitter)

    Attributes:
        config: RetryConfig with max_attempts, delays, and jitter settings.
    """

    def __init__(self, config: RetryConfig | None = None) -> None:
        """Initialize RetryPolicy.

        Args:
            config: Retry configuration. Uses defaults if None.
        """
        self._config = config or RetryConfig()

    @property
    def config(self) -> RetryConfig:
        """Return the retry configuration."""
        return self._config

    def calculate_delay(self, attempt: int) -> float:
        """Calculate delay before next retry attempt.

        Uses exponential backoff: delay = initial * (multiplier ^ attempt),
        capped at max_delay_ms, with optional ±25% jitter.

        Args:
            attempt: Current attempt number (0-indexed).

        Returns:
            Delay in seconds.
        """
        base_delay_ms = min(
            self._config.initial_delay_ms * (self._config.backoff_multiplier**attempt),
            self._config.max_delay_ms,
        )

        if self._config.jitter:
            jitter_range = base_delay_ms * 0.25
            base_delay_ms += random.uniform(-jitter_range, jitter_range)

        return max(base_delay_ms, 0.0) / 1000.0

    def should_retry(self, exception: Exception) -> bool:
        """Check if exception is retryable (only connectivity failures are)."""
        return isinstance(exception, RegistryUnavailableError)

    def attempts(self) -> RetryAttemptIterator:
        """Return an iterator of attempts for manual retry control."""
        return RetryAttemptIterator(self)


class RetryAttemptIterator:
    """Iterator over the attempts allowed by a RetryPolicy."""

    def __init__(self, policy: RetryPolicy) -> None:
        self._policy = policy
        self._attempt = 0

    def __iter__(self) -> RetryAttemptIterator:
        return self

    def __next__(self) -> RetryAttempt:
        if self._attempt >= self._policy.config.max_attempts:
            raise StopIteration

        attempt = RetryAttempt(self._policy, self._attempt)
        self._attempt += 1
        return attempt


class RetryAttempt:
    """Single retry attempt with delay and tracking."""

    def __init__(self, policy: RetryPolicy, attempt_number: int) -> None:
        self._policy = policy
        self._attempt_number = attempt_number

    @property
    def attempt_number(self) -> int:
        """Return current attempt number (0-indexed)."""
        return self._attempt_number

    @property
    def is_last_attempt(self) -> bool:
        """Check if this is the last attempt."""
        return self._attempt_number >= self._policy.config.max_attempts - 1

    def should_retry(self, exception: Exception) -> bool:
        """Check if exception is retryable and attempts remain."""
        return not self.is_last_attempt and self._policy.should_retry(exception)

    def wait(self) -> None:
        """Wait before the next retry attempt."""
        if not self.is_last_attempt:
            delay = self._policy.calculate_delay(self._attempt_number)
            logger.debug(
                "retry_wait",
                attempt=self._attempt_number + 1,
                max_attempts=self._policy.config.max_attempts,
                delay_seconds=delay,
            )
            time.sleep(delay)


__all__ = [
    "RetryAttempt",
    "RetryAttemptIterator",
    "RetryPolicy",
]
