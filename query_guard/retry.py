"""Retry policy for guarded requests."""

from typing import Optional

from .config import RetryConfig


class RetryPolicy:
    """Decide whether a failed attempt should be retried, and after how long."""

    def __init__(self, config: Optional[RetryConfig] = None):
        self.config = config or RetryConfig()

    def should_retry(self, retries_so_far: int, status_code: Optional[int] = None) -> bool:
        """
        Check whether another attempt is worthwhile.

        Args:
            retries_so_far: Retries already made for this request (0 after the first failure)
            status_code: HTTP status of the failure, None for transport errors

        Returns:
            True if the request should be retried
        """
        # Auth and missing routes won't fix themselves
        if status_code in self.config.non_retryable_statuses:
            return False
        if status_code is not None and status_code >= 500:
            return retries_so_far < self.config.max_server_error_retries
        return retries_so_far < self.config.max_retries

    def delay_seconds(self, retries_so_far: int) -> float:
        """Capped exponential backoff before the next retry."""
        delay_ms = min(self.config.base_delay_ms * 2 ** retries_so_far, self.config.max_delay_ms)
        return delay_ms / 1000
