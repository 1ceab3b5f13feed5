"""Exceptions raised by the query guard and its callers."""

import math
from typing import Optional


class QueryGuardError(Exception):
    """Base class for query guard errors."""


class QueryBlocked(QueryGuardError):
    """Raised when a query key is temporarily blocked after repeated failures."""

    def __init__(self, key: str, retry_after_ms: float = 0.0, message: Optional[str] = None):
        self.key = key
        self.retry_after_ms = retry_after_ms
        if message is None:
            message = (
                f"Too many recent failures for {key}, "
                f"try again in {self.retry_after_seconds} seconds"
            )
        super().__init__(message)

    @property
    def retry_after_seconds(self) -> int:
        return max(0, math.ceil(self.retry_after_ms / 1000))


class KeyCanonicalizationError(QueryGuardError, TypeError):
    """Raised when a query key cannot be converted into a lookup identity."""
