"""Pydantic models describing per-key guard state."""

from enum import Enum
from typing import Optional
from pydantic import BaseModel, Field


class GuardStatus(str, Enum):
    """Logical state of a query key."""
    CLOSED = "closed"
    OPEN = "open"
    REOPENED = "reopened"


class GuardState(BaseModel):
    """Failure bookkeeping stored for one query key."""
    consecutive_failures: int = Field(0, ge=0)
    blocked_until: Optional[float] = None  # epoch ms, None when unblocked
    probe_until: Optional[float] = None  # single-probe claim expiry

    def status(self, now_ms: float, failure_threshold: int) -> GuardStatus:
        """Derive the logical state at ``now_ms``."""
        if self.blocked_until is not None and now_ms < self.blocked_until:
            return GuardStatus.OPEN
        if self.consecutive_failures >= failure_threshold:
            return GuardStatus.REOPENED
        return GuardStatus.CLOSED


class GuardSnapshot(BaseModel):
    """Point-in-time view of one tracked key."""
    key: str
    status: GuardStatus
    consecutive_failures: int
    blocked_until: Optional[float] = None
    retry_after_ms: float = 0.0
