"""
Query Guard

Keyed failure guard that stops a repeatedly failing query from being retried
without bound: after too many consecutive failures a query key is blocked for a
while, and a single success clears its history.
"""

__version__ = "0.1.0"

from .guard import QueryGuard
from .config import QueryGuardConfig, GuardConfig, RetryConfig, ClientConfig
from .clock import Clock, SystemClock, ManualClock
from .models import GuardStatus, GuardSnapshot
from .errors import QueryGuardError, QueryBlocked, KeyCanonicalizationError
from .keys import canonicalize
from .client import GuardedClient
from .router import get_guard_router, create_app

__all__ = [
    "QueryGuard",
    "QueryGuardConfig",
    "GuardConfig",
    "RetryConfig",
    "ClientConfig",
    "Clock",
    "SystemClock",
    "ManualClock",
    "GuardStatus",
    "GuardSnapshot",
    "QueryGuardError",
    "QueryBlocked",
    "KeyCanonicalizationError",
    "canonicalize",
    "GuardedClient",
    "get_guard_router",
    "create_app",
]
