"""HTTP client that runs requests through the query guard."""

import asyncio
import logging
from time import perf_counter
from typing import Any, Awaitable, Callable, Optional

import httpx

from .config import QueryGuardConfig
from .errors import QueryBlocked
from .guard import QueryGuard
from .keys import canonicalize
from .retry import RetryPolicy
from .telemetry import get_blocked_counter, get_failure_counter, get_request_duration_histogram

logger = logging.getLogger("query_guard")


class GuardedClient:
    """
    Async HTTP client that consults a ``QueryGuard`` around every request.

    This class handles:
    - Refusing requests whose query key is blocked
    - Reporting each attempt's outcome back to the guard
    - Retrying failures with capped exponential backoff
    """

    def __init__(
        self,
        guard: Optional[QueryGuard] = None,
        config: Optional[QueryGuardConfig] = None,
        client: Optional[Any] = None,
        sleep: Optional[Callable[[float], Awaitable[None]]] = None,
    ):
        """
        Initialize the client.

        Args:
            guard: Guard to consult (a new one is built from config if omitted)
            config: Query guard configuration
            client: Optional HTTP client (e.g., ScriptedClient)
            sleep: Coroutine used to wait between retries
        """
        self.config = config or QueryGuardConfig()
        self.guard = guard if guard is not None else QueryGuard(self.config.guard)
        self.retry_policy = RetryPolicy(self.config.retry)
        self._sleep = sleep or asyncio.sleep

        self._blocked_counter = get_blocked_counter()
        self._failure_counter = get_failure_counter()
        self._duration_histogram = get_request_duration_histogram()

        # HTTP client
        if client is not None:
            self.client = client
            self._owns_client = False
        else:
            self.client = httpx.AsyncClient(
                base_url=self.config.client.base_url or "",
                headers=self.config.client.headers,
                timeout=self.config.client.timeout_seconds,
            )
            self._owns_client = True

    async def close(self):
        """Close HTTP client."""
        if self._owns_client:
            await self.client.aclose()

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    def _refuse(self, key: Any) -> QueryBlocked:
        canonical = canonicalize(key)
        self._blocked_counter.add(1, attributes={"query_key": canonical})
        logger.warning("Query blocked by failure guard", extra={"query_key": canonical})
        return QueryBlocked(canonical, self.guard.retry_after_ms(key))

    async def request(self, key: Any, method: str, url: str, **kwargs) -> httpx.Response:
        """
        Make a guarded request.

        Args:
            key: Query key identifying the logical operation
            method: HTTP method
            url: URL or path relative to the configured base URL
            **kwargs: Additional request parameters

        Returns:
            The successful response

        Raises:
            QueryBlocked: If the key is blocked, before or between attempts
            httpx.HTTPStatusError: If the last attempt got an error status
            httpx.RequestError: If the last attempt failed in transport
        """
        if not self.guard.try_acquire(key):
            raise self._refuse(key)

        start = perf_counter()
        retries = 0
        reported = False
        try:
            while True:
                reported = False
                try:
                    response = await self.client.request(method, url, **kwargs)
                    response.raise_for_status()
                except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                    self.guard.record_failure(key)
                    reported = True
                    self._failure_counter.add(1, attributes={"query_key": canonicalize(key)})

                    status_code = exc.response.status_code if isinstance(exc, httpx.HTTPStatusError) else None
                    if not self.retry_policy.should_retry(retries, status_code):
                        raise
                    if self.guard.classify(key):
                        raise self._refuse(key) from exc

                    delay = self.retry_policy.delay_seconds(retries)
                    retries += 1
                    logger.info(
                        "Retrying %s %s in %.1fs (retry %d)", method, url, delay, retries,
                        extra={"query_key": canonicalize(key), "status_code": status_code},
                    )
                    await self._sleep(delay)

                    # A concurrent failure may have blocked the key while we waited
                    if not self.guard.try_acquire(key):
                        raise self._refuse(key) from exc
                    continue

                self.guard.record_success(key)
                reported = True
                return response
        finally:
            if not reported:
                # Unclassified exit (cancellation, programmer error): free any probe claim
                self.guard.release(key)
            duration_ms = (perf_counter() - start) * 1000
            self._duration_histogram.record(duration_ms, attributes={"method": method})

    async def get(self, key: Any, url: str, **kwargs) -> httpx.Response:
        """Make a guarded GET request."""
        return await self.request(key, "GET", url, **kwargs)

    async def get_json(self, key: Any, url: str, **kwargs) -> Any:
        """Make a guarded GET request and decode its JSON body."""
        response = await self.get(key, url, **kwargs)
        return response.json()
