"""Scripted HTTP client for sandbox mode and tests."""

from typing import Any, Dict, Iterable, List, Optional, Union

import httpx

ScriptStep = Union[int, Exception]


class ScriptedClient:
    """
    Mock HTTP client that replays a fixed sequence of outcomes.

    Each step is either an HTTP status code or an exception to raise. Once the
    script runs out the last step repeats.
    """

    def __init__(self, script: Iterable[ScriptStep] = (200,), payload: Optional[Dict[str, Any]] = None):
        self._script: List[ScriptStep] = list(script) or [200]
        self._payload = payload if payload is not None else {"ok": True}
        self.calls: List[str] = []

    @classmethod
    def failing_then_ok(cls, failures: int, status_code: int = 503) -> "ScriptedClient":
        """Fail ``failures`` times with ``status_code``, then succeed."""
        return cls([status_code] * failures + [200])

    async def request(self, method: str, url: str, **_kwargs) -> httpx.Response:
        step = self._script[min(len(self.calls), len(self._script) - 1)]
        self.calls.append(f"{method} {url}")
        if isinstance(step, Exception):
            raise step
        body = self._payload if step < 400 else {"error": f"scripted {step}"}
        return httpx.Response(step, json=body, request=httpx.Request(method, url))

    async def aclose(self) -> None:
        return None
