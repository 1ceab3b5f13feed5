"""FastAPI router for inspecting and resetting a query guard."""

from typing import Any, Optional
import logging
from fastapi import APIRouter, FastAPI, HTTPException
from pydantic import BaseModel, Field

from .config import QueryGuardConfig
from .errors import KeyCanonicalizationError
from .guard import QueryGuard
from .keys import canonicalize


def get_guard_router(guard: QueryGuard) -> APIRouter:
    """
    Create a FastAPI router for guard debugging endpoints.

    Args:
        guard: Query guard instance

    Returns:
        APIRouter with async endpoints
    """
    router = APIRouter(prefix="/guard", tags=["guard"])
    logger = logging.getLogger("query_guard")

    class KeyRequest(BaseModel):
        key: Any = Field(..., description="Query key, e.g. [\"games\", {\"search\": \"zelda\"}]")

    def _canonical(key: Any) -> str:
        try:
            return canonicalize(key)
        except KeyCanonicalizationError as exc:
            raise HTTPException(status_code=422, detail=str(exc))

    @router.get("/keys")
    async def list_keys():
        """List every tracked key with its current state."""
        return [s.model_dump(mode="json") for s in guard.snapshot()]

    @router.post("/classify")
    async def classify(request: KeyRequest):
        """Report whether a key is blocked right now."""
        _canonical(request.key)
        snapshot = guard.inspect(request.key)
        return {"blocked": guard.classify(request.key), **snapshot.model_dump(mode="json")}

    @router.post("/reset")
    async def reset(request: KeyRequest):
        """Clear the failure history of one key."""
        canonical = _canonical(request.key)
        guard.record_success(request.key)
        logger.info("Guard key reset via API", extra={"query_key": canonical})
        return {"key": canonical, "status": "reset"}

    @router.delete("/keys")
    async def clear_keys():
        """Forget every tracked key."""
        removed = len(guard)
        guard.clear()
        logger.info("Guard table cleared via API", extra={"removed": removed})
        return {"removed": removed}

    return router


def create_app(config: Optional[QueryGuardConfig] = None, guard: Optional[QueryGuard] = None) -> FastAPI:
    """
    Create a FastAPI app exposing a guard's debugging endpoints.

    Args:
        config: Query guard configuration
        guard: Existing guard to expose (built from config if omitted)
    """
    config = config or QueryGuardConfig()
    guard = guard if guard is not None else QueryGuard(config.guard)
    app = FastAPI(title="Query Guard")
    app.state.guard = guard
    app.include_router(get_guard_router(guard))
    return app
