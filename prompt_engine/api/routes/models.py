"""Model catalog routes."""

from typing import Optional

from fastapi import APIRouter, HTTPException

from prompt_engine.llm.factory import available_models
from prompt_engine.llm.router import ProviderRouter

router = APIRouter(prefix="/models", tags=["models"])

_router: Optional[ProviderRouter] = None


def init_router(provider_router: ProviderRouter) -> None:
    global _router
    _router = provider_router


def _get_router() -> ProviderRouter:
    if _router is None:
        raise HTTPException(status_code=503, detail="Provider router not initialized")
    return _router


@router.get("")
async def list_models() -> dict:
    """Known models that a configured provider can serve, plus the routing table."""
    provider_router = _get_router()
    return {
        "models": available_models(provider_router),
        "routes": provider_router.describe(),
    }
