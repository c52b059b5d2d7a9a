"""Provider router factory.

Builds the static routing table from settings:
- 'fal-ai/...'      -> fal.ai image backend
- 'claude-...'      -> Anthropic Messages API
- 'vendor/model'    -> OpenRouter chat completions

Backends without an API key are left out, so their models fail with a
ProviderError naming the model. In mock mode every route is served by
MockBackend.
"""

import logging
from typing import Optional

import httpx

from prompt_engine.config import Settings
from prompt_engine.llm.backends import (
    AnthropicBackend,
    FalBackend,
    MockBackend,
    ModelCapability,
    OpenRouterBackend,
    ProviderAdapter,
)
from prompt_engine.llm.router import ModelRoute, ProviderRouter, VendorModelRoute

logger = logging.getLogger(__name__)

FAL_ROUTE = ModelRoute("fal-ai/")
ANTHROPIC_ROUTE = ModelRoute("claude-")
# fal ids also have vendor/model shape but are never served by OpenRouter
OPENROUTER_ROUTE = VendorModelRoute(excluded_prefixes=(FAL_ROUTE.pattern,))

# Models offered in template editors, with the capability each produces
KNOWN_MODELS: dict[str, ModelCapability] = {
    "anthropic/claude-sonnet-4": ModelCapability.TEXT,
    "qwen/qwen3-vl-235b-a22b-thinking": ModelCapability.TEXT,
    "fal-ai/nano-banana": ModelCapability.IMAGE,
    "fal-ai/nano-banana/edit": ModelCapability.IMAGE,
}


def build_router(
    settings: Settings,
    *,
    transport: Optional[httpx.BaseTransport] = None,
) -> ProviderRouter:
    """Build the provider router for the given settings.

    Args:
        settings: Runtime settings (API keys, timeouts, mock mode)
        transport: Optional httpx transport shared by the HTTP backends

    Returns:
        ProviderRouter with one route per configured provider
    """
    if settings.mock_mode:
        logger.info("Mock mode enabled - all providers return mock responses")
        return ProviderRouter(
            [
                (FAL_ROUTE, MockBackend(ModelCapability.IMAGE)),
                (ANTHROPIC_ROUTE, MockBackend(ModelCapability.TEXT)),
                (OPENROUTER_ROUTE, MockBackend(ModelCapability.TEXT)),
            ]
        )

    routes: list[tuple[ModelRoute, ProviderAdapter]] = []

    if settings.fal_api_key:
        routes.append(
            (
                FAL_ROUTE,
                FalBackend(
                    settings.fal_api_key,
                    queue_url=settings.fal_queue_url,
                    # Image jobs queue; allow twice the text budget per HTTP call
                    timeout_s=settings.execution_timeout_s * 2,
                    poll_interval_s=settings.fal_poll_interval_ms / 1000,
                    max_polls=settings.fal_max_polls,
                    transport=transport,
                ),
            )
        )
        logger.info("fal provider initialized")
    else:
        logger.warning("FAL API key not provided; fal-ai/* models unavailable")

    if settings.anthropic_api_key:
        routes.append(
            (
                ANTHROPIC_ROUTE,
                AnthropicBackend(settings.anthropic_api_key, timeout_s=settings.execution_timeout_s),
            )
        )
        logger.info("Anthropic provider initialized")

    if settings.openrouter_api_key:
        routes.append(
            (
                OPENROUTER_ROUTE,
                OpenRouterBackend(
                    settings.openrouter_api_key,
                    base_url=settings.openrouter_base_url,
                    timeout_s=settings.execution_timeout_s,
                    site_url=settings.site_url,
                    transport=transport,
                ),
            )
        )
        logger.info("OpenRouter provider initialized")
    else:
        logger.warning("OpenRouter API key not provided; vendor/model ids unavailable")

    return ProviderRouter(routes)


def available_models(router: ProviderRouter) -> list[dict[str, str]]:
    """Known models the router can currently serve."""
    return [
        {"model": model_id, "capability": capability.value}
        for model_id, capability in KNOWN_MODELS.items()
        if router.can_route(model_id)
    ]
