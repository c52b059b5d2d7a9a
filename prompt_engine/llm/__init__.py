"""Model provider adapters and routing.

Provides a uniform way to run a resolved prompt against text-generation
(OpenRouter, Anthropic) and image-generation (fal.ai) providers.
"""

from prompt_engine.llm.backends import (
    AnthropicBackend,
    FalBackend,
    MockBackend,
    ModelCapability,
    OpenRouterBackend,
    ProviderAdapter,
    ProviderCallResult,
)
from prompt_engine.llm.factory import KNOWN_MODELS, available_models, build_router
from prompt_engine.llm.router import ModelRoute, ProviderRouter, RouterResult, VendorModelRoute

__all__ = [
    "AnthropicBackend",
    "FalBackend",
    "KNOWN_MODELS",
    "MockBackend",
    "ModelCapability",
    "ModelRoute",
    "OpenRouterBackend",
    "ProviderAdapter",
    "ProviderCallResult",
    "ProviderRouter",
    "RouterResult",
    "VendorModelRoute",
    "available_models",
    "build_router",
]
