"""Provider routing.

Maps a model identifier to a provider adapter through a static, ordered
routing table and normalises every adapter's response to a RouterResult.
The table is built once and injected, never discovered at call time.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from prompt_engine.errors import ProviderError
from prompt_engine.llm.backends import ModelCapability, ProviderAdapter

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ModelRoute:
    """A pattern over model identifiers: an exact id or an id prefix."""

    pattern: str
    exact: bool = False

    def matches(self, model_id: str) -> bool:
        if self.exact:
            return model_id == self.pattern
        return model_id.startswith(self.pattern)


@dataclass(frozen=True)
class VendorModelRoute(ModelRoute):
    """Any 'vendor/model' identifier, as served by aggregator APIs."""

    pattern: str = "<vendor>/<model>"
    excluded_prefixes: tuple[str, ...] = ()

    def matches(self, model_id: str) -> bool:
        if model_id.startswith(self.excluded_prefixes):
            return False
        vendor, sep, model = model_id.partition("/")
        return bool(vendor and sep and model)


@dataclass
class RouterResult:
    """Uniform provider outcome handed to the execution engine."""

    output: str
    execution_time_ms: int
    provider_used: str
    model_id: str
    metrics: dict[str, Any] = field(default_factory=dict)


class ProviderRouter:
    """Routes model identifiers to provider adapters.

    Routes are checked in order; the first match wins, so more specific
    patterns must come before broader ones.
    """

    def __init__(self, routes: Sequence[tuple[ModelRoute, ProviderAdapter]]):
        self._routes: list[tuple[ModelRoute, ProviderAdapter]] = list(routes)

    def resolve_adapter(self, model_id: str) -> ProviderAdapter:
        """Find the adapter for a model id.

        Raises:
            ProviderError: If no route matches
        """
        for route, adapter in self._routes:
            if route.matches(model_id):
                return adapter
        raise ProviderError(f"No provider available for model: {model_id}")

    def can_route(self, model_id: str) -> bool:
        return any(route.matches(model_id) for route, _ in self._routes)

    def capability_of(self, model_id: str) -> Optional[ModelCapability]:
        for route, adapter in self._routes:
            if route.matches(model_id):
                return adapter.capability
        return None

    def describe(self) -> list[dict[str, Any]]:
        """Routing table as plain dicts, for diagnostics endpoints."""
        return [
            {
                "pattern": route.pattern,
                "exact": route.exact,
                "provider": adapter.name,
                "capability": adapter.capability.value,
            }
            for route, adapter in self._routes
        ]

    def execute(self, prompt: str, model_id: str) -> RouterResult:
        """Run a resolved prompt against the provider serving model_id.

        Exactly one attempt is made.

        Raises:
            ProviderError: On unknown model or any adapter failure
        """
        adapter = self.resolve_adapter(model_id)
        start_time = time.time()

        try:
            call = adapter.execute(prompt, model_id)
        except ProviderError as e:
            if e.provider is None:
                e.provider = adapter.name
            logger.error(f"[{adapter.name}] {model_id} failed: {e.message}")
            raise
        except Exception as e:
            logger.exception(f"[{adapter.name}] {model_id} raised unexpectedly")
            raise ProviderError(
                f"{adapter.name} adapter error: {e}", provider=adapter.name
            ) from e

        execution_time_ms = int((time.time() - start_time) * 1000)
        metrics: dict[str, Any] = {
            "latency_ms": execution_time_ms,
            "prompt_tokens": call.input_tokens,
            "completion_tokens": call.output_tokens,
            "token_count": call.total_tokens,
        }
        metrics.update(call.extra)

        return RouterResult(
            output=call.output,
            execution_time_ms=execution_time_ms,
            provider_used=adapter.name,
            model_id=call.model_id,
            metrics=metrics,
        )
