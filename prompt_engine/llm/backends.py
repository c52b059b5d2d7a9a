"""Provider adapters for text and image generation.

Each adapter owns its vendor's request/response shape and normalises the
outcome to a ProviderCallResult. Any failure (timeout, transport error,
HTTP error status, malformed payload) is raised as ProviderError.

Adapters never retry. A single call is one auditable attempt; retry policy
lives with the tag-group runner.
"""

import json
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Optional, Protocol, runtime_checkable

import httpx

from prompt_engine.errors import ProviderError

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 4000
DEFAULT_TEMPERATURE = 0.7
DEFAULT_TOP_P = 0.9


class ModelCapability(str, Enum):
    """What kind of output a model produces."""

    TEXT = "text"
    IMAGE = "image"


@dataclass
class ProviderCallResult:
    """Normalised response from any provider adapter."""

    output: str
    model_id: str
    duration_ms: int
    input_tokens: int = 0
    output_tokens: int = 0
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens


@runtime_checkable
class ProviderAdapter(Protocol):
    """Protocol for provider adapter implementations."""

    @property
    def name(self) -> str: ...

    @property
    def capability(self) -> ModelCapability: ...

    def execute(self, prompt: str, model_id: str) -> ProviderCallResult: ...


def _timeout(seconds: float) -> httpx.Timeout:
    return httpx.Timeout(seconds, connect=min(seconds, 10.0))


def _error_body(response: httpx.Response) -> str:
    return response.text[:500] if response.text else ""


class OpenRouterBackend:
    """OpenRouter chat-completions backend for text models.

    Handles any 'vendor/model' identifier OpenRouter serves, e.g.
    'anthropic/claude-sonnet-4' or 'qwen/qwen3-vl-235b-a22b-thinking'.
    """

    def __init__(
        self,
        api_key: str,
        *,
        base_url: str = "https://openrouter.ai/api/v1",
        timeout_s: float = 30.0,
        site_url: str = "http://localhost:3010",
        max_tokens: int = DEFAULT_MAX_TOKENS,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout_s = timeout_s
        self._site_url = site_url
        self._max_tokens = max_tokens
        self._transport = transport

    @property
    def name(self) -> str:
        return "openrouter"

    @property
    def capability(self) -> ModelCapability:
        return ModelCapability.TEXT

    def execute(self, prompt: str, model_id: str) -> ProviderCallResult:
        start_time = time.time()
        body = {
            "model": model_id,
            "messages": [{"role": "user", "content": prompt}],
            "max_tokens": self._max_tokens,
            "temperature": DEFAULT_TEMPERATURE,
            "top_p": DEFAULT_TOP_P,
        }
        headers = {
            "Authorization": f"Bearer {self._api_key}",
            "Content-Type": "application/json",
            "HTTP-Referer": self._site_url,
            "X-Title": "Auto Movie Platform",
        }

        logger.info(f"[openrouter] {model_id}: {len(prompt):,} prompt chars")

        try:
            with httpx.Client(timeout=_timeout(self._timeout_s), transport=self._transport) as client:
                response = client.post(f"{self._base_url}/chat/completions", json=body, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"OpenRouter request timeout after {self._timeout_s:g}s", provider=self.name
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"OpenRouter request failed: {e}", provider=self.name) from e

        if response.status_code >= 400:
            raise ProviderError(
                f"OpenRouter API error: {response.status_code} {response.reason_phrase} - "
                f"{_error_body(response)}",
                provider=self.name,
            )

        try:
            payload = response.json()
        except ValueError as e:
            raise ProviderError("OpenRouter returned a non-JSON response", provider=self.name) from e

        choices = payload.get("choices") or []
        if not choices:
            raise ProviderError("No response choices received from OpenRouter", provider=self.name)
        content = (choices[0].get("message") or {}).get("content")
        if not isinstance(content, str) or not content.strip():
            raise ProviderError(f"Empty response from {model_id}", provider=self.name)

        usage = payload.get("usage") or {}
        duration_ms = int((time.time() - start_time) * 1000)

        logger.info(
            f"[openrouter] {model_id} completed: {usage.get('prompt_tokens', 0)}+"
            f"{usage.get('completion_tokens', 0)} tokens, {duration_ms}ms"
        )

        return ProviderCallResult(
            output=content.strip(),
            model_id=payload.get("model", model_id),
            duration_ms=duration_ms,
            input_tokens=usage.get("prompt_tokens", 0) or 0,
            output_tokens=usage.get("completion_tokens", 0) or 0,
        )


class FalBackend:
    """fal.ai queue backend for image models ('fal-ai/...').

    Submits to the queue, polls the request status until it completes or the
    polling budget runs out, then fetches the generated images. The output is
    compact JSON: {"images": [...], "prompt": "..."}.
    """

    TERMINAL_FAILURES = ("FAILED", "ERROR", "CANCELLED")

    def __init__(
        self,
        api_key: str,
        *,
        queue_url: str = "https://queue.fal.run",
        timeout_s: float = 60.0,
        poll_interval_s: float = 1.0,
        max_polls: int = 60,
        transport: Optional[httpx.BaseTransport] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self._api_key = api_key
        self._queue_url = queue_url.rstrip("/")
        self._timeout_s = timeout_s
        self._poll_interval_s = poll_interval_s
        self._max_polls = max_polls
        self._transport = transport
        self._sleep = sleep

    @property
    def name(self) -> str:
        return "fal"

    @property
    def capability(self) -> ModelCapability:
        return ModelCapability.IMAGE

    def execute(self, prompt: str, model_id: str) -> ProviderCallResult:
        start_time = time.time()
        headers = {"Authorization": f"Key {self._api_key}", "Content-Type": "application/json"}
        label = f"fal:{model_id}"

        try:
            with httpx.Client(
                timeout=_timeout(self._timeout_s), transport=self._transport, headers=headers
            ) as client:
                submitted = self._submit(client, model_id, {"prompt": prompt, "num_images": 1})
                request_id = submitted.get("request_id")
                if not request_id:
                    raise ProviderError("fal did not return a request_id", provider=self.name)
                logger.info(f"[{label}] Submitted request {request_id}")

                status_url = submitted.get("status_url") or (
                    f"{self._queue_url}/{model_id}/requests/{request_id}/status"
                )
                response_url = submitted.get("response_url") or (
                    f"{self._queue_url}/{model_id}/requests/{request_id}"
                )
                self._wait_for_completion(client, status_url, request_id, label)
                result = self._get_json(client, response_url)
        except httpx.TimeoutException as e:
            raise ProviderError(
                f"fal request timeout after {self._timeout_s:g}s", provider=self.name
            ) from e
        except httpx.HTTPError as e:
            raise ProviderError(f"fal request failed: {e}", provider=self.name) from e

        images = result.get("images") or []
        if not images:
            raise ProviderError(
                result.get("error") or "Image generation returned no images", provider=self.name
            )

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(f"[{label}] Completed: {len(images)} images, {duration_ms}ms")

        return ProviderCallResult(
            output=json.dumps(
                {"images": images, "prompt": prompt},
                separators=(",", ":"),
                sort_keys=True,
                ensure_ascii=False,
            ),
            model_id=model_id,
            duration_ms=duration_ms,
            extra={"request_id": request_id, "images_generated": len(images)},
        )

    def _submit(self, client: httpx.Client, model_id: str, body: dict) -> dict:
        response = client.post(f"{self._queue_url}/{model_id}", json=body)
        if response.status_code >= 400:
            raise ProviderError(
                f"fal API error: {response.status_code} {response.reason_phrase} - "
                f"{_error_body(response)}",
                provider=self.name,
            )
        return self._parse(response)

    def _get_json(self, client: httpx.Client, url: str) -> dict:
        response = client.get(url)
        if response.status_code >= 400:
            raise ProviderError(
                f"fal result fetch failed: {response.status_code} {response.reason_phrase}",
                provider=self.name,
            )
        return self._parse(response)

    def _parse(self, response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError("fal returned a non-JSON response", provider=self.name) from e
        if not isinstance(data, dict):
            raise ProviderError("fal returned an unexpected payload", provider=self.name)
        return data

    def _wait_for_completion(
        self, client: httpx.Client, status_url: str, request_id: str, label: str
    ) -> None:
        for attempt in range(1, self._max_polls + 1):
            try:
                status = self._get_json(client, status_url)
            except httpx.TransportError as e:
                # A dropped poll is not a failed job; spend one attempt and keep polling
                logger.warning(f"[{label}] Status poll {attempt} failed: {e}")
                status = {}

            state = status.get("status")
            if state == "COMPLETED":
                return
            if state in self.TERMINAL_FAILURES:
                raise ProviderError(
                    status.get("error") or f"Image generation {state.lower()}",
                    provider=self.name,
                )

            logger.debug(f"[{label}] Poll {attempt}/{self._max_polls}: {state}")
            self._sleep(self._poll_interval_s)

        raise ProviderError(
            f"Job {request_id} did not complete within {self._max_polls} attempts",
            provider=self.name,
        )


class AnthropicBackend:
    """Direct Anthropic Messages API backend for 'claude-*' model ids."""

    def __init__(
        self,
        api_key: str,
        *,
        timeout_s: float = 30.0,
        max_tokens: int = DEFAULT_MAX_TOKENS,
    ):
        self._api_key = api_key
        self._timeout_s = timeout_s
        self._max_tokens = max_tokens

    @property
    def name(self) -> str:
        return "anthropic"

    @property
    def capability(self) -> ModelCapability:
        return ModelCapability.TEXT

    def execute(self, prompt: str, model_id: str) -> ProviderCallResult:
        import anthropic

        client = anthropic.Anthropic(
            api_key=self._api_key,
            timeout=_timeout(self._timeout_s),
            max_retries=0,
        )
        start_time = time.time()

        logger.info(f"[anthropic] {model_id}: {len(prompt):,} prompt chars")

        try:
            response = client.messages.create(
                model=model_id,
                max_tokens=self._max_tokens,
                temperature=DEFAULT_TEMPERATURE,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APITimeoutError as e:
            raise ProviderError(
                f"Anthropic request timeout after {self._timeout_s:g}s", provider=self.name
            ) from e
        except anthropic.APIError as e:
            raise ProviderError(f"Anthropic API error: {e}", provider=self.name) from e

        raw_text = ""
        for block in response.content:
            if hasattr(block, "text"):
                raw_text += block.text

        if not raw_text.strip():
            raise ProviderError(f"Empty response from {model_id}", provider=self.name)

        duration_ms = int((time.time() - start_time) * 1000)
        logger.info(
            f"[anthropic] {model_id} completed: {response.usage.input_tokens}+"
            f"{response.usage.output_tokens} tokens, {duration_ms}ms"
        )

        return ProviderCallResult(
            output=raw_text.strip(),
            model_id=model_id,
            duration_ms=duration_ms,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


class MockBackend:
    """Deterministic stand-in used when MOCK_MODE is on.

    Produces text or image-shaped output without any network call.
    """

    def __init__(self, capability: ModelCapability = ModelCapability.TEXT):
        self._capability = capability

    @property
    def name(self) -> str:
        return "mock"

    @property
    def capability(self) -> ModelCapability:
        return self._capability

    def execute(self, prompt: str, model_id: str) -> ProviderCallResult:
        if self._capability == ModelCapability.IMAGE:
            output = json.dumps(
                {
                    "images": [
                        {
                            "url": "https://via.placeholder.com/1024x1024.png?text=Mock+Generated+Image",
                            "width": 1024,
                            "height": 1024,
                            "content_type": "image/png",
                        }
                    ],
                    "prompt": prompt,
                },
                separators=(",", ":"),
                sort_keys=True,
            )
        else:
            preview = prompt[:100] + ("..." if len(prompt) > 100 else "")
            output = f"AI Response (Generated by {model_id}):\n\nMock response to: \"{preview}\""

        return ProviderCallResult(
            output=output,
            model_id=model_id,
            duration_ms=0,
            input_tokens=len(prompt) // 4,
            output_tokens=len(output) // 4,
        )
