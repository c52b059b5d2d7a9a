"""Wire-level tests for the HTTP provider adapters, using httpx.MockTransport."""

import json

import httpx
import pytest

from prompt_engine.errors import ProviderError
from prompt_engine.llm.backends import FalBackend, MockBackend, ModelCapability, OpenRouterBackend

FAL_MODEL = "fal-ai/nano-banana"
FAL_BASE = "https://queue.fal.run/fal-ai/nano-banana"


def openrouter(handler, **kwargs) -> OpenRouterBackend:
    return OpenRouterBackend("or-key", transport=httpx.MockTransport(handler), **kwargs)


def fal(handler, **kwargs) -> FalBackend:
    kwargs.setdefault("sleep", lambda seconds: None)
    return FalBackend("fal-key", transport=httpx.MockTransport(handler), **kwargs)


class TestOpenRouterBackend:
    def test_success(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(
                200,
                json={
                    "model": "anthropic/claude-sonnet-4",
                    "choices": [{"message": {"role": "assistant", "content": "  A moody noir.  "}}],
                    "usage": {"prompt_tokens": 12, "completion_tokens": 4},
                },
            )

        result = openrouter(handler).execute("Pitch a film", "anthropic/claude-sonnet-4")

        assert seen["url"] == "https://openrouter.ai/api/v1/chat/completions"
        assert seen["auth"] == "Bearer or-key"
        assert seen["body"]["model"] == "anthropic/claude-sonnet-4"
        assert seen["body"]["messages"] == [{"role": "user", "content": "Pitch a film"}]
        assert result.output == "A moody noir."
        assert result.input_tokens == 12
        assert result.output_tokens == 4
        assert result.total_tokens == 16

    def test_http_error_status(self):
        def handler(request):
            return httpx.Response(429, text="rate limited")

        with pytest.raises(ProviderError) as exc_info:
            openrouter(handler).execute("hi", "anthropic/claude-sonnet-4")
        assert exc_info.value.message.startswith("OpenRouter API error: 429")
        assert "rate limited" in exc_info.value.message
        assert exc_info.value.provider == "openrouter"

    def test_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        with pytest.raises(ProviderError) as exc_info:
            openrouter(handler, timeout_s=30.0).execute("hi", "anthropic/claude-sonnet-4")
        assert exc_info.value.message == "OpenRouter request timeout after 30s"

    def test_no_choices(self):
        def handler(request):
            return httpx.Response(200, json={"choices": []})

        with pytest.raises(ProviderError) as exc_info:
            openrouter(handler).execute("hi", "anthropic/claude-sonnet-4")
        assert exc_info.value.message == "No response choices received from OpenRouter"

    def test_empty_content(self):
        def handler(request):
            return httpx.Response(200, json={"choices": [{"message": {"content": "   "}}]})

        with pytest.raises(ProviderError) as exc_info:
            openrouter(handler).execute("hi", "qwen/qwen3-vl-235b-a22b-thinking")
        assert exc_info.value.message == "Empty response from qwen/qwen3-vl-235b-a22b-thinking"


class TestFalBackend:
    def test_submit_poll_fetch(self):
        statuses = iter(["IN_QUEUE", "IN_PROGRESS", "COMPLETED"])
        submitted = {}

        def handler(request: httpx.Request) -> httpx.Response:
            url = str(request.url)
            if request.method == "POST" and url == FAL_BASE:
                submitted["body"] = json.loads(request.content)
                submitted["auth"] = request.headers["Authorization"]
                return httpx.Response(200, json={"request_id": "req-1"})
            if url == f"{FAL_BASE}/requests/req-1/status":
                return httpx.Response(200, json={"status": next(statuses)})
            if url == f"{FAL_BASE}/requests/req-1":
                return httpx.Response(200, json={"images": [{"url": "https://cdn/img.png"}]})
            return httpx.Response(404)

        result = fal(handler).execute("A red door", FAL_MODEL)

        assert submitted["body"] == {"prompt": "A red door", "num_images": 1}
        assert submitted["auth"] == "Key fal-key"
        assert json.loads(result.output) == {
            "images": [{"url": "https://cdn/img.png"}],
            "prompt": "A red door",
        }
        assert result.extra == {"request_id": "req-1", "images_generated": 1}

    def test_uses_urls_returned_by_queue(self):
        def handler(request):
            url = str(request.url)
            if request.method == "POST":
                return httpx.Response(
                    200,
                    json={
                        "request_id": "req-2",
                        "status_url": "https://queue.example/status/req-2",
                        "response_url": "https://queue.example/result/req-2",
                    },
                )
            if url == "https://queue.example/status/req-2":
                return httpx.Response(200, json={"status": "COMPLETED"})
            if url == "https://queue.example/result/req-2":
                return httpx.Response(200, json={"images": [{"url": "u"}]})
            return httpx.Response(404)

        result = fal(handler).execute("p", FAL_MODEL)
        assert result.extra["request_id"] == "req-2"

    def test_failed_job(self):
        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "req-1"})
            return httpx.Response(200, json={"status": "FAILED", "error": "content policy"})

        with pytest.raises(ProviderError) as exc_info:
            fal(handler).execute("p", FAL_MODEL)
        assert exc_info.value.message == "content policy"
        assert exc_info.value.provider == "fal"

    def test_polling_budget_exhausted(self):
        sleeps = []

        def handler(request):
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "req-1"})
            return httpx.Response(200, json={"status": "IN_PROGRESS"})

        backend = fal(handler, max_polls=3, poll_interval_s=0.5, sleep=sleeps.append)
        with pytest.raises(ProviderError) as exc_info:
            backend.execute("p", FAL_MODEL)
        assert exc_info.value.message == "Job req-1 did not complete within 3 attempts"
        assert sleeps == [0.5, 0.5, 0.5]

    def test_dropped_poll_keeps_polling(self):
        polls = {"n": 0}

        def handler(request):
            url = str(request.url)
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "req-1"})
            if url.endswith("/status"):
                polls["n"] += 1
                if polls["n"] == 1:
                    raise httpx.ConnectError("connection reset", request=request)
                return httpx.Response(200, json={"status": "COMPLETED"})
            return httpx.Response(200, json={"images": [{"url": "u"}]})

        result = fal(handler).execute("p", FAL_MODEL)
        assert polls["n"] == 2
        assert result.extra["images_generated"] == 1

    def test_submit_error(self):
        def handler(request):
            return httpx.Response(401, text="bad key")

        with pytest.raises(ProviderError) as exc_info:
            fal(handler).execute("p", FAL_MODEL)
        assert exc_info.value.message.startswith("fal API error: 401")

    def test_no_images(self):
        def handler(request):
            url = str(request.url)
            if request.method == "POST":
                return httpx.Response(200, json={"request_id": "req-1"})
            if url.endswith("/status"):
                return httpx.Response(200, json={"status": "COMPLETED"})
            return httpx.Response(200, json={"images": []})

        with pytest.raises(ProviderError) as exc_info:
            fal(handler).execute("p", FAL_MODEL)
        assert exc_info.value.message == "Image generation returned no images"


class TestMockBackend:
    def test_text_output_is_deterministic(self):
        backend = MockBackend()
        first = backend.execute("Write a logline", "anthropic/claude-sonnet-4")
        second = backend.execute("Write a logline", "anthropic/claude-sonnet-4")
        assert first.output == second.output
        assert "Generated by anthropic/claude-sonnet-4" in first.output

    def test_image_output_shape(self):
        result = MockBackend(ModelCapability.IMAGE).execute("A red door", FAL_MODEL)
        payload = json.loads(result.output)
        assert payload["prompt"] == "A red door"
        assert len(payload["images"]) == 1
