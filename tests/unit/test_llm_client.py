"""Tests for LLM client."""

import asyncio
import json
from unittest.mock import patch

import httpx
import pytest

from src.core.exceptions import ConfigurationError, LLMRateLimitError, LLMTimeoutError
from src.llm.client import (
    GENERATION_DEFAULTS,
    MAX_ATTEMPTS,
    AnthropicClient,
    LLMResponse,
    attempt_budget,
    get_generation_llm_client,
)

MESSAGE_RESPONSE = {
    "content": [{"type": "text", "text": "Quanto tempo leva um deploy?"}],
    "model": "claude-sonnet-4-6",
    "usage": {"input_tokens": 120, "output_tokens": 15},
}


def _client(handler, **kwargs):
    return AnthropicClient(
        model="claude-sonnet-4-6",
        temperature=0.7,
        max_tokens=300,
        timeout=5.0,
        api_key="test-key",
        transport=httpx.MockTransport(handler),
        retry_base_delay=0.0,
        **kwargs,
    )


class TestAnthropicClient:
    """Tests for AnthropicClient."""

    def test_init_with_api_key(self):
        client = _client(lambda request: httpx.Response(200, json=MESSAGE_RESPONSE))

        assert client.api_key == "test-key"

    def test_init_without_api_key_raises(self):
        with patch("src.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = None
            with pytest.raises(ConfigurationError, match="ANTHROPIC_API_KEY"):
                AnthropicClient(
                    model="claude-sonnet-4-6",
                    temperature=0.7,
                    max_tokens=300,
                    timeout=5.0,
                )

    def test_init_uses_settings_key(self):
        with patch("src.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = "settings-key"

            client = AnthropicClient(
                model="claude-sonnet-4-6",
                temperature=0.7,
                max_tokens=300,
                timeout=5.0,
            )

        assert client.api_key == "settings-key"

    async def test_complete_success(self):
        """complete() returns LLMResponse with token usage."""
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(200, json=MESSAGE_RESPONSE)

        response = await _client(handler).complete("Pergunte algo", system="Seja breve")

        assert isinstance(response, LLMResponse)
        assert response.content == "Quanto tempo leva um deploy?"
        assert response.input_tokens == 120
        assert response.output_tokens == 15

        request = seen[0]
        assert request.url.path == "/v1/messages"
        assert request.headers["x-api-key"] == "test-key"
        payload = json.loads(request.content)
        assert payload["system"] == "Seja breve"
        assert payload["messages"] == [{"role": "user", "content": "Pergunte algo"}]
        assert payload["max_tokens"] == 300

    async def test_overrides_per_call(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return httpx.Response(200, json=MESSAGE_RESPONSE)

        await _client(handler).complete("x", temperature=0.1, max_tokens=50)

        assert seen[0]["temperature"] == 0.1
        assert seen[0]["max_tokens"] == 50
        assert "system" not in seen[0]

    async def test_empty_content(self):
        response = await _client(
            lambda request: httpx.Response(200, json={"content": [], "usage": {}})
        ).complete("x")

        assert response.content == ""
        assert response.input_tokens == 0

    async def test_retries_once_on_timeout(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                raise httpx.ReadTimeout("slow", request=request)
            return httpx.Response(200, json=MESSAGE_RESPONSE)

        response = await _client(handler).complete("x")

        assert len(calls) == 2
        assert response.output_tokens == 15

    async def test_timeout_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            raise httpx.ReadTimeout("slow", request=request)

        with pytest.raises(LLMTimeoutError):
            await _client(handler).complete("x")
        assert len(calls) == 2

    async def test_slow_attempt_is_cut_at_timeout(self):
        calls = []

        async def handler(request):
            calls.append(request)
            await asyncio.sleep(5)
            return httpx.Response(200, json=MESSAGE_RESPONSE)

        client = _client(handler)
        client.timeout = 0.05

        with pytest.raises(LLMTimeoutError):
            await asyncio.wait_for(client.complete("x"), timeout=1.0)
        assert len(calls) == 2

    async def test_rate_limit_after_retries(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(429, json={"error": "rate_limited"})

        with pytest.raises(LLMRateLimitError):
            await _client(handler).complete("x")
        assert len(calls) == 2

    async def test_other_http_errors_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(500, json={"error": "boom"})

        with pytest.raises(httpx.HTTPStatusError):
            await _client(handler).complete("x")
        assert len(calls) == 1


class TestFactory:
    def test_generation_client_uses_defaults(self):
        with patch("src.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = "k"
            mock_settings.generation_model = None
            mock_settings.generation_timeout_seconds = 20.0

            client = get_generation_llm_client()

        assert client.model == GENERATION_DEFAULTS["model"]
        assert client.max_tokens == GENERATION_DEFAULTS["max_tokens"]

    def test_generation_model_override(self):
        with patch("src.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = "k"
            mock_settings.generation_model = "claude-haiku-4-5"
            mock_settings.generation_timeout_seconds = 20.0

            client = get_generation_llm_client()

        assert client.model == "claude-haiku-4-5"

    def test_attempts_fit_inside_generation_timeout(self):
        with patch("src.llm.client.settings") as mock_settings:
            mock_settings.anthropic_api_key = "k"
            mock_settings.generation_model = None
            mock_settings.generation_timeout_seconds = 20.0

            client = get_generation_llm_client()

        assert client.timeout * MAX_ATTEMPTS + client.retry_base_delay <= 20.0
        assert client.timeout == 9.5
        assert client.retry_base_delay == 1.0


@pytest.mark.parametrize("total", [0.5, 1.0, 20.0, 120.0])
def test_attempt_budget_never_exceeds_total(total):
    timeout, delay = attempt_budget(total, retry_delay=1.0)

    assert timeout > 0
    assert timeout * MAX_ATTEMPTS + delay == pytest.approx(total)
