"""
Inference Provider Adapter Tests.

HTTP is served by httpx.MockTransport; nothing leaves the process.
"""

import json

import httpx
import pytest

from decisiongate.config import Settings
from decisiongate.errors import ProviderError, ProviderTimeout, ProviderUnavailable
from decisiongate.router.providers import (
    AnthropicProvider,
    CompletionRequest,
    OpenAICompatibleProvider,
    build_provider,
    build_providers,
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class TestOpenAICompatibleProvider:

    @pytest.mark.asyncio
    async def test_chat_completion(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["authorization"]
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "model": "llama-3.3-70b-versatile",
                "choices": [{"message": {"content": '{"ok": true}'}}],
                "usage": {"total_tokens": 42},
            })

        async with _client(handler) as client:
            provider = OpenAICompatibleProvider("groq", "gsk-test", "https://api.groq.com/openai/v1/", client)
            response = await provider.complete(CompletionRequest(
                model="llama-3.3-70b-versatile",
                prompt="hello",
                system_prompt="be brief",
                json_mode=True,
            ))

        assert response.content == '{"ok": true}'
        assert response.usage == {"total_tokens": 42}
        assert seen["url"] == "https://api.groq.com/openai/v1/chat/completions"
        assert seen["auth"] == "Bearer gsk-test"
        assert seen["body"]["messages"][0] == {"role": "system", "content": "be brief"}
        assert seen["body"]["response_format"] == {"type": "json_object"}

    @pytest.mark.asyncio
    async def test_http_error_status(self):
        async with _client(lambda request: httpx.Response(503, text="overloaded")) as client:
            provider = OpenAICompatibleProvider("openai", "sk-test", "https://api.openai.com/v1", client)
            with pytest.raises(ProviderError) as exc_info:
                await provider.complete(CompletionRequest(model="gpt-4o", prompt="p"))

        assert exc_info.value.status_code == 503
        assert exc_info.value.details["status_code"] == 503

    @pytest.mark.asyncio
    async def test_empty_choices_is_an_error(self):
        async with _client(lambda request: httpx.Response(200, json={"choices": []})) as client:
            provider = OpenAICompatibleProvider("deepseek", "key", "https://api.deepseek.com/v1", client)
            with pytest.raises(ProviderError):
                await provider.complete(CompletionRequest(model="deepseek-r1", prompt="p"))

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [],
        "just text",
        {"choices": ["x"]},
        {"choices": {"message": {"content": "x"}}},
        {"choices": [{"message": "x"}]},
        {"choices": [{"message": {"content": ["a", "b"]}}]},
    ])
    async def test_malformed_body_is_a_provider_error(self, body):
        async with _client(lambda request: httpx.Response(200, json=body)) as client:
            provider = OpenAICompatibleProvider("openai", "sk-test", "https://api.openai.com/v1", client)
            with pytest.raises(ProviderError):
                await provider.complete(CompletionRequest(model="gpt-4o", prompt="p"))

    @pytest.mark.asyncio
    async def test_transport_timeout(self):
        def handler(request):
            raise httpx.ReadTimeout("slow", request=request)

        async with _client(handler) as client:
            provider = OpenAICompatibleProvider("alibaba", "key", "https://example.test/v1", client)
            with pytest.raises(ProviderTimeout):
                await provider.complete(CompletionRequest(model="qwen-max", prompt="p"))

    @pytest.mark.asyncio
    async def test_missing_key_is_unavailable(self):
        provider = OpenAICompatibleProvider("openai", "", "https://api.openai.com/v1")
        assert provider.is_configured is False
        with pytest.raises(ProviderUnavailable):
            await provider.complete(CompletionRequest(model="gpt-4o", prompt="p"))


class TestAnthropicProvider:

    @pytest.mark.asyncio
    async def test_text_blocks_joined(self):
        seen = {}

        def handler(request: httpx.Request) -> httpx.Response:
            seen["headers"] = request.headers
            seen["body"] = json.loads(request.content)
            return httpx.Response(200, json={
                "model": "claude-sonnet-4-20250514",
                "content": [
                    {"type": "text", "text": "Hello, "},
                    {"type": "tool_use", "id": "x"},
                    {"type": "text", "text": "world"},
                ],
            })

        async with _client(handler) as client:
            provider = AnthropicProvider("anthropic", "sk-ant", "https://api.anthropic.com/v1", client)
            response = await provider.complete(CompletionRequest(
                model="claude-sonnet-4-20250514",
                prompt="hi",
                system_prompt="sys",
            ))

        assert response.content == "Hello, world"
        assert seen["headers"]["x-api-key"] == "sk-ant"
        assert seen["headers"]["anthropic-version"] == "2023-06-01"
        assert seen["body"]["system"] == "sys"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [{"type": "text", "text": "hi"}],
        {"content": "hi"},
        {"content": ["hi", {"type": "text", "text": 7}]},
        {"content": [{"type": "tool_use", "id": "x"}]},
    ])
    async def test_malformed_body_is_a_provider_error(self, body):
        async with _client(lambda request: httpx.Response(200, json=body)) as client:
            provider = AnthropicProvider("anthropic", "sk-ant", "https://api.anthropic.com/v1", client)
            with pytest.raises(ProviderError):
                await provider.complete(CompletionRequest(model="claude-sonnet-4-20250514", prompt="p"))


class TestProviderFactory:

    def test_build_providers_covers_every_vendor(self):
        settings = Settings(_env_file=None, OPENAI_API_KEY="sk-test", ANTHROPIC_API_KEY="")
        providers = build_providers(settings)

        assert set(providers) == {"openai", "groq", "deepseek", "alibaba", "anthropic"}
        assert isinstance(providers["anthropic"], AnthropicProvider)
        assert providers["openai"].is_configured is True
        assert providers["anthropic"].is_configured is False

    def test_unknown_provider(self):
        with pytest.raises(ValueError):
            build_provider("mistral", Settings(_env_file=None))
