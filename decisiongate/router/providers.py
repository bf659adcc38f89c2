"""
Inference provider adapters.

One interface, ``complete(request) -> response``, implemented per vendor:
- OpenAI-compatible chat completions (OpenAI, Groq, DeepSeek, Alibaba Qwen)
- Anthropic Messages API

Adapters raise ProviderUnavailable / ProviderTimeout / ProviderError and
nothing else; the router decides what to do about it.
"""

from dataclasses import dataclass, field
from typing import Optional, Protocol, runtime_checkable

import httpx
import structlog

from decisiongate.config import Settings
from decisiongate.errors import ProviderError, ProviderTimeout, ProviderUnavailable

logger = structlog.get_logger(__name__)

# Anthropic API constants
ANTHROPIC_VERSION = "2023-06-01"

# Upper bound on the HTTP client itself; the router enforces per-call timeouts.
HTTP_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class CompletionRequest:
    """Provider-neutral single-shot completion request."""
    model: str
    prompt: str
    system_prompt: Optional[str] = None
    temperature: float = 0.7
    max_tokens: int = 1024
    json_mode: bool = False


@dataclass(frozen=True)
class CompletionResponse:
    content: str
    model: str
    usage: dict = field(default_factory=dict)


@runtime_checkable
class InferenceProvider(Protocol):
    name: str

    @property
    def is_configured(self) -> bool: ...

    async def complete(self, request: CompletionRequest) -> CompletionResponse: ...


class _HTTPProvider:
    """Shared httpx plumbing: optional injected client, error mapping."""

    def __init__(
        self,
        name: str,
        api_key: str,
        base_url: str,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.name = name
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self._client = client

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def _post(self, url: str, payload: dict, headers: dict) -> dict:
        if not self.api_key:
            raise ProviderUnavailable(self.name)

        try:
            if self._client is not None:
                response = await self._client.post(url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=HTTP_TIMEOUT_SECONDS) as client:
                    response = await client.post(url, json=payload, headers=headers)
        except httpx.TimeoutException as e:
            raise ProviderTimeout(self.name, int(HTTP_TIMEOUT_SECONDS * 1000)) from e
        except httpx.HTTPError as e:
            raise ProviderError(self.name, f"{self.name} transport error: {e}") from e

        if response.status_code != 200:
            logger.error(
                "llm_api_error",
                provider=self.name,
                status=response.status_code,
                body=response.text[:500],
            )
            raise ProviderError(
                self.name,
                f"{self.name} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )

        try:
            data = response.json()
        except ValueError as e:
            raise ProviderError(self.name, f"{self.name} returned a non-JSON body") from e

        if not isinstance(data, dict):
            raise ProviderError(self.name, f"{self.name} returned a {type(data).__name__} body")
        return data

    def _text(self, content) -> str:
        if not isinstance(content, str) or not content:
            raise ProviderError(self.name, f"{self.name} returned empty response")
        return content


class OpenAICompatibleProvider(_HTTPProvider):
    """Chat-completions API, shared by OpenAI and the OpenAI-compatible vendors."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        messages = []
        if request.system_prompt:
            messages.append({"role": "system", "content": request.system_prompt})
        messages.append({"role": "user", "content": request.prompt})

        payload = {
            "model": request.model,
            "messages": messages,
            "temperature": request.temperature,
            "max_tokens": request.max_tokens,
        }
        if request.json_mode:
            payload["response_format"] = {"type": "json_object"}

        headers = {
            "authorization": f"Bearer {self.api_key}",
            "content-type": "application/json",
        }

        data = await self._post(f"{self.base_url}/chat/completions", payload, headers)

        choices = data.get("choices")
        message = None
        if isinstance(choices, list) and choices and isinstance(choices[0], dict):
            message = choices[0].get("message")
        content = message.get("content") if isinstance(message, dict) else None

        return CompletionResponse(
            content=self._text(content),
            model=data.get("model", request.model),
            usage=data.get("usage") or {},
        )


class AnthropicProvider(_HTTPProvider):
    """Anthropic Messages API (non-streaming)."""

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        payload = {
            "model": request.model,
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
            "messages": [{"role": "user", "content": request.prompt}],
        }
        if request.system_prompt:
            payload["system"] = request.system_prompt

        headers = {
            "x-api-key": self.api_key,
            "anthropic-version": ANTHROPIC_VERSION,
            "content-type": "application/json",
        }

        data = await self._post(f"{self.base_url}/messages", payload, headers)

        # Extract text from content blocks
        blocks = data.get("content")
        if not isinstance(blocks, list):
            blocks = []
        text_parts = [
            block["text"]
            for block in blocks
            if isinstance(block, dict)
            and block.get("type") == "text"
            and isinstance(block.get("text"), str)
        ]

        return CompletionResponse(
            content=self._text("".join(text_parts)),
            model=data.get("model", request.model),
            usage=data.get("usage") or {},
        )


# ── Factory ───────────────────────────────────────────────────────────────

PROVIDER_NAMES = ("openai", "groq", "deepseek", "alibaba", "anthropic")


def build_provider(
    name: str,
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> InferenceProvider:
    """Factory for provider instances by canonical name."""
    key = (name or "").strip().lower()
    if key not in PROVIDER_NAMES:
        raise ValueError(f"Unknown inference provider '{name}'")

    api_key = getattr(settings, f"{key}_api_key")
    base_url = getattr(settings, f"{key}_base_url")
    if key == "anthropic":
        return AnthropicProvider(key, api_key, base_url, client=client)
    return OpenAICompatibleProvider(key, api_key, base_url, client=client)


def build_providers(
    settings: Settings,
    client: Optional[httpx.AsyncClient] = None,
) -> dict[str, InferenceProvider]:
    """Build every known provider; unconfigured ones report is_configured=False."""
    providers = {name: build_provider(name, settings, client) for name in PROVIDER_NAMES}
    missing = [name for name, p in providers.items() if not p.is_configured]
    if missing:
        logger.info("inference_providers_unconfigured", providers=missing)
    return providers
