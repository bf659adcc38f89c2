"""
Model Router: routing, caching, timeouts and ordered fallback.

Flow for one call:
  cache lookup (originating route's model) → hit: return, no provider contact
  miss → [route, *fallback_chain] walked sequentially, one provider at a time,
         each attempt raced against timeout_ms
       → first success: populate cache, return
       → chain exhausted: AllProvidersFailed(last_error)

Each attempt yields a typed outcome; provider failures are data inside the
loop, not exceptions, so only exhaustion is visible to callers.
"""

import asyncio
import json
import re
import time
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Mapping, Optional, Sequence

import httpx
import structlog

from decisiongate.config import Settings, settings as default_settings
from decisiongate.errors import (
    AllProvidersFailed,
    ProviderError,
    ProviderFailure,
    ProviderTimeout,
    ProviderUnavailable,
    ResponseNotJSON,
)
from decisiongate.metrics import CACHE_LOOKUPS, PROVIDER_ATTEMPTS, ROUTER_CALL_LATENCY
from decisiongate.router.cache import ResponseCache, prompt_cache_key
from decisiongate.router.providers import (
    CompletionRequest,
    InferenceProvider,
    build_providers,
)
from decisiongate.router.routes import (
    DEFAULT_FALLBACK_CHAINS,
    Route,
    RouteBinding,
    bindings_from_settings,
    build_chain,
    fallback_chains_from_settings,
)

logger = structlog.get_logger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)```")


class ResponseFormat(StrEnum):
    TEXT = "text"
    JSON = "json"


@dataclass(frozen=True)
class CallOptions:
    """
    One inference request. Unset numeric options take the router's defaults;
    an unset fallback_chain takes the route's configured chain.
    """
    prompt: str
    route: Route = Route.PRIMARY
    system_prompt: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    response_format: ResponseFormat = ResponseFormat.TEXT
    timeout_ms: Optional[int] = None
    enable_cache: bool = True
    fallback_chain: Optional[Sequence[Route]] = None


@dataclass(frozen=True)
class CallResult:
    content: str
    provider: str
    model: str
    cached: bool
    latency_ms: float


@dataclass(frozen=True)
class JSONCallResult(CallResult):
    data: Any = None


@dataclass(frozen=True)
class _Attempt:
    """Outcome of a single provider attempt."""
    route: Route
    provider: str
    model: str
    content: Optional[str] = None
    error: Optional[ProviderFailure] = None
    elapsed_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.content is not None

    def to_dict(self) -> dict:
        return {
            "route": self.route.value,
            "provider": self.provider,
            "model": self.model,
            "ok": self.ok,
            "error": str(self.error) if self.error else None,
            "elapsed_ms": round(self.elapsed_ms, 1),
        }


def parse_json_content(content: str) -> Any:
    """
    Parse model output as JSON: direct parse first, then the first fenced
    code block. Raises ResponseNotJSON if neither parses.
    """
    if not isinstance(content, str):
        raise ResponseNotJSON(repr(content))

    try:
        return json.loads(content)
    except json.JSONDecodeError:
        pass

    match = _FENCED_BLOCK.search(content)
    if match:
        try:
            return json.loads(match.group(1).strip())
        except json.JSONDecodeError:
            pass

    raise ResponseNotJSON(content)


@dataclass
class ModelRouter:
    """
    Routes calls to injected inference providers.

    Providers, bindings and cache are passed in explicitly; build one with
    ``ModelRouter.from_settings()`` in production, or hand it test doubles.
    """
    providers: Mapping[str, InferenceProvider]
    bindings: Mapping[Route, RouteBinding]
    fallback_chains: Mapping[Route, tuple[Route, ...]] = field(
        default_factory=lambda: dict(DEFAULT_FALLBACK_CHAINS)
    )
    cache: Optional[ResponseCache] = None
    cache_ttl_seconds: int = 24 * 60 * 60
    default_temperature: float = 0.7
    default_max_tokens: int = 1024
    default_timeout_ms: int = 30_000

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        cache: Optional[ResponseCache] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "ModelRouter":
        settings = settings or default_settings
        return cls(
            providers=build_providers(settings, client=http_client),
            bindings=bindings_from_settings(settings),
            fallback_chains=fallback_chains_from_settings(settings),
            cache=cache,
            cache_ttl_seconds=settings.ai_cache_ttl_seconds,
            default_temperature=settings.ai_default_temperature,
            default_max_tokens=settings.ai_default_max_tokens,
            default_timeout_ms=settings.ai_default_timeout_ms,
        )

    # ── Public API ────────────────────────────────────────────────────────

    def is_configured(self) -> bool:
        """True iff at least one bound provider has credentials."""
        for binding in self.bindings.values():
            provider = self.providers.get(binding.provider)
            if provider is not None and provider.is_configured:
                return True
        return False

    def chain_for(
        self,
        route: Route,
        explicit: Optional[Sequence[Route]] = None,
    ) -> tuple[Route, ...]:
        fallbacks = explicit if explicit is not None else self.fallback_chains.get(route, ())
        return build_chain(route, fallbacks)

    async def call(self, options: CallOptions) -> CallResult:
        """
        Call a model with cache lookup, per-attempt timeout and fallback.

        Returns within roughly ``timeout_ms × len(chain)`` or raises
        AllProvidersFailed.
        """
        start = time.perf_counter()
        route = Route(options.route)
        origin = self.bindings[route]

        if options.enable_cache and self.cache is not None:
            key = prompt_cache_key(options.system_prompt, options.prompt, origin.model)
            cached = await self.cache.get(key)
            if cached is not None:
                CACHE_LOOKUPS.labels(result="hit").inc()
                logger.debug("ai_cache_hit", route=route.value, model=origin.model)
                latency_ms = (time.perf_counter() - start) * 1000
                ROUTER_CALL_LATENCY.labels(route=route.value, outcome="cached").observe(latency_ms / 1000)
                return CallResult(
                    content=cached,
                    provider=origin.provider,
                    model=origin.model,
                    cached=True,
                    latency_ms=latency_ms,
                )
            CACHE_LOOKUPS.labels(result="miss").inc()

        chain = self.chain_for(route, options.fallback_chain)
        attempts: list[_Attempt] = []

        for candidate in chain:
            attempt = await self._attempt(candidate, options)
            attempts.append(attempt)

            if not attempt.ok:
                logger.warning(
                    "provider_attempt_failed",
                    route=candidate.value,
                    provider=attempt.provider,
                    model=attempt.model,
                    error=str(attempt.error),
                    remaining=len(chain) - len(attempts),
                )
                continue

            if options.enable_cache and self.cache is not None:
                key = prompt_cache_key(options.system_prompt, options.prompt, attempt.model)
                await self.cache.set(key, attempt.content, self.cache_ttl_seconds)

            latency_ms = (time.perf_counter() - start) * 1000
            ROUTER_CALL_LATENCY.labels(route=route.value, outcome="success").observe(latency_ms / 1000)
            if candidate != route:
                logger.info(
                    "provider_fallback_used",
                    route=route.value,
                    served_by=attempt.provider,
                    attempts=len(attempts),
                )
            return CallResult(
                content=attempt.content,
                provider=attempt.provider,
                model=attempt.model,
                cached=False,
                latency_ms=latency_ms,
            )

        ROUTER_CALL_LATENCY.labels(route=route.value, outcome="failed").observe(
            time.perf_counter() - start
        )
        logger.error(
            "all_providers_failed",
            route=route.value,
            chain=[r.value for r in chain],
        )
        raise AllProvidersFailed(
            attempts[-1].error if attempts else None,
            [a.to_dict() for a in attempts],
        )

    async def call_json(self, options: CallOptions) -> JSONCallResult:
        """Call with JSON response format and parse the content (fenced blocks allowed)."""
        json_options = CallOptions(
            prompt=options.prompt,
            route=options.route,
            system_prompt=options.system_prompt,
            temperature=options.temperature,
            max_tokens=options.max_tokens,
            response_format=ResponseFormat.JSON,
            timeout_ms=options.timeout_ms,
            enable_cache=options.enable_cache,
            fallback_chain=options.fallback_chain,
        )
        result = await self.call(json_options)
        data = parse_json_content(result.content)
        return JSONCallResult(
            content=result.content,
            provider=result.provider,
            model=result.model,
            cached=result.cached,
            latency_ms=result.latency_ms,
            data=data,
        )

    # ── Internals ─────────────────────────────────────────────────────────

    async def _attempt(self, route: Route, options: CallOptions) -> _Attempt:
        binding = self.bindings[route]
        provider = self.providers.get(binding.provider)
        timeout_ms = options.timeout_ms or self.default_timeout_ms
        started = time.perf_counter()

        def outcome(content: Optional[str] = None, error: Optional[ProviderFailure] = None) -> _Attempt:
            return _Attempt(
                route=route,
                provider=binding.provider,
                model=binding.model,
                content=content,
                error=error,
                elapsed_ms=(time.perf_counter() - started) * 1000,
            )

        if provider is None or not provider.is_configured:
            PROVIDER_ATTEMPTS.labels(provider=binding.provider, outcome="unavailable").inc()
            return outcome(error=ProviderUnavailable(binding.provider))

        request = CompletionRequest(
            model=binding.model,
            prompt=options.prompt,
            system_prompt=options.system_prompt,
            temperature=(
                options.temperature if options.temperature is not None else self.default_temperature
            ),
            max_tokens=options.max_tokens or self.default_max_tokens,
            json_mode=options.response_format == ResponseFormat.JSON,
        )

        try:
            response = await asyncio.wait_for(provider.complete(request), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            PROVIDER_ATTEMPTS.labels(provider=binding.provider, outcome="timeout").inc()
            return outcome(error=ProviderTimeout(binding.provider, timeout_ms))
        except ProviderFailure as e:
            PROVIDER_ATTEMPTS.labels(provider=binding.provider, outcome="error").inc()
            return outcome(error=e)
        except Exception as e:
            PROVIDER_ATTEMPTS.labels(provider=binding.provider, outcome="error").inc()
            return outcome(error=ProviderError(
                binding.provider,
                f"{binding.provider} raised {type(e).__name__}: {e}",
            ))

        if not isinstance(response.content, str) or not response.content:
            PROVIDER_ATTEMPTS.labels(provider=binding.provider, outcome="error").inc()
            return outcome(error=ProviderError(binding.provider, f"{binding.provider} returned empty response"))

        PROVIDER_ATTEMPTS.labels(provider=binding.provider, outcome="success").inc()
        return outcome(content=response.content)
