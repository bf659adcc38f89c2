"""
Model Router Tests.

Cache read-through, ordered fallback, per-attempt timeouts, JSON parsing.
"""

import time

import httpx
import pytest

from decisiongate.config import Settings
from decisiongate.errors import (
    AllProvidersFailed,
    ProviderError,
    ProviderTimeout,
    ResponseNotJSON,
)
from decisiongate.router.cache import InMemoryResponseCache, RedisResponseCache, prompt_cache_key
from decisiongate.router.providers import OpenAICompatibleProvider
from decisiongate.router.router import CallOptions, ResponseFormat, parse_json_content
from decisiongate.router.routes import (
    Route,
    bindings_from_settings,
    build_chain,
    fallback_chains_from_settings,
)
from tests.conftest import FakeProvider, failing, make_router


# ── Cache ────────────────────────────────────────────────────────────────


class TestRouterCache:
    """Identical prompts within the TTL never reach a provider twice."""

    @pytest.mark.asyncio
    async def test_second_identical_call_is_cached(self):
        primary = FakeProvider("fake-primary", ["first answer"])
        router = make_router(primary=primary, cache=InMemoryResponseCache())
        options = CallOptions(prompt="Estimate a price", system_prompt="You are a pricer")

        first = await router.call(options)
        second = await router.call(options)

        assert first.cached is False
        assert second.cached is True
        assert second.content == first.content == "first answer"
        assert second.provider == "fake-primary"
        assert second.model == "primary-model"
        assert primary.calls == 1

    @pytest.mark.asyncio
    async def test_cache_disabled_always_calls_provider(self):
        primary = FakeProvider("fake-primary", ["a"])
        router = make_router(primary=primary, cache=InMemoryResponseCache())
        options = CallOptions(prompt="same prompt", enable_cache=False)

        await router.call(options)
        result = await router.call(options)

        assert result.cached is False
        assert primary.calls == 2

    @pytest.mark.asyncio
    async def test_different_system_prompt_misses(self):
        primary = FakeProvider("fake-primary", ["a"])
        router = make_router(primary=primary, cache=InMemoryResponseCache())

        await router.call(CallOptions(prompt="p", system_prompt="one"))
        await router.call(CallOptions(prompt="p", system_prompt="two"))

        assert primary.calls == 2

    @pytest.mark.asyncio
    async def test_fallback_answer_stored_under_serving_model(self):
        """A fallback answer is keyed by the model that produced it."""
        cache = InMemoryResponseCache()
        primary = failing("fake-primary")
        fast = FakeProvider("fake-fast", ["from fast"])
        router = make_router(primary=primary, fast=fast, cache=cache)
        options = CallOptions(prompt="p", system_prompt="s")

        await router.call(options)

        assert await cache.get(prompt_cache_key("s", "p", "fast-model")) == "from fast"
        assert await cache.get(prompt_cache_key("s", "p", "primary-model")) is None

        # Lookup uses the originating route's model, so this is a miss
        again = await router.call(options)
        assert again.cached is False
        assert primary.calls == 2

    def test_cache_key_shape(self):
        key = prompt_cache_key("sys", "prompt", "gpt-4o")
        assert key.startswith("ai:cache:")
        assert len(key) == len("ai:cache:") + 16
        assert key == prompt_cache_key("sys", "prompt", "gpt-4o")
        assert key != prompt_cache_key("sys", "prompt", "qwen-max")
        assert prompt_cache_key(None, "prompt", "m") == prompt_cache_key("", "prompt", "m")

    @pytest.mark.asyncio
    async def test_in_memory_cache_expires(self):
        cache = InMemoryResponseCache()
        await cache.set("k", "v", ttl_seconds=0)
        assert await cache.get("k") is None
        assert len(cache) == 0

    @pytest.mark.asyncio
    async def test_set_sweeps_expired_entries(self):
        cache = InMemoryResponseCache()
        await cache.set("stale-1", "v", ttl_seconds=0)
        await cache.set("stale-2", "v", ttl_seconds=0)
        await cache.set("fresh", "v", ttl_seconds=60)

        assert len(cache) == 1
        assert await cache.get("fresh") == "v"


class _BrokenRedis:
    async def get(self, key):
        raise ConnectionError("redis down")

    async def set(self, key, value, ex=None):
        raise ConnectionError("redis down")

    async def aclose(self):
        pass


class TestRedisDegradation:
    """A Redis outage is a miss, never an error."""

    @pytest.mark.asyncio
    async def test_no_url_is_a_miss(self):
        cache = RedisResponseCache(redis_url=None)
        assert await cache.get("k") is None
        assert await cache.set("k", "v", 60) is False

    @pytest.mark.asyncio
    async def test_client_errors_are_swallowed(self):
        cache = RedisResponseCache(client=_BrokenRedis())
        assert await cache.get("k") is None
        assert await cache.set("k", "v", 60) is False
        await cache.close()

    @pytest.mark.asyncio
    async def test_router_serves_through_broken_cache(self):
        primary = FakeProvider("fake-primary", ["fresh"])
        router = make_router(primary=primary, cache=RedisResponseCache(client=_BrokenRedis()))

        result = await router.call(CallOptions(prompt="p"))

        assert result.content == "fresh"
        assert result.cached is False


# ── Fallback chain ───────────────────────────────────────────────────────


class TestFallbackChain:
    """Attempts are sequential, in chain order, and stop at the first success."""

    @pytest.mark.asyncio
    async def test_primary_failure_falls_to_fast(self):
        primary = failing("fake-primary")
        fast = FakeProvider("fake-fast", ["ok"])
        backup = FakeProvider("fake-backup", ["never"])
        router = make_router(primary=primary, fast=fast, backup=backup)

        result = await router.call(CallOptions(prompt="p", route=Route.PRIMARY))

        assert result.provider == "fake-fast"
        assert result.model == "fast-model"
        assert (primary.calls, fast.calls, backup.calls) == (1, 1, 0)

    @pytest.mark.asyncio
    async def test_unconfigured_provider_is_skipped_without_a_call(self):
        primary = FakeProvider("fake-primary", ["x"], configured=False)
        fast = FakeProvider("fake-fast", ["ok"])
        router = make_router(primary=primary, fast=fast)

        result = await router.call(CallOptions(prompt="p"))

        assert result.provider == "fake-fast"
        assert primary.calls == 0

    @pytest.mark.asyncio
    async def test_exhausted_chain_raises_with_attempts(self):
        router = make_router(
            primary=failing("fake-primary"),
            fast=failing("fake-fast"),
            backup=failing("fake-backup"),
        )

        with pytest.raises(AllProvidersFailed) as exc_info:
            await router.call(CallOptions(prompt="p", route=Route.PRIMARY))

        err = exc_info.value
        assert [a["route"] for a in err.attempts] == ["primary", "fast", "backup"]
        assert all(not a["ok"] for a in err.attempts)
        assert isinstance(err.last_error, ProviderError)

    @pytest.mark.asyncio
    async def test_unexpected_provider_exception_falls_through(self):
        primary = FakeProvider("fake-primary", [KeyError("choices")])
        fast = FakeProvider("fake-fast", ["ok"])
        router = make_router(primary=primary, fast=fast)

        result = await router.call(CallOptions(prompt="p"))

        assert result.provider == "fake-fast"
        assert (primary.calls, fast.calls) == (1, 1)

    @pytest.mark.asyncio
    async def test_unexpected_exception_recorded_as_provider_error(self):
        router = make_router(primary=FakeProvider("fake-primary", [RuntimeError("socket closed")]))

        with pytest.raises(AllProvidersFailed) as exc_info:
            await router.call(CallOptions(prompt="p", fallback_chain=[Route.PRIMARY]))

        assert "RuntimeError: socket closed" in exc_info.value.attempts[0]["error"]

    @pytest.mark.asyncio
    async def test_non_string_content_falls_through(self):
        primary = FakeProvider("fake-primary", [["not", "text"]])
        fast = FakeProvider("fake-fast", ['{"ok": true}'])
        router = make_router(primary=primary, fast=fast)

        result = await router.call_json(CallOptions(prompt="p"))

        assert result.provider == "fake-fast"
        assert result.data == {"ok": True}

    @pytest.mark.asyncio
    @pytest.mark.parametrize("body", [
        [],
        {"choices": ["x"]},
        {"choices": [{"message": {"content": ["a", "b"]}}]},
        {"choices": [{"message": None}]},
    ])
    async def test_malformed_http_body_falls_through(self, body):
        fast = FakeProvider("fake-fast", ['{"ok": true}'])
        async with httpx.AsyncClient(transport=httpx.MockTransport(lambda r: httpx.Response(200, json=body))) as client:
            primary = OpenAICompatibleProvider("fake-primary", "key", "https://llm.example.test/v1", client)
            router = make_router(primary=primary, fast=fast)

            result = await router.call_json(CallOptions(prompt="p"))

        assert result.provider == "fake-fast"
        assert fast.calls == 1
        assert err.last_error.provider == "fake-backup"

    @pytest.mark.asyncio
    async def test_explicit_chain_overrides_configured_chain(self):
        primary = failing("fake-primary")
        fast = FakeProvider("fake-fast", ["fast"])
        backup = FakeProvider("fake-backup", ["backup"])
        router = make_router(primary=primary, fast=fast, backup=backup)

        result = await router.call(CallOptions(prompt="p", fallback_chain=[Route.BACKUP]))

        assert result.provider == "fake-backup"
        assert fast.calls == 0

    def test_chain_never_repeats_origin(self):
        router = make_router()
        chain = router.chain_for(Route.PRIMARY, [Route.PRIMARY, Route.BACKUP, Route.BACKUP, Route.FAST])
        assert chain == (Route.PRIMARY, Route.BACKUP, Route.FAST)

    def test_build_chain_with_string_routes(self):
        assert build_chain(Route.REASONING, ["primary", "fast"]) == (
            Route.REASONING, Route.PRIMARY, Route.FAST,
        )

    def test_is_configured(self):
        assert make_router().is_configured() is False
        assert make_router(backup=FakeProvider("fake-backup")).is_configured() is True


class TestTimeouts:
    """Each attempt is raced against timeout_ms."""

    @pytest.mark.asyncio
    async def test_slow_provider_times_out_and_falls_back(self):
        primary = FakeProvider("fake-primary", ["late"], delay=2.0)
        fast = FakeProvider("fake-fast", ["on time"])
        router = make_router(primary=primary, fast=fast)

        started = time.perf_counter()
        result = await router.call(CallOptions(prompt="p", timeout_ms=50))
        elapsed = time.perf_counter() - started

        assert result.content == "on time"
        assert elapsed < 1.0

    @pytest.mark.asyncio
    async def test_total_time_bounded_by_chain_length(self):
        slow = dict(delay=2.0)
        router = make_router(
            primary=FakeProvider("fake-primary", **slow),
            fast=FakeProvider("fake-fast", **slow),
            backup=FakeProvider("fake-backup", **slow),
        )

        started = time.perf_counter()
        with pytest.raises(AllProvidersFailed) as exc_info:
            await router.call(CallOptions(prompt="p", timeout_ms=50))
        elapsed = time.perf_counter() - started

        assert isinstance(exc_info.value.last_error, ProviderTimeout)
        assert exc_info.value.last_error.timeout_ms == 50
        assert elapsed < 3 * 0.05 + 1.0


# ── JSON ─────────────────────────────────────────────────────────────────


class TestJSONParsing:
    """Fenced and unfenced JSON parse to the same structure."""

    PAYLOAD = '{"verdict": "APPROVE", "scores": [0.1, 0.2]}'

    def test_fenced_equals_unfenced(self):
        fenced = f"Here you go:\n```json\n{self.PAYLOAD}\n```\nThanks"
        assert parse_json_content(fenced) == parse_json_content(self.PAYLOAD)

    def test_bare_fence(self):
        assert parse_json_content(f"```\n{self.PAYLOAD}\n```") == {
            "verdict": "APPROVE",
            "scores": [0.1, 0.2],
        }

    def test_unparseable_raises(self):
        with pytest.raises(ResponseNotJSON) as exc_info:
            parse_json_content("I think it should be approved " + "x" * 300)
        assert len(exc_info.value.content_preview) == 200

    def test_non_string_content_is_not_json(self):
        with pytest.raises(ResponseNotJSON):
            parse_json_content(["a", "b"])

    @pytest.mark.asyncio
    async def test_call_json_forces_json_mode(self):
        primary = FakeProvider("fake-primary", [f"```json\n{self.PAYLOAD}\n```"])
        router = make_router(primary=primary)

        result = await router.call_json(CallOptions(prompt="p", response_format=ResponseFormat.TEXT))

        assert result.data["verdict"] == "APPROVE"
        assert primary.requests[0].json_mode is True

    @pytest.mark.asyncio
    async def test_call_json_rejects_prose(self):
        router = make_router(primary=FakeProvider("fake-primary", ["no json here"]))
        with pytest.raises(ResponseNotJSON):
            await router.call_json(CallOptions(prompt="p"))

    @pytest.mark.asyncio
    async def test_defaults_applied_to_request(self):
        primary = FakeProvider("fake-primary", ["ok"])
        router = make_router(primary=primary)

        await router.call(CallOptions(prompt="p", temperature=0.0))

        request = primary.requests[0]
        assert request.temperature == 0.0
        assert request.max_tokens == 1024
        assert request.model == "primary-model"


# ── Bindings from configuration ──────────────────────────────────────────


class TestRouteConfiguration:

    def test_bindings_resolve_provider_models(self):
        settings = Settings(_env_file=None, AI_ROUTE_FAST="anthropic", ANTHROPIC_MODEL="claude-test")
        bindings = bindings_from_settings(settings)
        assert bindings[Route.FAST].provider == "anthropic"
        assert bindings[Route.FAST].model == "claude-test"
        assert bindings[Route.PRIMARY].provider == "openai"

    def test_unknown_provider_rejected(self):
        settings = Settings(_env_file=None, AI_ROUTE_BACKUP="nope")
        with pytest.raises(ValueError):
            bindings_from_settings(settings)

    def test_configured_chain_drops_origin(self):
        settings = Settings(_env_file=None, AI_FALLBACK_CHAINS={"fast": ["fast", "backup"]})
        chains = fallback_chains_from_settings(settings)
        assert chains[Route.FAST] == (Route.BACKUP,)
        assert chains[Route.PRIMARY] == (Route.FAST, Route.BACKUP)
