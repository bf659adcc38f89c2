"""
Test fixtures for DecisionGate tests.

Provides:
- Scripted fake inference providers (no network)
- A router factory binding every route to a fake provider
- In-memory response cache and audit sink, plus a sink that always fails
- A file-backed SQLite audit store (aiosqlite)
- Signal set factories for synthesis tests
"""

import asyncio
from typing import Optional, Union

import pytest
import pytest_asyncio

from decisiongate.audit.log import DecisionAuditLog
from decisiongate.audit.sinks import InMemoryAuditSink
from decisiongate.config import Settings
from decisiongate.db.engine import create_engine_from_settings, create_session_factory, init_models
from decisiongate.errors import ProviderError
from decisiongate.router.cache import InMemoryResponseCache
from decisiongate.router.providers import CompletionRequest, CompletionResponse
from decisiongate.router.router import ModelRouter
from decisiongate.router.routes import DEFAULT_FALLBACK_CHAINS, Route, RouteBinding
from decisiongate.synthesis.schemas import (
    UNAVAILABLE,
    BiometricSignals,
    GpsAccuracyCheck,
    GpsProximityCheck,
    ImpossibleTravelCheck,
    LogisticsSignals,
    PhotoVerificationSignals,
    SignalSet,
    TimeLockCheck,
)

ROUTE_PROVIDERS = {
    Route.PRIMARY: ("fake-primary", "primary-model"),
    Route.FAST: ("fake-fast", "fast-model"),
    Route.REASONING: ("fake-reasoning", "reasoning-model"),
    Route.BACKUP: ("fake-backup", "backup-model"),
}


# ── Fake providers ───────────────────────────────────────────────────────


class FakeProvider:
    """
    Scripted provider. Each call pops the next scripted item (a string is
    returned as content, an exception is raised); the last item repeats.
    """

    def __init__(
        self,
        name: str,
        responses: Optional[list[Union[str, Exception]]] = None,
        configured: bool = True,
        delay: float = 0.0,
    ):
        self.name = name
        self._responses = list(responses or ['{"ok": true}'])
        self._configured = configured
        self.delay = delay
        self.requests: list[CompletionRequest] = []

    @property
    def is_configured(self) -> bool:
        return self._configured

    @property
    def calls(self) -> int:
        return len(self.requests)

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        self.requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        item = self._responses.pop(0) if len(self._responses) > 1 else self._responses[0]
        if isinstance(item, Exception):
            raise item
        return CompletionResponse(content=item, model=request.model)


def failing(name: str) -> FakeProvider:
    """A provider whose every call fails with a ProviderError."""
    return FakeProvider(name, [ProviderError(name, f"{name} returned HTTP 500", status_code=500)])


def make_router(
    primary: Optional[FakeProvider] = None,
    fast: Optional[FakeProvider] = None,
    reasoning: Optional[FakeProvider] = None,
    backup: Optional[FakeProvider] = None,
    cache=None,
    fallback_chains=None,
    default_timeout_ms: int = 2000,
) -> ModelRouter:
    """Router whose four routes are bound to fake providers (unconfigured if omitted)."""
    given = {
        Route.PRIMARY: primary,
        Route.FAST: fast,
        Route.REASONING: reasoning,
        Route.BACKUP: backup,
    }
    providers = {}
    bindings = {}
    for route, (name, model) in ROUTE_PROVIDERS.items():
        provider = given[route] or FakeProvider(name, configured=False)
        provider.name = name
        providers[name] = provider
        bindings[route] = RouteBinding(route=route, provider=name, model=model)
    return ModelRouter(
        providers=providers,
        bindings=bindings,
        fallback_chains=fallback_chains or dict(DEFAULT_FALLBACK_CHAINS),
        cache=cache,
        default_timeout_ms=default_timeout_ms,
    )


# ── Audit ────────────────────────────────────────────────────────────────


class FailingAuditSink:
    """Every write raises, as a dead database would."""

    def __init__(self, message: str = "connection refused"):
        self.message = message
        self.attempts = 0

    async def write_record(self, record) -> None:
        self.attempts += 1
        raise ConnectionError(self.message)

    async def write_override(self, addendum) -> None:
        self.attempts += 1
        raise ConnectionError(self.message)


@pytest.fixture
def audit_sink() -> InMemoryAuditSink:
    return InMemoryAuditSink()


@pytest.fixture
def audit_log(audit_sink) -> DecisionAuditLog:
    return DecisionAuditLog(audit_sink)


@pytest.fixture
def response_cache() -> InMemoryResponseCache:
    return InMemoryResponseCache()


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    """Settings with no provider keys and a throwaway SQLite audit store."""
    return Settings(
        _env_file=None,
        DATABASE_URL=f"sqlite+aiosqlite:///{tmp_path / 'audit.db'}",
        REDIS_URL="",
        OPENAI_API_KEY="",
        GROQ_API_KEY="",
        DEEPSEEK_API_KEY="",
        ALIBABA_API_KEY="",
        ANTHROPIC_API_KEY="",
    )


@pytest_asyncio.fixture
async def audit_engine(test_settings):
    """Async engine over a per-test SQLite file with audit tables created."""
    engine = create_engine_from_settings(test_settings)
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(audit_engine):
    return create_session_factory(audit_engine)


# ── Signal factories ─────────────────────────────────────────────────────


def clean_biometric() -> BiometricSignals:
    return BiometricSignals(liveness_score=0.97, deepfake_score=0.02)


def clean_logistics() -> LogisticsSignals:
    return LogisticsSignals(
        gps_proximity=GpsProximityCheck(passed=True, distance_meters=12),
        impossible_travel=ImpossibleTravelCheck(passed=True, speed_kmh=30),
        time_lock=TimeLockCheck(passed=True, time_delta_seconds=4),
        gps_accuracy=GpsAccuracyCheck(passed=True, accuracy_meters=8),
    )


def failed_logistics() -> LogisticsSignals:
    return LogisticsSignals(
        gps_proximity=GpsProximityCheck(passed=False, distance_meters=4200),
        impossible_travel=ImpossibleTravelCheck(passed=False, speed_kmh=900),
        time_lock=TimeLockCheck(passed=False, time_delta_seconds=7200),
        gps_accuracy=GpsAccuracyCheck(passed=False, accuracy_meters=250),
    )


def clean_photo() -> PhotoVerificationSignals:
    return PhotoVerificationSignals(similarity_score=0.9, completion_score=0.95, change_detected=True)


def make_signals(
    biometric=None,
    logistics=None,
    photo_verification=None,
    proof_id: str = "proof-1",
    task_id: str = "task-1",
) -> SignalSet:
    """Clean signals by default; pass UNAVAILABLE or other signals to override a domain."""
    return SignalSet(
        proof_id=proof_id,
        task_id=task_id,
        biometric=clean_biometric() if biometric is None else biometric,
        logistics=clean_logistics() if logistics is None else logistics,
        photo_verification=clean_photo() if photo_verification is None else photo_verification,
    )


@pytest.fixture
def clean_signals() -> SignalSet:
    return make_signals()


@pytest.fixture
def biometric_missing_signals() -> SignalSet:
    return make_signals(biometric=UNAVAILABLE)
