"""
Decision Pipeline: explicit wiring of router, fallback, validators,
synthesizer, audit log and agents.

Nothing here is a module-level singleton. Build one per process with
DecisionPipeline.from_settings() and close it with aclose().
"""

from typing import Optional

import httpx
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine

from decisiongate.agents import DisputeAgent, MatchmakerAgent, ScoperAgent
from decisiongate.audit.log import DecisionAuditLog
from decisiongate.audit.schemas import AuthorityLevel
from decisiongate.audit.sinks import AuditSink, SqlAlchemyAuditSink
from decisiongate.config import Settings, settings as default_settings
from decisiongate.db.engine import create_engine_from_settings, create_session_factory
from decisiongate.fallback.engine import DeterministicFallbackEngine
from decisiongate.router.cache import RedisResponseCache, ResponseCache
from decisiongate.router.router import ModelRouter
from decisiongate.synthesis.aggregator import SynthesisPolicy
from decisiongate.synthesis.schemas import SignalSet, Verdict
from decisiongate.synthesis.synthesizer import SignalSynthesizer
from decisiongate.validation.domains import price_hint_rules, scope_rules
from decisiongate.validation.validator import ProposalValidator

logger = structlog.get_logger(__name__)

HTTP_CLIENT_TIMEOUT_SECONDS = 60.0


class DecisionPipeline:
    def __init__(
        self,
        router: ModelRouter,
        audit_log: DecisionAuditLog,
        fallback: DeterministicFallbackEngine,
        synthesizer: SignalSynthesizer,
        scope_validator: ProposalValidator,
        price_validator: ProposalValidator,
    ):
        self.router = router
        self.audit_log = audit_log
        self.fallback = fallback
        self.synthesizer = synthesizer
        self.scope_validator = scope_validator
        self.price_validator = price_validator

        self.scoper = ScoperAgent(router, fallback, scope_validator, audit_log)
        self.matchmaker = MatchmakerAgent(router, fallback, price_validator, audit_log)
        self.disputes = DisputeAgent(router, fallback, audit_log)

        self._owned_http_client: Optional[httpx.AsyncClient] = None
        self._owned_cache: Optional[RedisResponseCache] = None
        self._owned_engine: Optional[AsyncEngine] = None

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        cache: Optional[ResponseCache] = None,
        audit_sink: Optional[AuditSink] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ) -> "DecisionPipeline":
        settings = settings or default_settings

        owned_client = None
        if http_client is None:
            owned_client = httpx.AsyncClient(timeout=HTTP_CLIENT_TIMEOUT_SECONDS)
            http_client = owned_client

        owned_cache = None
        if cache is None:
            owned_cache = RedisResponseCache(settings.redis_url)
            cache = owned_cache

        owned_engine = None
        if audit_sink is None:
            owned_engine = create_engine_from_settings(settings)
            audit_sink = SqlAlchemyAuditSink(create_session_factory(owned_engine))

        router = ModelRouter.from_settings(settings, cache=cache, http_client=http_client)
        audit_log = DecisionAuditLog(
            audit_sink,
            authority_level=AuthorityLevel(settings.audit_authority_level),
        )
        policy = SynthesisPolicy.from_settings(settings)
        fallback = DeterministicFallbackEngine(
            policy=policy,
            confidence_cap=settings.fallback_confidence_cap,
            min_price_cents=settings.scope_min_price_cents,
            max_price_cents=settings.scope_max_price_cents,
        )

        pipeline = cls(
            router=router,
            audit_log=audit_log,
            fallback=fallback,
            synthesizer=SignalSynthesizer(
                router=router,
                fallback=fallback,
                policy=policy,
                audit_log=audit_log,
                use_ai=settings.synthesis_use_ai,
                timeout_ms=settings.synthesis_timeout_ms,
            ),
            scope_validator=ProposalValidator(scope_rules(settings), audit_log, agent_type="scoper"),
            price_validator=ProposalValidator(price_hint_rules(settings), audit_log, agent_type="matchmaker"),
        )
        pipeline._owned_http_client = owned_client
        pipeline._owned_cache = owned_cache
        pipeline._owned_engine = owned_engine

        logger.info(
            "decision_pipeline_ready",
            ai_configured=router.is_configured(),
            synthesis_use_ai=settings.synthesis_use_ai,
            environment=settings.environment,
        )
        return pipeline

    async def synthesize_verdict(self, signals: SignalSet) -> Verdict:
        return await self.synthesizer.synthesize_verdict(signals)

    async def aclose(self) -> None:
        """Drain pending audit writes, then release owned resources."""
        await self.audit_log.drain()
        if self._owned_http_client is not None:
            await self._owned_http_client.aclose()
        if self._owned_cache is not None:
            await self._owned_cache.close()
        if self._owned_engine is not None:
            await self._owned_engine.dispose()
        logger.info("decision_pipeline_closed", audit_failures=self.audit_log.failure_count)
