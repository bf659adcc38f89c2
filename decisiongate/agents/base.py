"""
Shared plumbing for proposal-only (A2) agents.

An agent asks the router for structured JSON, parses it into a typed
model, and on any failure returns None so the caller can substitute the
deterministic fallback. A user never sees a raw provider error.
"""

from dataclasses import dataclass
from typing import Any, Callable, Generic, Optional, TypeVar

import structlog

from decisiongate.audit.log import DecisionAuditLog
from decisiongate.errors import AllProvidersFailed, ResponseNotJSON
from decisiongate.fallback.engine import DeterministicFallbackEngine
from decisiongate.router.router import CallOptions, ModelRouter

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class AgentAnswer(Generic[T]):
    value: T
    provider: str


class BaseAgent:
    agent_type = "agent"

    def __init__(
        self,
        router: Optional[ModelRouter],
        fallback: DeterministicFallbackEngine,
        audit_log: Optional[DecisionAuditLog] = None,
    ):
        self.router = router
        self.fallback = fallback
        self.audit_log = audit_log

    @property
    def ai_available(self) -> bool:
        return self.router is not None and self.router.is_configured()

    async def _ask(
        self,
        capability: str,
        options: CallOptions,
        parse: Callable[[Any], T],
    ) -> Optional[AgentAnswer[T]]:
        """Call the model and parse its JSON. None means: use the fallback."""
        if not self.ai_available:
            DeterministicFallbackEngine.record_invocation(capability, "unconfigured")
            return None

        try:
            result = await self.router.call_json(options)
            value = parse(result.data)
        except AllProvidersFailed as exc:
            logger.warning("agent_ai_failed", agent=self.agent_type, capability=capability, error=str(exc))
            DeterministicFallbackEngine.record_invocation(capability, "providers_failed")
            return None
        except (ResponseNotJSON, ValueError) as exc:  # pydantic ValidationError is a ValueError
            logger.warning("agent_ai_rejected", agent=self.agent_type, capability=capability, error=str(exc))
            DeterministicFallbackEngine.record_invocation(capability, "invalid_response")
            return None

        logger.info("agent_ai_accepted", agent=self.agent_type, capability=capability, provider=result.provider)
        return AgentAnswer(value=value, provider=result.provider)

    def _record(
        self,
        *,
        payload: dict,
        confidence: float,
        reasoning: str,
        subject: Optional[dict] = None,
    ) -> None:
        """Pending (accepted=None) audit record: A2 output awaits a human or domain check."""
        if self.audit_log is None:
            return
        self.audit_log.record_decision(
            self.agent_type,
            payload=payload,
            confidence=confidence,
            reasoning=reasoning,
            accepted=None,
            subject=subject,
        )
