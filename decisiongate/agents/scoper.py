"""
Scoper agent: proposes price, XP and difficulty for a new task.

Authority A2 (proposal-only). It cannot set a task's price or XP. Every
proposal, AI or heuristic, goes through the scope validator, which writes
the audit record.
"""

from dataclasses import dataclass
from typing import Optional

import structlog

from decisiongate.agents.base import BaseAgent
from decisiongate.audit.log import DecisionAuditLog
from decisiongate.fallback.engine import DeterministicFallbackEngine, refine_description
from decisiongate.router.router import CallOptions, ModelRouter, ResponseFormat
from decisiongate.router.routes import Route
from decisiongate.schemas.pricing import ScopeInput, ScopeProposal
from decisiongate.schemas.proposal import ProposalSource
from decisiongate.validation.schemas import ValidationResult
from decisiongate.validation.validator import ProposalValidator

logger = structlog.get_logger(__name__)

SYSTEM_PROMPT = """You are the Scoper agent (A2 authority, proposal-only).
Estimate a fair price, XP reward and difficulty for a local gig task. You CANNOT set prices.

BOUNDS:
- suggested_price_cents: integer, 1500-50000
- suggested_xp: integer, suggested_price_cents / 10
- difficulty: "easy" ($15-$50) | "medium" ($50-$150) | "hard" ($150-$500)
- confidence_score: number 0-1
- price_reasoning: at least one full sentence

Return JSON: { "suggested_price_cents": number, "price_reasoning": string, "suggested_xp": number,
"xp_reasoning": string, "difficulty": string, "difficulty_reasoning": string, "confidence_score": number,
"flags": string[], "estimated_duration_minutes": number, "required_capabilities": string[] }"""


@dataclass(frozen=True)
class ScopeOutcome:
    proposal: ScopeProposal          # after auto-correction
    validation: ValidationResult
    source: ProposalSource

    @property
    def accepted(self) -> bool:
        return self.validation.valid


class ScoperAgent(BaseAgent):
    agent_type = "scoper"

    def __init__(
        self,
        router: Optional[ModelRouter],
        fallback: DeterministicFallbackEngine,
        validator: ProposalValidator,
        audit_log: Optional[DecisionAuditLog] = None,
    ):
        super().__init__(router, fallback, audit_log)
        self.validator = validator

    @staticmethod
    def refine_task_description(raw: str) -> str:
        return refine_description(raw)

    async def analyze_task_scope(
        self,
        task: ScopeInput,
        task_id: Optional[str] = None,
    ) -> ScopeOutcome:
        answer = await self._ask(
            "scope",
            CallOptions(
                prompt=_prompt(task),
                route=Route.PRIMARY,
                system_prompt=SYSTEM_PROMPT,
                temperature=0.0,
                response_format=ResponseFormat.JSON,
            ),
            ScopeProposal.model_validate,
        )

        if answer is not None:
            proposal, source = answer.value, ProposalSource.AI
        else:
            proposal, source = self.fallback.scope_task(task), ProposalSource.FALLBACK

        result = self.validator.validate(
            proposal.to_proposal(source),
            subject={"task_id": task_id},
        )
        corrected = ScopeProposal.from_proposal(result.proposal)

        logger.info(
            "task_scope_analyzed",
            task_id=task_id,
            source=source.value,
            valid=result.valid,
            price_cents=corrected.suggested_price_cents,
            difficulty=corrected.difficulty.value,
        )
        return ScopeOutcome(proposal=corrected, validation=result, source=source)


def _prompt(task: ScopeInput) -> str:
    lines = [
        f"Task description: {refine_description(task.description)}",
        f"Category: {task.category or 'general'}",
    ]
    if task.budget_hint_cents:
        lines.append(f"Poster budget hint: ${task.budget_hint_cents / 100:.2f}")
    if task.location:
        lines.append(f"Location: {task.location.city}, {task.location.state}")
    return "\n".join(lines)
