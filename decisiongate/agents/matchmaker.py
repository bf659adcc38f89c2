"""
Matchmaker agent: candidate ranking, match explanations, price hints.

Authority A2 (proposal-only). It cannot assign workers or set prices.
Uses the fast route for latency; every method degrades to the
deterministic engine.
"""

import json
from dataclasses import dataclass
from typing import Optional

import structlog
from pydantic import BaseModel, Field

from decisiongate.agents.base import BaseAgent
from decisiongate.audit.log import DecisionAuditLog
from decisiongate.fallback.engine import (
    MAX_RANKED_CANDIDATES,
    DeterministicFallbackEngine,
)
from decisiongate.router.router import CallOptions, ModelRouter, ResponseFormat
from decisiongate.router.routes import Route
from decisiongate.schemas.matching import (
    CandidateInput,
    MatchCandidate,
    MatchExplanation,
    MatchFactors,
    TaskInput,
)
from decisiongate.schemas.pricing import PriceSuggestion
from decisiongate.schemas.proposal import ProposalSource
from decisiongate.validation.schemas import ValidationResult
from decisiongate.validation.validator import ProposalValidator

logger = structlog.get_logger(__name__)


# ── Model response shapes ─────────────────────────────────────────────────


class _AIRanking(BaseModel):
    index: int
    match_score: float
    reasoning: str
    factors: MatchFactors


class _AIRankingResponse(BaseModel):
    rankings: list[_AIRanking] = Field(default_factory=list)


RANK_SYSTEM_PROMPT = f"""You are the Matchmaker agent (A2 authority, proposal only).
Rank candidate workers for a task based on fit. You CANNOT assign workers.

SCORING FACTORS (each 0.0-1.0):
- skill_match: How well candidate skills align with task requirements
- proximity: Location closeness (1.0 = very close, 0.5 = unknown)
- reliability: Based on completion rate and completed task count
- trust_tier: Normalized trust tier (tier/4)
- availability: 1.0 if available, 0.0 if not

RULES:
- match_score = weighted average of factors (skills 0.30, proximity 0.20, reliability 0.25, trust_tier 0.15, availability 0.10)
- Only include candidates with match_score >= 0.30
- Return max {MAX_RANKED_CANDIDATES} candidates, sorted by match_score descending
- Each reasoning must be 1-2 sentences explaining the match

Return JSON: {{ "rankings": [{{ "index": number, "match_score": number, "reasoning": string, "factors": {{ "skill_match": number, "proximity": number, "reliability": number, "trust_tier": number, "availability": number }} }}] }}"""

EXPLAIN_SYSTEM_PROMPT = """You are the Matchmaker agent explaining task recommendations.
Generate a concise, encouraging explanation for why a task was recommended to a worker.

RULES:
- summary: Max 3 sentences, conversational tone, mention specific strengths
- factors: Array of 2-4 short bullet points (skill alignment, earnings, distance, time)
- estimated_earnings_cents: Task price in cents after the ~15% platform fee
- estimated_duration: Human-readable time estimate (e.g., "30-45 min", "1-2 hours")

Return JSON: { "summary": string, "factors": string[], "estimated_earnings_cents": number, "estimated_duration": string }"""

PRICE_SYSTEM_PROMPT = """You are a price suggestion engine. Provide instant price estimates for local tasks.

BOUNDS:
- Minimum: $15 (1500 cents), Maximum: $500 (50000 cents)
- Range spread: typically +-20-30% of suggested price
- Confidence: 0.0-1.0

CATEGORY BENCHMARKS (approximate):
- Delivery/errands: $20-$40
- Cleaning: $30-$60
- Moving/furniture: $60-$120
- Handyman/repair: $80-$200
- Tutoring: $40-$80
- Pet care: $25-$50

Return JSON: { "suggested_price_cents": number, "range_low_cents": number, "range_high_cents": number, "reasoning": string, "confidence": number }"""


@dataclass(frozen=True)
class PriceHintOutcome:
    suggestion: PriceSuggestion
    validation: ValidationResult
    source: ProposalSource


def _clamp_suggestion(data, low: int, high: int) -> PriceSuggestion:
    raw = PriceSuggestion.model_validate(data)
    suggestion = raw.model_copy(update={
        "suggested_price_cents": max(low, min(high, raw.suggested_price_cents)),
        "range_low_cents": max(low, raw.range_low_cents),
        "range_high_cents": min(high, raw.range_high_cents),
    })
    if not suggestion.range_low_cents <= suggestion.suggested_price_cents <= suggestion.range_high_cents:
        raise ValueError("price range does not contain the suggested price")
    return suggestion


class MatchmakerAgent(BaseAgent):
    agent_type = "matchmaker"

    def __init__(
        self,
        router: Optional[ModelRouter],
        fallback: DeterministicFallbackEngine,
        price_validator: ProposalValidator,
        audit_log: Optional[DecisionAuditLog] = None,
    ):
        super().__init__(router, fallback, audit_log)
        self.price_validator = price_validator

    # ===== RANKING =====

    async def rank_candidates(
        self,
        task: TaskInput,
        candidates: list[CandidateInput],
    ) -> list[MatchCandidate]:
        """Top candidates with scores and reasoning. Never assigns anyone."""
        ranked: list[MatchCandidate] = []
        if candidates:
            answer = await self._ask(
                "ranking",
                CallOptions(
                    prompt=_rank_prompt(task, candidates),
                    route=Route.FAST,
                    system_prompt=RANK_SYSTEM_PROMPT,
                    temperature=0.3,
                    max_tokens=2048,
                    timeout_ms=10_000,
                    response_format=ResponseFormat.JSON,
                ),
                lambda data: _from_ai_rankings(_AIRankingResponse.model_validate(data), candidates),
            )
            if answer is not None:
                ranked = answer.value
            else:
                ranked = self.fallback.rank_candidates(task, candidates)

        self._record(
            payload={
                "type": "rank_candidates",
                "candidate_count": len(candidates),
                "result_count": len(ranked),
                "rankings": [{"user_id": c.user_id, "match_score": c.match_score} for c in ranked],
            },
            confidence=ranked[0].match_score if ranked else 0.0,
            reasoning=f'Ranked {len(ranked)} candidates for task "{task.title}"',
            subject={"task_id": task.id},
        )
        return ranked

    async def explain_match(self, task: TaskInput, worker: CandidateInput) -> MatchExplanation:
        """'Why this task?' text for a worker."""
        answer = await self._ask(
            "explanation",
            CallOptions(
                prompt=_explain_prompt(task, worker),
                route=Route.FAST,
                system_prompt=EXPLAIN_SYSTEM_PROMPT,
                temperature=0.3,
                max_tokens=512,
                timeout_ms=8000,
                response_format=ResponseFormat.JSON,
            ),
            MatchExplanation.model_validate,
        )
        if answer is not None:
            explanation, confidence = answer.value, 0.9
        else:
            explanation = self.fallback.explain_match(task, worker)
            confidence = self.fallback.confidence_cap

        self._record(
            payload={"type": "explain_match", "worker_id": worker.user_id},
            confidence=confidence,
            reasoning=explanation.summary,
            subject={"task_id": task.id},
        )
        return explanation

    # ===== PRICING =====

    async def suggest_price(
        self,
        description: str,
        category: Optional[str] = None,
        location: Optional[str] = None,
    ) -> PriceHintOutcome:
        """Instant price hint, validated against the platform price bounds."""
        answer = await self._ask(
            "price_hint",
            CallOptions(
                prompt=(
                    f"Task: {description}\n"
                    f"Category: {category or 'unknown'}\n"
                    f"Location: {location or 'not specified'}"
                ),
                route=Route.FAST,
                system_prompt=PRICE_SYSTEM_PROMPT,
                temperature=0.3,
                max_tokens=256,
                timeout_ms=5000,
                response_format=ResponseFormat.JSON,
            ),
            lambda data: _clamp_suggestion(data, self.fallback.min_price_cents, self.fallback.max_price_cents),
        )
        if answer is not None:
            suggestion, source = answer.value, ProposalSource.AI
        else:
            suggestion, source = self.fallback.price_hint(description, category, location), ProposalSource.FALLBACK

        result = self.price_validator.validate(
            suggestion.to_proposal(source),
            subject={"category": category},
        )
        return PriceHintOutcome(suggestion=suggestion, validation=result, source=source)


def _from_ai_rankings(response: _AIRankingResponse, candidates: list[CandidateInput]) -> list[MatchCandidate]:
    """Drop rankings that point at no candidate or repeat one."""
    seen: set[int] = set()
    ranked: list[MatchCandidate] = []
    for item in response.rankings:
        if not 0 <= item.index < len(candidates) or item.index in seen:
            continue
        seen.add(item.index)
        ranked.append(MatchCandidate(
            user_id=candidates[item.index].user_id,
            rank=len(ranked) + 1,
            match_score=item.match_score,
            reasoning=item.reasoning,
            factors=item.factors,
        ))
        if len(ranked) == MAX_RANKED_CANDIDATES:
            break
    return ranked


def _rank_prompt(task: TaskInput, candidates: list[CandidateInput]) -> str:
    summaries = [
        {
            "index": i,
            "user_id": c.user_id,
            "skills": c.skills,
            "trust_tier": c.trust_tier,
            "completed_tasks": c.completed_tasks,
            "completion_rate": c.completion_rate,
            "average_rating": c.average_rating,
            "is_available": c.is_available,
            "has_location": c.location is not None,
        }
        for i, c in enumerate(candidates)
    ]
    return (
        f'Task: "{task.title}"\n'
        f"Description: {task.description}\n"
        f"Category: {task.category or 'general'}\n"
        f"Location: {task.location or 'not specified'}\n"
        f"Price: ${task.price / 100:.2f}\n"
        f"Requirements: {task.requirements or 'none specified'}\n\n"
        f"Candidates:\n{json.dumps(summaries, indent=2)}"
    )


def _explain_prompt(task: TaskInput, worker: CandidateInput) -> str:
    return (
        f'Task: "{task.title}"\n'
        f"Description: {task.description}\n"
        f"Category: {task.category or 'general'}\n"
        f"Location: {task.location or 'not specified'}\n"
        f"Price: ${task.price / 100:.2f}\n\n"
        f"Worker profile:\n"
        f"- Skills: {', '.join(worker.skills) or 'general'}\n"
        f"- Trust tier: {worker.trust_tier}/4\n"
        f"- Completed tasks: {worker.completed_tasks}\n"
        f"- Completion rate: {worker.completion_rate * 100:.0f}%\n"
        f"- Average rating: {worker.average_rating if worker.average_rating is not None else 'N/A'}"
    )
