"""
Deterministic Fallback Engine.

Pure, offline stand-ins for every AI-backed capability. Each takes the same
structured input the AI path receives and returns the same shape and bounds.

Confidence of fallback output is capped (FALLBACK_CONFIDENCE_CAP, default
0.55), below the validator's acceptance floor, so heuristic output leans
toward human review instead of silent acceptance.
"""

import re
from typing import Optional

import structlog

from decisiongate.config import Settings
from decisiongate.metrics import FALLBACK_INVOCATIONS
from decisiongate.schemas.disputes import DisputeContext, EvidenceRequest
from decisiongate.schemas.matching import (
    CandidateInput,
    MatchCandidate,
    MatchExplanation,
    MatchFactors,
    TaskInput,
)
from decisiongate.schemas.pricing import Difficulty, PriceSuggestion, ScopeInput, ScopeProposal
from decisiongate.synthesis.aggregator import DeterministicAggregator, SynthesisPolicy
from decisiongate.synthesis.schemas import SignalSet, Verdict, VerdictSource

logger = structlog.get_logger(__name__)


# ── Pricing constants (integer cents) ─────────────────────────────────────

MIN_PRICE_CENTS = 1500
MAX_PRICE_CENTS = 50_000
DEFAULT_PRICE_CENTS = 3000

DIFFICULTY_PRICE_BANDS: list[tuple[Difficulty, int, int]] = [
    (Difficulty.EASY, 1500, 5000),
    (Difficulty.MEDIUM, 5000, 15_000),
    (Difficulty.HARD, 15_000, 50_000),
]

# First match wins: (keywords, price, difficulty, capabilities, flags)
SCOPE_KEYWORD_RULES: list[tuple[tuple[str, ...], int, Difficulty, list[str], list[str]]] = [
    (("delivery", "pickup"), 2500, Difficulty.EASY, ["vehicle"], []),
    (("moving", "furniture"), 8000, Difficulty.MEDIUM, ["vehicle", "strength"], ["heavy_lifting"]),
    (("clean", "organize"), 4000, Difficulty.EASY, [], []),
    (("handyman", "repair"), 10_000, Difficulty.HARD, ["tools", "skills"], ["specialized_skill"]),
]
URGENCY_KEYWORDS = ("urgent", "asap")
URGENCY_MULTIPLIER = 1.5

CATEGORY_BASE_PRICES: dict[str, int] = {
    "delivery": 2500,
    "moving": 8000,
    "cleaning": 4000,
    "handyman": 10_000,
    "errands": 2000,
    "gardening": 5000,
    "tutoring": 6000,
    "tech_help": 7000,
    "pet_care": 3500,
    "general": 3000,
}

# (keywords, multiplier, reason)
PRICE_HINT_MULTIPLIERS: list[tuple[tuple[str, ...], float, str]] = [
    (("urgent", "asap", "rush"), 1.4, "urgency premium +40%"),
    (("heavy", "furniture", "appliance"), 1.3, "heavy lifting premium +30%"),
    (("multiple", "several", "all day"), 1.5, "extended scope premium +50%"),
]
PRICE_RANGE_SPREAD = 0.25

# ── Matching constants ────────────────────────────────────────────────────

MATCH_WEIGHTS: dict[str, float] = {
    "skill_match": 0.30,
    "proximity": 0.20,
    "reliability": 0.25,
    "trust_tier": 0.15,
    "availability": 0.10,
}
MIN_MATCH_SCORE = 0.30
MAX_RANKED_CANDIDATES = 10
PLATFORM_FEE = 0.15


def difficulty_for_price(price_cents: int) -> Difficulty:
    """Band a price into a difficulty tier (inclusive upper bounds)."""
    for difficulty, _, upper in DIFFICULTY_PRICE_BANDS:
        if price_cents <= upper:
            return difficulty
    return Difficulty.HARD


class DeterministicFallbackEngine:
    """Heuristic equivalents of the AI-backed operations."""

    def __init__(
        self,
        policy: Optional[SynthesisPolicy] = None,
        confidence_cap: float = 0.55,
        min_price_cents: int = MIN_PRICE_CENTS,
        max_price_cents: int = MAX_PRICE_CENTS,
    ):
        if min_price_cents > max_price_cents:
            raise ValueError("min_price_cents must not exceed max_price_cents")
        self.confidence_cap = confidence_cap
        self.min_price_cents = min_price_cents
        self.max_price_cents = max_price_cents
        self._aggregator = DeterministicAggregator(policy)

    @classmethod
    def from_settings(cls, settings: Settings) -> "DeterministicFallbackEngine":
        return cls(
            policy=SynthesisPolicy.from_settings(settings),
            confidence_cap=settings.fallback_confidence_cap,
            min_price_cents=settings.scope_min_price_cents,
            max_price_cents=settings.scope_max_price_cents,
        )

    def _cap(self, confidence: float) -> float:
        return min(confidence, self.confidence_cap)

    def clamp_price(self, price_cents: float) -> int:
        return int(max(self.min_price_cents, min(self.max_price_cents, round(price_cents))))

    @staticmethod
    def record_invocation(capability: str, reason: str) -> None:
        FALLBACK_INVOCATIONS.labels(capability=capability, reason=reason).inc()
        logger.info("fallback_invoked", capability=capability, reason=reason)

    # ===== TASK SCOPING =====

    def scope_task(self, task: ScopeInput) -> ScopeProposal:
        """Keyword pricing heuristic → price, XP, difficulty, duration."""
        description = task.description.lower()
        price: float = DEFAULT_PRICE_CENTS
        flags: list[str] = []
        capabilities: list[str] = []

        for keywords, rule_price, _, rule_caps, rule_flags in SCOPE_KEYWORD_RULES:
            if any(k in description for k in keywords):
                price = rule_price
                capabilities.extend(rule_caps)
                flags.extend(rule_flags)
                break
        else:
            if any(k in description for k in URGENCY_KEYWORDS):
                price *= URGENCY_MULTIPLIER
                flags.append("urgent")

        if task.budget_hint_cents:
            price = round((price + task.budget_hint_cents) / 2)

        price_cents = self.clamp_price(price)
        xp = round(price_cents / 10)
        difficulty = difficulty_for_price(price_cents)

        confidence = 0.75
        if len(description) < 20:
            confidence = 0.50
            flags.append("ambiguous_description")
        elif len(description) > 100:
            confidence = 0.90

        reasoning = (
            f"Based on task category ({task.category or 'general'}), estimated effort, "
            f"and market rates."
        )
        if "urgent" in flags:
            reasoning += " Includes 50% urgency premium."

        tier = "<$50" if price_cents <= 5000 else "$50-$150" if price_cents <= 15_000 else "$150+"
        return ScopeProposal(
            suggested_price_cents=price_cents,
            price_reasoning=reasoning,
            suggested_xp=xp,
            xp_reasoning=f"Base XP: {xp} (100 XP per dollar earned)",
            difficulty=difficulty,
            difficulty_reasoning=f"Task complexity and required skills match {difficulty.value} tier ({tier})",
            confidence_score=self._cap(confidence),
            flags=flags,
            estimated_duration_minutes=round(price_cents / 100 * 2.5),
            required_capabilities=capabilities,
        )

    def price_hint(
        self,
        description: str,
        category: Optional[str] = None,
        location: Optional[str] = None,
    ) -> PriceSuggestion:
        """Instant category + keyword price hint with a ±25% range."""
        text = description.lower()
        base: float = CATEGORY_BASE_PRICES.get(category or "", CATEGORY_BASE_PRICES["general"])
        confidence = 0.65
        reasons: list[str] = []

        if category and category in CATEGORY_BASE_PRICES:
            confidence += 0.10
            reasons.append(f'Category "{category}" base rate')

        for keywords, multiplier, reason in PRICE_HINT_MULTIPLIERS:
            if any(k in text for k in keywords):
                base = round(base * multiplier)
                reasons.append(reason)

        if len(text) >= 100:
            confidence += 0.10
        elif len(text) < 30:
            confidence -= 0.15
            reasons.append("short description, lower confidence")

        price_cents = self.clamp_price(base)
        confidence = max(0.30, min(1.0, confidence))

        if reasons:
            reasoning = f"Price based on: {', '.join(reasons)}"
        else:
            reasoning = f"Standard rate for {category or 'general'} tasks in this area"

        return PriceSuggestion(
            suggested_price_cents=price_cents,
            range_low_cents=max(self.min_price_cents, round(price_cents * (1 - PRICE_RANGE_SPREAD))),
            range_high_cents=min(self.max_price_cents, round(price_cents * (1 + PRICE_RANGE_SPREAD))),
            reasoning=reasoning,
            confidence=self._cap(confidence),
        )

    # ===== MATCHING =====

    def rank_candidates(
        self,
        task: TaskInput,
        candidates: list[CandidateInput],
    ) -> list[MatchCandidate]:
        """Weighted-factor ranking. Keeps scores >= 0.30, top 10."""
        task_words = f"{task.title} {task.description} {task.category or ''}".lower().split()

        scored = []
        for candidate in candidates:
            factors = MatchFactors(
                skill_match=round(_skill_overlap(task_words, candidate.skills), 2),
                proximity=0.7 if candidate.location else 0.5,
                reliability=round(
                    candidate.completion_rate * 0.7 + min(1.0, candidate.completed_tasks / 20) * 0.3, 2
                ),
                trust_tier=round(candidate.trust_tier / 4, 2),
                availability=1.0 if candidate.is_available else 0.0,
            )
            score = sum(getattr(factors, name) * w for name, w in MATCH_WEIGHTS.items())
            scored.append((score, candidate, factors))

        # Stable sort keeps input order among ties
        scored.sort(key=lambda item: item[0], reverse=True)
        kept = [item for item in scored if item[0] >= MIN_MATCH_SCORE][:MAX_RANKED_CANDIDATES]

        return [
            MatchCandidate(
                user_id=candidate.user_id,
                rank=rank,
                match_score=round(score, 2),
                reasoning=(
                    f"Deterministic match: skill={factors.skill_match * 100:.0f}%, "
                    f"reliability={factors.reliability * 100:.0f}%, "
                    f"trust tier {candidate.trust_tier}/4"
                ),
                factors=factors,
            )
            for rank, (score, candidate, factors) in enumerate(kept, start=1)
        ]

    def explain_match(self, task: TaskInput, worker: CandidateInput) -> MatchExplanation:
        earnings = round(task.price * (1 - PLATFORM_FEE))
        minutes = round(task.price / 100 * 2.5)

        factors = []
        if worker.skills:
            factors.append(f"Your skills in {' and '.join(worker.skills[:2])} align with this task")
        if worker.completion_rate >= 0.90:
            factors.append(
                f"Your {worker.completion_rate * 100:.0f}% completion rate makes you a reliable match"
            )
        if worker.trust_tier >= 3:
            factors.append(f"Trust tier {worker.trust_tier}/4 gives you priority access")
        factors.append(f"Estimated earnings: ${earnings / 100:.2f} after platform fee")

        if minutes < 60:
            duration = f"{minutes}-{minutes + 15} min"
        else:
            hours, remainder = divmod(minutes, 60)
            if remainder:
                duration = f"{hours}-{hours + 1} hours"
            else:
                duration = f"~{hours} hour{'s' if hours > 1 else ''}"

        return MatchExplanation(
            summary=(
                f"This {task.category or 'task'} is a good fit based on your profile and past "
                f"performance. You could earn ${earnings / 100:.2f} in about {duration}."
            ),
            factors=factors,
            estimated_earnings_cents=earnings,
            estimated_duration=duration,
        )

    # ===== VERIFICATION =====

    def synthesize_verdict(self, signals: SignalSet) -> Verdict:
        """Weighted aggregate standing in for the AI judge; confidence capped."""
        return self._aggregator.aggregate(
            signals,
            source=VerdictSource.FALLBACK,
            confidence_cap=self.confidence_cap,
        )

    # ===== DISPUTES =====

    def evidence_questions(self, ctx: DisputeContext) -> EvidenceRequest:
        poster = [
            f'Please describe what went wrong with the task "{ctx.task_title}".',
            "Do you have any photos or screenshots that support your claim?",
            "Did you communicate with the worker about the issue before filing this dispute?",
        ]
        worker = [
            f'Please describe how you completed the task "{ctx.task_title}".',
            "Do you have any photos or proof of completion?",
            "Were there any issues or changes to the original task requirements?",
        ]

        reason = ctx.reason.lower()
        if "quality" in reason or "incomplete" in reason:
            poster.append("What specific aspects of the work did not meet your expectations?")
            worker.append("Were there any constraints that prevented you from completing the task fully?")
        if "no-show" in reason or "absent" in reason:
            poster.append("At what time and location were you expecting the worker?")
            worker.append("Did you arrive at the task location? If so, at what time?")
        if "damage" in reason or "broken" in reason:
            poster.append("Please provide photos of the damage and an estimate of repair costs.")
            worker.append("Were there any pre-existing conditions or fragile items you were not warned about?")

        return EvidenceRequest(
            poster_questions=poster,
            worker_questions=worker,
            confidence=self._cap(0.8),
        )


def _skill_overlap(task_words: list[str], skills: list[str]) -> float:
    """Share of the candidate's skills that appear in the task text (0.5 if none listed)."""
    if not skills:
        return 0.5
    lowered = [s.lower() for s in skills]
    matched = [
        skill for skill in lowered
        if any(skill in word or word in skill for word in task_words)
    ]
    return len(matched) / len(lowered)


def refine_description(raw: str, limit: int = 500) -> str:
    """Collapse whitespace and truncate."""
    return re.sub(r"\s+", " ", raw.strip())[:limit]
