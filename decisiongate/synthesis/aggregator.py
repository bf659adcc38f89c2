"""
Deterministic Verdict Aggregator.

Combines per-domain risk scores into one verdict using:
- Configurable domain weights (must sum to 1.0)
- Renormalization over the domains that are actually available
- A minimum-available-domains guard that forbids APPROVE on thin evidence

Formula:
  risk = Σ(w_i × s_i) / Σ(w_i)   over available domains i

Every output is traceable to its per-domain component scores.
"""

import math
from dataclasses import dataclass, field
from typing import Optional

import structlog

from decisiongate.config import Settings
from decisiongate.errors import SynthesisInputInsufficient
from decisiongate.synthesis.schemas import (
    RECOMMENDED_ACTIONS,
    UNAVAILABLE_SCORE,
    SignalDomain,
    SignalSet,
    Verdict,
    VerdictSource,
    VerdictType,
)
from decisiongate.synthesis.scorers import score_domain

logger = structlog.get_logger(__name__)


# ── Configuration ─────────────────────────────────────────────────────────

DEFAULT_DOMAIN_WEIGHTS: dict[str, float] = {
    SignalDomain.BIOMETRIC.value: 0.35,
    SignalDomain.LOGISTICS.value: 0.35,
    SignalDomain.PHOTO_VERIFICATION.value: 0.30,
}

WEIGHT_SUM_TOLERANCE = 1e-6


@dataclass(frozen=True)
class SynthesisPolicy:
    """Weights, thresholds and guard for one synthesizer instance."""
    weights: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_DOMAIN_WEIGHTS))
    approve_threshold: float = 0.30     # risk < this → APPROVE
    reject_threshold: float = 0.70      # risk > this → REJECT
    min_available_domains: int = 2
    reduced_confidence_ceiling: float = 0.50

    def __post_init__(self):
        known = {d.value for d in SignalDomain}
        if set(self.weights) != known:
            raise ValueError(f"Domain weights must cover exactly {sorted(known)}, got {sorted(self.weights)}")
        if any(w <= 0 for w in self.weights.values()):
            raise ValueError("Domain weights must be positive")
        total = sum(self.weights.values())
        if not math.isclose(total, 1.0, abs_tol=WEIGHT_SUM_TOLERANCE):
            raise ValueError(f"Domain weights must sum to 1.0, got {total:.6f}")
        if not 0 <= self.approve_threshold <= self.reject_threshold <= 1:
            raise ValueError("Thresholds must satisfy 0 <= approve <= reject <= 1")
        if not 1 <= self.min_available_domains <= len(known):
            raise ValueError(f"min_available_domains must be between 1 and {len(known)}")

    @classmethod
    def from_settings(cls, settings: Settings) -> "SynthesisPolicy":
        return cls(
            weights=dict(settings.synthesis_domain_weights),
            approve_threshold=settings.synthesis_approve_threshold,
            reject_threshold=settings.synthesis_reject_threshold,
            min_available_domains=settings.synthesis_min_available_domains,
            reduced_confidence_ceiling=settings.synthesis_reduced_confidence_ceiling,
        )

    def guard_satisfied(self, n_available: int) -> bool:
        return n_available >= self.min_available_domains

    def decide(self, risk: float, n_available: int) -> VerdictType:
        """Threshold rule, then the guard: thin evidence can never APPROVE."""
        if risk > self.reject_threshold:
            return VerdictType.REJECT
        if risk < self.approve_threshold and self.guard_satisfied(n_available):
            return VerdictType.APPROVE
        return VerdictType.MANUAL_REVIEW

    def confidence_for(self, risk: float, n_available: int) -> float:
        confidence = 1.0 - risk
        if not self.guard_satisfied(n_available):
            confidence = min(confidence, self.reduced_confidence_ceiling)
        return confidence


def effective_weights(
    weights: dict[str, float],
    available: list[SignalDomain],
) -> dict[str, float]:
    """
    Redistribute weight proportionally over the available domains.

    The result always sums to 1.0. An unavailable domain contributes nothing,
    neither zero risk nor full risk.
    """
    if not available:
        raise SynthesisInputInsufficient()
    keys = [SignalDomain(d).value for d in available]
    total = sum(weights[k] for k in keys)
    return {k: weights[k] / total for k in keys}


class DeterministicAggregator:
    """Weighted-scoring verdict over whatever domains are available."""

    def __init__(self, policy: Optional[SynthesisPolicy] = None):
        self.policy = policy or SynthesisPolicy()

    def aggregate(
        self,
        signals: SignalSet,
        source: VerdictSource = VerdictSource.DETERMINISTIC,
        confidence_cap: Optional[float] = None,
    ) -> Verdict:
        available = signals.available_domains()
        weights = effective_weights(self.policy.weights, available)

        component_scores: dict[str, object] = {}
        risk_flags: list[str] = []
        risk = 0.0
        for domain in SignalDomain:
            if domain not in available:
                component_scores[domain.value] = UNAVAILABLE_SCORE
                continue
            scored = score_domain(domain, signals.get(domain))
            component_scores[domain.value] = scored.score
            risk_flags.extend(scored.flags)
            risk += weights[domain.value] * scored.score

        risk = max(0.0, min(1.0, risk))
        n_available = len(available)
        decision = self.policy.decide(risk, n_available)
        confidence = self.policy.confidence_for(risk, n_available)
        if confidence_cap is not None:
            confidence = min(confidence, confidence_cap)

        availability_flags = [f"{d.value}_unavailable" for d in signals.unavailable_domains()]

        verdict = Verdict(
            verdict=decision,
            confidence=confidence,
            risk_score=risk,
            component_scores=component_scores,
            risk_flags=risk_flags,
            availability_flags=availability_flags,
            recommended_action=RECOMMENDED_ACTIONS[decision],
            reasoning=_explain(risk, component_scores, risk_flags, availability_flags, self.policy, n_available),
            source=source,
            domains_available=available,
        )

        logger.debug(
            "verdict_aggregated",
            verdict=decision.value,
            risk_score=round(risk, 4),
            domains_available=n_available,
            weights_used={k: round(v, 4) for k, v in weights.items()},
        )
        return verdict


def _explain(
    risk: float,
    component_scores: dict[str, object],
    risk_flags: list[str],
    availability_flags: list[str],
    policy: SynthesisPolicy,
    n_available: int,
) -> str:
    parts = []
    if risk_flags:
        parts.append(f"Flags detected: {', '.join(risk_flags)}.")
    else:
        parts.append("All available verification signals passed.")
    parts.append(f"Weighted risk score: {risk * 100:.0f}%.")

    breakdown = []
    for domain, score in component_scores.items():
        label = domain.replace("_", " ").capitalize()
        if score == UNAVAILABLE_SCORE:
            breakdown.append(f"{label}: unavailable")
        else:
            breakdown.append(f"{label}: {score * 100:.0f}%")
    parts.append(", ".join(breakdown) + ".")

    if availability_flags:
        parts.append(f"Missing signal domains: {', '.join(availability_flags)}.")
    if not policy.guard_satisfied(n_available):
        parts.append(
            f"Only {n_available} of {len(SignalDomain)} domains available; "
            "automatic approval is disabled."
        )
    return " ".join(parts)
