"""
Signal Synthesizer.

Produces one verdict from the biometric, logistics and photo-verification
signal domains. The holistic step may be delegated to a model on the
reasoning route; its answer is schema-validated and, if it fails in any
way, discarded entirely in favour of the deterministic aggregator.

Whatever path produced it, every verdict gets:
- component scores clamped to [0, 1], "unavailable" for missing domains
- the minimum-available-domains guard (never APPROVE on thin evidence)
- availability flags computed here, not by the model
- exactly one audit record
"""

import math
from typing import Any, Optional

import structlog
from pydantic import BaseModel, ValidationError, ValidationInfo, field_validator, model_validator

from decisiongate.audit.log import DecisionAuditLog
from decisiongate.errors import (
    AllProvidersFailed,
    ErrorCode,
    ResponseNotJSON,
    SynthesisInputInsufficient,
)
from decisiongate.fallback.engine import DeterministicFallbackEngine
from decisiongate.metrics import VERDICTS
from decisiongate.router.router import CallOptions, JSONCallResult, ModelRouter
from decisiongate.router.routes import Route
from decisiongate.schemas.proposal import clamp_unit
from decisiongate.synthesis.aggregator import DeterministicAggregator, SynthesisPolicy
from decisiongate.synthesis.schemas import (
    RECOMMENDED_ACTIONS,
    UNAVAILABLE_SCORE,
    BiometricSignals,
    LogisticsSignals,
    PhotoVerificationSignals,
    SignalDomain,
    SignalSet,
    Verdict,
    VerdictSource,
    VerdictType,
)

logger = structlog.get_logger(__name__)

AGENT_TYPE = "judge"

# Higher is more conservative
VERDICT_SEVERITY = {
    VerdictType.APPROVE: 0,
    VerdictType.MANUAL_REVIEW: 1,
    VerdictType.REJECT: 2,
}


def _strict_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ValueError(f"expected a number, got {type(value).__name__}")
    if math.isnan(value):
        raise ValueError("NaN is not a valid score")
    return float(value)


class AIVerdictResponse(BaseModel):
    """
    Shape a model must return to be trusted at all.

    Validate with context={"available_domains": [...]} so every available
    domain is required to carry a component score.
    """

    verdict: VerdictType
    confidence: float
    risk_score: float
    reasoning: str
    component_scores: dict[str, float]
    fraud_flags: list[str]
    recommended_action: str

    @field_validator("confidence", "risk_score", mode="before")
    @classmethod
    def _numeric(cls, v):
        return _strict_number(v)

    @field_validator("component_scores", mode="before")
    @classmethod
    def _numeric_scores(cls, v):
        if not isinstance(v, dict):
            raise ValueError("component_scores must be an object")
        return {str(k): _strict_number(score) for k, score in v.items()}

    @field_validator("reasoning", "recommended_action")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("must not be blank")
        return v

    @model_validator(mode="after")
    def _covers_available_domains(self, info: ValidationInfo):
        available = (info.context or {}).get("available_domains", [])
        missing = [d for d in available if d not in self.component_scores]
        if missing:
            raise ValueError(f"component_scores missing for available domains: {missing}")
        return self


SYSTEM_PROMPT = """You are the Judge agent, the final synthesis step for proof verification (A2 authority, proposal-only).

You combine signals from up to three verification subsystems to produce a single verdict:

1. BIOMETRIC signals: liveness_score (0-1, higher=more live), deepfake_score (0-1, higher=more fake), risk_level
2. LOGISTICS signals: gps_proximity, impossible_travel, time_lock, gps_accuracy (each passed/failed with detail)
3. PHOTO VERIFICATION signals: similarity_score (0-1, scene consistency), completion_score (0-1, task appears done), change_detected (boolean)

A subsystem marked UNAVAILABLE returned no data. Do not treat it as passing or failing.

Return JSON with EXACTLY these fields:
- verdict: "APPROVE" | "MANUAL_REVIEW" | "REJECT"
- confidence: number 0-1
- reasoning: string (human-readable, min 30 chars)
- risk_score: number 0-1 (0=safe, 1=fraud)
- component_scores: object with a number 0-1 for each AVAILABLE subsystem (keys: biometric, logistics, photo_verification; higher=riskier)
- fraud_flags: string[] (e.g., "deepfake_suspected", "impossible_travel", "no_change_detected")
- recommended_action: string (what to do next)

RULES:
- If all signals are clean → APPROVE with high confidence
- If any CRITICAL flags (deepfake > 0.85, impossible travel, GPS far out of range) → lean REJECT
- Ambiguous signals → MANUAL_REVIEW
- Always explain which signals drove the decision"""


def _check(name: str, passed: bool, detail: Optional[str]) -> str:
    line = f"- {name}: {'PASSED' if passed else 'FAILED'}"
    return f"{line} ({detail})" if detail else line


def build_prompt(signals: SignalSet) -> str:
    lines = [
        "Synthesize a verdict for this proof submission:",
        "",
        f"PROOF: {signals.proof_id or 'unknown'} (Task: {signals.task_id or 'unknown'})",
        "",
        "BIOMETRIC SIGNALS:",
    ]

    bio = signals.biometric
    if isinstance(bio, BiometricSignals):
        lines += [
            f"- Liveness score: {bio.liveness_score}",
            f"- Deepfake score: {bio.deepfake_score}",
            f"- Risk level: {bio.risk_level.value}",
        ]
    else:
        lines.append("- UNAVAILABLE")

    lines += ["", "LOGISTICS SIGNALS:"]
    lg = signals.logistics
    if isinstance(lg, LogisticsSignals):
        gps = lg.gps_proximity
        travel = lg.impossible_travel
        lock = lg.time_lock
        lines += [
            _check("GPS proximity", gps.passed,
                   f"{gps.distance_meters:.0f}m" if gps.distance_meters is not None else None),
            _check("Impossible travel", travel.passed,
                   f"{travel.speed_kmh:.0f} km/h" if travel.speed_kmh is not None else None),
            _check("Time lock", lock.passed,
                   f"{lock.time_delta_seconds:g}s delta" if lock.time_delta_seconds is not None else None),
            _check("GPS accuracy", lg.gps_accuracy.passed, f"{lg.gps_accuracy.accuracy_meters:g}m"),
        ]
    else:
        lines.append("- UNAVAILABLE")

    lines += ["", "PHOTO VERIFICATION SIGNALS:"]
    photo = signals.photo_verification
    if isinstance(photo, PhotoVerificationSignals):
        lines += [
            f"- Similarity score: {photo.similarity_score}",
            f"- Completion score: {photo.completion_score}",
            f"- Change detected: {str(photo.change_detected).lower()}",
        ]
    else:
        lines.append("- UNAVAILABLE")

    lines += ["", "Produce your verdict."]
    return "\n".join(lines)


class SignalSynthesizer:
    """
    Verdict synthesis with an optional model-backed path.

    use_ai=False makes the deterministic aggregator the primary path
    (source="deterministic"). With use_ai=True, an unconfigured router or a
    failed/invalid model answer routes to the fallback engine instead
    (source="fallback", confidence capped).
    """

    def __init__(
        self,
        router: Optional[ModelRouter] = None,
        fallback: Optional[DeterministicFallbackEngine] = None,
        policy: Optional[SynthesisPolicy] = None,
        audit_log: Optional[DecisionAuditLog] = None,
        use_ai: bool = True,
        route: Route = Route.REASONING,
        timeout_ms: int = 15_000,
    ):
        self.policy = policy or SynthesisPolicy()
        self.router = router
        self.fallback = fallback or DeterministicFallbackEngine(policy=self.policy)
        self.audit_log = audit_log
        self.use_ai = use_ai
        self.route = route
        self.timeout_ms = timeout_ms
        self._aggregator = DeterministicAggregator(self.policy)

    async def synthesize_verdict(self, signals: SignalSet) -> Verdict:
        available = signals.available_domains()
        if not available:
            self._audit_insufficient(signals)
            raise SynthesisInputInsufficient(subject_id=signals.proof_id)

        if not self.use_ai:
            verdict = self._aggregator.aggregate(signals, source=VerdictSource.DETERMINISTIC)
        elif self.router is None or not self.router.is_configured():
            DeterministicFallbackEngine.record_invocation("verdict", "unconfigured")
            verdict = self.fallback.synthesize_verdict(signals)
        else:
            verdict = await self._ai_verdict(signals, available)
            if verdict is None:
                verdict = self.fallback.synthesize_verdict(signals)

        VERDICTS.labels(verdict=verdict.verdict.value, source=verdict.source.value).inc()
        logger.info(
            "verdict_synthesized",
            proof_id=signals.proof_id,
            verdict=verdict.verdict.value,
            source=verdict.source.value,
            provider=verdict.provider,
            risk_score=round(verdict.risk_score, 4),
            confidence=round(verdict.confidence, 4),
            domains_available=len(available),
        )
        self._audit(signals, verdict)
        return verdict

    # ── AI path ──────────────────────────────────────────────────────────

    async def _ai_verdict(
        self,
        signals: SignalSet,
        available: list[SignalDomain],
    ) -> Optional[Verdict]:
        options = CallOptions(
            prompt=build_prompt(signals),
            route=self.route,
            system_prompt=SYSTEM_PROMPT,
            temperature=0.1,
            timeout_ms=self.timeout_ms,
            enable_cache=False,
        )
        try:
            result = await self.router.call_json(options)
            response = AIVerdictResponse.model_validate(
                result.data,
                context={"available_domains": [d.value for d in available]},
            )
        except AllProvidersFailed as exc:
            logger.warning("ai_verdict_unavailable", proof_id=signals.proof_id, error=str(exc))
            DeterministicFallbackEngine.record_invocation("verdict", "providers_failed")
            return None
        except (ResponseNotJSON, ValidationError) as exc:
            logger.warning("ai_verdict_rejected", proof_id=signals.proof_id, error=str(exc))
            DeterministicFallbackEngine.record_invocation("verdict", "invalid_response")
            return None

        # Guard handled in _accept; here only the thresholds on the model's own risk.
        expected = self.policy.decide(clamp_unit(response.risk_score), len(SignalDomain))
        if VERDICT_SEVERITY[response.verdict] < VERDICT_SEVERITY[expected]:
            logger.warning(
                "ai_verdict_inconsistent",
                proof_id=signals.proof_id,
                verdict=response.verdict.value,
                risk_score=response.risk_score,
                expected=expected.value,
            )
            DeterministicFallbackEngine.record_invocation("verdict", "invalid_response")
            return None

        return self._accept(response, result, signals, available)

    def _accept(
        self,
        response: AIVerdictResponse,
        result: JSONCallResult,
        signals: SignalSet,
        available: list[SignalDomain],
    ) -> Verdict:
        """Apply pipeline invariants on top of a schema-valid model answer."""
        n_available = len(available)
        decision = response.verdict
        recommended = response.recommended_action
        reasoning = response.reasoning

        if decision == VerdictType.APPROVE and not self.policy.guard_satisfied(n_available):
            decision = VerdictType.MANUAL_REVIEW
            recommended = RECOMMENDED_ACTIONS[decision]
            reasoning += (
                f" [Downgraded to MANUAL_REVIEW: only {n_available} of "
                f"{len(SignalDomain)} signal domains available.]"
            )

        confidence = clamp_unit(response.confidence)
        if not self.policy.guard_satisfied(n_available):
            confidence = min(confidence, self.policy.reduced_confidence_ceiling)

        component_scores: dict[str, object] = {}
        for domain in SignalDomain:
            if domain in available:
                component_scores[domain.value] = clamp_unit(response.component_scores[domain.value])
            else:
                component_scores[domain.value] = UNAVAILABLE_SCORE

        return Verdict(
            verdict=decision,
            confidence=confidence,
            risk_score=clamp_unit(response.risk_score),
            component_scores=component_scores,
            risk_flags=list(dict.fromkeys(response.fraud_flags)),
            availability_flags=[f"{d.value}_unavailable" for d in signals.unavailable_domains()],
            recommended_action=recommended,
            reasoning=reasoning,
            source=VerdictSource.AI,
            provider=result.provider,
            domains_available=available,
        )

    # ── Audit ────────────────────────────────────────────────────────────

    def _subject(self, signals: SignalSet) -> dict:
        return {"proof_id": signals.proof_id, "task_id": signals.task_id}

    def _audit(self, signals: SignalSet, verdict: Verdict) -> None:
        if self.audit_log is None:
            return
        accepted = {VerdictType.APPROVE: True, VerdictType.REJECT: False}.get(verdict.verdict)
        self.audit_log.record_decision(
            AGENT_TYPE,
            payload=verdict.to_audit_payload(),
            confidence=verdict.confidence,
            reasoning=verdict.reasoning,
            accepted=accepted,
            subject=self._subject(signals),
        )

    def _audit_insufficient(self, signals: SignalSet) -> None:
        logger.error("synthesis_input_insufficient", proof_id=signals.proof_id)
        if self.audit_log is None:
            return
        self.audit_log.record_decision(
            AGENT_TYPE,
            payload={
                "error": ErrorCode.SYNTHESIS_INPUT_INSUFFICIENT.value,
                "domains_available": [],
                "availability_flags": [f"{d.value}_unavailable" for d in SignalDomain],
            },
            confidence=0.0,
            reasoning="No signal domains available; no verdict produced.",
            accepted=False,
            subject=self._subject(signals),
        )
