"""
Per-domain risk scorers.

Each scorer maps one domain's signals to a risk in [0, 1] (higher = riskier)
plus the risk flags that drove it. Pure functions, no I/O.
"""

from dataclasses import dataclass, field
from typing import Callable

from decisiongate.schemas.proposal import clamp_unit
from decisiongate.synthesis.schemas import (
    BiometricSignals,
    LogisticsSignals,
    PhotoVerificationSignals,
    RiskLevel,
    SignalDomain,
)

# ── Thresholds ────────────────────────────────────────────────────────────

LOW_LIVENESS = 0.70
DEEPFAKE_SUSPECTED = 0.85
SCENE_MISMATCH = 0.30

LOGISTICS_CHECK_WEIGHTS: dict[str, tuple[float, str]] = {
    "gps_proximity": (0.40, "gps_out_of_range"),
    "impossible_travel": (0.30, "impossible_travel"),
    "time_lock": (0.20, "time_manipulation"),
    "gps_accuracy": (0.10, "poor_gps_accuracy"),
}


@dataclass(frozen=True)
class DomainScore:
    score: float
    flags: list[str] = field(default_factory=list)


def score_biometric(signals: BiometricSignals) -> DomainScore:
    """High liveness and low deepfake → low risk."""
    flags = []
    risk = (1 - signals.liveness_score) * 0.50 + signals.deepfake_score * 0.50

    if signals.liveness_score < LOW_LIVENESS:
        flags.append("low_liveness")
    if signals.deepfake_score > DEEPFAKE_SUSPECTED:
        flags.append("deepfake_suspected")
    if signals.risk_level == RiskLevel.CRITICAL:
        flags.append("biometric_critical")

    return DomainScore(score=clamp_unit(risk), flags=flags)


def score_logistics(signals: LogisticsSignals) -> DomainScore:
    """Each failed check adds its fixed share of risk."""
    flags = []
    risk = 0.0
    for check_name, (weight, flag) in LOGISTICS_CHECK_WEIGHTS.items():
        if not getattr(signals, check_name).passed:
            risk += weight
            flags.append(flag)
    return DomainScore(score=clamp_unit(risk), flags=flags)


def score_photo_verification(signals: PhotoVerificationSignals) -> DomainScore:
    """Low completion, a different scene, or no visible change → high risk."""
    flags = []
    risk = (1 - signals.completion_score) * 0.50

    if signals.similarity_score < SCENE_MISMATCH:
        risk += 0.25
        flags.append("scene_mismatch")
    if not signals.change_detected:
        risk += 0.25
        flags.append("no_change_detected")

    return DomainScore(score=clamp_unit(risk), flags=flags)


SCORERS: dict[SignalDomain, Callable[..., DomainScore]] = {
    SignalDomain.BIOMETRIC: score_biometric,
    SignalDomain.LOGISTICS: score_logistics,
    SignalDomain.PHOTO_VERIFICATION: score_photo_verification,
}


def score_domain(domain: SignalDomain, signals) -> DomainScore:
    return SCORERS[SignalDomain(domain)](signals)
