"""
Signal and verdict models for proof verification.

A SignalSet has one REQUIRED field per domain. Each holds either the
domain's structured signals or an explicit Unavailable marker, so a missing
subsystem can never be read as "zero risk".
"""

from enum import StrEnum
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator

from decisiongate.schemas.proposal import clamp_unit


class SignalDomain(StrEnum):
    BIOMETRIC = "biometric"
    LOGISTICS = "logistics"
    PHOTO_VERIFICATION = "photo_verification"


class RiskLevel(StrEnum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    CRITICAL = "CRITICAL"


# ── Domain signals ────────────────────────────────────────────────────────


class BiometricSignals(BaseModel):
    liveness_score: float   # 0=pre-recorded, 1=live
    deepfake_score: float   # 0=real, 1=fake
    risk_level: RiskLevel = RiskLevel.LOW

    @field_validator("liveness_score", "deepfake_score", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_unit(v)


class CheckResult(BaseModel):
    passed: bool


class GpsProximityCheck(CheckResult):
    distance_meters: Optional[float] = None


class ImpossibleTravelCheck(CheckResult):
    speed_kmh: Optional[float] = None


class TimeLockCheck(CheckResult):
    time_delta_seconds: Optional[float] = None


class GpsAccuracyCheck(CheckResult):
    accuracy_meters: float


class LogisticsSignals(BaseModel):
    gps_proximity: GpsProximityCheck
    impossible_travel: ImpossibleTravelCheck
    time_lock: TimeLockCheck
    gps_accuracy: GpsAccuracyCheck


class PhotoVerificationSignals(BaseModel):
    similarity_score: float   # scene consistency
    completion_score: float   # task appears done
    change_detected: bool

    @field_validator("similarity_score", "completion_score", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_unit(v)


class Unavailable(BaseModel):
    """The subsystem for this domain returned nothing usable."""
    model_config = ConfigDict(frozen=True)

    status: Literal["unavailable"] = "unavailable"
    reason: Optional[str] = None


UNAVAILABLE = Unavailable()


class SignalSet(BaseModel):
    """Inputs to one synthesis. Every domain must be stated explicitly."""

    proof_id: Optional[str] = None
    task_id: Optional[str] = None
    biometric: Union[BiometricSignals, Unavailable]
    logistics: Union[LogisticsSignals, Unavailable]
    photo_verification: Union[PhotoVerificationSignals, Unavailable]

    def get(self, domain: SignalDomain) -> Union[BaseModel, Unavailable]:
        return getattr(self, SignalDomain(domain).value)

    def is_available(self, domain: SignalDomain) -> bool:
        return not isinstance(self.get(domain), Unavailable)

    def available_domains(self) -> list[SignalDomain]:
        """Available domains in fixed declaration order."""
        return [d for d in SignalDomain if self.is_available(d)]

    def unavailable_domains(self) -> list[SignalDomain]:
        return [d for d in SignalDomain if not self.is_available(d)]


# ── Verdict ───────────────────────────────────────────────────────────────

UNAVAILABLE_SCORE = "unavailable"


class VerdictType(StrEnum):
    APPROVE = "APPROVE"
    MANUAL_REVIEW = "MANUAL_REVIEW"
    REJECT = "REJECT"


class VerdictSource(StrEnum):
    AI = "ai"
    DETERMINISTIC = "deterministic"   # aggregator chosen by policy
    FALLBACK = "fallback"             # aggregator standing in for a failed AI path


RECOMMENDED_ACTIONS: dict[VerdictType, str] = {
    VerdictType.APPROVE: "Auto-approve proof and release escrow.",
    VerdictType.REJECT: "Reject proof submission. Flag for fraud review if repeated.",
    VerdictType.MANUAL_REVIEW: "Route to human reviewer for manual inspection.",
}


class Verdict(BaseModel):
    """
    Final synthesized decision on a proof submission.

    risk_flags and availability_flags are kept apart so a consumer can tell
    "looks risky" from "uncertain because data is missing".
    """
    model_config = ConfigDict(frozen=True)

    verdict: VerdictType
    confidence: float
    risk_score: float
    component_scores: dict[str, Union[Literal["unavailable"], float]]
    risk_flags: list[str] = Field(default_factory=list)
    availability_flags: list[str] = Field(default_factory=list)
    recommended_action: str
    reasoning: str
    source: VerdictSource
    provider: Optional[str] = None
    domains_available: list[SignalDomain] = Field(default_factory=list)

    @field_validator("confidence", "risk_score", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_unit(v)

    @property
    def flags(self) -> list[str]:
        return [*self.risk_flags, *self.availability_flags]

    def to_audit_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", exclude={"confidence", "reasoning"})
