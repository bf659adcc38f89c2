"""
Proposal Validator.

Deterministic acceptance rules applied to every automated proposal, whether
it came from a model or from the fallback engine:

1. Auto-correct classification fields from their continuous source field
2. Range checks (hard failure)
3. Cross-field tolerance checks (hard failure)
4. Confidence floor (hard failure, always escalates)
5. Minimum-length rationale (hard failure)

The validator decides; it never applies anything. The caller persists or
discards the (possibly corrected) proposal.
"""

import copy
import math
from dataclasses import dataclass
from numbers import Real
from typing import Any, Callable, Optional, Protocol

import structlog

from decisiongate.audit.log import DecisionAuditLog
from decisiongate.metrics import VALIDATIONS
from decisiongate.schemas.proposal import Proposal
from decisiongate.validation.schemas import (
    Correction,
    ProposalValidationFailed,
    ValidationResult,
    Violation,
)

logger = structlog.get_logger(__name__)


def _number(value: Any) -> Optional[float]:
    """Numeric value or None (bools and NaN are not numbers here)."""
    if isinstance(value, bool) or not isinstance(value, Real):
        return None
    value = float(value)
    if math.isnan(value):
        return None
    return value


# ── Rules ─────────────────────────────────────────────────────────────────


class Rule(Protocol):
    def check(self, payload: dict[str, Any]) -> list[Violation]: ...


@dataclass(frozen=True)
class RangeRule:
    field: str
    minimum: Optional[float]
    maximum: Optional[float]
    code_below: str
    code_above: str

    def check(self, payload: dict[str, Any]) -> list[Violation]:
        value = _number(payload.get(self.field))
        if value is None:
            return [Violation(self.code_below, self.field, f"{self.field} is missing or not numeric")]
        if self.minimum is not None and value < self.minimum:
            return [Violation(self.code_below, self.field, f"{self.field} {value:g} below minimum {self.minimum:g}")]
        if self.maximum is not None and value > self.maximum:
            return [Violation(self.code_above, self.field, f"{self.field} {value:g} above maximum {self.maximum:g}")]
        return []


@dataclass(frozen=True)
class ToleranceRule:
    """`field` must stay within ±tolerance_pct of formula(source_field)."""
    field: str
    source_field: str
    formula: Callable[[float], float]
    tolerance_pct: float
    code: str

    def check(self, payload: dict[str, Any]) -> list[Violation]:
        source = _number(payload.get(self.source_field))
        actual = _number(payload.get(self.field))
        if source is None or actual is None:
            return [Violation(self.code, self.field, f"{self.field} cannot be checked against {self.source_field}")]
        expected = self.formula(source)
        if abs(actual - expected) > abs(expected) * self.tolerance_pct:
            return [Violation(
                self.code,
                self.field,
                f"{self.field} {actual:g} deviates >{self.tolerance_pct:.0%} from expected {expected:g}",
            )]
        return []


@dataclass(frozen=True)
class OrderedFieldsRule:
    """Fields must be non-decreasing in the given order (e.g. low <= mid <= high)."""
    fields: tuple[str, ...]
    code: str

    def check(self, payload: dict[str, Any]) -> list[Violation]:
        values = [_number(payload.get(f)) for f in self.fields]
        if any(v is None for v in values):
            return [Violation(self.code, self.fields[0], f"{', '.join(self.fields)} must all be numeric")]
        if values != sorted(values):
            shown = " <= ".join(f"{f}={v:g}" for f, v in zip(self.fields, values))
            return [Violation(self.code, self.fields[0], f"expected {shown}")]
        return []


@dataclass(frozen=True)
class Band:
    label: str
    minimum: float
    maximum: float

    def contains(self, value: float) -> bool:
        return self.minimum <= value <= self.maximum


@dataclass(frozen=True)
class BandClassificationRule:
    """
    Classification derived from a continuous field.

    A label whose band excludes the continuous value is recomputed instead of
    rejected. Bands are ordered; the first band whose upper bound covers the
    value wins.
    """
    field: str
    source_field: str
    bands: tuple[Band, ...]

    def classify(self, value: float) -> str:
        for band in self.bands:
            if value <= band.maximum:
                return band.label
        return self.bands[-1].label

    def correct(self, payload: dict[str, Any]) -> Optional[Correction]:
        value = _number(payload.get(self.source_field))
        if value is None:
            return None
        current = payload.get(self.field)
        claimed = next((b for b in self.bands if b.label == current), None)
        if claimed is not None and claimed.contains(value):
            return None
        corrected = self.classify(value)
        if corrected == current:
            return None
        return Correction(
            field=self.field,
            original=current,
            corrected=corrected,
            reason=f"{self.field} recomputed from {self.source_field}={value:g}",
        )


@dataclass(frozen=True)
class DomainRules:
    """Everything the validator needs to know about one domain."""
    domain: str
    rules: tuple = ()
    min_confidence: Optional[float] = None
    confidence_code: str = "CONFIDENCE"
    min_reasoning_length: Optional[int] = None
    reasoning_code: str = "REASONING"


# ── Validator ─────────────────────────────────────────────────────────────


class ProposalValidator:
    """Applies one DomainRules table. Optionally audits every call."""

    def __init__(
        self,
        rules: DomainRules,
        audit_log: Optional[DecisionAuditLog] = None,
        agent_type: Optional[str] = None,
    ):
        self.rules = rules
        self.audit_log = audit_log
        self.agent_type = agent_type or rules.domain

    def validate(
        self,
        proposal: Proposal,
        subject: Optional[dict[str, Any]] = None,
    ) -> ValidationResult:
        payload = copy.deepcopy(dict(proposal.payload))

        corrections: list[Correction] = []
        for rule in self.rules.rules:
            if isinstance(rule, BandClassificationRule):
                correction = rule.correct(payload)
                if correction is not None:
                    payload[correction.field] = correction.corrected
                    corrections.append(correction)

        violations: list[Violation] = []
        for rule in self.rules.rules:
            if not isinstance(rule, BandClassificationRule):
                violations.extend(rule.check(payload))

        if self.rules.min_confidence is not None and proposal.confidence < self.rules.min_confidence:
            violations.append(Violation(
                self.rules.confidence_code,
                "confidence",
                f"Confidence {proposal.confidence:.0%} too low, requires human review",
            ))

        if self.rules.min_reasoning_length is not None:
            if len((proposal.reasoning or "").strip()) < self.rules.min_reasoning_length:
                violations.append(Violation(
                    self.rules.reasoning_code,
                    "reasoning",
                    "Missing or insufficient reasoning",
                ))

        corrected = proposal.model_copy(update={"payload": payload})
        result_cls = ProposalValidationFailed if violations else ValidationResult
        result = result_cls(
            valid=not violations,
            proposal=corrected,
            violations=tuple(violations),
            corrections=tuple(corrections),
        )

        VALIDATIONS.labels(
            domain=self.rules.domain,
            outcome="valid" if result.valid else "invalid",
        ).inc()
        logger.info(
            "proposal_validated",
            domain=self.rules.domain,
            valid=result.valid,
            source=proposal.source.value,
            codes=result.codes,
            corrections=[c.field for c in corrections],
        )

        if self.audit_log is not None:
            self.audit_log.record_decision(
                self.agent_type,
                payload={
                    "proposal": payload,
                    "source": proposal.source.value,
                    **result.to_dict(),
                },
                confidence=proposal.confidence,
                reasoning=proposal.reasoning,
                accepted=result.valid,
                subject=subject,
            )
        return result
