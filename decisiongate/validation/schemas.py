"""
Validation outcomes.

ProposalValidationFailed is a RETURN type. Callers branch on it routinely,
so it is never raised.
"""

from dataclasses import dataclass
from typing import Any

from decisiongate.schemas.proposal import Proposal


@dataclass(frozen=True)
class Violation:
    """A hard rule failure."""
    code: str       # e.g. SCOPER-ERR-001
    field: str
    message: str

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"


@dataclass(frozen=True)
class Correction:
    """A classification field recomputed from its authoritative source field."""
    field: str
    original: Any
    corrected: Any
    reason: str


@dataclass(frozen=True)
class ValidationResult:
    valid: bool
    proposal: Proposal                     # corrected copy; input is never mutated
    violations: tuple[Violation, ...] = ()
    corrections: tuple[Correction, ...] = ()

    @property
    def errors(self) -> list[str]:
        return [str(v) for v in self.violations]

    @property
    def codes(self) -> list[str]:
        return [v.code for v in self.violations]

    @property
    def requires_escalation(self) -> bool:
        return not self.valid

    def to_dict(self) -> dict:
        return {
            "valid": self.valid,
            "violations": [
                {"code": v.code, "field": v.field, "message": v.message}
                for v in self.violations
            ],
            "corrections": [
                {"field": c.field, "original": c.original, "corrected": c.corrected, "reason": c.reason}
                for c in self.corrections
            ],
        }


@dataclass(frozen=True)
class ProposalValidationFailed(ValidationResult):
    """A ValidationResult with at least one hard violation."""
