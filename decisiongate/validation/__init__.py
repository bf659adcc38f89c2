from decisiongate.validation.domains import price_hint_rules, scope_rules
from decisiongate.validation.schemas import (
    Correction,
    ProposalValidationFailed,
    ValidationResult,
    Violation,
)
from decisiongate.validation.validator import (
    Band,
    BandClassificationRule,
    DomainRules,
    OrderedFieldsRule,
    ProposalValidator,
    RangeRule,
    ToleranceRule,
)

__all__ = [
    "Band",
    "BandClassificationRule",
    "Correction",
    "DomainRules",
    "OrderedFieldsRule",
    "ProposalValidationFailed",
    "ProposalValidator",
    "RangeRule",
    "ToleranceRule",
    "ValidationResult",
    "Violation",
    "price_hint_rules",
    "scope_rules",
]
