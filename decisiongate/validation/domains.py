"""
Shipped domain rule tables.
"""

from typing import Optional

from decisiongate.config import Settings, settings as default_settings
from decisiongate.validation.validator import (
    Band,
    BandClassificationRule,
    DomainRules,
    OrderedFieldsRule,
    RangeRule,
    ToleranceRule,
)


def xp_for_price(price_cents: float) -> float:
    """100 XP per dollar."""
    return round(price_cents / 10)


def scope_rules(settings: Optional[Settings] = None) -> DomainRules:
    """Task scoping: price bounds, XP formula, difficulty bands, confidence, rationale."""
    settings = settings or default_settings
    low, high = settings.scope_min_price_cents, settings.scope_max_price_cents
    return DomainRules(
        domain="scoper",
        rules=(
            BandClassificationRule(
                field="difficulty",
                source_field="suggested_price_cents",
                bands=(
                    Band("easy", low, 5000),
                    Band("medium", 5000, 15_000),
                    Band("hard", 15_000, high),
                ),
            ),
            RangeRule(
                field="suggested_price_cents",
                minimum=low,
                maximum=high,
                code_below="SCOPER-ERR-001",
                code_above="SCOPER-ERR-002",
            ),
            ToleranceRule(
                field="suggested_xp",
                source_field="suggested_price_cents",
                formula=xp_for_price,
                tolerance_pct=settings.scope_xp_tolerance,
                code="SCOPER-ERR-003",
            ),
        ),
        min_confidence=settings.scope_min_confidence,
        confidence_code="SCOPER-ERR-004",
        min_reasoning_length=settings.scope_min_reasoning_length,
        reasoning_code="SCOPER-ERR-005",
    )


def price_hint_rules(settings: Optional[Settings] = None) -> DomainRules:
    """UI price hint: suggestion and range inside the platform price bounds."""
    settings = settings or default_settings
    low, high = settings.scope_min_price_cents, settings.scope_max_price_cents
    return DomainRules(
        domain="price_hint",
        rules=(
            RangeRule("suggested_price_cents", low, high, "PRICE-ERR-001", "PRICE-ERR-002"),
            RangeRule("range_low_cents", low, high, "PRICE-ERR-003", "PRICE-ERR-003"),
            RangeRule("range_high_cents", low, high, "PRICE-ERR-004", "PRICE-ERR-004"),
            OrderedFieldsRule(("range_low_cents", "suggested_price_cents", "range_high_cents"), "PRICE-ERR-005"),
        ),
        min_reasoning_length=10,
        reasoning_code="PRICE-ERR-006",
    )

