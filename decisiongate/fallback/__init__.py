from decisiongate.fallback.engine import (
    CATEGORY_BASE_PRICES,
    DeterministicFallbackEngine,
    difficulty_for_price,
    refine_description,
)

__all__ = [
    "CATEGORY_BASE_PRICES",
    "DeterministicFallbackEngine",
    "difficulty_for_price",
    "refine_description",
]
