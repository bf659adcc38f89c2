"""
Generic proposal envelope: what every automated suggestion looks like by the
time it reaches a validator.
"""

import math
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


def clamp_unit(value: float) -> float:
    """Clamp to [0, 1]; NaN becomes 0."""
    value = float(value)
    if math.isnan(value):
        return 0.0
    return max(0.0, min(1.0, value))


class ProposalSource(StrEnum):
    AI = "ai"
    FALLBACK = "fallback"


class Proposal(BaseModel):
    """A non-binding suggestion: domain payload + confidence + reasoning."""
    model_config = ConfigDict(frozen=True)

    payload: dict[str, Any] = Field(default_factory=dict)
    confidence: float
    reasoning: str = ""
    source: ProposalSource = ProposalSource.AI

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v: Any) -> float:
        return clamp_unit(v)
