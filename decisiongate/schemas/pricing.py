"""
Task scoping & price suggestion payloads.

All money is integer cents.
"""

from enum import StrEnum
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from decisiongate.schemas.proposal import Proposal, ProposalSource, clamp_unit


class Difficulty(StrEnum):
    EASY = "easy"
    MEDIUM = "medium"
    HARD = "hard"


class TaskLocation(BaseModel):
    city: str
    state: str
    zip_code: Optional[str] = None


class ScopeInput(BaseModel):
    """What the poster typed when creating a task."""
    description: str
    category: Optional[str] = None
    budget_hint_cents: Optional[int] = None
    location: Optional[TaskLocation] = None


class ScopeProposal(BaseModel):
    """Proposed price / XP / difficulty for a task. Never applied directly."""
    suggested_price_cents: int
    price_reasoning: str
    suggested_xp: int
    xp_reasoning: str = ""
    difficulty: Difficulty
    difficulty_reasoning: str = ""
    confidence_score: float
    flags: list[str] = Field(default_factory=list)
    estimated_duration_minutes: Optional[int] = None
    required_capabilities: list[str] = Field(default_factory=list)

    @field_validator("confidence_score", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        return clamp_unit(v)

    def to_proposal(self, source: ProposalSource) -> Proposal:
        return Proposal(
            payload=self.model_dump(mode="json", exclude={"confidence_score"}),
            confidence=self.confidence_score,
            reasoning=self.price_reasoning,
            source=source,
        )

    @classmethod
    def from_proposal(cls, proposal: Proposal) -> "ScopeProposal":
        return cls(**proposal.payload, confidence_score=proposal.confidence)


class PriceSuggestion(BaseModel):
    """Lightweight, instant price hint shown while a poster types."""
    suggested_price_cents: int
    range_low_cents: int
    range_high_cents: int
    reasoning: str
    confidence: float

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        return clamp_unit(v)

    def to_proposal(self, source: ProposalSource) -> Proposal:
        return Proposal(
            payload=self.model_dump(mode="json", exclude={"confidence", "reasoning"}),
            confidence=self.confidence,
            reasoning=self.reasoning,
            source=source,
        )
