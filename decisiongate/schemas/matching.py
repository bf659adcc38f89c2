"""
Task ↔ worker matching payloads.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from decisiongate.schemas.proposal import clamp_unit


class GeoPoint(BaseModel):
    latitude: float
    longitude: float


class TaskInput(BaseModel):
    id: str
    title: str
    description: str
    category: Optional[str] = None
    location: Optional[str] = None
    price: int  # cents
    requirements: Optional[str] = None


class CandidateInput(BaseModel):
    user_id: str
    skills: list[str] = Field(default_factory=list)
    location: Optional[GeoPoint] = None
    trust_tier: int = Field(ge=0, le=4)
    completed_tasks: int = 0
    completion_rate: float = 0.0  # 0-1
    average_rating: Optional[float] = None
    is_available: bool = True


class MatchFactors(BaseModel):
    """Per-factor fit, each 0-1."""
    skill_match: float
    proximity: float
    reliability: float
    trust_tier: float
    availability: float

    @field_validator("*", mode="before")
    @classmethod
    def _clamp(cls, v):
        return clamp_unit(v)


class MatchCandidate(BaseModel):
    user_id: str
    rank: int
    match_score: float
    reasoning: str
    factors: MatchFactors

    @field_validator("match_score", mode="before")
    @classmethod
    def _clamp_score(cls, v):
        return clamp_unit(v)


class MatchExplanation(BaseModel):
    """'Why this task?' blurb shown to a worker."""
    summary: str
    factors: list[str] = Field(default_factory=list)
    estimated_earnings_cents: int
    estimated_duration: str
