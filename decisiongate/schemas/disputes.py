"""
Dispute evidence-request payloads.
"""

from typing import Optional

from pydantic import BaseModel, Field, field_validator

from decisiongate.schemas.proposal import clamp_unit


class EvidenceItem(BaseModel):
    uploader_user_id: str
    description: Optional[str] = None


class DisputeContext(BaseModel):
    """Everything the question generator is allowed to see about a dispute."""
    dispute_id: str
    task_id: str
    task_title: str
    task_description: str = ""
    reason: str
    description: str = ""
    poster_id: str
    worker_id: str
    initiated_by: str
    amount_cents: int
    evidence: list[EvidenceItem] = Field(default_factory=list)


class EvidenceRequest(BaseModel):
    """Targeted questions for each party. Both lists must be non-empty."""
    poster_questions: list[str] = Field(min_length=1)
    worker_questions: list[str] = Field(min_length=1)
    confidence: float = 0.8

    @field_validator("poster_questions", "worker_questions")
    @classmethod
    def _no_blank_questions(cls, v: list[str]) -> list[str]:
        cleaned = [q.strip() for q in v if q and q.strip()]
        if not cleaned:
            raise ValueError("question list is empty")
        return cleaned

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        return clamp_unit(v)
