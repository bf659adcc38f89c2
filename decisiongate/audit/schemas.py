"""
Audit trail records.

An AuditRecord is written once per decision attempt and never changed.
Human review is an OverrideAddendum pointing back at the record.
"""

import uuid
from datetime import datetime, timezone
from enum import StrEnum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from decisiongate.schemas.proposal import clamp_unit


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class AuthorityLevel(StrEnum):
    BINDING = "A1"    # system mutation
    PROPOSAL = "A2"   # automated, advisory only
    HUMAN = "HUMAN"   # reviewer override


class AuditRecord(BaseModel):
    """
    One automated proposal or verdict and whether it was accepted.

    accepted: True/False once decided, None while pending human review.
    """
    model_config = ConfigDict(frozen=True)

    record_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    agent_type: str
    subject: dict[str, Optional[str]] = Field(default_factory=dict)
    payload: dict[str, Any] = Field(default_factory=dict)
    confidence: float = 0.0
    reasoning: str = ""
    accepted: Optional[bool] = None
    authority_level: AuthorityLevel = AuthorityLevel.PROPOSAL
    created_at: datetime = Field(default_factory=_utcnow)

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, v):
        return clamp_unit(v)


class OverrideAddendum(BaseModel):
    """A reviewer's later decision on an existing record. Append-only."""
    model_config = ConfigDict(frozen=True)

    addendum_id: uuid.UUID = Field(default_factory=uuid.uuid4)
    record_id: uuid.UUID
    reviewer_id: str
    accepted: bool
    reason: str
    authority_level: AuthorityLevel = AuthorityLevel.HUMAN
    created_at: datetime = Field(default_factory=_utcnow)
