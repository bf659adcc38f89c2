"""
Audit tables.

CRITICAL: NO UPDATE, NO DELETE on these tables. Ever.
Overrides are new rows in ai_decision_overrides referencing the original.
"""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Optional

from sqlalchemy import JSON, Boolean, DateTime, ForeignKey, Index, Numeric, String, Text, Uuid
from sqlalchemy.dialects import postgresql
from sqlalchemy.orm import Mapped, mapped_column

from decisiongate.db.engine import Base

# JSONB on PostgreSQL, JSON elsewhere
JSONType = JSON().with_variant(postgresql.JSONB(), "postgresql")


class AiAgentDecision(Base):
    """Every automated proposal/verdict and its acceptance outcome."""

    __tablename__ = "ai_agent_decisions"
    __table_args__ = (
        Index("ix_ai_agent_decisions_agent_type", "agent_type"),
        Index("ix_ai_agent_decisions_created_at", "created_at"),
        Index("ix_ai_agent_decisions_authority", "authority_level"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True)
    agent_type: Mapped[str] = mapped_column(String(50), nullable=False)
    subject: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    proposal: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)
    confidence_score: Mapped[Decimal] = mapped_column(Numeric(4, 3), nullable=False, default=0)
    reasoning: Mapped[Optional[str]] = mapped_column(Text)

    accepted: Mapped[Optional[bool]] = mapped_column(Boolean)
    authority_level: Mapped[str] = mapped_column(String(10), nullable=False, default="A2")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)


class AiDecisionOverride(Base):
    """Human review addendum to an ai_agent_decisions row."""

    __tablename__ = "ai_decision_overrides"
    __table_args__ = (
        Index("ix_ai_decision_overrides_record", "record_id"),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid(), primary_key=True)
    record_id: Mapped[uuid.UUID] = mapped_column(
        Uuid(), ForeignKey("ai_agent_decisions.id"), nullable=False
    )
    reviewer_id: Mapped[str] = mapped_column(String(128), nullable=False)
    accepted: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    authority_level: Mapped[str] = mapped_column(String(10), nullable=False, default="HUMAN")

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
