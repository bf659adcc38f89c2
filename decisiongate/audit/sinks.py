"""
Audit sinks: where audit records physically go.

A sink only ever inserts. There is no update or delete path.
"""

from decimal import Decimal
from typing import Protocol, runtime_checkable

import structlog
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from decisiongate.audit.models import AiAgentDecision, AiDecisionOverride
from decisiongate.audit.schemas import AuditRecord, OverrideAddendum

logger = structlog.get_logger(__name__)


@runtime_checkable
class AuditSink(Protocol):
    async def write_record(self, record: AuditRecord) -> None: ...

    async def write_override(self, addendum: OverrideAddendum) -> None: ...


class InMemoryAuditSink:
    """Keeps records in lists. Used for tests and local runs."""

    def __init__(self):
        self.records: list[AuditRecord] = []
        self.overrides: list[OverrideAddendum] = []

    async def write_record(self, record: AuditRecord) -> None:
        self.records.append(record)

    async def write_override(self, addendum: OverrideAddendum) -> None:
        self.overrides.append(addendum)

    def by_agent(self, agent_type: str) -> list[AuditRecord]:
        return [r for r in self.records if r.agent_type == agent_type]


class SqlAlchemyAuditSink:
    """Inserts into ai_agent_decisions / ai_decision_overrides."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]):
        self._session_factory = session_factory

    async def write_record(self, record: AuditRecord) -> None:
        row = AiAgentDecision(
            id=record.record_id,
            agent_type=record.agent_type,
            subject=dict(record.subject),
            proposal=dict(record.payload),
            confidence_score=Decimal(str(round(record.confidence, 3))),
            reasoning=record.reasoning,
            accepted=record.accepted,
            authority_level=record.authority_level.value,
            created_at=record.created_at,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        logger.debug("audit_record_persisted", record_id=str(record.record_id))

    async def write_override(self, addendum: OverrideAddendum) -> None:
        row = AiDecisionOverride(
            id=addendum.addendum_id,
            record_id=addendum.record_id,
            reviewer_id=addendum.reviewer_id,
            accepted=addendum.accepted,
            reason=addendum.reason,
            authority_level=addendum.authority_level.value,
            created_at=addendum.created_at,
        )
        async with self._session_factory() as session:
            session.add(row)
            await session.commit()
        logger.debug("audit_override_persisted", record_id=str(addendum.record_id))
