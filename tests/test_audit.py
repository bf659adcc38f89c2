"""
Decision Audit Log Tests.

Append-only records, human override addenda, failure isolation,
and the SQLAlchemy sink against SQLite.
"""

import uuid

import pytest
from prometheus_client import REGISTRY
from sqlalchemy import func, select

from decisiongate.audit import (
    AuditRecord,
    AuthorityLevel,
    DecisionAuditLog,
    InMemoryAuditSink,
    SqlAlchemyAuditSink,
)
from decisiongate.audit.models import AiAgentDecision, AiDecisionOverride
from decisiongate.db.engine import create_engine_from_settings, create_session_factory
from tests.conftest import FailingAuditSink


def _failures_metric(kind: str) -> float:
    return REGISTRY.get_sample_value("decisiongate_audit_write_failures_total", {"kind": kind}) or 0.0


class TestAuditRecords:

    @pytest.mark.asyncio
    async def test_record_decision(self, audit_log, audit_sink):
        record = audit_log.record_decision(
            "scoper",
            payload={"suggested_price_cents": 4000},
            confidence=1.3,
            reasoning="market rate",
            accepted=True,
            subject={"task_id": 17, "proof_id": None},
        )
        await audit_log.drain()

        assert audit_sink.records == [record]
        assert record.confidence == 1.0
        assert record.subject == {"task_id": "17", "proof_id": None}
        assert record.authority_level == AuthorityLevel.PROPOSAL
        assert record.created_at.tzinfo is not None

    @pytest.mark.asyncio
    async def test_records_are_immutable(self, audit_log):
        record = audit_log.record_decision("judge", payload={}, confidence=0.5)
        with pytest.raises(Exception):
            record.accepted = True
        await audit_log.drain()

    @pytest.mark.asyncio
    async def test_append_returns_without_waiting(self, audit_log, audit_sink):
        audit_log.append(AuditRecord(agent_type="dispute", confidence=0.8))
        assert audit_log.pending == 1
        assert audit_sink.records == []

        await audit_log.drain()

        assert audit_log.pending == 0
        assert len(audit_sink.records) == 1

    @pytest.mark.asyncio
    async def test_configured_authority_level(self, audit_sink):
        log = DecisionAuditLog(audit_sink, authority_level="A1")
        log.record_decision("scoper", payload={}, confidence=0.9)
        await log.drain()
        assert audit_sink.records[0].authority_level == AuthorityLevel.BINDING


class TestOverrides:

    @pytest.mark.asyncio
    async def test_override_is_an_addendum(self, audit_log, audit_sink):
        record = audit_log.record_decision("judge", payload={"verdict": "MANUAL_REVIEW"}, confidence=0.5)
        addendum = audit_log.override(record.record_id, reviewer_id="reviewer-7", accepted=True, reason="Photos OK")
        await audit_log.drain()

        assert audit_sink.overrides == [addendum]
        assert addendum.record_id == record.record_id
        assert addendum.authority_level == AuthorityLevel.HUMAN
        # Original record untouched
        assert audit_sink.records[0].accepted is None


class TestAuditFailures:
    """A dead audit store is visible but never blocks the caller."""

    @pytest.mark.asyncio
    async def test_failure_is_swallowed_and_observable(self):
        seen = []
        sink = FailingAuditSink()
        log = DecisionAuditLog(sink, on_failure=seen.append)
        before = _failures_metric("record")

        record = log.record_decision("judge", payload={}, confidence=0.5)
        await log.drain()

        assert sink.attempts == 1
        assert len(log.failures) == 1
        assert log.failures[0].record_id == record.record_id
        assert "connection refused" in log.failures[0].error
        assert seen == list(log.failures)
        assert _failures_metric("record") == before + 1

    @pytest.mark.asyncio
    async def test_failing_callback_does_not_propagate(self):
        def explode(failure):
            raise RuntimeError("pager down")

        log = DecisionAuditLog(FailingAuditSink(), on_failure=explode)
        log.override(uuid.uuid4(), reviewer_id="r", accepted=False, reason="no")
        await log.drain()

        assert log.failures[0].kind == "override"

    @pytest.mark.asyncio
    async def test_failure_history_is_bounded(self):
        seen = []
        log = DecisionAuditLog(FailingAuditSink(), on_failure=seen.append, max_recent_failures=3)

        records = [log.record_decision("judge", payload={}, confidence=0.5) for _ in range(5)]
        await log.drain()

        assert len(log.failures) == 3
        assert log.failure_count == 5
        assert len(seen) == 5
        assert {f.record_id for f in log.failures} <= {r.record_id for r in records}

    def test_failure_without_event_loop(self):
        log = DecisionAuditLog(FailingAuditSink())
        log.record_decision("scoper", payload={}, confidence=0.1)
        assert len(log.failures) == 1


class TestSqlAlchemySink:

    @pytest.mark.asyncio
    async def test_records_and_overrides_persisted(self, session_factory):
        log = DecisionAuditLog(SqlAlchemyAuditSink(session_factory))

        record = log.record_decision(
            "judge",
            payload={"verdict": "REJECT", "component_scores": {"biometric": "unavailable"}},
            confidence=0.87654,
            reasoning="GPS 4km away",
            accepted=False,
            subject={"proof_id": "p-1"},
        )
        await log.drain()
        log.override(record.record_id, reviewer_id="ops-1", accepted=True, reason="GPS drift confirmed")
        await log.drain()

        assert not log.failures
        async with session_factory() as session:
            row = await session.get(AiAgentDecision, record.record_id)
            overrides = (await session.execute(select(func.count()).select_from(AiDecisionOverride))).scalar_one()

        assert row.agent_type == "judge"
        assert row.accepted is False
        assert row.proposal["component_scores"] == {"biometric": "unavailable"}
        assert row.subject == {"proof_id": "p-1"}
        assert float(row.confidence_score) == pytest.approx(0.877)
        assert row.authority_level == "A2"
        assert overrides == 1

    @pytest.mark.asyncio
    async def test_uninitialized_store_reports_failure(self, test_settings):
        engine = create_engine_from_settings(test_settings)
        try:
            log = DecisionAuditLog(SqlAlchemyAuditSink(create_session_factory(engine)))
            log.record_decision("judge", payload={}, confidence=0.5)
            await log.drain()
        finally:
            await engine.dispose()

        assert len(log.failures) == 1


class TestInMemorySink:

    @pytest.mark.asyncio
    async def test_by_agent(self):
        sink = InMemoryAuditSink()
        log = DecisionAuditLog(sink)
        for agent in ("scoper", "judge", "scoper"):
            log.record_decision(agent, payload={}, confidence=0.5)
        await log.drain()
        assert len(sink.by_agent("scoper")) == 2
