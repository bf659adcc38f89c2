"""
Decision Audit Log.

Append-only record of every automated decision attempt. Writes are
fire-and-forget: the decision path never waits on, and never fails because
of, the audit store. Write failures go to their own channel instead
(metric, error log, the recent `failures` window and an optional callback).
"""

import asyncio
import uuid
from collections import deque
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional

import structlog

from decisiongate.audit.schemas import AuditRecord, AuthorityLevel, OverrideAddendum
from decisiongate.audit.sinks import AuditSink
from decisiongate.metrics import AUDIT_WRITE_FAILURES, AUDIT_WRITES

logger = structlog.get_logger(__name__)

# Recent failures kept in memory; the metric and callback see every one.
MAX_RECENT_FAILURES = 100


@dataclass(frozen=True)
class AuditWriteFailure:
    """A write that never reached the sink."""
    kind: str  # record / override
    record_id: uuid.UUID
    error: str


class DecisionAuditLog:
    """Best-effort, insert-only audit trail over an AuditSink."""

    def __init__(
        self,
        sink: AuditSink,
        authority_level: AuthorityLevel = AuthorityLevel.PROPOSAL,
        on_failure: Optional[Callable[[AuditWriteFailure], None]] = None,
        max_recent_failures: int = MAX_RECENT_FAILURES,
    ):
        self._sink = sink
        self._authority_level = AuthorityLevel(authority_level)
        self._on_failure = on_failure
        self._pending: set[asyncio.Task] = set()
        self.failures: deque[AuditWriteFailure] = deque(maxlen=max_recent_failures)
        self.failure_count = 0

    @property
    def pending(self) -> int:
        return len(self._pending)

    # ── Write API ────────────────────────────────────────────────────────

    def append(self, record: AuditRecord) -> AuditRecord:
        """Queue a record for writing. Returns immediately inside an event loop."""
        self._dispatch("record", record.record_id, lambda: self._sink.write_record(record))
        return record

    def record_decision(
        self,
        agent_type: str,
        *,
        payload: dict[str, Any],
        confidence: float,
        reasoning: str = "",
        accepted: Optional[bool] = None,
        subject: Optional[dict[str, Any]] = None,
    ) -> AuditRecord:
        """Build and append a record for one decision attempt."""
        record = AuditRecord(
            agent_type=agent_type,
            subject={k: (str(v) if v is not None else None) for k, v in (subject or {}).items()},
            payload=payload,
            confidence=confidence,
            reasoning=reasoning,
            accepted=accepted,
            authority_level=self._authority_level,
        )
        return self.append(record)

    def override(
        self,
        record_id: uuid.UUID,
        reviewer_id: str,
        accepted: bool,
        reason: str,
    ) -> OverrideAddendum:
        """Append a human review addendum. The original record is untouched."""
        addendum = OverrideAddendum(
            record_id=record_id,
            reviewer_id=reviewer_id,
            accepted=accepted,
            reason=reason,
        )
        self._dispatch("override", record_id, lambda: self._sink.write_override(addendum))
        logger.info(
            "audit_override_appended",
            record_id=str(record_id),
            reviewer_id=reviewer_id,
            accepted=accepted,
        )
        return addendum

    async def drain(self) -> None:
        """Wait for every queued write to finish (shutdown, tests)."""
        while self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    # ── Internals ────────────────────────────────────────────────────────

    def _dispatch(
        self,
        kind: str,
        record_id: uuid.UUID,
        write: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            loop = None

        if loop is None:
            asyncio.run(self._write(kind, record_id, write))
            return

        task = loop.create_task(self._write(kind, record_id, write))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _write(
        self,
        kind: str,
        record_id: uuid.UUID,
        write: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await write()
        except Exception as exc:
            self._record_failure(AuditWriteFailure(kind=kind, record_id=record_id, error=str(exc)))
            return
        AUDIT_WRITES.labels(kind=kind).inc()

    def _record_failure(self, failure: AuditWriteFailure) -> None:
        AUDIT_WRITE_FAILURES.labels(kind=failure.kind).inc()
        self.failures.append(failure)
        self.failure_count += 1
        logger.error(
            "audit_write_failed",
            kind=failure.kind,
            record_id=str(failure.record_id),
            error=failure.error,
        )
        if self._on_failure is None:
            return
        try:
            self._on_failure(failure)
        except Exception as exc:
            logger.error("audit_failure_callback_error", error=str(exc))
