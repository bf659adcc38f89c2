from decisiongate.audit.log import AuditWriteFailure, DecisionAuditLog
from decisiongate.audit.schemas import AuditRecord, AuthorityLevel, OverrideAddendum
from decisiongate.audit.sinks import AuditSink, InMemoryAuditSink, SqlAlchemyAuditSink

__all__ = [
    "AuditRecord",
    "AuditSink",
    "AuditWriteFailure",
    "AuthorityLevel",
    "DecisionAuditLog",
    "InMemoryAuditSink",
    "OverrideAddendum",
    "SqlAlchemyAuditSink",
]
