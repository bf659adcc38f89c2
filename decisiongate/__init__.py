"""
DecisionGate: AI-Assisted Decision Pipeline.

Architecture:
    decisiongate/
    ├── router/          # Routes → provider/model, cache, timeouts, fallback chain
    ├── fallback/        # Deterministic, offline stand-ins for every AI capability
    ├── validation/      # Per-domain acceptance rules, auto-correction, confidence gate
    ├── synthesis/       # Multi-domain verdict (scorers, aggregator, AI judge)
    ├── audit/           # Append-only decision trail + human override addenda
    ├── agents/          # Scoper, Matchmaker, Dispute (A2, proposal-only)
    ├── schemas/         # Pydantic payloads shared across components
    └── db/              # Async SQLAlchemy engine for the audit store

Module Boundaries:
    - Model output is NEVER binding: it is a proposal until a deterministic
      check or a human reviewer accepts it
    - Any failure degrades to the deterministic fallback, never to a raw error
    - Every decision attempt produces exactly one audit record
    - Audit failures are observable but never block a decision

Data Flow:
    Domain service → ModelRouter (or fallback) → ProposalValidator /
    SignalSynthesizer → DecisionAuditLog → domain service applies or discards

Version: 1.0.0
"""

__version__ = "1.0.0"
