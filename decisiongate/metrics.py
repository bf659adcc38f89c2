"""
Prometheus Metrics.

Metrics Categories:
1. Router - provider attempts, cache lookups, call latency
2. Decisions - fallbacks, verdicts, validation outcomes
3. Audit - writes and write failures (silent audit gaps must be visible)

All metrics follow Prometheus naming conventions:
- snake_case names
- Suffixes: _total (counters), _seconds (durations)
- Labels for dimensions
"""

from prometheus_client import Counter, Histogram

# ============================================================================
# ROUTER METRICS
# ============================================================================

PROVIDER_ATTEMPTS = Counter(
    "decisiongate_provider_attempts_total",
    "Inference provider attempts by outcome",
    ["provider", "outcome"],  # outcome: success/timeout/error/unavailable
)

CACHE_LOOKUPS = Counter(
    "decisiongate_ai_cache_lookups_total",
    "AI response cache lookups",
    ["result"],  # hit/miss
)

ROUTER_CALL_LATENCY = Histogram(
    "decisiongate_router_call_seconds",
    "End-to-end ModelRouter.call latency",
    ["route", "outcome"],
    buckets=[0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0],
)

# ============================================================================
# DECISION METRICS
# ============================================================================

FALLBACK_INVOCATIONS = Counter(
    "decisiongate_fallback_invocations_total",
    "Deterministic fallback invocations",
    ["capability", "reason"],  # reason: unconfigured/providers_failed/invalid_response
)

VERDICTS = Counter(
    "decisiongate_verdicts_total",
    "Synthesized verdicts",
    ["verdict", "source"],
)

VALIDATIONS = Counter(
    "decisiongate_validations_total",
    "Proposal validation outcomes",
    ["domain", "outcome"],  # outcome: valid/invalid
)

# ============================================================================
# AUDIT METRICS
# ============================================================================

AUDIT_WRITES = Counter(
    "decisiongate_audit_writes_total",
    "Audit log writes that reached the sink",
    ["kind"],  # record/override
)

AUDIT_WRITE_FAILURES = Counter(
    "decisiongate_audit_write_failures_total",
    "Audit log writes that failed",
    ["kind"],
)
