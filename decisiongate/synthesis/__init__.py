from decisiongate.synthesis.aggregator import (
    DeterministicAggregator,
    SynthesisPolicy,
    effective_weights,
)
from decisiongate.synthesis.schemas import (
    UNAVAILABLE,
    UNAVAILABLE_SCORE,
    BiometricSignals,
    LogisticsSignals,
    PhotoVerificationSignals,
    SignalDomain,
    SignalSet,
    Unavailable,
    Verdict,
    VerdictSource,
    VerdictType,
)

__all__ = [
    "UNAVAILABLE",
    "UNAVAILABLE_SCORE",
    "BiometricSignals",
    "DeterministicAggregator",
    "LogisticsSignals",
    "PhotoVerificationSignals",
    "SignalDomain",
    "SignalSet",
    "SynthesisPolicy",
    "Unavailable",
    "Verdict",
    "VerdictSource",
    "VerdictType",
    "effective_weights",
]
