from decisiongate.agents.dispute import DisputeAgent
from decisiongate.agents.matchmaker import MatchmakerAgent, PriceHintOutcome
from decisiongate.agents.scoper import ScopeOutcome, ScoperAgent

__all__ = [
    "DisputeAgent",
    "MatchmakerAgent",
    "PriceHintOutcome",
    "ScopeOutcome",
    "ScoperAgent",
]
