"""Rule-based scoring, confidence adjustment and transition policy."""

from .confidence import ConfidenceAdjuster
from .heuristic import HeuristicScorer, HeuristicThresholds, Verdict
from .transitions import StateValidator, TransitionDecision, is_stale

__all__ = [
    "ConfidenceAdjuster",
    "HeuristicScorer",
    "HeuristicThresholds",
    "StateValidator",
    "TransitionDecision",
    "Verdict",
    "is_stale",
]
