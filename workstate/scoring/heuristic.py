"""Deterministic weighted classifier over aggregated signals."""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, Iterable, NamedTuple

from ..config import HeuristicConfig
from ..models import ProgressState, Signal, SignalType


class Verdict(NamedTuple):
    state: ProgressState
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class HeuristicThresholds:
    """Per-type weight sums that must be exceeded for a branch to fire."""

    completion: float = 0.20
    blocker: float = 0.15
    activity: float = 0.10
    commitment: float = 0.05
    commitment_cap: float = 0.70
    escalation_confidence: float = 0.60
    default_confidence: float = 0.50

    @classmethod
    def from_config(cls, config: HeuristicConfig) -> "HeuristicThresholds":
        return cls(
            completion=config.completion_threshold,
            blocker=config.blocker_threshold,
            activity=config.activity_threshold,
            commitment=config.commitment_threshold,
            commitment_cap=config.commitment_confidence_cap,
        )


class HeuristicScorer:
    """Maps signal weight sums to a progress state using fixed precedence.

    Completion beats blocker, blocker beats activity, activity beats
    commitment. Escalation alone only suggests the unit may need attention.
    The scorer holds no clock and no randomness, so identical inputs always
    produce identical verdicts.
    """

    def __init__(self, thresholds: HeuristicThresholds | None = None) -> None:
        self.thresholds = thresholds or HeuristicThresholds()

    def classify(self, signals: Iterable[Signal]) -> Verdict:
        totals = weight_totals(signals)
        limits = self.thresholds

        completion = totals[SignalType.COMPLETION]
        if completion > limits.completion:
            return Verdict(
                ProgressState.DONE,
                _branch_confidence(completion),
                f"Strong completion signals detected (weight {completion:.2f})",
            )

        blocker = totals[SignalType.BLOCKER]
        if blocker > limits.blocker:
            return Verdict(
                ProgressState.BLOCKED,
                _branch_confidence(blocker),
                f"Blocker signals detected (weight {blocker:.2f})",
            )

        activity = totals[SignalType.ACTIVITY]
        if activity > limits.activity:
            return Verdict(
                ProgressState.IN_PROGRESS,
                _branch_confidence(activity),
                f"Recent activity signals detected (weight {activity:.2f})",
            )

        commitment = totals[SignalType.COMMITMENT]
        if commitment > limits.commitment:
            return Verdict(
                ProgressState.IN_PROGRESS,
                _branch_confidence(commitment, limits.commitment_cap),
                f"Commitment signals detected (weight {commitment:.2f})",
            )

        if totals[SignalType.ESCALATION] > 0:
            return Verdict(
                ProgressState.STALE,
                limits.escalation_confidence,
                "Escalation signals without progress; may need attention",
            )

        return Verdict(
            ProgressState.NOT_STARTED,
            limits.default_confidence,
            "insufficient signals",
        )


def weight_totals(signals: Iterable[Signal]) -> Dict[SignalType, float]:
    totals: Dict[SignalType, float] = defaultdict(float)
    for signal in signals:
        totals[signal.type] += signal.weight
    return totals


def _branch_confidence(weight: float, cap: float = 1.0) -> float:
    return min(weight * 2, cap)


__all__ = ["HeuristicScorer", "HeuristicThresholds", "Verdict", "weight_totals"]
