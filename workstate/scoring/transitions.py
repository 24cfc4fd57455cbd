"""Transition policy between progress states and the staleness rule."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional, Sequence, Tuple

from ..models import ProgressState, Signal, SignalType, utcnow
from ..signals.patterns import REOPEN_KEYWORDS

FRESH_WINDOW = timedelta(hours=24)
STALENESS_CONFIDENCE = 0.8
STALENESS_MODEL = "staleness_detection"


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    reason: str


_Rule = Callable[[Sequence[Signal], datetime], TransitionDecision]


def _has_reopen(signals: Sequence[Signal], now: datetime) -> TransitionDecision:
    for signal in signals:
        context = signal.context.lower()
        if any(keyword in context for keyword in REOPEN_KEYWORDS):
            return TransitionDecision(True, "Reopen signal detected")
    return TransitionDecision(False, "Reopening a done unit requires an explicit reopen signal")


def _never(reason: str) -> _Rule:
    def rule(signals: Sequence[Signal], now: datetime) -> TransitionDecision:
        return TransitionDecision(False, reason)

    return rule


def _requires(
    signal_type: SignalType,
    reason: str,
    *,
    fresh: bool = False,
) -> _Rule:
    def rule(signals: Sequence[Signal], now: datetime) -> TransitionDecision:
        for signal in signals:
            if signal.type is not signal_type:
                continue
            if fresh and now - signal.detected_at > FRESH_WINDOW:
                continue
            return TransitionDecision(True, f"{signal_type.value.title()} signal present")
        return TransitionDecision(False, reason)

    return rule


_RULES: Dict[Tuple[ProgressState, ProgressState], _Rule] = {
    (ProgressState.DONE, ProgressState.IN_PROGRESS): _has_reopen,
    (ProgressState.DONE, ProgressState.NOT_STARTED): _never(
        "A done unit cannot return to not started"
    ),
    (ProgressState.DONE, ProgressState.BLOCKED): _requires(
        SignalType.BLOCKER,
        "Blocking a done unit requires a blocker signal from the last 24 hours",
        fresh=True,
    ),
    (ProgressState.NOT_STARTED, ProgressState.STALE): _never(
        "A unit that never started cannot go stale"
    ),
    (ProgressState.BLOCKED, ProgressState.IN_PROGRESS): _requires(
        SignalType.ACTIVITY,
        "Unblocking requires an activity signal from the last 24 hours",
        fresh=True,
    ),
    (ProgressState.STALE, ProgressState.IN_PROGRESS): _requires(
        SignalType.ACTIVITY,
        "Resuming a stale unit requires an activity signal",
    ),
    (ProgressState.STALE, ProgressState.DONE): _requires(
        SignalType.COMPLETION,
        "Completing a stale unit requires an explicit completion signal",
    ),
}


class StateValidator:
    """Rejects implausible transitions so one noisy signal cannot erase a classification."""

    def validate(
        self,
        current: Optional[ProgressState],
        proposed: ProgressState,
        signals: Sequence[Signal],
        now: datetime | None = None,
    ) -> TransitionDecision:
        if current is None:
            return TransitionDecision(True, "No previous classification")
        if current is proposed:
            return TransitionDecision(True, "State unchanged")
        rule = _RULES.get((current, proposed))
        if rule is None:
            return TransitionDecision(True, "Transition permitted")
        return rule(signals, now or utcnow())


def last_activity_time(signals: Sequence[Signal]) -> Optional[datetime]:
    """Newest activity or completion signal, else the newest signal of any type."""
    progress = [
        signal.detected_at
        for signal in signals
        if signal.type in (SignalType.ACTIVITY, SignalType.COMPLETION)
    ]
    if progress:
        return max(progress)
    if signals:
        return max(signal.detected_at for signal in signals)
    return None


def is_stale(
    last_activity_at: Optional[datetime],
    now: datetime,
    threshold: timedelta = timedelta(days=3),
) -> bool:
    """Exactly at the threshold is not yet stale; unknown activity always is."""
    if last_activity_at is None:
        return True
    return now - last_activity_at > threshold


__all__ = [
    "FRESH_WINDOW",
    "STALENESS_CONFIDENCE",
    "STALENESS_MODEL",
    "StateValidator",
    "TransitionDecision",
    "is_stale",
    "last_activity_time",
]
