"""Adjusts raw confidence using corroboration, recency and contradiction."""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Sequence

from ..models import Signal, SignalType, utcnow

MAX_CONFIDENCE = 0.95


def source_family(source: str) -> str:
    """``email_subject`` and ``email_body`` both count as ``email``."""
    return source.lower().split("_", 1)[0]


class ConfidenceAdjuster:
    def __init__(self, max_confidence: float = MAX_CONFIDENCE) -> None:
        self.max_confidence = max_confidence

    def adjust(
        self,
        confidence: float,
        signals: Sequence[Signal],
        now: datetime | None = None,
    ) -> float:
        reference = now or utcnow()
        adjusted = confidence

        families = {source_family(signal.source) for signal in signals}
        if len(families) >= 2:
            adjusted += 0.10
        if len(families) >= 3:
            adjusted += 0.05

        if signals:
            newest = max(signal.detected_at for signal in signals)
            age = reference - newest
            if age < timedelta(hours=24):
                adjusted += 0.05
            if age < timedelta(hours=1):
                adjusted += 0.05

        types = {signal.type for signal in signals}
        if SignalType.COMPLETION in types and SignalType.BLOCKER in types:
            adjusted -= 0.15

        if any("commit" in signal.source.lower() for signal in signals):
            adjusted += 0.05

        return max(0.0, min(adjusted, self.max_confidence))


__all__ = ["ConfidenceAdjuster", "MAX_CONFIDENCE", "source_family"]
