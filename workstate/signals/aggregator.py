"""Merges signals for one unit of work across its own content and related units."""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Sequence

from ..logging import get_logger
from ..models import Signal, SignalType, WorkUnit, utcnow
from .extractor import SignalExtractor

MAX_SIGNALS_PER_TYPE = 5
_CONTEXT_KEY_LENGTH = 50


class SignalAggregator:
    """Builds the bounded, deduplicated evidence set used for scoring."""

    def __init__(
        self,
        extractor: SignalExtractor | None = None,
        *,
        title_multiplier: float = 1.2,
        recency_window: timedelta = timedelta(hours=24),
        recency_boost: float = 1.2,
        max_per_type: int = MAX_SIGNALS_PER_TYPE,
    ) -> None:
        self.extractor = extractor or SignalExtractor()
        self.title_multiplier = title_multiplier
        self.recency_window = recency_window
        self.recency_boost = recency_boost
        self.max_per_type = max_per_type
        self.logger = get_logger("signals.aggregator")

    def collect(self, unit: WorkUnit, related_units: Sequence[WorkUnit] = ()) -> List[Signal]:
        """Extract raw signals from the unit's title, content and related units."""
        own_reference = unit.external_id or unit.id
        signals: List[Signal] = [
            signal.reweighted(self.title_multiplier)
            for signal in self.extractor.extract(
                unit.title,
                unit.source,
                related_item_id=own_reference,
                detected_at=unit.updated_at,
            )
        ]
        signals.extend(
            self.extractor.extract(
                unit.content,
                unit.source,
                related_item_id=own_reference,
                detected_at=unit.updated_at,
            )
        )
        signals.extend(self._source_cues(unit, own_reference))

        for related in related_units:
            if related.id == unit.id:
                continue
            reference = related.external_id or related.id
            for text in (related.title, related.content):
                signals.extend(
                    self.extractor.extract(
                        text,
                        related.source,
                        related_item_id=reference,
                        detected_at=related.updated_at,
                    )
                )
            signals.extend(self._source_cues(related, reference))
        return signals

    def _source_cues(self, unit: WorkUnit, reference: str) -> List[Signal]:
        return self.extractor.extract_source_cues(
            unit.title,
            unit.content,
            unit.source,
            related_item_id=reference,
            detected_at=unit.updated_at,
        )

    def aggregate(
        self,
        unit: WorkUnit,
        related_units: Sequence[WorkUnit] = (),
        *,
        now: datetime | None = None,
    ) -> List[Signal]:
        """Return at most ``5 * len(SignalType)`` signals, most recent first."""
        reference = now or utcnow()
        raw = self.collect(unit, related_units)
        summarized = self.summarize(self.apply_recency_boost(raw, reference))
        self.logger.debug(
            "Aggregated %d raw signals into %d for unit %s", len(raw), len(summarized), unit.id
        )
        return summarized

    def apply_recency_boost(self, signals: Iterable[Signal], now: datetime) -> List[Signal]:
        boosted: List[Signal] = []
        for signal in signals:
            age = now - signal.detected_at
            if timedelta(0) <= age <= self.recency_window:
                boosted.append(signal.reweighted(self.recency_boost))
            else:
                boosted.append(signal)
        return boosted

    def summarize(self, signals: Iterable[Signal]) -> List[Signal]:
        """Group by type, keep the strongest distinct contexts, cap each group."""
        grouped: Dict[SignalType, List[Signal]] = defaultdict(list)
        for signal in signals:
            grouped[signal.type].append(signal)

        selected: List[Signal] = []
        for signal_type in SignalType:
            candidates = sorted(
                grouped.get(signal_type, []),
                key=lambda item: (item.weight, item.detected_at),
                reverse=True,
            )
            kept: List[Signal] = []
            seen_keys: List[str] = []
            for candidate in candidates:
                key = _context_key(candidate.context)
                if any(_overlaps(key, existing) for existing in seen_keys):
                    continue
                kept.append(candidate)
                seen_keys.append(key)
                if len(kept) >= self.max_per_type:
                    break
            selected.extend(kept)

        return sorted(selected, key=lambda item: item.detected_at, reverse=True)


def _context_key(context: str) -> str:
    return " ".join(context.lower().split())[:_CONTEXT_KEY_LENGTH]


def _overlaps(left: str, right: str) -> bool:
    if left == right:
        return True
    if not left or not right:
        return False
    return left in right or right in left


__all__ = ["MAX_SIGNALS_PER_TYPE", "SignalAggregator"]
