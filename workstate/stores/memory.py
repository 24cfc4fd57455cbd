"""Thread-safe in-memory score store."""

from __future__ import annotations

import threading
from datetime import date, datetime
from typing import Dict, Iterable, List, Optional

from ..models import ClassificationScore, CostLogEntry, ProgressState, WorkUnit


class InMemoryScoreStore:
    """Keeps units, scores and cost rows in dictionaries guarded by one lock."""

    def __init__(self, units: Iterable[WorkUnit] = ()) -> None:
        self._lock = threading.RLock()
        self._units: Dict[str, WorkUnit] = {}
        self._scores: Dict[str, ClassificationScore] = {}
        self._analyzed: Dict[str, datetime] = {}
        self._costs: List[CostLogEntry] = []
        for unit in units:
            self.upsert_unit(unit)

    def upsert_unit(self, unit: WorkUnit) -> None:
        with self._lock:
            self._units[unit.id] = unit

    def get_unit(self, unit_id: str) -> Optional[WorkUnit]:
        with self._lock:
            return self._units.get(unit_id)

    def units(self) -> List[WorkUnit]:
        with self._lock:
            return list(self._units.values())

    def get_pending_units(self, limit: int) -> List[WorkUnit]:
        with self._lock:
            pending = []
            for unit in self._units.values():
                score = self._scores.get(unit.id)
                # Overridden units only come back once new content arrives after the override.
                if (
                    score is not None
                    and score.is_manual_override
                    and unit.updated_at <= score.inferred_at
                ):
                    continue
                analyzed_at = self._analyzed.get(unit.id)
                if analyzed_at is None or unit.updated_at > analyzed_at:
                    pending.append(unit)
        pending.sort(key=lambda unit: unit.updated_at, reverse=True)
        return pending[: max(0, limit)]

    def get_related_units(self, ticket_id: str) -> List[WorkUnit]:
        needle = ticket_id.lower()
        with self._lock:
            return [
                unit
                for unit in self._units.values()
                if needle in (ticket.lower() for ticket in unit.ticket_ids)
                or (unit.external_id or "").lower() == needle
            ]

    def get_units_in_state(self, state: ProgressState) -> List[str]:
        with self._lock:
            return [unit_id for unit_id, score in self._scores.items() if score.state is state]

    def get_score(self, unit_id: str) -> Optional[ClassificationScore]:
        with self._lock:
            return self._scores.get(unit_id)

    def scores(self) -> List[ClassificationScore]:
        with self._lock:
            return list(self._scores.values())

    def store_score(self, score: ClassificationScore) -> None:
        with self._lock:
            previous = self._scores.get(score.unit_id)
            if previous is not None:
                score.id = previous.id
            self._scores[score.unit_id] = score
            self._touch()

    def mark_analyzed(self, unit_id: str, at: datetime) -> None:
        with self._lock:
            self._analyzed[unit_id] = at
            self._touch()

    def analyzed_at(self, unit_id: str) -> Optional[datetime]:
        with self._lock:
            return self._analyzed.get(unit_id)

    def log_cost(self, entry: CostLogEntry) -> None:
        with self._lock:
            self._costs.append(entry)
            self._touch()

    def cost_entries(self) -> List[CostLogEntry]:
        with self._lock:
            return list(self._costs)

    def get_token_usage(self, day: date) -> int:
        with self._lock:
            return sum(entry.tokens_used for entry in self._costs if entry.day == day)

    def persist(self) -> None:
        return None

    def _touch(self) -> None:
        """Hook for subclasses that track unsaved changes."""


__all__ = ["InMemoryScoreStore"]
