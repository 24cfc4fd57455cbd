"""Storage interface the pipeline reads units from and writes scores to."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional, Protocol

from ..models import ClassificationScore, CostLogEntry, ProgressState, WorkUnit


class ScoreStore(Protocol):
    def get_pending_units(self, limit: int) -> List[WorkUnit]:
        """Units never analyzed or updated since their last analysis.

        Manually overridden units are excluded unless updated after the override.
        """
        ...

    def get_related_units(self, ticket_id: str) -> List[WorkUnit]:
        ...

    def get_units_in_state(self, state: ProgressState) -> List[str]:
        ...

    def get_score(self, unit_id: str) -> Optional[ClassificationScore]:
        ...

    def store_score(self, score: ClassificationScore) -> None:
        """Upsert keyed by ``score.unit_id``."""
        ...

    def mark_analyzed(self, unit_id: str, at: datetime) -> None:
        ...

    def log_cost(self, entry: CostLogEntry) -> None:
        ...

    def get_token_usage(self, day: date) -> int:
        ...

    def persist(self) -> None:
        ...


__all__ = ["ScoreStore"]
