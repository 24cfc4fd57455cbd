"""Core data models shared across workstate components."""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field, replace
from datetime import UTC, date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional


class SignalType(str, Enum):
    """Categories of progress evidence detected in text."""

    COMMITMENT = "commitment"
    ACTIVITY = "activity"
    BLOCKER = "blocker"
    COMPLETION = "completion"
    ESCALATION = "escalation"

    @property
    def default_weight(self) -> float:
        return _DEFAULT_WEIGHTS[self]


_DEFAULT_WEIGHTS: Dict[SignalType, float] = {
    SignalType.COMPLETION: 0.40,
    SignalType.BLOCKER: 0.30,
    SignalType.ACTIVITY: 0.20,
    SignalType.COMMITMENT: 0.10,
    SignalType.ESCALATION: 0.10,
}


class ProgressState(str, Enum):
    """Progress classification of a unit of work."""

    NOT_STARTED = "not_started"
    IN_PROGRESS = "in_progress"
    BLOCKED = "blocked"
    DONE = "done"
    STALE = "stale"

    @property
    def display_name(self) -> str:
        return self.value.replace("_", " ").title()

    @property
    def sort_order(self) -> int:
        """Blocked first (needs attention), done last."""
        return _SORT_ORDER[self]

    @classmethod
    def from_label(cls, label: object) -> Optional["ProgressState"]:
        """Parse ``IN_PROGRESS``, ``in progress`` or ``in_progress``; ``None`` when unknown."""
        if not isinstance(label, str):
            return None
        normalized = label.strip().lower().replace(" ", "_").replace("-", "_")
        try:
            return cls(normalized)
        except ValueError:
            return None


_SORT_ORDER: Dict[ProgressState, int] = {
    ProgressState.BLOCKED: 0,
    ProgressState.IN_PROGRESS: 1,
    ProgressState.STALE: 2,
    ProgressState.NOT_STARTED: 3,
    ProgressState.DONE: 4,
}


def utcnow() -> datetime:
    return datetime.now(UTC)


@dataclass(frozen=True)
class Signal:
    """Weighted piece of evidence extracted from one source document."""

    type: SignalType
    source: str
    context: str = ""
    weight: Optional[float] = None
    detected_at: datetime = field(default_factory=utcnow)
    related_item_id: Optional[str] = None

    def __post_init__(self) -> None:
        if self.weight is None:
            object.__setattr__(self, "weight", self.type.default_weight)

    def reweighted(self, factor: float) -> "Signal":
        return replace(self, weight=self.weight * factor)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "weight": self.weight,
            "source": self.source,
            "context": self.context,
            "detected_at": format_timestamp(self.detected_at),
            "related_item_id": self.related_item_id,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "Signal":
        detected_at = parse_timestamp(payload.get("detected_at")) or utcnow()
        weight = payload.get("weight")
        return cls(
            type=SignalType(payload["type"]),
            source=str(payload.get("source", "")),
            context=str(payload.get("context", "")),
            weight=float(weight) if isinstance(weight, (int, float)) else None,
            detected_at=detected_at,
            related_item_id=payload.get("related_item_id"),
        )


@dataclass
class WorkUnit:
    """A unit of work (task, email, chat message, commit, document) owned by storage."""

    id: str
    title: str
    content: Optional[str] = None
    updated_at: datetime = field(default_factory=utcnow)
    source: str = "task"
    item_type: str = "task"
    external_id: Optional[str] = None
    ticket_ids: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None

    def age_days(self, now: datetime) -> int:
        reference = self.created_at or self.updated_at
        return max(0, (now - reference).days)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "content": self.content,
            "updated_at": format_timestamp(self.updated_at),
            "source": self.source,
            "item_type": self.item_type,
            "external_id": self.external_id,
            "ticket_ids": list(self.ticket_ids),
            "created_at": format_timestamp(self.created_at),
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "WorkUnit":
        ticket_ids = payload.get("ticket_ids") or []
        return cls(
            id=str(payload["id"]),
            title=str(payload.get("title", "")),
            content=payload.get("content"),
            updated_at=parse_timestamp(payload.get("updated_at")) or utcnow(),
            source=str(payload.get("source", "task")),
            item_type=str(payload.get("item_type", "task")),
            external_id=payload.get("external_id"),
            ticket_ids=[str(ticket) for ticket in ticket_ids],
            created_at=parse_timestamp(payload.get("created_at")),
        )


@dataclass
class ClassificationScore:
    """Persisted classification result for one unit of work."""

    unit_id: str
    state: ProgressState
    confidence: float
    reasoning: str
    model_used: str
    signals: List[Signal] = field(default_factory=list)
    is_manual_override: bool = False
    inferred_at: datetime = field(default_factory=utcnow)
    last_activity_at: Optional[datetime] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "unit_id": self.unit_id,
            "state": self.state.value,
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "signals": [signal.to_dict() for signal in self.signals],
            "is_manual_override": self.is_manual_override,
            "inferred_at": format_timestamp(self.inferred_at),
            "last_activity_at": format_timestamp(self.last_activity_at),
            "model_used": self.model_used,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "ClassificationScore":
        state = ProgressState.from_label(payload.get("state"))
        if state is None:
            raise ValueError(f"Unknown progress state: {payload.get('state')!r}")
        return cls(
            id=str(payload.get("id") or uuid.uuid4()),
            unit_id=str(payload["unit_id"]),
            state=state,
            confidence=float(payload.get("confidence", 0.0)),
            reasoning=str(payload.get("reasoning", "")),
            signals=[Signal.from_dict(item) for item in payload.get("signals", [])],
            is_manual_override=bool(payload.get("is_manual_override", False)),
            inferred_at=parse_timestamp(payload.get("inferred_at")) or utcnow(),
            last_activity_at=parse_timestamp(payload.get("last_activity_at")),
            model_used=str(payload.get("model_used", "")),
        )


@dataclass(frozen=True)
class TokenUsage:
    """Token accounting reported by the model provider."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0

    def __add__(self, other: "TokenUsage") -> "TokenUsage":
        return TokenUsage(
            prompt_tokens=self.prompt_tokens + other.prompt_tokens,
            completion_tokens=self.completion_tokens + other.completion_tokens,
            total_tokens=self.total_tokens + other.total_tokens,
        )


@dataclass(frozen=True)
class CostLogEntry:
    """One persisted row of model spend, used to rebuild daily counters."""

    logged_at: datetime
    units_processed: int
    tokens_used: int
    model_used: str
    estimated_cost: float = 0.0

    @property
    def day(self) -> date:
        return self.logged_at.astimezone(UTC).date()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "logged_at": format_timestamp(self.logged_at),
            "units_processed": self.units_processed,
            "tokens_used": self.tokens_used,
            "model_used": self.model_used,
            "estimated_cost": self.estimated_cost,
        }

    @classmethod
    def from_dict(cls, payload: Dict[str, Any]) -> "CostLogEntry":
        return cls(
            logged_at=parse_timestamp(payload.get("logged_at")) or utcnow(),
            units_processed=int(payload.get("units_processed", 0)),
            tokens_used=int(payload.get("tokens_used", 0)),
            model_used=str(payload.get("model_used", "")),
            estimated_cost=float(payload.get("estimated_cost", 0.0)),
        )


@dataclass(frozen=True)
class PipelineStatistics:
    """Read-only snapshot of pipeline counters."""

    is_running: bool
    last_run_time: Optional[datetime]
    last_error: Optional[str]
    items_processed_today: int
    tokens_used_today: int
    daily_token_limit: int
    stale_items_detected: int
    next_run_time: Optional[datetime]

    @property
    def usage_percentage(self) -> float:
        if self.daily_token_limit <= 0:
            return 0.0
        return self.tokens_used_today / self.daily_token_limit * 100

    @property
    def is_limit_reached(self) -> bool:
        return self.tokens_used_today >= self.daily_token_limit

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_running": self.is_running,
            "last_run_time": format_timestamp(self.last_run_time),
            "last_error": self.last_error,
            "items_processed_today": self.items_processed_today,
            "tokens_used_today": self.tokens_used_today,
            "daily_token_limit": self.daily_token_limit,
            "stale_items_detected": self.stale_items_detected,
            "next_run_time": format_timestamp(self.next_run_time),
            "usage_percentage": round(self.usage_percentage, 2),
            "is_limit_reached": self.is_limit_reached,
        }


def format_timestamp(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    return value.isoformat().replace("+00:00", "Z")


def parse_timestamp(value: object) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    if not isinstance(value, str) or not value.strip():
        return None
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


__all__ = [
    "ClassificationScore",
    "CostLogEntry",
    "PipelineStatistics",
    "ProgressState",
    "Signal",
    "SignalType",
    "TokenUsage",
    "WorkUnit",
    "format_timestamp",
    "parse_timestamp",
    "utcnow",
]
