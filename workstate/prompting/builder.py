"""Builds batched classification prompts for the model path."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Mapping, Sequence

from jinja2 import Environment, FileSystemLoader

from ..models import ProgressState, Signal, SignalType, WorkUnit, utcnow

CONTENT_LIMIT = 1500
RELATED_LIMIT = 3
SIGNAL_CONTEXT_LIMIT = 60

_STATE_DESCRIPTIONS: Dict[str, str] = {
    ProgressState.NOT_STARTED.value: "No meaningful activity. The unit exists but work has not begun.",
    ProgressState.IN_PROGRESS.value: "Active work detected: recent commits, emails about the task, updates made.",
    ProgressState.BLOCKED.value: 'Explicit blocker signals: "waiting on X", "blocked by Y", dependency issues.',
    ProgressState.DONE.value: 'Completion signals detected: "completed", "merged", "resolved", "shipped".',
    ProgressState.STALE.value: "Was in progress but shows no recent activity; work may have stalled.",
}


@dataclass(frozen=True)
class PromptMessage:
    """Represents a single chat message for model prompting."""

    role: str
    content: str


@dataclass
class PromptRequest:
    """One batched classification request."""

    messages: List[PromptMessage]
    unit_ids: List[str]
    max_tokens: int | None = None
    metadata: Dict[str, object] = field(default_factory=dict)

    @property
    def system(self) -> str | None:
        for message in self.messages:
            if message.role == "system":
                return message.content
        return None

    @property
    def prompt(self) -> str:
        return "\n\n".join(message.content for message in self.messages if message.role == "user")


class PromptBuilder:
    """Renders the system instruction from a template and serializes units as JSON."""

    def __init__(
        self,
        templates_dir: Path | None = None,
        *,
        staleness_days: float = 3,
        max_tokens: int | None = None,
    ) -> None:
        self.templates_dir = templates_dir or Path(__file__).with_name("templates")
        self.staleness_days = staleness_days
        self.max_tokens = max_tokens
        self._env = Environment(
            loader=FileSystemLoader(str(self.templates_dir)),
            autoescape=False,
            trim_blocks=True,
            lstrip_blocks=True,
        )

    def system_prompt(self) -> str:
        template = self._env.get_template("progress_system.j2")
        return template.render(
            states=list(ProgressState),
            descriptions=_STATE_DESCRIPTIONS,
            signal_types=sorted(SignalType, key=lambda kind: -kind.default_weight),
            staleness_days=_format_days(self.staleness_days),
        ).strip()

    def build(
        self,
        units: Sequence[WorkUnit],
        signals_by_unit: Mapping[str, Sequence[Signal]],
        related_by_unit: Mapping[str, Sequence[WorkUnit]] | None = None,
        *,
        now: datetime | None = None,
    ) -> PromptRequest:
        reference = now or utcnow()
        related_by_unit = related_by_unit or {}
        payload = [
            self._unit_payload(
                unit,
                signals_by_unit.get(unit.id, ()),
                related_by_unit.get(unit.id, ()),
                reference,
            )
            for unit in units
        ]
        user_prompt = (
            f"Classify the progress state of these {len(payload)} units of work:\n"
            + json.dumps(payload, indent=2, ensure_ascii=False)
        )
        return PromptRequest(
            messages=[
                PromptMessage(role="system", content=self.system_prompt()),
                PromptMessage(role="user", content=user_prompt),
            ],
            unit_ids=[unit.id for unit in units],
            max_tokens=self.max_tokens,
            metadata={"unit_count": len(payload)},
        )

    def _unit_payload(
        self,
        unit: WorkUnit,
        signals: Sequence[Signal],
        related: Sequence[WorkUnit],
        now: datetime,
    ) -> Dict[str, object]:
        return {
            "unit_id": unit.id,
            "item_type": unit.item_type,
            "title": unit.title,
            "source": unit.source,
            "age_days": unit.age_days(now),
            "content": _truncate(unit.content or "", CONTENT_LIMIT),
            "related": [
                {
                    "source": item.source,
                    "title": item.title,
                    "reference": item.external_id or item.id,
                }
                for item in list(related)[:RELATED_LIMIT]
            ],
            "signals": [
                {
                    "type": signal.type.value,
                    "weight": round(signal.weight, 3),
                    "source": signal.source,
                    "context": _truncate(signal.context, SIGNAL_CONTEXT_LIMIT),
                }
                for signal in signals
            ],
        }


def _truncate(text: str, limit: int) -> str:
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def _format_days(days: float) -> str:
    return str(int(days)) if float(days).is_integer() else f"{days:g}"


__all__ = ["PromptBuilder", "PromptMessage", "PromptRequest"]
