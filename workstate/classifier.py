"""Model-backed classification of ambiguous units of work."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Mapping, Sequence

from .llm.client import ModelClient
from .llm.errors import InvalidResponseError
from .logging import get_logger
from .models import (
    ClassificationScore,
    ProgressState,
    Signal,
    TokenUsage,
    WorkUnit,
    parse_timestamp,
    utcnow,
)
from .prompting.builder import PromptBuilder
from .prompting.schema import response_format
from .scoring.confidence import ConfidenceAdjuster
from .scoring.transitions import last_activity_time

MAX_BATCH_SIZE = 10

_FENCED = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL | re.IGNORECASE)


@dataclass
class ModelBatchResult:
    """Scores accepted from the model plus the units it failed to answer for."""

    scores: Dict[str, ClassificationScore] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)
    usage: TokenUsage = field(default_factory=TokenUsage)

    def merge(self, other: "ModelBatchResult") -> None:
        self.scores.update(other.scores)
        self.failures.update(other.failures)
        self.usage = self.usage + other.usage


class ModelClassifier:
    """Builds one prompt per batch, calls the model, validates every answer."""

    def __init__(
        self,
        client: ModelClient,
        *,
        builder: PromptBuilder | None = None,
        adjuster: ConfidenceAdjuster | None = None,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self.client = client
        self.builder = builder or PromptBuilder()
        self.adjuster = adjuster or ConfidenceAdjuster()
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.logger = get_logger("classifier")

    @property
    def model_name(self) -> str:
        return self.client.model

    def classify(
        self,
        units: Sequence[WorkUnit],
        signals_by_unit: Mapping[str, Sequence[Signal]],
        related_by_unit: Mapping[str, Sequence[WorkUnit]] | None = None,
        *,
        now: datetime | None = None,
    ) -> ModelBatchResult:
        reference = now or utcnow()
        result = ModelBatchResult()
        for start in range(0, len(units), self.batch_size):
            batch = units[start : start + self.batch_size]
            result.merge(self._classify_batch(batch, signals_by_unit, related_by_unit, reference))
        return result

    def _classify_batch(
        self,
        units: Sequence[WorkUnit],
        signals_by_unit: Mapping[str, Sequence[Signal]],
        related_by_unit: Mapping[str, Sequence[WorkUnit]] | None,
        now: datetime,
    ) -> ModelBatchResult:
        request = self.builder.build(units, signals_by_unit, related_by_unit, now=now)
        response = self.client.complete(
            request.prompt,
            system=request.system,
            response_format=response_format(),
            max_tokens=request.max_tokens,
        )
        analyses = parse_analyses(response.content)

        result = ModelBatchResult(usage=response.usage)
        by_id = _index_analyses(analyses, units)
        for unit in units:
            signals = list(signals_by_unit.get(unit.id, ()))
            entry = by_id.get(unit.id)
            if entry is None:
                result.failures[unit.id] = "Model response has no entry for this unit"
                continue
            try:
                result.scores[unit.id] = self._score_from_entry(unit, entry, signals, response.model, now)
            except InvalidResponseError as exc:
                result.failures[unit.id] = str(exc)

        if result.failures:
            self.logger.warning(
                "Model rejected or skipped %d of %d units", len(result.failures), len(units)
            )
        return result

    def _score_from_entry(
        self,
        unit: WorkUnit,
        entry: Mapping[str, Any],
        signals: List[Signal],
        model: str,
        now: datetime,
    ) -> ClassificationScore:
        state = ProgressState.from_label(entry.get("state"))
        if state is None:
            raise InvalidResponseError(f"Unknown state {entry.get('state')!r}")

        confidence = entry.get("confidence")
        if isinstance(confidence, bool) or not isinstance(confidence, (int, float)):
            raise InvalidResponseError("Confidence is missing or not a number")
        if not 0.0 <= float(confidence) <= 1.0:
            raise InvalidResponseError(f"Confidence {confidence} outside [0, 1]")

        reasoning = entry.get("reasoning")
        last_activity = parse_timestamp(entry.get("last_activity")) or last_activity_time(signals)
        return ClassificationScore(
            unit_id=unit.id,
            state=state,
            confidence=self.adjuster.adjust(float(confidence), signals, now),
            reasoning=str(reasoning) if reasoning else "Classified by model",
            model_used=model,
            signals=signals,
            inferred_at=now,
            last_activity_at=last_activity,
        )


def extract_json(content: str) -> str:
    """Strip optional markdown code fences around a JSON body."""
    match = _FENCED.search(content)
    if match:
        return match.group(1).strip()
    return content.strip()


def parse_analyses(content: str) -> List[Dict[str, Any]]:
    try:
        payload = json.loads(extract_json(content))
    except json.JSONDecodeError as exc:
        raise InvalidResponseError("Model response is not valid JSON") from exc
    if isinstance(payload, dict):
        analyses = payload.get("analyses")
    elif isinstance(payload, list):
        analyses = payload
    else:
        analyses = None
    if not isinstance(analyses, list):
        raise InvalidResponseError("Model response has no 'analyses' array")
    return [item for item in analyses if isinstance(item, dict)]


def _index_analyses(
    analyses: Sequence[Dict[str, Any]], units: Sequence[WorkUnit]
) -> Dict[str, Dict[str, Any]]:
    indexed: Dict[str, Dict[str, Any]] = {}
    known = {unit.id for unit in units}
    for entry in analyses:
        unit_id = entry.get("unit_id")
        if isinstance(unit_id, str) and unit_id in known:
            indexed.setdefault(unit_id, entry)
            continue
        position = entry.get("item_index")
        if isinstance(position, int) and not isinstance(position, bool) and 0 <= position < len(units):
            indexed.setdefault(units[position].id, entry)
    return indexed


__all__ = ["MAX_BATCH_SIZE", "ModelBatchResult", "ModelClassifier", "extract_json", "parse_analyses"]
