"""Fail-safe scores used when the model path cannot answer."""

from __future__ import annotations

from dataclasses import replace
from typing import Dict, Iterable, Mapping

from .models import ClassificationScore

FALLBACK_MODEL = "heuristic_fallback"
DEFAULT_DISCOUNT = 0.85


def build_fallback_scores(
    heuristic_scores: Mapping[str, ClassificationScore],
    unit_ids: Iterable[str],
    *,
    discount: float = DEFAULT_DISCOUNT,
    reason: str | None = None,
) -> Dict[str, ClassificationScore]:
    """Return discounted copies of the heuristic scores for ``unit_ids``."""
    cleaned_reason = _format_reason(reason)
    fallback: Dict[str, ClassificationScore] = {}
    for unit_id in unit_ids:
        score = heuristic_scores[unit_id]
        reasoning = f"{score.reasoning} (model unavailable, heuristic fallback)"
        if cleaned_reason:
            reasoning = f"{reasoning}: {cleaned_reason}"
        fallback[unit_id] = replace(
            score,
            confidence=score.confidence * discount,
            reasoning=reasoning,
            model_used=FALLBACK_MODEL,
        )
    return fallback


def _format_reason(reason: str | None) -> str | None:
    if not reason:
        return None
    cleaned = " ".join(reason.strip().split())
    if not cleaned:
        return None
    return cleaned[:200] + ("..." if len(cleaned) > 200 else "")


__all__ = ["DEFAULT_DISCOUNT", "FALLBACK_MODEL", "build_fallback_scores"]
