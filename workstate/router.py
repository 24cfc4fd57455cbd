"""Hybrid routing between the heuristic scorer and the model classifier."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Mapping, Sequence

from .budget import TokenBudget
from .classifier import MAX_BATCH_SIZE, ModelBatchResult, ModelClassifier
from .failsafe import DEFAULT_DISCOUNT, build_fallback_scores
from .logging import get_logger
from .models import ClassificationScore, Signal, SignalType, TokenUsage, WorkUnit, utcnow
from .retry import RetryPolicy, call_with_retry
from .scoring.confidence import ConfidenceAdjuster
from .scoring.heuristic import HeuristicScorer
from .scoring.transitions import last_activity_time
from .signals.aggregator import SignalAggregator

HEURISTIC_MODEL = "heuristic"
ESCALATION_THRESHOLD = 0.6


@dataclass
class RoutingResult:
    """Scores for every routed unit plus what it cost to produce them."""

    scores: Dict[str, ClassificationScore] = field(default_factory=dict)
    signals: Dict[str, List[Signal]] = field(default_factory=dict)
    escalated: List[str] = field(default_factory=list)
    fallback_units: List[str] = field(default_factory=list)
    model_calls: int = 0
    usage: TokenUsage = field(default_factory=TokenUsage)
    errors: List[str] = field(default_factory=list)


def has_contradiction(signals: Sequence[Signal]) -> bool:
    """Completion with blocker, or commitment with escalation but no activity."""
    types = {signal.type for signal in signals}
    if SignalType.COMPLETION in types and SignalType.BLOCKER in types:
        return True
    return (
        SignalType.COMMITMENT in types
        and SignalType.ESCALATION in types
        and SignalType.ACTIVITY not in types
    )


class HybridRouter:
    """Scores every unit heuristically and escalates only ambiguous ones."""

    def __init__(
        self,
        classifier: ModelClassifier | None = None,
        *,
        aggregator: SignalAggregator | None = None,
        scorer: HeuristicScorer | None = None,
        adjuster: ConfidenceAdjuster | None = None,
        budget: TokenBudget | None = None,
        retry_policy: RetryPolicy | None = None,
        sleep: Callable[[float], None] = time.sleep,
        escalation_threshold: float = ESCALATION_THRESHOLD,
        fallback_discount: float = DEFAULT_DISCOUNT,
        batch_size: int = MAX_BATCH_SIZE,
    ) -> None:
        self.classifier = classifier
        self.aggregator = aggregator or SignalAggregator()
        self.scorer = scorer or HeuristicScorer()
        self.adjuster = adjuster or ConfidenceAdjuster()
        self.budget = budget
        self.retry_policy = retry_policy or RetryPolicy()
        self.sleep = sleep
        self.escalation_threshold = escalation_threshold
        self.fallback_discount = fallback_discount
        self.batch_size = max(1, min(batch_size, MAX_BATCH_SIZE))
        self.logger = get_logger("router")

    def heuristic_score(
        self,
        unit: WorkUnit,
        signals: Sequence[Signal],
        now: datetime | None = None,
    ) -> ClassificationScore:
        reference = now or utcnow()
        verdict = self.scorer.classify(signals)
        return ClassificationScore(
            unit_id=unit.id,
            state=verdict.state,
            confidence=self.adjuster.adjust(verdict.confidence, signals, reference),
            reasoning=verdict.reasoning,
            model_used=HEURISTIC_MODEL,
            signals=list(signals),
            inferred_at=reference,
            last_activity_at=last_activity_time(signals) or unit.updated_at,
        )

    def needs_model(self, score: ClassificationScore, signals: Sequence[Signal]) -> bool:
        return score.confidence < self.escalation_threshold or has_contradiction(signals)

    def route(
        self,
        units: Sequence[WorkUnit],
        related: Mapping[str, Sequence[WorkUnit]] | None = None,
        *,
        now: datetime | None = None,
        allow_model: bool = True,
        hybrid: bool = True,
    ) -> RoutingResult:
        """Route units; model failures propagate to the caller."""
        return self._route(units, related, now, allow_model, hybrid, fallback=False)

    def analyze_batch_with_fallback(
        self,
        units: Sequence[WorkUnit],
        related: Mapping[str, Sequence[WorkUnit]] | None = None,
        *,
        now: datetime | None = None,
        allow_model: bool = True,
        hybrid: bool = True,
    ) -> RoutingResult:
        """Like :meth:`route`, but a failing model batch degrades to discounted heuristics."""
        return self._route(units, related, now, allow_model, hybrid, fallback=True)

    def _route(
        self,
        units: Sequence[WorkUnit],
        related: Mapping[str, Sequence[WorkUnit]] | None,
        now: datetime | None,
        allow_model: bool,
        hybrid: bool,
        *,
        fallback: bool,
    ) -> RoutingResult:
        reference = now or utcnow()
        related = related or {}
        result = RoutingResult()
        heuristic: Dict[str, ClassificationScore] = {}

        for unit in units:
            signals = self._aggregate(unit, related.get(unit.id, ()), reference)
            result.signals[unit.id] = signals
            score = self.heuristic_score(unit, signals, reference)
            heuristic[unit.id] = score
            result.scores[unit.id] = score
            if not hybrid or self.needs_model(score, signals):
                result.escalated.append(unit.id)

        if not result.escalated or not allow_model or self.classifier is None:
            return result

        by_id = {unit.id: unit for unit in units}
        escalated_units = [by_id[unit_id] for unit_id in result.escalated]
        failure: Exception | None = None
        for start in range(0, len(escalated_units), self.batch_size):
            batch = escalated_units[start : start + self.batch_size]
            if not self._reserve_capacity(reference):
                self.logger.info(
                    "Daily token budget exhausted; %d escalated units stay heuristic",
                    len(escalated_units) - start,
                )
                break

            batch_ids = [unit.id for unit in batch]
            try:
                batch_result = self._call_model(
                    self.classifier, batch, result.signals, related, reference
                )
            except Exception as exc:
                if not fallback:
                    raise
                self.logger.warning("Model batch of %d units failed: %s", len(batch), exc)
                result.errors.append(f"{type(exc).__name__}: {exc}")
                failure = exc
                continue

            result.model_calls += 1
            result.usage = result.usage + batch_result.usage
            if self.budget is not None:
                self.budget.record(batch_result.usage.total_tokens, reference)
            for unit_id in batch_ids:
                accepted = batch_result.scores.get(unit_id)
                if accepted is not None:
                    result.scores[unit_id] = accepted
                else:
                    self.logger.debug(
                        "Keeping heuristic score for %s: %s",
                        unit_id,
                        batch_result.failures.get(unit_id, "no model answer"),
                    )

        if failure is not None:
            # Every unit without a model answer is discounted, escalated or not.
            unanswered = [
                unit.id
                for unit in units
                if result.scores[unit.id].model_used == HEURISTIC_MODEL
            ]
            result.scores.update(
                build_fallback_scores(
                    heuristic,
                    unanswered,
                    discount=self.fallback_discount,
                    reason=str(failure),
                )
            )
            result.fallback_units.extend(unanswered)
        return result

    def _aggregate(
        self,
        unit: WorkUnit,
        related: Sequence[WorkUnit],
        now: datetime,
    ) -> List[Signal]:
        try:
            return self.aggregator.aggregate(unit, related, now=now)
        except (TypeError, ValueError, AttributeError):
            self.logger.exception("Signal aggregation failed for unit %s; scoring without signals", unit.id)
            return []

    def _reserve_capacity(self, now: datetime) -> bool:
        if self.budget is None:
            return True
        with self.budget.lock:
            return self.budget.has_capacity(now)

    def _call_model(
        self,
        classifier: ModelClassifier,
        batch: Sequence[WorkUnit],
        signals: Mapping[str, Sequence[Signal]],
        related: Mapping[str, Sequence[WorkUnit]],
        now: datetime,
    ) -> ModelBatchResult:
        return call_with_retry(
            lambda: classifier.classify(batch, signals, related, now=now),
            self.retry_policy,
            sleep=self.sleep,
        )


__all__ = [
    "ESCALATION_THRESHOLD",
    "HEURISTIC_MODEL",
    "HybridRouter",
    "RoutingResult",
    "has_contradiction",
]
