"""Budgeted background pipeline that keeps progress scores current."""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .budget import TokenBudget
from .classifier import ModelClassifier
from .config import PipelineConfig, WorkstateConfig
from .llm.client import ModelClient
from .logging import get_logger
from .models import (
    ClassificationScore,
    CostLogEntry,
    PipelineStatistics,
    ProgressState,
    SignalType,
    WorkUnit,
    utcnow,
)
from .prompting.builder import PromptBuilder
from .retry import RetryPolicy
from .router import HybridRouter, RoutingResult
from .scoring.confidence import ConfidenceAdjuster
from .scoring.heuristic import HeuristicScorer, HeuristicThresholds
from .scoring.transitions import (
    STALENESS_CONFIDENCE,
    STALENESS_MODEL,
    StateValidator,
    is_stale,
)
from .signals.aggregator import SignalAggregator
from .stores.base import ScoreStore

MANUAL_MODEL = "manual"
MAX_TICKETS_PER_UNIT = 3
MAX_RELATED_PER_UNIT = 10

# Signal types whose fresh evidence may release a manual override into each state.
_DRIVING_TYPES: Dict[ProgressState, Sequence[SignalType]] = {
    ProgressState.DONE: (SignalType.COMPLETION,),
    ProgressState.BLOCKED: (SignalType.BLOCKER,),
    ProgressState.IN_PROGRESS: (SignalType.ACTIVITY, SignalType.COMMITMENT),
    ProgressState.STALE: (SignalType.ESCALATION,),
    ProgressState.NOT_STARTED: (),
}


@dataclass
class CycleReport:
    """Outcome of one pipeline cycle."""

    started_at: datetime
    finished_at: Optional[datetime] = None
    skipped: bool = False
    skip_reason: Optional[str] = None
    interrupted: bool = False
    heuristics_only: bool = False
    units_processed: int = 0
    units_escalated: int = 0
    model_calls: int = 0
    tokens_used: int = 0
    stale_detected: int = 0
    scores_written: int = 0
    rejected_transitions: int = 0
    overrides_kept: int = 0
    fallback_units: int = 0
    errors: List[str] = field(default_factory=list)

    @classmethod
    def skipped_cycle(cls, now: datetime, reason: str) -> "CycleReport":
        return cls(started_at=now, finished_at=now, skipped=True, skip_reason=reason)


class ProgressPipeline:
    """Runs staleness sweeps and hybrid classification in budgeted cycles.

    A cycle never raises: failures are logged, recorded as ``last_error`` and
    the pipeline returns to idle. Only one cycle runs at a time; overlapping
    calls return a skipped report. Score commits and manual overrides share a
    single state lock so a concurrent override is never silently replaced.
    """

    def __init__(
        self,
        store: ScoreStore,
        router: HybridRouter,
        *,
        config: PipelineConfig | None = None,
        budget: TokenBudget | None = None,
        validator: StateValidator | None = None,
    ) -> None:
        self.store = store
        self.router = router
        self.config = config or PipelineConfig()
        self.budget = budget or router.budget or TokenBudget(self.config.daily_token_limit)
        if router.budget is None:
            router.budget = self.budget
        self.validator = validator or StateValidator()
        self.logger = get_logger("pipeline")

        self._cycle_lock = threading.Lock()
        self._state_lock = threading.RLock()
        self._stop_requested = threading.Event()
        self._is_running = False
        self._last_run_time: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._counter_day: Optional[date] = None
        self._items_processed_today = 0
        self._stale_items_detected = 0

    @classmethod
    def from_config(
        cls,
        config: WorkstateConfig,
        store: ScoreStore,
        *,
        client: ModelClient | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "ProgressPipeline":
        """Wire the full stack from configuration; no API key means heuristics only."""
        heuristics = config.heuristics
        budget = TokenBudget(config.pipeline.daily_token_limit)
        adjuster = ConfidenceAdjuster(heuristics.max_confidence)
        if client is None and config.llm.api_key:
            client = ModelClient.from_config(config.llm)

        classifier = None
        if client is not None:
            classifier = ModelClassifier(
                client,
                builder=PromptBuilder(
                    staleness_days=config.pipeline.staleness_threshold_days,
                    max_tokens=config.llm.max_tokens,
                ),
                adjuster=adjuster,
                batch_size=config.pipeline.batch_size,
            )
        router = HybridRouter(
            classifier,
            aggregator=SignalAggregator(title_multiplier=heuristics.title_multiplier),
            scorer=HeuristicScorer(HeuristicThresholds.from_config(heuristics)),
            adjuster=adjuster,
            budget=budget,
            retry_policy=RetryPolicy.from_config(config.retry),
            sleep=sleep,
            escalation_threshold=heuristics.escalation_threshold,
            fallback_discount=heuristics.fallback_discount,
            batch_size=config.pipeline.batch_size,
        )
        return cls(store, router, config=config.pipeline, budget=budget)

    # ------------------------------------------------------------------
    # Public API

    @property
    def is_running(self) -> bool:
        with self._state_lock:
            return self._is_running

    def request_stop(self) -> None:
        """Interrupt the running cycle at the next batch boundary."""
        self._stop_requested.set()

    def run_cycle(self, now: datetime | None = None) -> CycleReport:
        reference = now or utcnow()
        if not self._cycle_lock.acquire(blocking=False):
            self.logger.info("Cycle already running; skipping this trigger")
            return CycleReport.skipped_cycle(reference, "cycle already running")

        try:
            self._stop_requested.clear()
            with self._state_lock:
                self._is_running = True
            report = CycleReport(started_at=reference)
            try:
                self._run(report, reference)
            except Exception as exc:
                self._log_exception("Pipeline cycle failed", exc)
                report.errors.append(f"{type(exc).__name__}: {exc}")
            finally:
                report.finished_at = utcnow()
                with self._state_lock:
                    self._is_running = False
                    if not report.skipped:
                        self._last_run_time = reference
                        self._last_error = report.errors[-1] if report.errors else None
            self.logger.info(
                "Cycle finished: processed=%d escalated=%d stale=%d tokens=%d errors=%d",
                report.units_processed,
                report.units_escalated,
                report.stale_detected,
                report.tokens_used,
                len(report.errors),
            )
            return report
        finally:
            self._cycle_lock.release()

    def set_manual_override(
        self,
        unit_id: str,
        state: ProgressState | str,
        reasoning: str = "",
        *,
        now: datetime | None = None,
    ) -> ClassificationScore:
        """Pin a unit's state until fresh, strong evidence justifies a transition."""
        resolved = state if isinstance(state, ProgressState) else ProgressState.from_label(state)
        if resolved is None:
            raise ValueError(f"Unknown progress state: {state!r}")
        reference = now or utcnow()
        with self._state_lock:
            previous = self.store.get_score(unit_id)
            score = ClassificationScore(
                unit_id=unit_id,
                state=resolved,
                confidence=1.0,
                reasoning=reasoning or "Manually set",
                model_used=MANUAL_MODEL,
                signals=list(previous.signals) if previous else [],
                is_manual_override=True,
                inferred_at=reference,
                last_activity_at=previous.last_activity_at if previous else None,
            )
            self.store.store_score(score)
            self.store.persist()
        self.logger.info("Manual override for %s set to %s", unit_id, resolved.value)
        return score

    def statistics(self, *, next_run_time: datetime | None = None) -> PipelineStatistics:
        with self._state_lock:
            return PipelineStatistics(
                is_running=self._is_running,
                last_run_time=self._last_run_time,
                last_error=self._last_error,
                items_processed_today=self._items_processed_today,
                tokens_used_today=self.budget.used,
                daily_token_limit=self.budget.daily_limit,
                stale_items_detected=self._stale_items_detected,
                next_run_time=next_run_time,
            )

    # ------------------------------------------------------------------
    # Cycle phases

    def _run(self, report: CycleReport, now: datetime) -> None:
        if not self.config.enabled:
            report.skipped, report.skip_reason = True, "pipeline disabled"
            self.logger.info("Pipeline disabled; skipping cycle")
            return

        self._refresh_daily_counters(now)
        allow_model = self.budget.has_capacity(now)
        if not allow_model:
            if self.config.budget_exhausted_mode == "skip":
                report.skipped, report.skip_reason = True, "daily token limit reached"
                self.logger.info("Daily token limit reached; skipping cycle")
                return
            report.heuristics_only = True
            self.logger.info("Daily token limit reached; running heuristics only")

        try:
            report.stale_detected = self._sweep_stale(now)
        except Exception as exc:
            self._log_exception("Staleness sweep failed", exc)
            report.errors.append(f"staleness sweep: {exc}")

        units = self.store.get_pending_units(self.config.max_units_per_cycle)
        if not units:
            self.logger.debug("No units pending analysis")
            return
        related = self._collect_related(units)

        for start in range(0, len(units), self.config.batch_size):
            if self._stop_requested.is_set():
                report.interrupted = True
                self.logger.info("Stop requested; ending cycle at batch boundary")
                break
            chunk = units[start : start + self.config.batch_size]
            try:
                self._process_chunk(chunk, related, now, allow_model, report)
            except Exception as exc:
                self._log_exception("Failed to process batch", exc)
                report.errors.append(f"batch: {exc}")

    def _process_chunk(
        self,
        chunk: Sequence[WorkUnit],
        related: Dict[str, List[WorkUnit]],
        now: datetime,
        allow_model: bool,
        report: CycleReport,
    ) -> None:
        result = self.router.analyze_batch_with_fallback(
            chunk,
            related,
            now=now,
            allow_model=allow_model,
            hybrid=self.config.use_hybrid,
        )
        report.errors.extend(result.errors)
        report.units_escalated += len(result.escalated)
        report.fallback_units += len(result.fallback_units)
        report.model_calls += result.model_calls
        report.tokens_used += result.usage.total_tokens

        for unit in chunk:
            score = result.scores.get(unit.id)
            if score is None:
                continue
            if self._commit(unit.id, score, now, report):
                report.scores_written += 1
        report.units_processed += len(chunk)

        if result.model_calls:
            self._log_cost(len(chunk), result, now)
        with self._state_lock:
            self._items_processed_today += len(chunk)
        self.store.persist()

    def _sweep_stale(self, now: datetime) -> int:
        threshold = timedelta(days=self.config.staleness_threshold_days)
        detected = 0
        for unit_id in self.store.get_units_in_state(ProgressState.IN_PROGRESS):
            with self._state_lock:
                current = self.store.get_score(unit_id)
                if current is None or current.is_manual_override:
                    continue
                if current.state is not ProgressState.IN_PROGRESS:
                    continue
                if not is_stale(current.last_activity_at, now, threshold):
                    continue
                stale = replace(
                    current,
                    state=ProgressState.STALE,
                    confidence=STALENESS_CONFIDENCE,
                    reasoning=(
                        f"No activity for more than {_format_days(self.config.staleness_threshold_days)} days"
                    ),
                    model_used=STALENESS_MODEL,
                    inferred_at=now,
                )
                self.store.store_score(stale)
                self._stale_items_detected += 1
            detected += 1
            self.logger.debug("Unit %s marked stale", unit_id)
        if detected:
            self.store.persist()
            self.logger.info("Staleness sweep marked %d units stale", detected)
        return detected

    def _collect_related(self, units: Iterable[WorkUnit]) -> Dict[str, List[WorkUnit]]:
        extractor = self.router.aggregator.extractor
        related: Dict[str, List[WorkUnit]] = {}
        for unit in units:
            tickets = list(unit.ticket_ids)
            if not tickets:
                text = " ".join(part for part in (unit.title, unit.content or "") if part)
                tickets = extractor.extract_ticket_ids(text)
            found: List[WorkUnit] = []
            seen = {unit.id}
            for ticket in tickets[:MAX_TICKETS_PER_UNIT]:
                try:
                    candidates = self.store.get_related_units(ticket)
                except Exception as exc:
                    self._log_exception(f"Related lookup failed for {ticket}", exc)
                    continue
                for candidate in candidates:
                    if candidate.id in seen:
                        continue
                    seen.add(candidate.id)
                    found.append(candidate)
            related[unit.id] = found[:MAX_RELATED_PER_UNIT]
        return related

    def _commit(
        self,
        unit_id: str,
        proposed: ClassificationScore,
        now: datetime,
        report: CycleReport,
    ) -> bool:
        with self._state_lock:
            current = self.store.get_score(unit_id)
            if current is not None and current.is_manual_override:
                if not self._releases_override(current, proposed):
                    report.overrides_kept += 1
                    self.logger.info(
                        "Keeping manual override %s for %s; proposed %s lacks fresh evidence",
                        current.state.value,
                        unit_id,
                        proposed.state.value,
                    )
                    self.store.mark_analyzed(unit_id, now)
                    return False

            decision = self.validator.validate(
                current.state if current else None,
                proposed.state,
                proposed.signals,
                now,
            )
            if not decision.allowed:
                report.rejected_transitions += 1
                self.logger.info(
                    "Rejected transition %s -> %s for %s: %s",
                    current.state.value if current else "none",
                    proposed.state.value,
                    unit_id,
                    decision.reason,
                )
                self.store.mark_analyzed(unit_id, now)
                return False

            self.store.store_score(proposed)
            self.store.mark_analyzed(unit_id, now)
            return True

    def _releases_override(self, current: ClassificationScore, proposed: ClassificationScore) -> bool:
        if proposed.state is current.state:
            return False
        driving = _DRIVING_TYPES.get(proposed.state, ())
        fresh_weight = sum(
            signal.weight
            for signal in proposed.signals
            if signal.type in driving and signal.detected_at > current.inferred_at
        )
        return fresh_weight >= self.config.override_release_weight

    # ------------------------------------------------------------------
    # Counters and accounting

    def _refresh_daily_counters(self, now: datetime) -> None:
        with self._state_lock:
            first_cycle = self._counter_day is None
            reset = self._reset_counters_if_new_day(now)
        if first_cycle or reset:
            self.budget.set_used(self.store.get_token_usage(now.date()), now)
        else:
            self.budget.refresh(now)

    def _reset_counters_if_new_day(self, now: datetime) -> bool:
        today = now.date()
        if self._counter_day == today:
            return False
        had_day = self._counter_day is not None
        self._counter_day = today
        self._items_processed_today = 0
        self._stale_items_detected = 0
        return had_day

    def _log_cost(self, units: int, result: RoutingResult, now: datetime) -> None:
        classifier = self.router.classifier
        model = classifier.model_name if classifier is not None else "unknown"
        cost = classifier.client.spec.estimate_cost(result.usage) if classifier is not None else 0.0
        self.store.log_cost(
            CostLogEntry(
                logged_at=now,
                units_processed=units,
                tokens_used=result.usage.total_tokens,
                model_used=model,
                estimated_cost=cost,
            )
        )

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


def _format_days(days: float) -> str:
    return str(int(days)) if float(days).is_integer() else f"{days:g}"


__all__ = ["CycleReport", "MANUAL_MODEL", "ProgressPipeline"]
