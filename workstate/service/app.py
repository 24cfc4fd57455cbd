"""FastAPI application entrypoint for workstate service mode."""

from __future__ import annotations

import asyncio
import functools
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, List, Optional

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from ..config import load_config
from ..models import ClassificationScore, ProgressState
from ..pipeline import CycleReport, ProgressPipeline
from ..scheduler import PipelineScheduler
from ..stores.json_store import JsonScoreStore


class HealthResponse(BaseModel):
    status: str


class StatisticsResponse(BaseModel):
    is_running: bool
    last_run_time: Optional[datetime] = None
    last_error: Optional[str] = None
    items_processed_today: int
    tokens_used_today: int
    daily_token_limit: int
    stale_items_detected: int
    next_run_time: Optional[datetime] = None
    usage_percentage: float
    is_limit_reached: bool


class RunResponse(BaseModel):
    status: str
    skip_reason: Optional[str] = None
    interrupted: bool = False
    units_processed: int = 0
    units_escalated: int = 0
    model_calls: int = 0
    tokens_used: int = 0
    stale_detected: int = 0
    scores_written: int = 0
    errors: List[str] = []


class OverrideRequest(BaseModel):
    unit_id: str
    state: str
    reasoning: str = ""


class SignalPayload(BaseModel):
    type: str
    weight: float
    source: str
    context: str
    detected_at: datetime
    related_item_id: Optional[str] = None


class ScoreResponse(BaseModel):
    id: str
    unit_id: str
    state: str
    confidence: float
    reasoning: str
    model_used: str
    is_manual_override: bool
    inferred_at: datetime
    last_activity_at: Optional[datetime] = None
    signals: List[SignalPayload] = []


def _default_scheduler() -> PipelineScheduler:
    config = load_config(Path.cwd())
    store = JsonScoreStore(config.store_path)
    return PipelineScheduler(ProgressPipeline.from_config(config, store))


def create_app(
    scheduler_factory: Callable[[], PipelineScheduler] = _default_scheduler,
) -> FastAPI:
    """Create the FastAPI application exposing pipeline operations."""

    app = FastAPI(title="Workstate Service", version="1.0.0")
    # Pipeline counters and locks must outlive individual requests.
    scheduler = scheduler_factory()
    app.state.scheduler = scheduler

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok")

    @app.get("/statistics", response_model=StatisticsResponse)
    async def statistics() -> StatisticsResponse:
        stats = scheduler.statistics()
        return StatisticsResponse(
            is_running=stats.is_running,
            last_run_time=stats.last_run_time,
            last_error=stats.last_error,
            items_processed_today=stats.items_processed_today,
            tokens_used_today=stats.tokens_used_today,
            daily_token_limit=stats.daily_token_limit,
            stale_items_detected=stats.stale_items_detected,
            next_run_time=stats.next_run_time,
            usage_percentage=round(stats.usage_percentage, 2),
            is_limit_reached=stats.is_limit_reached,
        )

    @app.post("/run", response_model=RunResponse)
    async def run_now() -> RunResponse:
        # Cycles block on model calls; keep them off the event loop.
        loop = asyncio.get_running_loop()
        report = await loop.run_in_executor(None, scheduler.run_now)
        return _run_response(report)

    @app.post("/overrides", response_model=ScoreResponse)
    async def set_override(payload: OverrideRequest) -> ScoreResponse:
        state = ProgressState.from_label(payload.state)
        if state is None:
            raise HTTPException(status_code=400, detail=f"Unknown state '{payload.state}'")
        loop = asyncio.get_running_loop()
        score = await loop.run_in_executor(
            None,
            functools.partial(
                scheduler.pipeline.set_manual_override,
                payload.unit_id,
                state,
                payload.reasoning,
            ),
        )
        return _score_response(score)

    @app.get("/scores/{unit_id}", response_model=ScoreResponse)
    async def get_score(unit_id: str) -> ScoreResponse:
        score = scheduler.pipeline.store.get_score(unit_id)
        if score is None:
            raise HTTPException(status_code=404, detail=f"No score for unit '{unit_id}'")
        return _score_response(score)

    @app.exception_handler(ValueError)
    async def value_error_handler(
        _: Request, exc: ValueError
    ) -> JSONResponse:  # pragma: no cover - simple mapping
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    return app


def _run_response(report: CycleReport) -> RunResponse:
    return RunResponse(
        status="skipped" if report.skipped else "ok",
        skip_reason=report.skip_reason,
        interrupted=report.interrupted,
        units_processed=report.units_processed,
        units_escalated=report.units_escalated,
        model_calls=report.model_calls,
        tokens_used=report.tokens_used,
        stale_detected=report.stale_detected,
        scores_written=report.scores_written,
        errors=list(report.errors),
    )


def _score_response(score: ClassificationScore) -> ScoreResponse:
    payload: dict[str, Any] = score.to_dict()
    return ScoreResponse(**payload)


def run_service(
    host: str = "0.0.0.0",
    port: int = 8000,
    *,
    scheduler: PipelineScheduler | None = None,
) -> None:  # pragma: no cover - integration path
    active = scheduler or _default_scheduler()
    app = create_app(lambda: active)
    if active.pipeline.config.enabled:
        active.start()
    try:
        uvicorn.run(app, host=host, port=port)
    finally:
        active.stop()
