"""Tests for workstate.scheduler."""

from __future__ import annotations

import threading
from datetime import timedelta

import pytest
from apscheduler.schedulers.background import BackgroundScheduler

from tests._fixtures.fakes import NOW
from workstate.config import PipelineConfig
from workstate.models import PipelineStatistics
from workstate.pipeline import CycleReport
from workstate.scheduler import JOB_ID, PipelineScheduler


class _FakePipeline:
    def __init__(self, interval_minutes: int = 45) -> None:
        self.config = PipelineConfig(interval_minutes=interval_minutes)
        self.ran = threading.Event()
        self.cycles = 0
        self.stop_requests = 0

    def run_cycle(self, now=None) -> CycleReport:
        self.cycles += 1
        self.ran.set()
        return CycleReport(started_at=NOW, finished_at=NOW)

    def request_stop(self) -> None:
        self.stop_requests += 1

    def statistics(self, *, next_run_time=None) -> PipelineStatistics:
        return PipelineStatistics(
            is_running=False,
            last_run_time=None,
            last_error=None,
            items_processed_today=0,
            tokens_used_today=0,
            daily_token_limit=50_000,
            stale_items_detected=0,
            next_run_time=next_run_time,
        )


@pytest.fixture
def backend():
    scheduler = BackgroundScheduler(timezone="UTC")
    yield scheduler
    if scheduler.running:
        scheduler.shutdown(wait=False)


def test_start_registers_single_interval_job(backend: BackgroundScheduler) -> None:
    pipeline = _FakePipeline()
    scheduler = PipelineScheduler(pipeline, interval_minutes=30, scheduler=backend)

    scheduler.start()
    scheduler.start()

    assert scheduler.running
    assert [job.id for job in backend.get_jobs()] == [JOB_ID]
    job = backend.get_job(JOB_ID)
    assert job.trigger.interval == timedelta(minutes=30)
    assert job.max_instances == 1
    assert job.coalesce is True
    assert job.misfire_grace_time == 300
    assert scheduler.next_run_time() == job.next_run_time
    assert scheduler.statistics().next_run_time == job.next_run_time


def test_interval_defaults_to_pipeline_config(backend: BackgroundScheduler) -> None:
    scheduler = PipelineScheduler(_FakePipeline(interval_minutes=15), scheduler=backend)

    assert scheduler.interval_minutes == 15


def test_run_immediately_triggers_a_cycle(backend: BackgroundScheduler) -> None:
    pipeline = _FakePipeline()
    scheduler = PipelineScheduler(pipeline, scheduler=backend)

    scheduler.start(run_immediately=True)

    assert pipeline.ran.wait(timeout=5)


def test_stop_requests_pipeline_stop(backend: BackgroundScheduler) -> None:
    pipeline = _FakePipeline()
    scheduler = PipelineScheduler(pipeline, scheduler=backend)
    scheduler.start()

    scheduler.stop(wait=False)

    assert pipeline.stop_requests == 1
    assert not scheduler.running
    assert scheduler.next_run_time() is None


def test_stop_before_start_is_harmless(backend: BackgroundScheduler) -> None:
    pipeline = _FakePipeline()

    PipelineScheduler(pipeline, scheduler=backend).stop()

    assert pipeline.stop_requests == 1


def test_run_now_runs_one_cycle(backend: BackgroundScheduler) -> None:
    pipeline = _FakePipeline()
    scheduler = PipelineScheduler(pipeline, scheduler=backend)

    report = scheduler.run_now()

    assert pipeline.cycles == 1
    assert report.skipped is False
    assert scheduler.statistics().next_run_time is None
