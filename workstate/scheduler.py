"""Recurring trigger for the progress pipeline."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .logging import get_logger
from .models import PipelineStatistics, utcnow
from .pipeline import CycleReport, ProgressPipeline

JOB_ID = "workstate:progress_cycle"


class PipelineScheduler:
    """Runs pipeline cycles on an interval; ``run_now`` shares the same cycle."""

    def __init__(
        self,
        pipeline: ProgressPipeline,
        *,
        interval_minutes: int | None = None,
        scheduler: BackgroundScheduler | None = None,
    ) -> None:
        self.pipeline = pipeline
        self.interval_minutes = interval_minutes or pipeline.config.interval_minutes
        self._scheduler = scheduler or BackgroundScheduler(daemon=True, timezone="UTC")
        self.logger = get_logger("scheduler")

    @property
    def running(self) -> bool:
        return bool(self._scheduler.running)

    def start(self, *, run_immediately: bool = False) -> None:
        if self.running:
            return
        self._scheduler.add_job(
            self._tick,
            trigger=IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="Progress classification cycle",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=60 * 5,
        )
        self._scheduler.start()
        self.logger.info("Scheduler started (interval: %d minutes)", self.interval_minutes)
        if run_immediately:
            self._scheduler.modify_job(JOB_ID, next_run_time=utcnow())

    def stop(self, *, wait: bool = True) -> None:
        """Ask the running cycle to stop at a batch boundary, then shut down."""
        self.pipeline.request_stop()
        if self.running:
            self._scheduler.shutdown(wait=wait)
            self.logger.info("Scheduler stopped")

    def run_now(self) -> CycleReport:
        return self.pipeline.run_cycle()

    def next_run_time(self) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(JOB_ID)
        return job.next_run_time if job is not None else None

    def statistics(self) -> PipelineStatistics:
        return self.pipeline.statistics(next_run_time=self.next_run_time())

    def _tick(self) -> None:
        report = self.pipeline.run_cycle()
        if report.skipped:
            self.logger.debug("Scheduled cycle skipped: %s", report.skip_reason)


__all__ = ["JOB_ID", "PipelineScheduler"]
