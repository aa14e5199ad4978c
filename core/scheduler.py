"""
Daily jobs for the auth core.

Provides cron-like scheduling for the maintenance tasks the service owns:
- Password lifecycle scan (expiry warnings and expired notices)
- Revocation registry purge (drop entries past their natural expiry)
- Password reset token purge (drop emailed links nobody used)

Uses APScheduler's BackgroundScheduler so jobs run on their own thread and
never block request handling. Jobs are plain callables; the scheduler only
decides WHEN they run. Tests call run_job_now() instead of waiting on cron.

Usage:
    from core.scheduler import DailyJobScheduler

    scheduler = DailyJobScheduler()
    scheduler.add_job("password_lifecycle_scan", manager.scan, "0 8 * * *")
    scheduler.start()
"""

import logging
from dataclasses import dataclass
from typing import Any, Callable, Optional

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from core.timestamps import Clock, SystemClock

logger = logging.getLogger(__name__)


@dataclass
class ScheduledJob:
    """Registered job plus its last-run bookkeeping."""
    id: str
    func: Callable[[], Any]
    schedule: str  # Cron expression, UTC
    last_run: Optional[str] = None
    last_status: str = "pending"
    last_result: Any = None
    run_count: int = 0
    error_count: int = 0

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "schedule": self.schedule,
            "last_run": self.last_run,
            "last_status": self.last_status,
            "run_count": self.run_count,
            "error_count": self.error_count,
        }


class DailyJobScheduler:
    """Wraps a BackgroundScheduler with per-job run tracking."""

    def __init__(self, clock: Optional[Clock] = None):
        self._clock = clock or SystemClock()
        self._scheduler: Optional[BackgroundScheduler] = None
        self._jobs: dict[str, ScheduledJob] = {}
        self._running = False

    @property
    def scheduler(self) -> BackgroundScheduler:
        """Get or create the scheduler instance."""
        if self._scheduler is None:
            job_defaults = {
                'coalesce': True,  # Combine missed runs into one
                'max_instances': 1,  # Only one instance at a time
                'misfire_grace_time': 300,  # 5 minute grace period
            }
            self._scheduler = BackgroundScheduler(
                job_defaults=job_defaults,
                timezone='UTC'
            )
        return self._scheduler

    @property
    def running(self) -> bool:
        return self._running

    def add_job(self, job_id: str, func: Callable[[], Any], schedule: str) -> ScheduledJob:
        """Register a job under a cron expression. Replaces an existing job with the same id."""
        trigger = CronTrigger.from_crontab(schedule, timezone='UTC')
        job = ScheduledJob(id=job_id, func=func, schedule=schedule)
        self._jobs[job_id] = job
        self.scheduler.add_job(
            self._execute_job,
            trigger=trigger,
            id=job_id,
            name=job_id,
            args=[job_id],
            replace_existing=True,
        )
        logger.info(f"Scheduled job: {job_id} ({schedule})")
        return job

    def get_job(self, job_id: str) -> Optional[ScheduledJob]:
        return self._jobs.get(job_id)

    def list_jobs(self) -> list[ScheduledJob]:
        return list(self._jobs.values())

    def start(self):
        """Start the scheduler."""
        if not self._running:
            self.scheduler.start()
            self._running = True
            logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if self._running:
            self.scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def run_job_now(self, job_id: str) -> Any:
        """Run a registered job synchronously on the calling thread."""
        if job_id not in self._jobs:
            raise KeyError(f"Job not found: {job_id}")
        return self._execute_job(job_id)

    def _execute_job(self, job_id: str) -> Any:
        """Execute a job and record the outcome. Failures are logged, not raised."""
        job = self._jobs.get(job_id)
        if job is None:
            logger.error(f"Job not found: {job_id}")
            return None

        start_time = self._clock.now()
        logger.info(f"Executing scheduled job: {job_id}")

        try:
            result = job.func()
        except Exception as e:
            job.last_run = start_time.isoformat()
            job.last_status = "failed"
            job.last_result = str(e)[:10000]
            job.run_count += 1
            job.error_count += 1
            logger.exception(f"Job failed: {job_id}")
            return None

        duration = (self._clock.now() - start_time).total_seconds()
        job.last_run = start_time.isoformat()
        job.last_status = "success"
        job.last_result = result
        job.run_count += 1
        logger.info(f"Job completed: {job_id} ({duration:.2f}s)")
        return result
