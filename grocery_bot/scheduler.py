"""Scheduled housekeeping for the running bot."""

from __future__ import annotations

import logging

from .config import BotConfig
from .db import SessionStore

logger = logging.getLogger(__name__)


class SessionCleanupScheduler:
    """Periodically deletes expired callback tokens.

    Uses APScheduler for cron-based scheduling.
    """

    def __init__(self, config: BotConfig, sessions: SessionStore) -> None:
        """Initialize the scheduler.

        Args:
            config: BotConfig instance.
            sessions: Session store to clean up.

        Raises:
            ImportError: If apscheduler is not installed.
        """
        try:
            from apscheduler.schedulers.asyncio import AsyncIOScheduler
            from apscheduler.triggers.cron import CronTrigger
        except ImportError:
            raise ImportError("apscheduler is required: pip install apscheduler")

        self._config = config
        self._sessions = sessions
        self._scheduler = AsyncIOScheduler()
        self._CronTrigger = CronTrigger
        self._running = False

    def setup_jobs(self) -> None:
        """Register scheduled jobs based on config."""
        schedule = self._config.sessions.cleanup_schedule
        trigger = self._parse_cron(schedule)
        self._scheduler.add_job(
            self._job_cleanup_sessions,
            trigger=trigger,
            id="cleanup_sessions",
            name="Expired session cleanup",
            replace_existing=True,
        )
        logger.info("Session cleanup job registered: %s", schedule)

    def start(self) -> None:
        """Start the scheduler. Must be called from a running event loop."""
        if self.running:
            return
        self.setup_jobs()
        self._scheduler.start()
        self._running = True
        for job in self.get_jobs():
            logger.info("Scheduled %s, next run %s", job["id"], job["next_run"])
        logger.info("Scheduler started")

    def stop(self) -> None:
        if self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._running

    def get_jobs(self) -> list[dict]:
        """Return info about scheduled jobs."""
        jobs = []
        for job in self._scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs.append({
                "id": job.id,
                "name": job.name,
                "next_run": str(next_run) if next_run else None,
            })
        return jobs

    def _parse_cron(self, expr: str):
        """Parse a 5-field cron expression into a CronTrigger."""
        parts = expr.split()
        if len(parts) == 5:
            return self._CronTrigger(
                minute=parts[0],
                hour=parts[1],
                day=parts[2],
                month=parts[3],
                day_of_week=parts[4],
            )
        raise ValueError(f"Invalid cron expression: {expr}")

    async def _job_cleanup_sessions(self) -> None:
        logger.debug("Running session cleanup")
        try:
            self._sessions.cleanup_expired()
        except Exception:
            logger.exception("Session cleanup failed")
