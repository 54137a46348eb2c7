"""Periodic maintenance triggers.

Two APScheduler interval jobs drive the idempotent reconciliation hooks:

- token_refresh: forced token refresh, every 50 minutes by default
- subscription_sync: full sync, every 6 hours by default and once at startup
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

if TYPE_CHECKING:
    from teamsrelay.config.schema import ScheduleConfig
    from teamsrelay.integration import Integration

logger = logging.getLogger(__name__)

TOKEN_REFRESH_JOB = "token_refresh"
SUBSCRIPTION_SYNC_JOB = "subscription_sync"


class MaintenanceScheduler:
    """Owns the AsyncIOScheduler running the maintenance jobs.

    Must be started from inside a running event loop (the web app lifespan).
    """

    def __init__(
        self,
        integration: Integration,
        schedule: ScheduleConfig,
        *,
        sync_on_start: bool = True,
    ) -> None:
        self._integration = integration
        self._schedule = schedule
        self._sync_on_start = sync_on_start
        self._scheduler: AsyncIOScheduler | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def job_ids(self) -> list[str]:
        if self._scheduler is None:
            return []
        return [job.id for job in self._scheduler.get_jobs()]

    def build(self) -> AsyncIOScheduler:
        """Create the scheduler with both jobs registered (not started)."""
        scheduler = AsyncIOScheduler(timezone=UTC)

        misfire_options = {
            "misfire_grace_time": 60 * 10,
            "coalesce": True,
            "max_instances": 1,
        }

        scheduler.add_job(
            self._integration.refresh_token,
            IntervalTrigger(minutes=self._schedule.token_refresh_minutes),
            id=TOKEN_REFRESH_JOB,
            name="Refresh Graph access token",
            replace_existing=True,
            **misfire_options,
        )

        sync_options = dict(misfire_options)
        if self._sync_on_start:
            sync_options["next_run_time"] = datetime.now(UTC)

        scheduler.add_job(
            self._integration.request_resync,
            IntervalTrigger(hours=self._schedule.sync_interval_hours),
            id=SUBSCRIPTION_SYNC_JOB,
            name="Reconcile change-notification subscription",
            replace_existing=True,
            **sync_options,
        )
        return scheduler

    def start(self) -> None:
        if self._scheduler is None:
            self._scheduler = self.build()
        self._scheduler.start()
        logger.info(
            "Maintenance scheduler started (token refresh every %d min, sync every %d h)",
            self._schedule.token_refresh_minutes,
            self._schedule.sync_interval_hours,
        )

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Maintenance scheduler stopped")
        self._scheduler = None
