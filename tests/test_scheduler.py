"""Tests for the maintenance scheduler."""

from __future__ import annotations

from datetime import timedelta

import pytest

from teamsrelay.config import ScheduleConfig
from teamsrelay.scheduler import (
    SUBSCRIPTION_SYNC_JOB,
    TOKEN_REFRESH_JOB,
    MaintenanceScheduler,
)


class StubIntegration:
    def __init__(self) -> None:
        self.refreshes = 0
        self.resyncs = 0

    async def refresh_token(self) -> None:
        self.refreshes += 1

    async def request_resync(self) -> None:
        self.resyncs += 1


class TestBuild:
    def test_registers_both_jobs(self) -> None:
        scheduler = MaintenanceScheduler(StubIntegration(), ScheduleConfig()).build()

        jobs = {job.id: job for job in scheduler.get_jobs()}

        assert set(jobs) == {TOKEN_REFRESH_JOB, SUBSCRIPTION_SYNC_JOB}
        assert jobs[TOKEN_REFRESH_JOB].trigger.interval == timedelta(minutes=50)
        assert jobs[SUBSCRIPTION_SYNC_JOB].trigger.interval == timedelta(hours=6)

    def test_custom_intervals(self) -> None:
        schedule = ScheduleConfig(token_refresh_minutes=30, sync_interval_hours=12)

        scheduler = MaintenanceScheduler(StubIntegration(), schedule).build()
        jobs = {job.id: job for job in scheduler.get_jobs()}

        assert jobs[TOKEN_REFRESH_JOB].trigger.interval == timedelta(minutes=30)
        assert jobs[SUBSCRIPTION_SYNC_JOB].trigger.interval == timedelta(hours=12)

    def test_jobs_do_not_overlap(self) -> None:
        scheduler = MaintenanceScheduler(StubIntegration(), ScheduleConfig()).build()

        for job in scheduler.get_jobs():
            assert job.max_instances == 1
            assert job.coalesce is True
            assert job.misfire_grace_time == 600

    def test_jobs_call_integration_hooks(self) -> None:
        integration = StubIntegration()
        scheduler = MaintenanceScheduler(integration, ScheduleConfig()).build()
        jobs = {job.id: job for job in scheduler.get_jobs()}

        assert jobs[TOKEN_REFRESH_JOB].func == integration.refresh_token
        assert jobs[SUBSCRIPTION_SYNC_JOB].func == integration.request_resync


class TestLifecycle:
    def test_not_running_before_start(self) -> None:
        scheduler = MaintenanceScheduler(StubIntegration(), ScheduleConfig())

        assert not scheduler.running
        assert scheduler.job_ids() == []

    @pytest.mark.asyncio
    async def test_start_and_shutdown(self) -> None:
        scheduler = MaintenanceScheduler(
            StubIntegration(), ScheduleConfig(), sync_on_start=False
        )

        scheduler.start()
        try:
            assert scheduler.running
            assert sorted(scheduler.job_ids()) == sorted([SUBSCRIPTION_SYNC_JOB, TOKEN_REFRESH_JOB])
        finally:
            scheduler.shutdown()

        assert not scheduler.running
        assert scheduler.job_ids() == []
