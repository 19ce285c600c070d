"""
Unit tests for the background job scheduler registry.
"""

from unittest.mock import AsyncMock

import pytest
from apscheduler.triggers.interval import IntervalTrigger

from letterflow.core import scheduler


@pytest.fixture(autouse=True)
def clean_registry():
    saved = dict(scheduler._job_registry)
    scheduler._job_registry.clear()
    yield
    scheduler._job_registry.clear()
    scheduler._job_registry.update(saved)


class TestTriggerJobManually:
    @pytest.mark.asyncio
    async def test_runs_registered_job(self):
        job = AsyncMock(return_value={"total_sent": 2})
        scheduler.register_job("test_job", job, IntervalTrigger(minutes=5))

        result = await scheduler.trigger_job_manually("test_job")

        assert result["status"] == "success"
        assert result["result"] == {"total_sent": 2}
        job.assert_called_once()

    @pytest.mark.asyncio
    async def test_reports_job_failure(self):
        job = AsyncMock(side_effect=RuntimeError("database down"))
        scheduler.register_job("test_job", job, IntervalTrigger(minutes=5))

        result = await scheduler.trigger_job_manually("test_job")

        assert result["status"] == "error"
        assert result["error"] == "database down"

    @pytest.mark.asyncio
    async def test_unknown_job(self):
        with pytest.raises(ValueError):
            await scheduler.trigger_job_manually("missing")


class TestListRegisteredJobs:
    def test_not_started_jobs_are_listed_paused(self):
        scheduler.register_job("test_job", AsyncMock(), IntervalTrigger(minutes=5))

        jobs = scheduler.list_registered_jobs()

        assert jobs == [
            {"job_id": "test_job", "registered": True, "next_run_time": None, "is_paused": True}
        ]
