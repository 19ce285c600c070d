"""
Unit tests for the recommendation reminder job.

These tests cover:
- Sending one reminder per due request and moving the cursor
- Idempotence (an immediate second run sends nothing)
- Coalescing missed thresholds into a single reminder
- Email failures still advance the cursor
- Overdue reporting at and after the deadline
- Per-request errors do not stop the scan

The due/overdue queries are replaced by in-memory filters that apply the
same predicates as the SQL in the repository.
"""

from contextlib import asynccontextmanager
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from letterflow.modules.recommendations import jobs
from letterflow.modules.recommendations.jobs import (
    JOB_ID_SEND_REMINDERS,
    register_recommendation_jobs,
    send_recommendation_reminders,
)
from letterflow.modules.recommendations.models import RequestStatus
from letterflow.modules.recommendations.repository import ACTIVE_STATUSES

JOBS = "letterflow.modules.recommendations.jobs"


def _session_maker(db):
    @asynccontextmanager
    async def session():
        yield db

    return MagicMock(side_effect=session)


def _fake_store(requests):
    by_id = {request.id: request for request in requests}

    async def get_request(db, id):
        return by_id.get(id)

    async def get_due(db, now):
        return [
            r
            for r in requests
            if r.status in ACTIVE_STATUSES
            and r.deadline > now
            and r.next_reminder_date is not None
            and r.next_reminder_date <= now
        ]

    async def get_overdue(db, now):
        return [r for r in requests if r.status in ACTIVE_STATUSES and r.deadline <= now]

    return get_request, get_due, get_overdue


@pytest.fixture
def run_job(mock_db):
    """Run the job against an in-memory set of requests."""

    async def run(requests, now, email_result=True):
        get_request, get_due, get_overdue = _fake_store(requests)
        with (
            patch(f"{JOBS}.async_session_maker", _session_maker(mock_db)),
            patch.object(jobs.repository, "get_request", AsyncMock(side_effect=get_request)),
            patch.object(
                jobs.repository, "get_requests_due_for_reminder", AsyncMock(side_effect=get_due)
            ),
            patch.object(
                jobs.repository, "get_overdue_requests", AsyncMock(side_effect=get_overdue)
            ),
            patch(
                f"{JOBS}.send_recommendation_reminder", AsyncMock(return_value=email_result)
            ) as mock_email,
        ):
            result = await send_recommendation_reminders(now=now)
        return result, mock_email

    return run


class TestSendRecommendationReminders:
    """Tests for send_recommendation_reminders."""

    @pytest.mark.asyncio
    async def test_nothing_due(self, run_job, sent_request, now):
        result, mock_email = await run_job([sent_request], now)

        assert result["total_sent"] == 0
        assert result["overdue"] == []
        mock_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_sends_due_reminder_and_moves_cursor(self, run_job, sent_request, now):
        sent_request.deadline = now + timedelta(days=7)
        sent_request.next_reminder_date = now

        result, mock_email = await run_job([sent_request], now)

        assert result["total_sent"] == 1
        assert result["reminders"][0]["status"] == "sent"
        assert result["reminders"][0]["threshold"] == 7
        assert sent_request.last_reminder_interval == 7
        assert sent_request.last_reminder_sent == now
        assert sent_request.next_reminder_date == sent_request.deadline - timedelta(days=3)

        kwargs = mock_email.call_args.kwargs
        assert kwargs["token"] == sent_request.secure_token
        assert kwargs["days_until_deadline"] == 7
        assert kwargs["urgency_message"].startswith("REMINDER")

    @pytest.mark.asyncio
    async def test_second_run_is_a_no_op(self, run_job, sent_request, now):
        sent_request.deadline = now + timedelta(days=7)
        sent_request.next_reminder_date = now

        await run_job([sent_request], now)
        result, mock_email = await run_job([sent_request], now)

        assert result["total_sent"] == 0
        mock_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_missed_thresholds_send_one_reminder(self, run_job, sent_request, now):
        """Scanner was down from 7d to 2d before the deadline."""
        sent_request.deadline = now + timedelta(days=2)
        sent_request.next_reminder_date = sent_request.deadline - timedelta(days=7)

        result, mock_email = await run_job([sent_request], now)

        assert result["total_sent"] == 1
        assert mock_email.call_count == 1
        assert sent_request.last_reminder_interval == 3
        assert sent_request.next_reminder_date == sent_request.deadline - timedelta(days=1)

    @pytest.mark.asyncio
    async def test_email_failure_still_moves_cursor(self, run_job, sent_request, now):
        sent_request.deadline = now + timedelta(days=3)
        sent_request.next_reminder_date = now

        result, _ = await run_job([sent_request], now, email_result=False)

        assert result["reminders"][0]["status"] == "marked_sent_email_failed"
        assert result["total_sent"] == 0
        assert result["total_email_failed"] == 1
        assert sent_request.last_reminder_interval == 3

    @pytest.mark.asyncio
    async def test_deadline_now_is_overdue_not_reminded(self, run_job, sent_request, now):
        sent_request.deadline = now
        sent_request.next_reminder_date = now - timedelta(days=1)

        result, mock_email = await run_job([sent_request], now)

        mock_email.assert_not_called()
        assert [item["request_id"] for item in result["overdue"]] == [str(sent_request.id)]
        assert sent_request.status == RequestStatus.SENT

    @pytest.mark.asyncio
    async def test_finished_requests_are_ignored(self, run_job, sent_request, now):
        sent_request.status = RequestStatus.RECEIVED
        sent_request.deadline = now - timedelta(days=1)
        sent_request.next_reminder_date = now

        result, mock_email = await run_job([sent_request], now)

        mock_email.assert_not_called()
        assert result["overdue"] == []

    @pytest.mark.asyncio
    async def test_error_on_one_request_does_not_stop_scan(
        self, run_job, sent_request, draft_request, now
    ):
        sent_request.deadline = now + timedelta(days=3)
        sent_request.next_reminder_date = now
        broken = draft_request
        broken.status = RequestStatus.SENT
        broken.secure_token = "b" * 64
        broken.next_reminder_date = now
        broken.reminder_intervals = []

        result, mock_email = await run_job([broken, sent_request], now)

        assert result["total_errors"] == 1
        assert result["total_sent"] == 1
        assert mock_email.call_count == 1


class TestRegisterRecommendationJobs:
    def test_registers_reminder_scan(self):
        with patch(f"{JOBS}.register_job") as mock_register:
            register_recommendation_jobs()

            kwargs = mock_register.call_args.kwargs
            assert kwargs["job_id"] == JOB_ID_SEND_REMINDERS
            assert kwargs["func"] is send_recommendation_reminders
