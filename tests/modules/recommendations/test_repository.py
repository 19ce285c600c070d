"""
Unit tests for the recommendation repository.

These tests cover:
- The request status transition table
- update_status enforcement
- Reminder cursor updates
"""

from datetime import timedelta

import pytest

from letterflow.modules.recommendations.models import RequestStatus
from letterflow.modules.recommendations.repository import (
    VALID_STATUS_TRANSITIONS,
    InvalidStatusTransitionError,
    can_transition,
    mark_reminder_sent,
    update_status,
)


class TestStatusTransitions:
    """Tests for the transition table."""

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (RequestStatus.DRAFT, RequestStatus.SENT),
            (RequestStatus.DRAFT, RequestStatus.CANCELLED),
            (RequestStatus.SENT, RequestStatus.PENDING),
            (RequestStatus.SENT, RequestStatus.RECEIVED),
            (RequestStatus.SENT, RequestStatus.CANCELLED),
            (RequestStatus.PENDING, RequestStatus.SENT),
            (RequestStatus.PENDING, RequestStatus.RECEIVED),
            (RequestStatus.PENDING, RequestStatus.CANCELLED),
        ],
    )
    def test_allowed(self, current, new):
        assert can_transition(current, new)

    @pytest.mark.parametrize(
        ("current", "new"),
        [
            (RequestStatus.DRAFT, RequestStatus.RECEIVED),
            (RequestStatus.DRAFT, RequestStatus.PENDING),
            (RequestStatus.RECEIVED, RequestStatus.SENT),
            (RequestStatus.RECEIVED, RequestStatus.CANCELLED),
            (RequestStatus.CANCELLED, RequestStatus.SENT),
            (RequestStatus.CANCELLED, RequestStatus.RECEIVED),
        ],
    )
    def test_forbidden(self, current, new):
        assert not can_transition(current, new)

    def test_terminal_statuses(self):
        assert VALID_STATUS_TRANSITIONS[RequestStatus.RECEIVED] == set()
        assert VALID_STATUS_TRANSITIONS[RequestStatus.CANCELLED] == set()


class TestUpdateStatus:
    @pytest.mark.asyncio
    async def test_valid_transition_sets_fields(self, mock_db, draft_request, now):
        result = await update_status(mock_db, draft_request, RequestStatus.SENT, sent_at=now)

        assert result.status == RequestStatus.SENT
        assert result.sent_at == now
        mock_db.commit.assert_called_once()
        mock_db.refresh.assert_called_once_with(draft_request)

    @pytest.mark.asyncio
    async def test_invalid_transition_raises_without_commit(self, mock_db, draft_request):
        with pytest.raises(InvalidStatusTransitionError) as exc_info:
            await update_status(mock_db, draft_request, RequestStatus.RECEIVED)

        assert exc_info.value.current_status == RequestStatus.DRAFT
        assert draft_request.status == RequestStatus.DRAFT
        mock_db.commit.assert_not_called()

    @pytest.mark.asyncio
    async def test_same_status_is_allowed(self, mock_db, sent_request, now):
        sent_request.status = RequestStatus.RECEIVED

        result = await update_status(mock_db, sent_request, RequestStatus.RECEIVED, received_at=now)

        assert result.received_at == now


class TestMarkReminderSent:
    @pytest.mark.asyncio
    async def test_moves_cursor(self, mock_db, sent_request, now):
        next_date = sent_request.deadline - timedelta(days=3)

        await mark_reminder_sent(mock_db, sent_request, now, 7, next_date)

        assert sent_request.last_reminder_sent == now
        assert sent_request.last_reminder_interval == 7
        assert sent_request.next_reminder_date == next_date
        mock_db.commit.assert_called_once()
