"""
Fixtures for recommendation tests.
"""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from letterflow.core.auth import ROLE_ADMIN, ROLE_STUDENT, AuthenticatedUser
from letterflow.modules.recipients.models import Recipient
from letterflow.modules.recommendations.models import (
    RecommendationLetter,
    RecommendationRequest,
    ReminderFrequency,
    RequestPriority,
    RequestStatus,
)

VALID_TOKEN = "a" * 64


@pytest.fixture
def now():
    return datetime(2026, 3, 1, 12, 0, tzinfo=UTC)


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.rollback = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def student():
    return AuthenticatedUser(
        id=uuid4(),
        email="ama@student.edu",
        role=ROLE_STUDENT,
        name="Ama Mensah",
    )


@pytest.fixture
def admin():
    return AuthenticatedUser(
        id=uuid4(),
        email="admin@letterflow.dev",
        role=ROLE_ADMIN,
        name="Platform Admin",
    )


@pytest.fixture
def sample_recipient(student):
    recipient = MagicMock(spec=Recipient)
    recipient.id = uuid4()
    recipient.created_by = student.id
    recipient.name = "Dr. Kofi Owusu"
    recipient.title = "Professor"
    recipient.institution = "University of Ghana"
    recipient.emails = ["k.owusu@ug.edu.gh"]
    recipient.primary_email = "k.owusu@ug.edu.gh"
    return recipient


def _make_request(student, recipient, now, status):
    request = MagicMock(spec=RecommendationRequest)
    request.id = uuid4()
    request.student_id = student.id
    request.student_name = student.display_name
    request.student_email = student.email
    request.recipient_id = recipient.id
    request.recipient = recipient
    request.title = "Graduate School Application"
    request.description = "MSc Computer Science, fall intake"
    request.deadline = now + timedelta(days=14)
    request.status = status
    request.priority = RequestPriority.MEDIUM
    request.include_draft = False
    request.draft_content = None
    request.relationship_context = None
    request.additional_context = None
    request.reminder_intervals = [7, 3, 1]
    request.reminder_frequency = ReminderFrequency.STANDARD
    request.next_reminder_date = None
    request.last_reminder_sent = None
    request.last_reminder_interval = None
    request.secure_token = None
    request.token_expires_at = None
    request.sent_at = None
    request.received_at = None
    request.cancelled_at = None
    return request


@pytest.fixture
def draft_request(student, sample_recipient, now):
    return _make_request(student, sample_recipient, now, RequestStatus.DRAFT)


@pytest.fixture
def sent_request(student, sample_recipient, now):
    request = _make_request(student, sample_recipient, now, RequestStatus.SENT)
    request.secure_token = VALID_TOKEN
    request.token_expires_at = request.deadline + timedelta(days=30)
    request.sent_at = now - timedelta(days=1)
    request.next_reminder_date = request.deadline - timedelta(days=7)
    return request


@pytest.fixture
def sample_letter(sent_request, sample_recipient):
    letter = MagicMock(spec=RecommendationLetter)
    letter.id = uuid4()
    letter.request_id = sent_request.id
    letter.recipient_id = sample_recipient.id
    letter.version = 1
    letter.previous_version_id = None
    letter.content = "It is my pleasure to recommend Ama."
    letter.file_name = None
    letter.file_key = None
    letter.file_url = None
    letter.file_type = None
    letter.file_size = None
    letter.is_verified = False
    return letter
