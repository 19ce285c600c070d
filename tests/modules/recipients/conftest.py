"""
Fixtures for recipients tests.
"""

from unittest.mock import AsyncMock, MagicMock
from uuid import uuid4

import pytest

from letterflow.core.auth import ROLE_STUDENT, AuthenticatedUser
from letterflow.modules.recipients.models import CommunicationMethod, Recipient


@pytest.fixture
def mock_db():
    """Create a mock database session."""
    db = AsyncMock()
    db.commit = AsyncMock()
    db.refresh = AsyncMock()
    db.delete = AsyncMock()
    db.get = AsyncMock()
    db.execute = AsyncMock()
    db.add = MagicMock()
    return db


@pytest.fixture
def student():
    return AuthenticatedUser(
        id=uuid4(), email="ama@student.edu", role=ROLE_STUDENT, name="Ama Mensah"
    )


@pytest.fixture
def sample_recipient(student):
    return Recipient(
        id=uuid4(),
        created_by=student.id,
        name="Dr. Kofi Owusu",
        title="Professor",
        institution="University of Ghana",
        emails=["k.owusu@ug.edu.gh", "kofi@gmail.com"],
        primary_email="k.owusu@ug.edu.gh",
        prefers_drafts=False,
        preferred_communication_method=CommunicationMethod.EMAIL,
    )
