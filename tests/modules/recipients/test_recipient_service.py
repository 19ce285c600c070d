"""
Unit tests for the recipients service layer.

These tests cover:
- Email normalization in schemas
- Duplicate email detection across a student's recipients
- Primary email handling on update
- Delete protection for recipients used by requests
"""

from unittest.mock import AsyncMock, patch
from uuid import uuid4

import pytest
from pydantic import ValidationError

from letterflow.modules.recipients import service
from letterflow.modules.recipients.schemas import RecipientCreate, RecipientUpdate
from letterflow.modules.recommendations.errors import (
    DuplicateRecipientError,
    RecipientInUseError,
    RecipientNotFoundError,
    ValidationFailedError,
)


def _create_data(**overrides):
    fields = {
        "name": "Mrs. Efua Boateng",
        "title": "Head of Science",
        "institution": "Achimota School",
        "emails": ["E.Boateng@Achimota.edu.gh"],
    }
    fields.update(overrides)
    return RecipientCreate(**fields)


class TestRecipientSchemas:
    def test_emails_lower_cased_and_primary_defaults_to_first(self):
        data = _create_data(emails=["A@X.edu", "b@x.edu", "a@x.edu"])

        assert data.emails == ["a@x.edu", "b@x.edu"]
        assert data.primary_email == "a@x.edu"

    def test_primary_must_be_listed(self):
        with pytest.raises(ValidationError):
            _create_data(primary_email="other@x.edu")


class TestCreateRecipient:
    @pytest.mark.asyncio
    async def test_create(self, mock_db, student, sample_recipient):
        with (
            patch.object(service.repository, "list_for_owner", AsyncMock(return_value=[])),
            patch.object(
                service.repository, "create", AsyncMock(return_value=sample_recipient)
            ) as mock_create,
        ):
            result = await service.create_recipient(mock_db, student, _create_data())

            assert result is sample_recipient
            assert mock_create.call_args.args[1] == student.id

    @pytest.mark.asyncio
    async def test_duplicate_email_across_recipients(self, mock_db, student, sample_recipient):
        data = _create_data(emails=["new@x.edu", "KOFI@gmail.com"])

        with (
            patch.object(
                service.repository, "list_for_owner", AsyncMock(return_value=[sample_recipient])
            ),
            patch.object(service.repository, "create", AsyncMock()) as mock_create,
        ):
            with pytest.raises(DuplicateRecipientError) as exc_info:
                await service.create_recipient(mock_db, student, data)

            assert "kofi@gmail.com" in exc_info.value.message
            mock_create.assert_not_called()


class TestUpdateRecipient:
    @pytest.mark.asyncio
    async def test_unknown_recipient(self, mock_db, student):
        with patch.object(service.repository, "get_for_owner", AsyncMock(return_value=None)):
            with pytest.raises(RecipientNotFoundError):
                await service.update_recipient(
                    mock_db, student, uuid4(), RecipientUpdate(name="X")
                )

    @pytest.mark.asyncio
    async def test_own_emails_are_not_duplicates(self, mock_db, student, sample_recipient):
        with (
            patch.object(
                service.repository, "get_for_owner", AsyncMock(return_value=sample_recipient)
            ),
            patch.object(
                service.repository, "list_for_owner", AsyncMock(return_value=[sample_recipient])
            ),
        ):
            result = await service.update_recipient(
                mock_db,
                student,
                sample_recipient.id,
                RecipientUpdate(emails=["k.owusu@ug.edu.gh", "kofi.owusu@ug.edu.gh"]),
            )

            assert result.emails == ["k.owusu@ug.edu.gh", "kofi.owusu@ug.edu.gh"]
            assert result.primary_email == "k.owusu@ug.edu.gh"

    @pytest.mark.asyncio
    async def test_dropping_primary_falls_back_to_first(self, mock_db, student, sample_recipient):
        with (
            patch.object(
                service.repository, "get_for_owner", AsyncMock(return_value=sample_recipient)
            ),
            patch.object(
                service.repository, "list_for_owner", AsyncMock(return_value=[sample_recipient])
            ),
        ):
            result = await service.update_recipient(
                mock_db, student, sample_recipient.id, RecipientUpdate(emails=["kofi@gmail.com"])
            )

            assert result.primary_email == "kofi@gmail.com"

    @pytest.mark.asyncio
    async def test_primary_outside_existing_emails(self, mock_db, student, sample_recipient):
        with patch.object(
            service.repository, "get_for_owner", AsyncMock(return_value=sample_recipient)
        ):
            with pytest.raises(ValidationFailedError) as exc_info:
                await service.update_recipient(
                    mock_db,
                    student,
                    sample_recipient.id,
                    RecipientUpdate(primary_email="someone@else.edu"),
                )

            assert exc_info.value.field == "primary_email"


class TestDeleteRecipient:
    @pytest.mark.asyncio
    async def test_delete_unused(self, mock_db, student, sample_recipient):
        with (
            patch.object(
                service.repository, "get_for_owner", AsyncMock(return_value=sample_recipient)
            ),
            patch.object(
                service.request_repository, "count_for_recipient", AsyncMock(return_value=0)
            ),
        ):
            await service.delete_recipient(mock_db, student, sample_recipient.id)

            mock_db.delete.assert_called_once_with(sample_recipient)

    @pytest.mark.asyncio
    async def test_delete_in_use_refused(self, mock_db, student, sample_recipient):
        with (
            patch.object(
                service.repository, "get_for_owner", AsyncMock(return_value=sample_recipient)
            ),
            patch.object(
                service.request_repository, "count_for_recipient", AsyncMock(return_value=2)
            ),
        ):
            with pytest.raises(RecipientInUseError) as exc_info:
                await service.delete_recipient(mock_db, student, sample_recipient.id)

            assert exc_info.value.request_count == 2
            mock_db.delete.assert_not_called()
