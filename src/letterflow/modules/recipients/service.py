"""
Recipients Service Layer

Business rules for a student's recipient address book:
- An email address may belong to only one of the student's recipients
- A recipient that any request was addressed to cannot be deleted,
  since letters and request history keep pointing at it
"""

import logging
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.auth import AuthenticatedUser
from letterflow.modules.recipients import repository
from letterflow.modules.recipients.models import Recipient
from letterflow.modules.recipients.schemas import RecipientCreate, RecipientUpdate
from letterflow.modules.recommendations import repository as request_repository
from letterflow.modules.recommendations.errors import (
    DuplicateRecipientError,
    RecipientInUseError,
    RecipientNotFoundError,
    ValidationFailedError,
)

logger = logging.getLogger(__name__)


async def _get_owned(db: AsyncSession, student: AuthenticatedUser, recipient_id: UUID) -> Recipient:
    recipient = await repository.get_for_owner(db, student.id, recipient_id)
    if recipient is None:
        raise RecipientNotFoundError()
    return recipient


async def _check_duplicate(
    db: AsyncSession,
    student: AuthenticatedUser,
    emails: list[str],
    exclude_id: UUID | None = None,
) -> None:
    existing = await repository.find_by_any_email(db, student.id, emails, exclude_id=exclude_id)
    if existing is not None:
        clash = next(e for e in emails if existing.has_email(e))
        logger.warning(f"Duplicate recipient email rejected for student {student.id}")
        raise DuplicateRecipientError(clash)


async def create_recipient(
    db: AsyncSession, student: AuthenticatedUser, data: RecipientCreate
) -> Recipient:
    """
    Raises:
        DuplicateRecipientError: One of the emails is already used
    """
    await _check_duplicate(db, student, data.emails)

    recipient = await repository.create(db, student.id, data)
    logger.info(f"Created recipient {recipient.id} for student {student.id}")
    return recipient


async def list_recipients(db: AsyncSession, student: AuthenticatedUser) -> list[Recipient]:
    return await repository.list_for_owner(db, student.id)


async def get_recipient(
    db: AsyncSession, student: AuthenticatedUser, recipient_id: UUID
) -> Recipient:
    return await _get_owned(db, student, recipient_id)


async def update_recipient(
    db: AsyncSession,
    student: AuthenticatedUser,
    recipient_id: UUID,
    data: RecipientUpdate,
) -> Recipient:
    """
    Raises:
        RecipientNotFoundError: Not the student's recipient
        DuplicateRecipientError: New emails clash with another recipient
        ValidationFailedError: Primary email not among the emails
    """
    recipient = await _get_owned(db, student, recipient_id)
    fields = data.model_dump(exclude_unset=True)

    emails = fields.get("emails") or list(recipient.emails)
    primary_email = fields.get("primary_email") or recipient.primary_email

    if "emails" in fields:
        await _check_duplicate(db, student, emails, exclude_id=recipient.id)
        if primary_email not in emails:
            # Primary dropped from the list; fall back to the first address
            primary_email = emails[0] if "primary_email" not in fields else primary_email

    if primary_email not in emails:
        raise ValidationFailedError("primary_email must be one of emails", field="primary_email")

    fields["emails"] = emails
    fields["primary_email"] = primary_email

    recipient = await repository.update(db, recipient, **fields)
    logger.info(f"Updated recipient {recipient.id}")
    return recipient


async def delete_recipient(
    db: AsyncSession, student: AuthenticatedUser, recipient_id: UUID
) -> None:
    """
    Raises:
        RecipientNotFoundError: Not the student's recipient
        RecipientInUseError: Requests still reference the recipient
    """
    recipient = await _get_owned(db, student, recipient_id)

    in_use = await request_repository.count_for_recipient(db, recipient.id)
    if in_use:
        raise RecipientInUseError(in_use)

    await repository.delete(db, recipient)
    logger.info(f"Deleted recipient {recipient_id}")
