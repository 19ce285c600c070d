"""
Recipients Repository

Database operations for recipients. Queries are always scoped to the
owning student.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import Recipient
from .schemas import RecipientCreate


async def create(db: AsyncSession, owner_id: UUID, data: RecipientCreate) -> Recipient:
    """Create a new recipient for a student."""
    recipient = Recipient(
        created_by=owner_id,
        name=data.name,
        title=data.title,
        institution=data.institution,
        department=data.department,
        emails=list(data.emails),
        primary_email=data.primary_email,
        phone_number=data.phone_number,
        office_address=data.office_address,
        prefers_drafts=data.prefers_drafts,
        preferred_communication_method=data.preferred_communication_method,
    )

    db.add(recipient)
    await db.commit()
    await db.refresh(recipient)

    return recipient


async def get_for_owner(db: AsyncSession, owner_id: UUID, id: UUID) -> Recipient | None:
    """Get a recipient only if it belongs to the given student."""
    result = await db.execute(
        select(Recipient).where(Recipient.id == id, Recipient.created_by == owner_id)
    )
    return result.scalar_one_or_none()


async def list_for_owner(db: AsyncSession, owner_id: UUID) -> list[Recipient]:
    """All recipients of a student, alphabetically."""
    result = await db.execute(
        select(Recipient).where(Recipient.created_by == owner_id).order_by(Recipient.name)
    )
    return list(result.scalars().all())


async def find_by_any_email(
    db: AsyncSession,
    owner_id: UUID,
    emails: list[str],
    exclude_id: UUID | None = None,
) -> Recipient | None:
    """
    Find a recipient of this student that already uses any of ``emails``.

    ``emails`` is a JSON column, so the overlap check is done in Python
    over the student's (small) address book.
    """
    wanted = {email.lower() for email in emails}
    for recipient in await list_for_owner(db, owner_id):
        if exclude_id is not None and recipient.id == exclude_id:
            continue
        if wanted.intersection(e.lower() for e in recipient.emails or []):
            return recipient
    return None


async def update(db: AsyncSession, recipient: Recipient, **fields) -> Recipient:
    """Apply field updates to a recipient."""
    for key, value in fields.items():
        if hasattr(recipient, key):
            setattr(recipient, key, value)

    await db.commit()
    await db.refresh(recipient)

    return recipient


async def delete(db: AsyncSession, recipient: Recipient) -> None:
    await db.delete(recipient)
    await db.commit()
