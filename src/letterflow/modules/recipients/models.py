"""
Recipients Models

Letter writers (teachers, professors, employers) that a student keeps in
their address book and addresses recommendation requests to.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    Index,
    String,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column

from letterflow.core.database import Base


class CommunicationMethod(str, enum.Enum):
    """How the recipient prefers to be contacted."""

    EMAIL = "email"
    PHONE = "phone"
    IN_PERSON = "in_person"


class Recipient(Base):
    """
    A person who can write recommendation letters for a student.

    Owned by the student who created it (``created_by``). All addresses in
    ``emails`` are stored lower-cased and ``primary_email`` is one of them.
    """

    __tablename__ = "recipients"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # Owning student (``sub`` claim of the auth token)
    created_by: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)

    # Identity
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    institution: Mapped[str] = mapped_column(String(200), nullable=False)
    department: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Contact
    emails: Mapped[list] = mapped_column(JSON, nullable=False)
    primary_email: Mapped[str] = mapped_column(String(255), nullable=False)
    phone_number: Mapped[str | None] = mapped_column(String(30), nullable=True)
    office_address: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Preferences
    prefers_drafts: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    preferred_communication_method: Mapped[CommunicationMethod] = mapped_column(
        Enum(CommunicationMethod, name="communication_method"),
        nullable=False,
        default=CommunicationMethod.EMAIL,
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    __table_args__ = (
        UniqueConstraint("created_by", "primary_email", name="uq_recipients_owner_primary_email"),
        Index("ix_recipients_created_by", "created_by"),
    )

    def has_email(self, email: str) -> bool:
        return email.lower() in (e.lower() for e in self.emails or [])
