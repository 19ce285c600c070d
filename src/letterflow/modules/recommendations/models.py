"""
Recommendation Models

Database models for recommendation requests and the versioned letters
submitted against them.
"""

import enum
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSON, UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from letterflow.core.database import Base
from letterflow.modules.recipients.models import Recipient


class RequestStatus(str, enum.Enum):
    """Lifecycle status of a recommendation request."""

    DRAFT = "draft"
    SENT = "sent"
    PENDING = "pending"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class RequestPriority(str, enum.Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class ReminderFrequency(str, enum.Enum):
    """Named reminder presets; ``custom`` uses explicit intervals."""

    MINIMAL = "minimal"
    STANDARD = "standard"
    FREQUENT = "frequent"
    CUSTOM = "custom"


class RecommendationRequest(Base):
    """
    A student's request for a recommendation letter from one recipient.

    The recipient reaches the request through ``secure_token`` (issued on
    first send) until ``token_expires_at``.
    """

    __tablename__ = "recommendation_requests"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    # References
    student_id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), nullable=False)
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("recipients.id", ondelete="RESTRICT"),
        nullable=False,
    )
    # Owned by other services, so no FK constraint
    application_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    scholarship_id: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)

    # Student contact snapshot for outgoing emails
    student_name: Mapped[str] = mapped_column(String(200), nullable=False)
    student_email: Mapped[str] = mapped_column(String(255), nullable=False)

    # Request details
    title: Mapped[str] = mapped_column(String(300), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    deadline: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    status: Mapped[RequestStatus] = mapped_column(
        Enum(RequestStatus, name="recommendation_status"),
        nullable=False,
        default=RequestStatus.DRAFT,
    )
    priority: Mapped[RequestPriority] = mapped_column(
        Enum(RequestPriority, name="recommendation_priority"),
        nullable=False,
        default=RequestPriority.MEDIUM,
    )

    # Draft offered to the recipient
    include_draft: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    draft_content: Mapped[str | None] = mapped_column(Text, nullable=True)
    relationship_context: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_context: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Secure recipient access
    secure_token: Mapped[str | None] = mapped_column(String(64), nullable=True, unique=True)
    token_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Reminders (days before deadline, unique and descending)
    reminder_intervals: Mapped[list] = mapped_column(JSON, nullable=False)
    reminder_frequency: Mapped[ReminderFrequency] = mapped_column(
        Enum(ReminderFrequency, name="reminder_frequency"),
        nullable=False,
        default=ReminderFrequency.STANDARD,
    )
    next_reminder_date: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_reminder_sent: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_reminder_interval: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Lifecycle timestamps
    sent_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    received_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    recipient: Mapped[Recipient] = relationship(Recipient, lazy="joined")

    __table_args__ = (
        Index("ix_recommendation_requests_student_id", "student_id"),
        Index("ix_recommendation_requests_recipient_id", "recipient_id"),
        Index("ix_recommendation_requests_status_deadline", "status", "deadline"),
        Index("ix_recommendation_requests_next_reminder", "status", "next_reminder_date"),
    )


class RecommendationLetter(Base):
    """
    One submitted version of a letter.

    Versions of a request are numbered 1..n without gaps; the highest
    version is the current letter. Admin verification is an overlay and
    never changes the request status.
    """

    __tablename__ = "recommendation_letters"

    id: Mapped[uuid.UUID] = mapped_column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)

    request_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("recommendation_requests.id", ondelete="CASCADE"),
        nullable=False,
    )
    recipient_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("recipients.id", ondelete="RESTRICT"),
        nullable=False,
    )

    # Content (text and/or uploaded file)
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    file_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    file_key: Mapped[str | None] = mapped_column(String(500), nullable=True)
    file_url: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    file_type: Mapped[str | None] = mapped_column(String(100), nullable=True)
    file_size: Mapped[int | None] = mapped_column(Integer, nullable=True)

    # Versioning
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    previous_version_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("recommendation_letters.id", ondelete="SET NULL"),
        nullable=True,
    )

    submitted_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    submitted_by: Mapped[str] = mapped_column(String(255), nullable=False)

    # Admin verification overlay
    is_verified: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    verification_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    verified_by: Mapped[uuid.UUID | None] = mapped_column(UUID(as_uuid=True), nullable=True)
    verified_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

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
        UniqueConstraint("request_id", "version", name="uq_recommendation_letters_request_version"),
        Index("ix_recommendation_letters_request_id", "request_id"),
    )
