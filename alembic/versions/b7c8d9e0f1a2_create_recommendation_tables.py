"""create recipients and recommendation tables

Revision ID: b7c8d9e0f1a2
Revises:
Create Date: 2026-10-19 12:00:00.000000

This migration:
1. Creates the recipients address book (one row per letter writer per student)
2. Creates recommendation_requests with the secure token and reminder cursor
3. Creates recommendation_letters with gap-free per-request version numbers

The unique (request_id, version) constraint is what makes concurrent
letter submissions safe: the loser of a race gets an IntegrityError and
retries with the next version number.
"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision: str = "b7c8d9e0f1a2"
down_revision: str | Sequence[str] | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None

communication_method_enum = postgresql.ENUM(
    "EMAIL", "PHONE", "IN_PERSON", name="communication_method", create_type=False
)
recommendation_status_enum = postgresql.ENUM(
    "DRAFT",
    "SENT",
    "PENDING",
    "RECEIVED",
    "CANCELLED",
    name="recommendation_status",
    create_type=False,
)
recommendation_priority_enum = postgresql.ENUM(
    "LOW", "MEDIUM", "HIGH", name="recommendation_priority", create_type=False
)
reminder_frequency_enum = postgresql.ENUM(
    "MINIMAL", "STANDARD", "FREQUENT", "CUSTOM", name="reminder_frequency", create_type=False
)

ENUMS = (
    communication_method_enum,
    recommendation_status_enum,
    recommendation_priority_enum,
    reminder_frequency_enum,
)


def _timestamps() -> list[sa.Column]:
    return [
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
    ]


def upgrade() -> None:
    """Create recipients, recommendation_requests and recommendation_letters."""
    bind = op.get_bind()
    for enum_type in ENUMS:
        enum_type.create(bind, checkfirst=True)

    op.create_table(
        "recipients",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("created_by", postgresql.UUID(as_uuid=True), nullable=False),
        # Identity
        sa.Column("name", sa.String(length=200), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("institution", sa.String(length=200), nullable=False),
        sa.Column("department", sa.String(length=200), nullable=True),
        # Contact
        sa.Column("emails", postgresql.JSON(astext_type=sa.Text()), nullable=False),
        sa.Column("primary_email", sa.String(length=255), nullable=False),
        sa.Column("phone_number", sa.String(length=30), nullable=True),
        sa.Column("office_address", sa.String(length=500), nullable=True),
        # Preferences
        sa.Column("prefers_drafts", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column(
            "preferred_communication_method",
            communication_method_enum,
            nullable=False,
            server_default="EMAIL",
        ),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint(
            "created_by", "primary_email", name="uq_recipients_owner_primary_email"
        ),
    )
    op.create_index("ix_recipients_created_by", "recipients", ["created_by"], unique=False)

    op.create_table(
        "recommendation_requests",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("student_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("application_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("scholarship_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("student_name", sa.String(length=200), nullable=False),
        sa.Column("student_email", sa.String(length=255), nullable=False),
        # Request details
        sa.Column("title", sa.String(length=300), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("deadline", sa.DateTime(timezone=True), nullable=False),
        sa.Column("status", recommendation_status_enum, nullable=False, server_default="DRAFT"),
        sa.Column(
            "priority", recommendation_priority_enum, nullable=False, server_default="MEDIUM"
        ),
        sa.Column("include_draft", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("draft_content", sa.Text(), nullable=True),
        sa.Column("relationship_context", sa.Text(), nullable=True),
        sa.Column("additional_context", sa.Text(), nullable=True),
        # Secure recipient access
        sa.Column("secure_token", sa.String(length=64), nullable=True),
        sa.Column("token_expires_at", sa.DateTime(timezone=True), nullable=True),
        # Reminders
        sa.Column(
            "reminder_intervals", postgresql.JSON(astext_type=sa.Text()), nullable=False
        ),
        sa.Column(
            "reminder_frequency", reminder_frequency_enum, nullable=False, server_default="STANDARD"
        ),
        sa.Column("next_reminder_date", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_reminder_sent", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_reminder_interval", sa.Integer(), nullable=True),
        # Lifecycle
        sa.Column("sent_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("received_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["recipient_id"],
            ["recipients.id"],
            name="fk_recommendation_requests_recipient_id",
            ondelete="RESTRICT",
        ),
        sa.UniqueConstraint("secure_token", name="uq_recommendation_requests_secure_token"),
    )
    op.create_index(
        "ix_recommendation_requests_student_id",
        "recommendation_requests",
        ["student_id"],
        unique=False,
    )
    op.create_index(
        "ix_recommendation_requests_recipient_id",
        "recommendation_requests",
        ["recipient_id"],
        unique=False,
    )
    op.create_index(
        "ix_recommendation_requests_status_deadline",
        "recommendation_requests",
        ["status", "deadline"],
        unique=False,
    )
    op.create_index(
        "ix_recommendation_requests_next_reminder",
        "recommendation_requests",
        ["status", "next_reminder_date"],
        unique=False,
    )

    op.create_table(
        "recommendation_letters",
        sa.Column("id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("request_id", postgresql.UUID(as_uuid=True), nullable=False),
        sa.Column("recipient_id", postgresql.UUID(as_uuid=True), nullable=False),
        # Content
        sa.Column("content", sa.Text(), nullable=True),
        sa.Column("file_name", sa.String(length=255), nullable=True),
        sa.Column("file_key", sa.String(length=500), nullable=True),
        sa.Column("file_url", sa.String(length=1000), nullable=True),
        sa.Column("file_type", sa.String(length=100), nullable=True),
        sa.Column("file_size", sa.Integer(), nullable=True),
        # Versioning
        sa.Column("version", sa.Integer(), nullable=False),
        sa.Column("previous_version_id", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column(
            "submitted_at",
            sa.DateTime(timezone=True),
            server_default=sa.text("now()"),
            nullable=False,
        ),
        sa.Column("submitted_by", sa.String(length=255), nullable=False),
        # Admin verification
        sa.Column("is_verified", sa.Boolean(), nullable=False, server_default="false"),
        sa.Column("verification_notes", sa.Text(), nullable=True),
        sa.Column("verified_by", postgresql.UUID(as_uuid=True), nullable=True),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=True),
        *_timestamps(),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["request_id"],
            ["recommendation_requests.id"],
            name="fk_recommendation_letters_request_id",
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["recipient_id"],
            ["recipients.id"],
            name="fk_recommendation_letters_recipient_id",
            ondelete="RESTRICT",
        ),
        sa.ForeignKeyConstraint(
            ["previous_version_id"],
            ["recommendation_letters.id"],
            name="fk_recommendation_letters_previous_version_id",
            ondelete="SET NULL",
        ),
        sa.UniqueConstraint(
            "request_id", "version", name="uq_recommendation_letters_request_version"
        ),
    )
    op.create_index(
        "ix_recommendation_letters_request_id",
        "recommendation_letters",
        ["request_id"],
        unique=False,
    )


def downgrade() -> None:
    """Drop recommendation tables and their enum types."""
    op.drop_index("ix_recommendation_letters_request_id", table_name="recommendation_letters")
    op.drop_table("recommendation_letters")

    for index_name in (
        "ix_recommendation_requests_next_reminder",
        "ix_recommendation_requests_status_deadline",
        "ix_recommendation_requests_recipient_id",
        "ix_recommendation_requests_student_id",
    ):
        op.drop_index(index_name, table_name="recommendation_requests")
    op.drop_table("recommendation_requests")

    op.drop_index("ix_recipients_created_by", table_name="recipients")
    op.drop_table("recipients")

    bind = op.get_bind()
    for enum_type in reversed(ENUMS):
        enum_type.drop(bind, checkfirst=True)
