"""
Recommendation Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, model_validator

from letterflow.modules.recommendations.models import (
    ReminderFrequency,
    RequestPriority,
    RequestStatus,
)


# ============================================
# Student: requests
# ============================================


class RecommendationRequestCreate(BaseModel):
    """Body for creating a recommendation request."""

    recipient_id: UUID
    title: str = Field(..., min_length=1, max_length=300)
    description: str = Field(..., min_length=1, max_length=5000)
    deadline: AwareDatetime
    priority: RequestPriority = RequestPriority.MEDIUM

    include_draft: bool = False
    draft_content: str | None = Field(None, max_length=20000)
    relationship_context: str | None = Field(None, max_length=2000)
    additional_context: str | None = Field(None, max_length=5000)

    application_id: UUID | None = None
    scholarship_id: UUID | None = None

    reminder_intervals: list[int] | None = Field(None, min_length=1, max_length=10)
    reminder_frequency: ReminderFrequency | None = None

    # Email the recipient straight away
    send_now: bool = True

    @model_validator(mode="after")
    def check_draft_and_reminders(self) -> "RecommendationRequestCreate":
        if self.include_draft and not self.draft_content:
            raise ValueError("draft_content is required when include_draft is true")
        if self.reminder_frequency == ReminderFrequency.CUSTOM and not self.reminder_intervals:
            raise ValueError("reminder_intervals are required for a custom reminder frequency")
        return self


class RecommendationRequestUpdate(BaseModel):
    """Partial update of a draft or pending request."""

    title: str | None = Field(None, min_length=1, max_length=300)
    description: str | None = Field(None, min_length=1, max_length=5000)
    deadline: AwareDatetime | None = None
    priority: RequestPriority | None = None
    include_draft: bool | None = None
    draft_content: str | None = Field(None, max_length=20000)
    relationship_context: str | None = Field(None, max_length=2000)
    additional_context: str | None = Field(None, max_length=5000)
    reminder_intervals: list[int] | None = Field(None, min_length=1, max_length=10)
    reminder_frequency: ReminderFrequency | None = None


class RecipientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    title: str
    institution: str
    primary_email: str


class LetterResponse(BaseModel):
    """One version of a submitted letter."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    request_id: UUID
    version: int
    previous_version_id: UUID | None
    content: str | None
    file_name: str | None
    file_type: str | None
    file_size: int | None
    submitted_at: datetime
    submitted_by: str
    is_verified: bool
    verification_notes: str | None
    verified_at: datetime | None


class RecommendationRequestResponse(BaseModel):
    """A request as shown on the student's dashboard."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    recipient: RecipientSummary
    title: str
    description: str
    deadline: datetime
    status: RequestStatus
    priority: RequestPriority
    include_draft: bool
    draft_content: str | None
    relationship_context: str | None
    additional_context: str | None
    application_id: UUID | None
    scholarship_id: UUID | None
    reminder_intervals: list[int]
    reminder_frequency: ReminderFrequency
    next_reminder_date: datetime | None
    last_reminder_sent: datetime | None
    token_expires_at: datetime | None
    sent_at: datetime | None
    received_at: datetime | None
    cancelled_at: datetime | None
    created_at: datetime
    updated_at: datetime


class RecommendationRequestDetail(RecommendationRequestResponse):
    latest_letter: LetterResponse | None = None


class RecommendationRequestListResponse(BaseModel):
    requests: list[RecommendationRequestResponse]
    total: int


class LetterHistoryResponse(BaseModel):
    letters: list[LetterResponse]
    total: int


# ============================================
# Recipient portal
# ============================================


class RecipientPortalResponse(BaseModel):
    """What a recipient sees when opening the emailed link."""

    request_id: UUID
    title: str
    description: str
    deadline: datetime
    days_until_deadline: int
    status: RequestStatus
    priority: RequestPriority
    student_name: str
    recipient_name: str
    relationship_context: str | None
    additional_context: str | None
    draft_content: str | None
    latest_letter: LetterResponse | None = None


class LetterSubmit(BaseModel):
    """
    A letter submission.

    Either text ``content`` or an uploaded file (``file_key`` or
    ``file_url`` from a previous upload step) is required.
    """

    content: str | None = Field(None, max_length=50000)
    file_name: str | None = Field(None, max_length=255)
    file_key: str | None = Field(None, max_length=500)
    file_url: str | None = Field(None, max_length=1000)
    file_type: str | None = Field(None, max_length=100)
    file_size: int | None = Field(None, ge=0)

    @model_validator(mode="after")
    def check_content_or_file(self) -> "LetterSubmit":
        if self.content is not None and not self.content.strip():
            self.content = None
        if self.content is None and not (self.file_key or self.file_url):
            raise ValueError("Either letter content or an uploaded file is required")
        return self

    @property
    def has_file(self) -> bool:
        return bool(self.file_key or self.file_url)


class UploadTargetRequest(BaseModel):
    file_name: str = Field(..., min_length=1, max_length=255)
    content_type: str = Field(..., min_length=1, max_length=100)
    file_size: int = Field(..., ge=0)


class UploadTargetResponse(BaseModel):
    upload_url: str
    file_url: str
    key: str
    content_type: str
    expires_at: datetime


class StoredFileResponse(BaseModel):
    key: str
    file_url: str
    content_type: str
    file_size: int


class FileUrlResponse(BaseModel):
    url: str
    expires_at: datetime


class SubmitLetterResponse(BaseModel):
    request_id: UUID
    status: RequestStatus
    letter: LetterResponse
    message: str


class AcknowledgeResponse(BaseModel):
    request_id: UUID
    status: RequestStatus


# ============================================
# Admin
# ============================================


class LetterVerifyRequest(BaseModel):
    notes: str | None = Field(None, max_length=5000)


class OverdueRequestItem(BaseModel):
    id: UUID
    title: str
    status: RequestStatus
    deadline: datetime
    days_overdue: int
    student_id: UUID
    student_email: str
    recipient_name: str
    recipient_email: str


class OverdueListResponse(BaseModel):
    requests: list[OverdueRequestItem]
    total: int
