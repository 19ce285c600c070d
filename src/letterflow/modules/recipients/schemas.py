"""
Recipients Schemas

Pydantic schemas for request validation and response serialization.
"""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, EmailStr, Field, model_validator

from letterflow.modules.recipients.models import CommunicationMethod


def _normalize_emails(emails: list[str]) -> list[str]:
    """Lower-case and de-duplicate, keeping first-seen order."""
    seen: list[str] = []
    for email in emails:
        lowered = email.strip().lower()
        if lowered not in seen:
            seen.append(lowered)
    return seen


class RecipientCreate(BaseModel):
    """Body for creating a recipient."""

    name: str = Field(..., min_length=1, max_length=200)
    title: str = Field(..., min_length=1, max_length=200)
    institution: str = Field(..., min_length=1, max_length=200)
    department: str | None = Field(None, max_length=200)
    emails: list[EmailStr] = Field(..., min_length=1, max_length=10)
    primary_email: EmailStr | None = None
    phone_number: str | None = Field(None, max_length=30)
    office_address: str | None = Field(None, max_length=500)
    prefers_drafts: bool = False
    preferred_communication_method: CommunicationMethod = CommunicationMethod.EMAIL

    @model_validator(mode="after")
    def normalize_emails(self) -> "RecipientCreate":
        self.emails = _normalize_emails(self.emails)
        if self.primary_email is None:
            self.primary_email = self.emails[0]
        else:
            self.primary_email = self.primary_email.lower()
            if self.primary_email not in self.emails:
                raise ValueError("primary_email must be one of emails")
        return self


class RecipientUpdate(BaseModel):
    """Partial update; omitted fields are left unchanged."""

    name: str | None = Field(None, min_length=1, max_length=200)
    title: str | None = Field(None, min_length=1, max_length=200)
    institution: str | None = Field(None, min_length=1, max_length=200)
    department: str | None = Field(None, max_length=200)
    emails: list[EmailStr] | None = Field(None, min_length=1, max_length=10)
    primary_email: EmailStr | None = None
    phone_number: str | None = Field(None, max_length=30)
    office_address: str | None = Field(None, max_length=500)
    prefers_drafts: bool | None = None
    preferred_communication_method: CommunicationMethod | None = None

    @model_validator(mode="after")
    def normalize_emails(self) -> "RecipientUpdate":
        if self.emails is not None:
            self.emails = _normalize_emails(self.emails)
        if self.primary_email is not None:
            self.primary_email = self.primary_email.lower()
            if self.emails is not None and self.primary_email not in self.emails:
                raise ValueError("primary_email must be one of emails")
        return self


class RecipientResponse(BaseModel):
    """Recipient as returned to the owning student."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: str
    title: str
    institution: str
    department: str | None
    emails: list[str]
    primary_email: str
    phone_number: str | None
    office_address: str | None
    prefers_drafts: bool
    preferred_communication_method: CommunicationMethod
    created_at: datetime
    updated_at: datetime


class RecipientListResponse(BaseModel):
    recipients: list[RecipientResponse]
    total: int
