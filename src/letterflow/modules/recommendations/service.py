"""
Recommendation Service Layer

Business logic for recommendation requests. Orchestrates the repository,
secure tokens, letter versions, file storage and email notifications.

This module implements:
1. Student flow:
   - Create a request (draft), optionally sending it right away
   - Send / re-send: issue the recipient token and email the invitation
   - Update while draft or pending, cancel while not finished
   - Dashboard listing, detail, letter history and letter download

2. Recipient flow (secure token, no login):
   - View the request, acknowledge it (sent -> pending)
   - Upload a letter file (pre-signed PUT, or server-side fallback)
   - Submit a letter version (request -> received, student notified)

3. Admin flow:
   - Overdue report

Request status machine:
    draft    -> sent, cancelled
    sent     -> pending, received, cancelled
    pending  -> sent, received, cancelled
    received -> (terminal; new letter versions keep it received)
    cancelled -> (terminal)
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.auth import AuthenticatedUser
from letterflow.core.email import send_letter_received, send_recommendation_request
from letterflow.core.storage import ObjectStorageGateway, StoredObject, UploadTarget, ViewTarget
from letterflow.modules.recipients import repository as recipient_repository
from letterflow.modules.recipients.models import Recipient
from letterflow.modules.recommendations import files, letters, reminders, repository, tokens
from letterflow.modules.recommendations.errors import (
    InvalidRequestStateError,
    LetterNotFoundError,
    RecipientNotFoundError,
    RequestNotFoundError,
    ValidationFailedError,
)
from letterflow.modules.recommendations.models import (
    RecommendationLetter,
    RecommendationRequest,
    RequestStatus,
)
from letterflow.modules.recommendations.repository import InvalidStatusTransitionError
from letterflow.modules.recommendations.schemas import (
    LetterSubmit,
    OverdueRequestItem,
    RecommendationRequestCreate,
    RecommendationRequestUpdate,
    UploadTargetRequest,
)

logger = logging.getLogger(__name__)

EDITABLE_STATUSES = (RequestStatus.DRAFT, RequestStatus.PENDING)
SENDABLE_STATUSES = (RequestStatus.DRAFT, RequestStatus.PENDING)
RECEIVABLE_STATUSES = (RequestStatus.SENT, RequestStatus.PENDING, RequestStatus.RECEIVED)
FINISHED_STATUSES = (RequestStatus.RECEIVED, RequestStatus.CANCELLED)


def _now() -> datetime:
    return datetime.now(UTC)


async def _change_status(
    db: AsyncSession,
    request: RecommendationRequest,
    status: RequestStatus,
    action: str,
    **fields,
) -> RecommendationRequest:
    try:
        return await repository.update_status(db, request, status, **fields)
    except InvalidStatusTransitionError as e:
        raise InvalidRequestStateError(e.current_status, action) from e


def _check_deadline(deadline: datetime, now: datetime) -> None:
    if deadline <= now:
        raise ValidationFailedError("Deadline must be in the future", field="deadline")


async def get_student_request(
    db: AsyncSession, student: AuthenticatedUser, request_id: UUID
) -> RecommendationRequest:
    """
    Raises:
        RequestNotFoundError: Unknown id, or owned by another student
    """
    request = await repository.get_request_for_student(db, student.id, request_id)
    if request is None:
        raise RequestNotFoundError()
    return request


# ============================================
# Student: request lifecycle
# ============================================


async def create_request(
    db: AsyncSession,
    student: AuthenticatedUser,
    data: RecommendationRequestCreate,
) -> RecommendationRequest:
    """
    Create a request as draft, and send it when ``data.send_now`` is set.

    Raises:
        RecipientNotFoundError: Recipient missing or owned by someone else
        ValidationFailedError: Deadline in the past or bad reminder settings
    """
    now = _now()

    recipient = await recipient_repository.get_for_owner(db, student.id, data.recipient_id)
    if recipient is None:
        raise RecipientNotFoundError()

    _check_deadline(data.deadline, now)

    try:
        intervals, frequency = reminders.resolve_intervals(
            data.reminder_intervals, data.reminder_frequency
        )
    except ValueError as e:
        raise ValidationFailedError(str(e), field="reminder_intervals") from e

    request = await repository.create_request(
        db,
        student_id=student.id,
        student_name=student.display_name,
        student_email=student.email,
        recipient_id=recipient.id,
        application_id=data.application_id,
        scholarship_id=data.scholarship_id,
        title=data.title,
        description=data.description,
        deadline=data.deadline,
        priority=data.priority,
        include_draft=data.include_draft,
        draft_content=data.draft_content,
        relationship_context=data.relationship_context,
        additional_context=data.additional_context,
        reminder_intervals=intervals,
        reminder_frequency=frequency,
    )

    logger.info(f"Created recommendation request {request.id} for student {student.id}")

    if data.send_now:
        request = await send_request(db, student, request.id)

    return request


async def send_request(
    db: AsyncSession,
    student: AuthenticatedUser,
    request_id: UUID,
    now: datetime | None = None,
) -> RecommendationRequest:
    """
    Send (or re-send) a request to its recipient.

    A fresh token replaces any earlier one, the reminder schedule starts
    over, and the invitation email goes out. A failed email is logged;
    the request stays sent and can be re-sent.

    Raises:
        InvalidRequestStateError: Request is not draft or pending
        ValidationFailedError: Deadline already passed
    """
    now = now or _now()
    request = await get_student_request(db, student, request_id)

    if request.status not in SENDABLE_STATUSES:
        raise InvalidRequestStateError(request.status, "send")

    _check_deadline(request.deadline, now)

    ttl = tokens.token_ttl_for_deadline(request.deadline, now)
    token = await tokens.issue_token(db, request, ttl, now=now)

    request = await _change_status(
        db,
        request,
        RequestStatus.SENT,
        "send",
        sent_at=now,
        next_reminder_date=reminders.first_reminder_date(
            request.deadline, request.reminder_intervals
        ),
        last_reminder_interval=None,
    )

    recipient: Recipient = request.recipient
    email_sent = await send_recommendation_request(
        to_email=recipient.primary_email,
        recipient_name=recipient.name,
        student_name=request.student_name,
        request_title=request.title,
        deadline=request.deadline,
        token=token,
        draft_content=request.draft_content if request.include_draft else None,
        purpose=request.description,
    )
    if not email_sent:
        logger.error(f"Failed to send invitation email for request {request.id}")

    logger.info(f"Recommendation request {request.id} sent to recipient {recipient.id}")
    return request


async def update_request(
    db: AsyncSession,
    student: AuthenticatedUser,
    request_id: UUID,
    data: RecommendationRequestUpdate,
) -> RecommendationRequest:
    """
    Edit a request that is still draft or pending.

    A new deadline on a pending request also extends the recipient's
    token; new deadline or intervals move the reminder cursor.

    Raises:
        InvalidRequestStateError: Request is sent, received or cancelled
        ValidationFailedError: Past deadline, bad intervals or missing draft
    """
    now = _now()
    request = await get_student_request(db, student, request_id)

    if request.status not in EDITABLE_STATUSES:
        raise InvalidRequestStateError(request.status, "update")

    fields = data.model_dump(exclude_unset=True)
    intervals = fields.pop("reminder_intervals", None)
    frequency = fields.pop("reminder_frequency", None)

    if fields.get("deadline") is not None:
        _check_deadline(fields["deadline"], now)
    else:
        fields.pop("deadline", None)

    include_draft = fields.get("include_draft", request.include_draft)
    draft_content = fields.get("draft_content", request.draft_content)
    if include_draft and not draft_content:
        raise ValidationFailedError(
            "draft_content is required when include_draft is true", field="draft_content"
        )

    schedule_changed = "deadline" in fields
    if intervals is not None or frequency is not None:
        try:
            resolved, resolved_frequency = reminders.resolve_intervals(intervals, frequency)
        except ValueError as e:
            raise ValidationFailedError(str(e), field="reminder_intervals") from e
        fields["reminder_intervals"] = resolved
        fields["reminder_frequency"] = resolved_frequency
        schedule_changed = True

    if schedule_changed and request.status == RequestStatus.PENDING:
        deadline = fields.get("deadline", request.deadline)
        fields["next_reminder_date"] = reminders.pending_reminder_date(
            deadline,
            fields.get("reminder_intervals", request.reminder_intervals),
            request.last_reminder_interval,
        )
        if "deadline" in fields:
            fields["token_expires_at"] = now + tokens.token_ttl_for_deadline(deadline, now)

    request = await repository.save_request(db, request, **fields)

    logger.info(f"Updated recommendation request {request.id}: {sorted(fields)}")
    return request


async def cancel_request(
    db: AsyncSession,
    student: AuthenticatedUser,
    request_id: UUID,
    now: datetime | None = None,
) -> RecommendationRequest:
    """
    Cancel a request. The recipient link stops working immediately.

    Raises:
        InvalidRequestStateError: Request already received or cancelled
    """
    now = now or _now()
    request = await get_student_request(db, student, request_id)

    if request.status in FINISHED_STATUSES:
        raise InvalidRequestStateError(request.status, "cancel")

    request = await _change_status(
        db,
        request,
        RequestStatus.CANCELLED,
        "cancel",
        cancelled_at=now,
        token_expires_at=now,
        next_reminder_date=None,
    )

    logger.info(f"Recommendation request {request.id} cancelled by student {student.id}")
    return request


async def mark_pending(db: AsyncSession, request: RecommendationRequest) -> RecommendationRequest:
    """
    Record that the recipient acknowledged the request (sent -> pending).

    Acknowledging a pending request again changes nothing.

    Raises:
        InvalidRequestStateError: Request is not sent or pending
    """
    if request.status == RequestStatus.PENDING:
        return request
    if request.status != RequestStatus.SENT:
        raise InvalidRequestStateError(request.status, "acknowledge")

    request = await _change_status(db, request, RequestStatus.PENDING, "acknowledge")
    logger.info(f"Recommendation request {request.id} acknowledged by recipient")
    return request


async def receive_letter(
    db: AsyncSession,
    request: RecommendationRequest,
    now: datetime | None = None,
) -> RecommendationRequest:
    """
    Move a request to received after a letter was stored.

    A new version on an already received request refreshes
    ``received_at`` and keeps the status.

    Raises:
        InvalidRequestStateError: Request is draft or cancelled
    """
    now = now or _now()
    if request.status not in RECEIVABLE_STATUSES:
        raise InvalidRequestStateError(request.status, "receive a letter for")

    return await _change_status(
        db,
        request,
        RequestStatus.RECEIVED,
        "receive a letter for",
        received_at=now,
        next_reminder_date=None,
    )


# ============================================
# Student: reads
# ============================================


async def list_requests(
    db: AsyncSession,
    student: AuthenticatedUser,
    status: RequestStatus | None = None,
) -> list[RecommendationRequest]:
    return await repository.list_requests_for_student(db, student.id, status)


async def get_request_detail(
    db: AsyncSession,
    student: AuthenticatedUser,
    request_id: UUID,
) -> tuple[RecommendationRequest, RecommendationLetter | None]:
    """The request and its current letter (None until one is submitted)."""
    request = await get_student_request(db, student, request_id)
    latest = await repository.get_latest_letter(db, request.id)
    return request, latest


async def list_request_letters(
    db: AsyncSession,
    student: AuthenticatedUser,
    request_id: UUID,
) -> list[RecommendationLetter]:
    request = await get_student_request(db, student, request_id)
    return await letters.list_versions(db, request.id)


async def get_letter_download(
    db: AsyncSession,
    student: AuthenticatedUser,
    request_id: UUID,
    storage: ObjectStorageGateway,
) -> ViewTarget:
    """
    Pre-signed download URL for the current letter's file.

    Raises:
        LetterNotFoundError: No letter yet, or the letter is text only
        StorageUnavailableError: URL signing failed
    """
    request = await get_student_request(db, student, request_id)
    latest = await letters.latest_letter(db, request.id)
    return await files.letter_view_target(storage, latest, force_download=True)


# ============================================
# Recipient portal
# ============================================


async def get_recipient_view(
    db: AsyncSession, token: str
) -> tuple[RecommendationRequest, Recipient, RecommendationLetter | None]:
    """Request, recipient and current letter for a valid token."""
    request, recipient = await tokens.resolve_token(db, token)
    latest = await repository.get_latest_letter(db, request.id)
    return request, recipient, latest


async def acknowledge_request(db: AsyncSession, token: str) -> RecommendationRequest:
    request, _recipient = await tokens.resolve_token(db, token)
    return await mark_pending(db, request)


async def create_recipient_upload(
    db: AsyncSession,
    token: str,
    storage: ObjectStorageGateway,
    data: UploadTargetRequest,
) -> UploadTarget:
    """
    Pre-signed upload target for the recipient's letter file.

    Raises:
        ValidationFailedError: Bad type or size (storage is not contacted)
        StorageUnavailableError: URL signing failed
    """
    request, _recipient = await tokens.resolve_token(db, token)
    return await files.create_letter_upload(
        storage,
        request,
        file_name=data.file_name,
        content_type=data.content_type,
        file_size=data.file_size,
    )


async def upload_recipient_fallback(
    db: AsyncSession,
    token: str,
    storage: ObjectStorageGateway,
    file_name: str,
    content_type: str,
    data: bytes,
    key: str | None = None,
) -> StoredObject:
    """Server-side upload. Request state is not touched, even on failure."""
    request, _recipient = await tokens.resolve_token(db, token)
    stored = await files.upload_letter_fallback(
        storage,
        request,
        file_name=file_name,
        content_type=content_type,
        data=data,
        key=key,
    )
    logger.info(f"Fallback upload stored for request {request.id} ({stored.size} bytes)")
    return stored


async def get_recipient_file_view(
    db: AsyncSession,
    token: str,
    storage: ObjectStorageGateway,
    download: bool = False,
) -> ViewTarget:
    """
    Preview (or download) URL for the recipient's current letter file.

    Raises:
        LetterNotFoundError: Nothing uploaded yet
    """
    request, _recipient = await tokens.resolve_token(db, token)
    latest = await repository.get_latest_letter(db, request.id)
    if latest is None:
        raise LetterNotFoundError()
    return await files.letter_view_target(storage, latest, force_download=download)


async def submit_recipient_letter(
    db: AsyncSession,
    token: str,
    payload: LetterSubmit,
    storage: ObjectStorageGateway | None = None,
) -> tuple[RecommendationRequest, RecommendationLetter]:
    """
    Store the recipient's letter and mark the request received.

    The token is checked both up front and again right before the letter
    is written. Nothing is stored when either check fails.

    Raises:
        TokenNotFoundError / TokenExpiredError / RequestCancelledError
        ValidationFailedError: Bad payload
        InvalidRequestStateError: Request was never sent
        VersionConflictError: Concurrent submissions kept colliding
    """
    request, recipient = await tokens.resolve_token(db, token)

    if request.status not in RECEIVABLE_STATUSES:
        raise InvalidRequestStateError(request.status, "submit a letter for")

    first_receipt = request.status != RequestStatus.RECEIVED

    letter = await letters.submit_letter(
        db,
        request,
        payload,
        submitted_by=recipient.primary_email,
        token=token,
        storage=storage,
    )

    await db.refresh(request)
    request = await receive_letter(db, request)

    email_sent = await send_letter_received(
        to_email=request.student_email,
        student_name=request.student_name,
        recipient_name=recipient.name,
        request_title=request.title,
    )
    if not email_sent:
        logger.error(f"Failed to notify student about letter for request {request.id}")

    logger.info(
        f"Letter version {letter.version} received for request {request.id}"
        f"{'' if first_receipt else ' (resubmission)'}"
    )
    return request, letter


# ============================================
# Admin
# ============================================


async def list_overdue(db: AsyncSession, now: datetime | None = None) -> list[OverdueRequestItem]:
    """Sent or pending requests whose deadline has passed."""
    now = now or _now()
    overdue = await repository.get_overdue_requests(db, now)

    return [
        OverdueRequestItem(
            id=request.id,
            title=request.title,
            status=request.status,
            deadline=request.deadline,
            days_overdue=max(0, -reminders.days_until_deadline(request.deadline, now)),
            student_id=request.student_id,
            student_email=request.student_email,
            recipient_name=request.recipient.name,
            recipient_email=request.recipient.primary_email,
        )
        for request in overdue
    ]
