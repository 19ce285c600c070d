"""
Recommendation Repository

Database operations for recommendation requests and letters.

Design Principles:
- Only database operations, no business logic or emails
- Status changes go through ``update_status`` so the transition table
  is always enforced
- Timezone-aware datetime handling (UTC)
"""

from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from .models import RecommendationLetter, RecommendationRequest, RequestStatus

# Valid status transitions for the request state machine
VALID_STATUS_TRANSITIONS: dict[RequestStatus, set[RequestStatus]] = {
    RequestStatus.DRAFT: {RequestStatus.SENT, RequestStatus.CANCELLED},
    RequestStatus.SENT: {RequestStatus.PENDING, RequestStatus.RECEIVED, RequestStatus.CANCELLED},
    RequestStatus.PENDING: {RequestStatus.SENT, RequestStatus.RECEIVED, RequestStatus.CANCELLED},
    RequestStatus.RECEIVED: set(),
    RequestStatus.CANCELLED: set(),
}

ACTIVE_STATUSES = (RequestStatus.SENT, RequestStatus.PENDING)


class InvalidStatusTransitionError(ValueError):
    """Raised when an invalid status transition is attempted."""

    def __init__(self, current_status: RequestStatus, new_status: RequestStatus):
        self.current_status = current_status
        self.new_status = new_status
        valid_transitions = VALID_STATUS_TRANSITIONS.get(current_status, set())
        super().__init__(
            f"Invalid status transition: {current_status.value} -> {new_status.value}. "
            f"Valid transitions: {sorted(s.value for s in valid_transitions)}"
        )


def can_transition(current_status: RequestStatus, new_status: RequestStatus) -> bool:
    return new_status in VALID_STATUS_TRANSITIONS.get(current_status, set())


# ============================================
# RecommendationRequest Repository
# ============================================


async def create_request(db: AsyncSession, **fields) -> RecommendationRequest:
    """Insert a new request (always as draft)."""
    request = RecommendationRequest(status=RequestStatus.DRAFT, **fields)

    db.add(request)
    await db.commit()
    await db.refresh(request)

    return request


async def get_request(db: AsyncSession, id: UUID) -> RecommendationRequest | None:
    return await db.get(RecommendationRequest, id)


async def get_request_for_student(
    db: AsyncSession, student_id: UUID, id: UUID
) -> RecommendationRequest | None:
    """Get a request only if it belongs to the student."""
    result = await db.execute(
        select(RecommendationRequest).where(
            RecommendationRequest.id == id,
            RecommendationRequest.student_id == student_id,
        )
    )
    return result.scalar_one_or_none()


async def get_by_token(db: AsyncSession, token: str) -> RecommendationRequest | None:
    """Exact match on the secure token. Expiry is checked by the caller."""
    result = await db.execute(
        select(RecommendationRequest).where(RecommendationRequest.secure_token == token)
    )
    return result.scalar_one_or_none()


async def list_requests_for_student(
    db: AsyncSession,
    student_id: UUID,
    status: RequestStatus | None = None,
) -> list[RecommendationRequest]:
    """A student's requests, nearest deadline first."""
    query = select(RecommendationRequest).where(RecommendationRequest.student_id == student_id)
    if status is not None:
        query = query.where(RecommendationRequest.status == status)

    result = await db.execute(query.order_by(RecommendationRequest.deadline.asc()))
    return list(result.scalars().all())


async def count_for_recipient(db: AsyncSession, recipient_id: UUID) -> int:
    """Requests (in any status) addressed to the recipient."""
    result = await db.execute(
        select(func.count())
        .select_from(RecommendationRequest)
        .where(RecommendationRequest.recipient_id == recipient_id)
    )
    return result.scalar_one()


async def save_request(
    db: AsyncSession, request: RecommendationRequest, **fields
) -> RecommendationRequest:
    """Update non-status fields of a request."""
    for key, value in fields.items():
        if hasattr(request, key):
            setattr(request, key, value)

    request.updated_at = datetime.now(UTC)
    await db.commit()
    await db.refresh(request)

    return request


async def update_status(
    db: AsyncSession,
    request: RecommendationRequest,
    status: RequestStatus,
    **kwargs,
) -> RecommendationRequest:
    """
    Change a request's status and optional fields.

    Re-applying the current status is allowed (used when a received
    request gets a new letter version, or a pending request is
    acknowledged again).

    Raises:
        InvalidStatusTransitionError: If the transition is not allowed
    """
    current_status = request.status

    if status != current_status and not can_transition(current_status, status):
        raise InvalidStatusTransitionError(current_status, status)

    request.status = status
    request.updated_at = datetime.now(UTC)

    for key, value in kwargs.items():
        if hasattr(request, key):
            setattr(request, key, value)

    await db.commit()
    await db.refresh(request)

    return request


async def get_requests_due_for_reminder(
    db: AsyncSession, now: datetime
) -> list[RecommendationRequest]:
    """Active requests whose reminder cursor has come due and whose deadline is ahead."""
    result = await db.execute(
        select(RecommendationRequest)
        .where(
            RecommendationRequest.status.in_(ACTIVE_STATUSES),
            RecommendationRequest.deadline > now,
            RecommendationRequest.next_reminder_date.is_not(None),
            RecommendationRequest.next_reminder_date <= now,
        )
        .order_by(RecommendationRequest.deadline.asc())
    )
    return list(result.scalars().all())


async def get_overdue_requests(db: AsyncSession, now: datetime) -> list[RecommendationRequest]:
    """Active requests whose deadline has passed (inclusive of ``now``)."""
    result = await db.execute(
        select(RecommendationRequest)
        .where(
            RecommendationRequest.status.in_(ACTIVE_STATUSES),
            RecommendationRequest.deadline <= now,
        )
        .order_by(RecommendationRequest.deadline.asc())
    )
    return list(result.scalars().all())


async def mark_reminder_sent(
    db: AsyncSession,
    request: RecommendationRequest,
    sent_at: datetime,
    threshold: int,
    next_reminder_date: datetime | None,
) -> RecommendationRequest:
    """Advance the reminder cursor past ``threshold``."""
    request.last_reminder_sent = sent_at
    request.last_reminder_interval = threshold
    request.next_reminder_date = next_reminder_date

    await db.commit()
    await db.refresh(request)

    return request


# ============================================
# RecommendationLetter Repository
# ============================================


async def get_latest_letter(db: AsyncSession, request_id: UUID) -> RecommendationLetter | None:
    result = await db.execute(
        select(RecommendationLetter)
        .where(RecommendationLetter.request_id == request_id)
        .order_by(RecommendationLetter.version.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def list_letters(db: AsyncSession, request_id: UUID) -> list[RecommendationLetter]:
    """All versions of a request's letter, oldest first."""
    result = await db.execute(
        select(RecommendationLetter)
        .where(RecommendationLetter.request_id == request_id)
        .order_by(RecommendationLetter.version.asc())
    )
    return list(result.scalars().all())


async def get_letter(db: AsyncSession, id: UUID) -> RecommendationLetter | None:
    return await db.get(RecommendationLetter, id)


async def insert_letter(db: AsyncSession, letter: RecommendationLetter) -> RecommendationLetter:
    """
    Insert a letter version.

    Raises:
        sqlalchemy.exc.IntegrityError: If the version number is already taken
    """
    db.add(letter)
    await db.commit()
    await db.refresh(letter)

    return letter
