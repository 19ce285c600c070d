"""
Letter Version Store

Append-only storage of letter versions. Every submission against a
request becomes a new ``RecommendationLetter`` numbered one above the
current latest, linked to it through ``previous_version_id``.

Version numbers are kept gap-free under concurrent submissions by the
``(request_id, version)`` unique constraint: a submission that loses
the race gets an IntegrityError, rolls back and retries with the new
latest version.
"""

import logging
from datetime import UTC, datetime
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.storage import (
    ALLOWED_LETTER_CONTENT_TYPES,
    MAX_LETTER_FILE_SIZE,
    ObjectStorageGateway,
)
from letterflow.modules.recommendations import repository, tokens
from letterflow.modules.recommendations.errors import (
    LetterNotFoundError,
    RequestCancelledError,
    TokenNotFoundError,
    ValidationFailedError,
    VersionConflictError,
)
from letterflow.modules.recommendations.files import request_key_prefix
from letterflow.modules.recommendations.models import (
    RecommendationLetter,
    RecommendationRequest,
    RequestStatus,
)
from letterflow.modules.recommendations.schemas import LetterSubmit

logger = logging.getLogger(__name__)

MAX_VERSION_ATTEMPTS = 3

VERSION_CONSTRAINT = "uq_recommendation_letters_request_version"

SUBMITTED_BY_STUDENT = "student"


def assign_next_version(latest: RecommendationLetter | None) -> tuple[int, UUID | None]:
    """Version number and parent id for the letter that follows ``latest``."""
    if latest is None:
        return 1, None
    return latest.version + 1, latest.id


def _is_version_collision(error: IntegrityError) -> bool:
    """True when the insert lost the race for a version number."""
    return VERSION_CONSTRAINT in str(error.orig)


def validate_letter_payload(
    request: RecommendationRequest,
    payload: LetterSubmit,
    storage: ObjectStorageGateway | None = None,
) -> str | None:
    """
    Business checks on a submission beyond schema validation.

    A file must be one uploaded for this request: either its ``file_key``
    or a ``file_url`` that ``storage`` maps back to such a key. File type
    and size are required with any file.

    Returns:
        The object key of the letter file, or None for a text-only letter

    Raises:
        ValidationFailedError: Missing content, missing or disallowed file
            type, missing or oversized file size, or a file that was not
            uploaded for this request
    """
    if not payload.content and not payload.has_file:
        raise ValidationFailedError(
            "Either letter content or an uploaded file is required", field="content"
        )

    if not payload.has_file:
        return None

    if payload.file_type is None:
        raise ValidationFailedError(
            "File type is required with an uploaded file", field="file_type"
        )
    if payload.file_type not in ALLOWED_LETTER_CONTENT_TYPES:
        raise ValidationFailedError("Only PDF, DOC, and DOCX files are allowed", field="file_type")

    if payload.file_size is None:
        raise ValidationFailedError(
            "File size is required with an uploaded file", field="file_size"
        )
    if payload.file_size > MAX_LETTER_FILE_SIZE:
        raise ValidationFailedError("File size exceeds 10MB limit", field="file_size")

    key = payload.file_key
    if key is None and storage is not None:
        key = storage.key_from_url(payload.file_url)
    if key is None:
        raise ValidationFailedError(
            "File URL does not point to an uploaded letter", field="file_url"
        )

    if not key.startswith(request_key_prefix(request.id)):
        field = "file_key" if payload.file_key is not None else "file_url"
        raise ValidationFailedError("Uploaded file does not belong to this request", field=field)

    return key


async def submit_letter(
    db: AsyncSession,
    request: RecommendationRequest,
    payload: LetterSubmit,
    *,
    submitted_by: str,
    token: str | None = None,
    storage: ObjectStorageGateway | None = None,
) -> RecommendationLetter:
    """
    Store a new letter version for the request.

    When ``token`` is given it is resolved again right before writing, so
    a link that expired (or a request cancelled) since the page loaded
    cannot create a letter.

    Raises:
        TokenNotFoundError / TokenExpiredError / RequestCancelledError
        ValidationFailedError: Payload fails the letter checks
        VersionConflictError: Lost the version race on every attempt
        IntegrityError: Any other constraint violation, not retried
    """
    if token is not None:
        resolved, _recipient = await tokens.resolve_token(db, token)
        if resolved.id != request.id:
            raise TokenNotFoundError()
        request = resolved

    if request.status == RequestStatus.CANCELLED:
        raise RequestCancelledError()

    file_key = validate_letter_payload(request, payload, storage)

    request_id = request.id
    recipient_id = request.recipient_id

    for attempt in range(1, MAX_VERSION_ATTEMPTS + 1):
        latest = await repository.get_latest_letter(db, request_id)
        version, previous_id = assign_next_version(latest)

        letter = RecommendationLetter(
            request_id=request_id,
            recipient_id=recipient_id,
            content=payload.content,
            file_name=payload.file_name,
            file_key=file_key,
            file_url=payload.file_url,
            file_type=payload.file_type,
            file_size=payload.file_size,
            version=version,
            previous_version_id=previous_id,
            submitted_at=datetime.now(UTC),
            submitted_by=submitted_by,
            is_verified=False,
        )

        try:
            letter = await repository.insert_letter(db, letter)
        except IntegrityError as e:
            await db.rollback()
            if not _is_version_collision(e):
                raise
            logger.warning(
                f"Version {version} of request {request_id} was taken concurrently "
                f"(attempt {attempt}/{MAX_VERSION_ATTEMPTS})"
            )
            continue

        logger.info(f"Stored letter version {version} for request {request_id}")
        return letter

    logger.error(f"Giving up on letter for request {request_id} after {MAX_VERSION_ATTEMPTS} attempts")
    raise VersionConflictError()


async def latest_letter(db: AsyncSession, request_id: UUID) -> RecommendationLetter:
    """
    The current (highest-version) letter of a request.

    Raises:
        LetterNotFoundError: No letter has been submitted
    """
    letter = await repository.get_latest_letter(db, request_id)
    if letter is None:
        raise LetterNotFoundError()
    return letter


async def list_versions(db: AsyncSession, request_id: UUID) -> list[RecommendationLetter]:
    """Every version of a request's letter, oldest first."""
    return await repository.list_letters(db, request_id)


async def verify_letter(
    db: AsyncSession,
    letter_id: UUID,
    admin_id: UUID,
    notes: str | None = None,
) -> RecommendationLetter:
    """
    Mark a letter as checked by a platform admin.

    Verification is an overlay; the request status does not change.

    Raises:
        LetterNotFoundError: Unknown letter id
    """
    letter = await repository.get_letter(db, letter_id)
    if letter is None:
        raise LetterNotFoundError("Letter not found.")

    letter.is_verified = True
    letter.verification_notes = notes
    letter.verified_by = admin_id
    letter.verified_at = datetime.now(UTC)

    await db.commit()
    await db.refresh(letter)

    logger.info(f"Letter {letter_id} verified by admin {admin_id}")
    return letter
