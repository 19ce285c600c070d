"""
Recipient Portal Router

Endpoints used by letter writers through the emailed secure link. There
is no login; the token in the path is the credential.

Endpoints:
- GET /recommendations/recipient/{token} - Request summary and current letter
- POST /recommendations/recipient/{token}/acknowledge - Mark request pending
- POST /recommendations/recipient/{token}/upload - Pre-signed upload URL
- POST /recommendations/recipient/{token}/upload-fallback - Server-side upload
- GET /recommendations/recipient/{token}/view - Preview/download URL
- POST /recommendations/recipient/{token}/submit - Submit the letter

Security:
- Unknown, expired and cancelled links all get the same 404 response, so
  the endpoint reveals nothing about which tokens exist
- Rate limited per client IP (not per token)
- File type and size are checked before any storage call
"""

import logging
from datetime import UTC, datetime

from fastapi import APIRouter, Depends, File, Form, HTTPException, Request, UploadFile, status
from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.database import get_db
from letterflow.core.rate_limit import rate_limit, recipient_action_key
from letterflow.core.storage import MAX_LETTER_FILE_SIZE, ObjectStorageGateway, get_storage
from letterflow.modules.recommendations import reminders, service
from letterflow.modules.recommendations.errors import (
    RecommendationServiceError,
    RequestCancelledError,
    StorageUnavailableError,
    TokenExpiredError,
    TokenNotFoundError,
    ValidationFailedError,
    to_http_exception,
)
from letterflow.modules.recommendations.schemas import (
    AcknowledgeResponse,
    FileUrlResponse,
    LetterResponse,
    LetterSubmit,
    RecipientPortalResponse,
    StoredFileResponse,
    SubmitLetterResponse,
    UploadTargetRequest,
    UploadTargetResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

READ_LIMIT = 30
WRITE_LIMIT = 10
WINDOW_SECONDS = 60

LINK_ERRORS = (TokenNotFoundError, TokenExpiredError, RequestCancelledError)

LINK_INVALID_RESPONSE = {
    404: {
        "description": "Unknown, expired or cancelled link",
        "content": {
            "application/json": {
                "example": {
                    "detail": {
                        "error": "LINK_INVALID",
                        "message": "This link is no longer valid.",
                    }
                }
            }
        },
    },
}


def _handle_error(e: Exception, action: str) -> HTTPException:
    """Map errors to responses, hiding why a link was rejected."""
    if isinstance(e, LINK_ERRORS):
        logger.warning(f"Recipient {action} rejected: {e.error_code}")
        return HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail={"error": "LINK_INVALID", "message": "This link is no longer valid."},
        )
    if isinstance(e, RecommendationServiceError):
        return to_http_exception(e)

    logger.exception(f"Unexpected error during recipient {action}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get(
    "/{token}",
    response_model=RecipientPortalResponse,
    summary="View Recommendation Request",
    responses=LINK_INVALID_RESPONSE,
)
@rate_limit(limit=READ_LIMIT, window_seconds=WINDOW_SECONDS, key_func=recipient_action_key("view"))
async def get_request(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> RecipientPortalResponse:
    try:
        rec_request, recipient, latest = await service.get_recipient_view(db, token)
    except Exception as e:
        raise _handle_error(e, "view") from e

    return RecipientPortalResponse(
        request_id=rec_request.id,
        title=rec_request.title,
        description=rec_request.description,
        deadline=rec_request.deadline,
        days_until_deadline=reminders.days_until_deadline(rec_request.deadline, datetime.now(UTC)),
        status=rec_request.status,
        priority=rec_request.priority,
        student_name=rec_request.student_name,
        recipient_name=recipient.name,
        relationship_context=rec_request.relationship_context,
        additional_context=rec_request.additional_context,
        draft_content=rec_request.draft_content if rec_request.include_draft else None,
        latest_letter=LetterResponse.model_validate(latest) if latest else None,
    )


@router.post(
    "/{token}/acknowledge",
    response_model=AcknowledgeResponse,
    summary="Acknowledge Request",
    description="The recipient confirms they are working on the letter (sent -> pending).",
    responses=LINK_INVALID_RESPONSE,
)
@rate_limit(
    limit=WRITE_LIMIT, window_seconds=WINDOW_SECONDS, key_func=recipient_action_key("acknowledge")
)
async def acknowledge(
    request: Request,
    token: str,
    db: AsyncSession = Depends(get_db),
) -> AcknowledgeResponse:
    try:
        rec_request = await service.acknowledge_request(db, token)
    except Exception as e:
        raise _handle_error(e, "acknowledge") from e

    return AcknowledgeResponse(request_id=rec_request.id, status=rec_request.status)


@router.post(
    "/{token}/upload",
    response_model=UploadTargetResponse,
    summary="Get Upload URL",
    description="""
Get a pre-signed URL to PUT the letter file directly to storage.

Accepted types: PDF, DOC, DOCX. Maximum size: 10MB. If the direct upload
fails (for example because of a network policy), use `upload-fallback`.
""",
    responses={
        **LINK_INVALID_RESPONSE,
        400: {"description": "File type or size not accepted"},
        503: {"description": "Storage unavailable; retry or use upload-fallback"},
    },
)
@rate_limit(limit=WRITE_LIMIT, window_seconds=WINDOW_SECONDS, key_func=recipient_action_key("upload"))
async def create_upload(
    request: Request,
    token: str,
    data: UploadTargetRequest,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorageGateway = Depends(get_storage),
) -> UploadTargetResponse:
    try:
        target = await service.create_recipient_upload(db, token, storage, data)
    except StorageUnavailableError as e:
        http_error = to_http_exception(e)
        http_error.detail["fallback"] = "upload-fallback"
        raise http_error from e
    except Exception as e:
        raise _handle_error(e, "upload") from e

    return UploadTargetResponse(
        upload_url=target.upload_url,
        file_url=target.file_url,
        key=target.key,
        content_type=target.content_type,
        expires_at=target.expires_at,
    )


@router.post(
    "/{token}/upload-fallback",
    response_model=StoredFileResponse,
    summary="Upload Letter File (fallback)",
    description="Upload the file through the API when the direct upload failed.",
    responses={
        **LINK_INVALID_RESPONSE,
        400: {"description": "File type or size not accepted"},
        503: {"description": "Storage unavailable"},
    },
)
@rate_limit(limit=WRITE_LIMIT, window_seconds=WINDOW_SECONDS, key_func=recipient_action_key("upload"))
async def upload_fallback(
    request: Request,
    token: str,
    file: UploadFile = File(...),
    key: str | None = Form(None),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorageGateway = Depends(get_storage),
) -> StoredFileResponse:
    try:
        # One byte past the limit is enough to detect an oversized file
        data = await file.read(MAX_LETTER_FILE_SIZE + 1)
        stored = await service.upload_recipient_fallback(
            db,
            token,
            storage,
            file_name=file.filename or "letter",
            content_type=file.content_type or "",
            data=data,
            key=key,
        )
    except Exception as e:
        raise _handle_error(e, "fallback upload") from e
    finally:
        await file.close()

    return StoredFileResponse(
        key=stored.key,
        file_url=stored.file_url,
        content_type=stored.content_type,
        file_size=stored.size,
    )


@router.get(
    "/{token}/view",
    response_model=FileUrlResponse,
    summary="View Letter File",
    description="Short-lived URL to preview (or with `download=true`, download) the current letter file.",
    responses=LINK_INVALID_RESPONSE,
)
@rate_limit(limit=READ_LIMIT, window_seconds=WINDOW_SECONDS, key_func=recipient_action_key("view"))
async def view_file(
    request: Request,
    token: str,
    download: bool = False,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorageGateway = Depends(get_storage),
) -> FileUrlResponse:
    try:
        target = await service.get_recipient_file_view(db, token, storage, download=download)
    except Exception as e:
        raise _handle_error(e, "file view") from e

    return FileUrlResponse(url=target.url, expires_at=target.expires_at)


@router.post(
    "/{token}/submit",
    response_model=SubmitLetterResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Submit Letter",
    description="""
Submit the recommendation letter as text, as a previously uploaded file,
or both. Submitting again creates a new version; the latest version is
the one the student receives.
""",
    responses={
        **LINK_INVALID_RESPONSE,
        400: {"description": "Missing content or invalid file"},
        409: {"description": "Concurrent submission conflict; retry"},
    },
)
@rate_limit(limit=WRITE_LIMIT, window_seconds=WINDOW_SECONDS, key_func=recipient_action_key("submit"))
async def submit_letter(
    request: Request,
    token: str,
    payload: LetterSubmit,
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorageGateway = Depends(get_storage),
) -> SubmitLetterResponse:
    try:
        rec_request, letter = await service.submit_recipient_letter(
            db, token, payload, storage=storage
        )
    except ValidationFailedError as e:
        logger.info(f"Letter submission rejected: {e.message}")
        raise to_http_exception(e) from e
    except Exception as e:
        raise _handle_error(e, "submit") from e

    return SubmitLetterResponse(
        request_id=rec_request.id,
        status=rec_request.status,
        letter=LetterResponse.model_validate(letter),
        message="Thank you! Your recommendation letter has been submitted.",
    )
