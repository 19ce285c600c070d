"""
Recommendation Requests Router (student)

Endpoints for the authenticated student's recommendation requests.

Endpoints:
- GET /recommendations/requests - List requests (optional status filter)
- POST /recommendations/requests - Create (and by default send) a request
- GET /recommendations/requests/{id} - Request detail with current letter
- PUT /recommendations/requests/{id} - Edit a draft or pending request
- POST /recommendations/requests/{id}/send - Send or re-send to the recipient
- POST /recommendations/requests/{id}/cancel - Cancel (also DELETE)
- GET /recommendations/requests/{id}/letters - Letter version history
- GET /recommendations/requests/{id}/download - Download URL for the letter

Security:
- Student JWT required on every endpoint
- Requests of other students respond 404
- Sending is rate limited (it emails the recipient)
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.auth import AuthenticatedUser, get_current_student
from letterflow.core.database import get_db
from letterflow.core.rate_limit import rate_limit
from letterflow.core.storage import ObjectStorageGateway, get_storage
from letterflow.modules.recommendations import service
from letterflow.modules.recommendations.errors import (
    RecommendationServiceError,
    to_http_exception,
)
from letterflow.modules.recommendations.models import RequestStatus
from letterflow.modules.recommendations.schemas import (
    FileUrlResponse,
    LetterHistoryResponse,
    LetterResponse,
    RecommendationRequestCreate,
    RecommendationRequestDetail,
    RecommendationRequestListResponse,
    RecommendationRequestResponse,
    RecommendationRequestUpdate,
)

logger = logging.getLogger(__name__)

router = APIRouter()

SEND_LIMIT = 5
SEND_WINDOW_SECONDS = 60 * 60


def _internal_error(action: str, e: Exception) -> HTTPException:
    logger.exception(f"Unexpected error while trying to {action}: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get(
    "",
    response_model=RecommendationRequestListResponse,
    summary="List Recommendation Requests",
)
async def list_requests(
    status_filter: RequestStatus | None = Query(None, alias="status"),
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestListResponse:
    requests = await service.list_requests(db, student, status_filter)
    return RecommendationRequestListResponse(
        requests=[RecommendationRequestResponse.model_validate(r) for r in requests],
        total=len(requests),
    )


@router.post(
    "",
    response_model=RecommendationRequestResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create Recommendation Request",
    description="""
Create a recommendation request addressed to one of the student's recipients.

With `send_now` (the default) the request is sent immediately: a secure
link is generated and emailed to the recipient. With `send_now=false` the
request is saved as a draft and can be sent later.

Reminders default to 7, 3 and 1 days before the deadline (`standard`).
""",
    responses={
        400: {"description": "Deadline in the past or invalid reminder settings"},
        404: {"description": "Recipient not found"},
    },
)
async def create_request(
    data: RecommendationRequestCreate,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestResponse:
    try:
        request = await service.create_request(db, student, data)
        return RecommendationRequestResponse.model_validate(request)
    except RecommendationServiceError as e:
        logger.warning(f"Create request rejected: {e.error_code}")
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error("create a recommendation request", e) from e


@router.get(
    "/{request_id}",
    response_model=RecommendationRequestDetail,
    summary="Get Recommendation Request",
)
async def get_request(
    request_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestDetail:
    try:
        request, latest = await service.get_request_detail(db, student, request_id)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e

    detail = RecommendationRequestDetail.model_validate(request)
    detail.latest_letter = LetterResponse.model_validate(latest) if latest else None
    return detail


@router.put(
    "/{request_id}",
    response_model=RecommendationRequestResponse,
    summary="Update Recommendation Request",
    description="Edit a request while it is a draft or pending. Sent, received and cancelled requests are read-only.",
)
async def update_request(
    request_id: UUID,
    data: RecommendationRequestUpdate,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestResponse:
    try:
        request = await service.update_request(db, student, request_id, data)
        return RecommendationRequestResponse.model_validate(request)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error("update a recommendation request", e) from e


@router.post(
    "/{request_id}/send",
    response_model=RecommendationRequestResponse,
    summary="Send Recommendation Request",
    description="Email the recipient a fresh secure link. Any earlier link stops working.",
)
@rate_limit(limit=SEND_LIMIT, window_seconds=SEND_WINDOW_SECONDS)
async def send_request(
    request: Request,
    request_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestResponse:
    try:
        sent = await service.send_request(db, student, request_id)
        return RecommendationRequestResponse.model_validate(sent)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error("send a recommendation request", e) from e


async def _cancel(
    request_id: UUID, student: AuthenticatedUser, db: AsyncSession
) -> RecommendationRequestResponse:
    try:
        request = await service.cancel_request(db, student, request_id)
        return RecommendationRequestResponse.model_validate(request)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error("cancel a recommendation request", e) from e


@router.post(
    "/{request_id}/cancel",
    response_model=RecommendationRequestResponse,
    summary="Cancel Recommendation Request",
)
async def cancel_request(
    request_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestResponse:
    return await _cancel(request_id, student, db)


@router.delete(
    "/{request_id}",
    response_model=RecommendationRequestResponse,
    summary="Cancel Recommendation Request",
    description="Alias of POST /{request_id}/cancel. Requests are never hard-deleted.",
)
async def delete_request(
    request_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecommendationRequestResponse:
    return await _cancel(request_id, student, db)


@router.get(
    "/{request_id}/letters",
    response_model=LetterHistoryResponse,
    summary="Letter Version History",
)
async def list_letters(
    request_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> LetterHistoryResponse:
    try:
        letters = await service.list_request_letters(db, student, request_id)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e

    return LetterHistoryResponse(
        letters=[LetterResponse.model_validate(letter) for letter in letters],
        total=len(letters),
    )


@router.get(
    "/{request_id}/download",
    response_model=FileUrlResponse,
    summary="Download Letter",
    description="Short-lived download URL for the current letter's file.",
)
async def download_letter(
    request_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
    storage: ObjectStorageGateway = Depends(get_storage),
) -> FileUrlResponse:
    try:
        target = await service.get_letter_download(db, student, request_id, storage)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e

    return FileUrlResponse(url=target.url, expires_at=target.expires_at)
