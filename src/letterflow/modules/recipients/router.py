"""
Recipients Router

Student address book of letter writers.

Endpoints:
- GET /recipients - List the student's recipients
- POST /recipients - Add a recipient
- GET /recipients/{id} - Get one recipient
- PUT /recipients/{id} - Update a recipient
- DELETE /recipients/{id} - Delete a recipient that no request uses
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, status
from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.auth import AuthenticatedUser, get_current_student
from letterflow.core.database import get_db
from letterflow.modules.recipients import service
from letterflow.modules.recipients.schemas import (
    RecipientCreate,
    RecipientListResponse,
    RecipientResponse,
    RecipientUpdate,
)
from letterflow.modules.recommendations.errors import (
    RecommendationServiceError,
    to_http_exception,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _internal_error(e: Exception) -> HTTPException:
    logger.exception(f"Unexpected recipients error: {e}")
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred. Please try again later.",
        },
    )


@router.get("", response_model=RecipientListResponse, summary="List Recipients")
async def list_recipients(
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecipientListResponse:
    recipients = await service.list_recipients(db, student)
    return RecipientListResponse(
        recipients=[RecipientResponse.model_validate(r) for r in recipients],
        total=len(recipients),
    )


@router.post(
    "",
    response_model=RecipientResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add Recipient",
    responses={
        409: {
            "description": "An email is already used by another recipient",
            "content": {
                "application/json": {
                    "example": {
                        "detail": {
                            "error": "DUPLICATE_RECIPIENT",
                            "message": "You already have a recipient with the email a@b.edu.",
                        }
                    }
                }
            },
        },
    },
)
async def create_recipient(
    data: RecipientCreate,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecipientResponse:
    try:
        recipient = await service.create_recipient(db, student, data)
        return RecipientResponse.model_validate(recipient)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error(e) from e


@router.get("/{recipient_id}", response_model=RecipientResponse, summary="Get Recipient")
async def get_recipient(
    recipient_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecipientResponse:
    try:
        recipient = await service.get_recipient(db, student, recipient_id)
        return RecipientResponse.model_validate(recipient)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e


@router.put("/{recipient_id}", response_model=RecipientResponse, summary="Update Recipient")
async def update_recipient(
    recipient_id: UUID,
    data: RecipientUpdate,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> RecipientResponse:
    try:
        recipient = await service.update_recipient(db, student, recipient_id, data)
        return RecipientResponse.model_validate(recipient)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error(e) from e


@router.delete(
    "/{recipient_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete Recipient",
)
async def delete_recipient(
    recipient_id: UUID,
    student: AuthenticatedUser = Depends(get_current_student),
    db: AsyncSession = Depends(get_db),
) -> Response:
    try:
        await service.delete_recipient(db, student, recipient_id)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        raise _internal_error(e) from e
    return Response(status_code=status.HTTP_204_NO_CONTENT)
