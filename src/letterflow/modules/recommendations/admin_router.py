"""
Recommendations Admin Router

Platform administrator endpoints for letter quality control and
deadline monitoring. All endpoints require the ``super_admin`` role.

Endpoints:
- POST /admin/recommendations/letters/{id}/verify - Mark a letter verified
- GET /admin/recommendations/overdue - Sent/pending requests past deadline
"""

import logging
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.auth import AuthenticatedUser, get_current_admin_user
from letterflow.core.database import get_db
from letterflow.core.rate_limit import RateLimitExceeded, check_rate_limit
from letterflow.modules.recommendations import letters, service
from letterflow.modules.recommendations.errors import (
    RecommendationServiceError,
    to_http_exception,
)
from letterflow.modules.recommendations.schemas import (
    LetterResponse,
    LetterVerifyRequest,
    OverdueListResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()

RATE_LIMIT_VERIFY = (30, 60)  # 30 verifications per minute


async def _check_admin_rate_limit(
    admin: AuthenticatedUser,
    action: str,
    limit: int,
    window_seconds: int,
) -> None:
    """
    Raises:
        RateLimitExceeded: If the admin exceeded the limit for this action
    """
    key = f"admin:{action}:{admin.id}"
    if not await check_rate_limit(key, limit, window_seconds):
        logger.warning(
            f"Rate limit exceeded for admin {admin.id} on action '{action}': "
            f"{limit}/{window_seconds}s"
        )
        raise RateLimitExceeded(limit, window_seconds)


@router.post(
    "/letters/{letter_id}/verify",
    response_model=LetterResponse,
    summary="Verify Letter",
    description="""
Mark a submitted letter as verified, with optional notes.

Verification is informational: it does not change the request status or
what the student can see.
""",
)
async def verify_letter(
    letter_id: UUID,
    data: LetterVerifyRequest,
    admin: AuthenticatedUser = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_db),
) -> LetterResponse:
    await _check_admin_rate_limit(admin, "verify_letter", *RATE_LIMIT_VERIFY)

    try:
        letter = await letters.verify_letter(db, letter_id, admin.id, data.notes)
    except RecommendationServiceError as e:
        raise to_http_exception(e) from e
    except Exception as e:
        logger.exception(f"Unexpected error verifying letter {letter_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={
                "error": "INTERNAL_ERROR",
                "message": "An unexpected error occurred. Please try again later.",
            },
        ) from e

    logger.info(f"Admin {admin.id} verified letter {letter_id}")
    return LetterResponse.model_validate(letter)


@router.get(
    "/overdue",
    response_model=OverdueListResponse,
    summary="List Overdue Requests",
    description="Sent or pending requests whose deadline has passed. These are never cancelled automatically.",
)
async def list_overdue(
    admin: AuthenticatedUser = Depends(get_current_admin_user),
    db: AsyncSession = Depends(get_db),
) -> OverdueListResponse:
    items = await service.list_overdue(db)
    return OverdueListResponse(requests=items, total=len(items))
