"""
Secure Recipient Tokens

Recipients never log in. Each request carries one bearer token that is
embedded in the emailed portal link and grants access to that request
only.

Security considerations:
- Tokens come from ``secrets`` (256 bits, hex encoded)
- Tokens are stored as issued because reminder emails have to embed
  the same link again
- Expiry and cancellation are checked on every lookup
- Tokens are never written to logs
"""

import logging
import secrets
from datetime import UTC, datetime, timedelta

from sqlalchemy.ext.asyncio import AsyncSession

from letterflow.core.config import settings
from letterflow.modules.recipients.models import Recipient
from letterflow.modules.recommendations import repository
from letterflow.modules.recommendations.errors import (
    RequestCancelledError,
    TokenExpiredError,
    TokenNotFoundError,
)
from letterflow.modules.recommendations.models import RecommendationRequest, RequestStatus

logger = logging.getLogger(__name__)

TOKEN_BYTES = 32
TOKEN_LENGTH = TOKEN_BYTES * 2
MIN_TOKEN_TTL = timedelta(days=1)


def generate_secure_token() -> str:
    """A new random token (64 hex characters)."""
    return secrets.token_hex(TOKEN_BYTES)


def token_ttl_for_deadline(
    deadline: datetime,
    now: datetime,
    grace_days: int | None = None,
) -> timedelta:
    """
    How long a token issued now should live.

    Tokens outlive the deadline by ``grace_days`` so a late recommender
    can still submit; never less than one day.
    """
    grace = timedelta(days=settings.token_grace_days if grace_days is None else grace_days)
    return max(deadline + grace - now, MIN_TOKEN_TTL)


def is_token_expired(request: RecommendationRequest, now: datetime | None = None) -> bool:
    now = now or datetime.now(UTC)
    return request.token_expires_at is None or request.token_expires_at <= now


async def issue_token(
    db: AsyncSession,
    request: RecommendationRequest,
    ttl: timedelta,
    now: datetime | None = None,
) -> str:
    """
    Generate a token for the request, replacing any previous one.

    The old link stops working as soon as this commits.
    """
    now = now or datetime.now(UTC)
    token = generate_secure_token()

    await repository.save_request(
        db,
        request,
        secure_token=token,
        token_expires_at=now + ttl,
    )

    logger.info(f"Issued recipient token for request {request.id}, expires {now + ttl:%Y-%m-%d}")
    return token


async def resolve_token(
    db: AsyncSession,
    token: str,
    now: datetime | None = None,
) -> tuple[RecommendationRequest, Recipient]:
    """
    Look up the request and recipient a token grants access to.

    Checks run in this order: unknown token, cancelled request, expired
    token. Cancelling a request also expires its token, so the cancelled
    check has to come first to report the right reason.

    Raises:
        TokenNotFoundError: Malformed or unknown token
        RequestCancelledError: The request was cancelled
        TokenExpiredError: The token's expiry has passed
    """
    now = now or datetime.now(UTC)

    if not token or len(token) != TOKEN_LENGTH:
        raise TokenNotFoundError()

    request = await repository.get_by_token(db, token)
    if request is None:
        logger.warning("Recipient token lookup failed: no matching request")
        raise TokenNotFoundError()

    if request.status == RequestStatus.CANCELLED:
        logger.warning(f"Recipient token used for cancelled request {request.id}")
        raise RequestCancelledError()

    if is_token_expired(request, now):
        logger.warning(f"Expired recipient token used for request {request.id}")
        raise TokenExpiredError()

    return request, request.recipient
