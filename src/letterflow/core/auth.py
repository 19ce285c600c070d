"""
Authentication and Authorization Module

FastAPI dependencies that validate Bearer JWTs issued by the platform's
auth provider and enforce role-based access.

- Students use their own session token for the dashboard endpoints
  (requests, recipients, letter download).
- Platform admins (super_admin) use the letter verification endpoints.
- Recipients never authenticate here; they use the request's secure token.

SECURITY NOTE:
- Development mode test tokens are ONLY accepted when PYTHON_ENV=development
- The PYTHON_ENV environment variable is checked in addition to settings
"""

import logging
import os
from dataclasses import dataclass
from uuid import UUID

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from letterflow.core.config import settings
from letterflow.core.security import decode_token

logger = logging.getLogger(__name__)

security = HTTPBearer(
    auto_error=True,
    description="JWT Bearer token for authentication",
)

ROLE_STUDENT = "student"
ROLE_ADMIN = "super_admin"


@dataclass
class AuthenticatedUser:
    """
    A user authenticated from JWT claims.

    Attributes:
        id: User's unique identifier (the ``sub`` claim)
        email: User's email address
        role: ``student`` or ``super_admin``
        name: Display name, used in emails sent on the user's behalf
    """

    id: UUID
    email: str
    role: str
    name: str | None = None

    @property
    def display_name(self) -> str:
        return self.name or self.email

    def __str__(self) -> str:
        return f"AuthenticatedUser(id={self.id}, email={self.email}, role={self.role})"


def _is_dev_mode_safe() -> bool:
    """Development test tokens require development settings AND a non-production env var."""
    env_var = os.getenv("PYTHON_ENV", "").lower()

    is_safe = (
        settings.is_development
        and not settings.is_production
        and env_var not in ("production", "staging")
    )

    if is_safe:
        logger.warning(
            "SECURITY: Development auth mode is ENABLED. This MUST NOT be used in production!"
        )

    return is_safe


_DEVELOPMENT_MODE = _is_dev_mode_safe()

_DEV_ADMIN = AuthenticatedUser(
    id=UUID("00000000-0000-0000-0000-000000000001"),
    email="admin@letterflow.dev",
    role=ROLE_ADMIN,
    name="Development Admin",
)


def _unauthorized(error: str, message: str) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail={"error": error, "message": message},
        headers={"WWW-Authenticate": "Bearer"},
    )


async def _validate_jwt_token(token: str) -> AuthenticatedUser:
    """
    Validate a JWT and build the authenticated user from its claims.

    Raises:
        HTTPException 401: If the token is invalid, expired or has bad claims
    """
    if _DEVELOPMENT_MODE:
        if token == "dev-admin":
            return _DEV_ADMIN

        # UUID tokens act as student ids for local testing
        try:
            user_id = UUID(token)
            return AuthenticatedUser(
                id=user_id,
                email=f"student-{str(user_id)[:8]}@letterflow.dev",
                role=ROLE_STUDENT,
                name="Test Student",
            )
        except ValueError:
            pass

    payload = decode_token(token)

    if payload is None:
        logger.warning("Invalid or expired JWT token")
        raise _unauthorized("INVALID_TOKEN", "Invalid or expired authentication token.")

    try:
        user_id_str = payload.get("sub")
        if not user_id_str:
            raise ValueError("Missing 'sub' claim in token")

        token_type = payload.get("type", "access")
        if token_type != "access":
            logger.warning(f"Invalid token type: {token_type}")
            raise _unauthorized(
                "INVALID_TOKEN_TYPE", "This endpoint requires an access token."
            )

        return AuthenticatedUser(
            id=UUID(user_id_str),
            email=payload.get("email", ""),
            role=payload.get("role", ""),
            name=payload.get("name"),
        )
    except (ValueError, KeyError) as e:
        logger.warning(f"Invalid token claims: {e}")
        raise _unauthorized(
            "INVALID_TOKEN_CLAIMS", "Token contains invalid or missing claims."
        ) from e


async def get_current_student(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """
    Dependency returning the authenticated student.

    Raises:
        HTTPException 401: If the token is missing, invalid or expired
        HTTPException 403: If the user is not a student
    """
    user = await _validate_jwt_token(credentials.credentials)

    if user.role != ROLE_STUDENT:
        logger.warning(f"Access denied: user {user.id} has role '{user.role}', 'student' required")
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "STUDENT_ACCESS_REQUIRED",
                "message": "A student account is required for this endpoint.",
            },
        )

    return user


async def get_current_admin_user(
    credentials: HTTPAuthorizationCredentials = Depends(security),
) -> AuthenticatedUser:
    """
    Dependency returning the authenticated platform admin.

    Raises:
        HTTPException 401: If the token is missing, invalid or expired
        HTTPException 403: If the user is not a platform admin
    """
    user = await _validate_jwt_token(credentials.credentials)

    if user.role != ROLE_ADMIN:
        logger.warning(
            f"Access denied: user {user.id} ({user.email}) has role '{user.role}', "
            "but 'super_admin' is required"
        )
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail={
                "error": "ADMIN_ACCESS_REQUIRED",
                "message": "Platform admin access is required for this endpoint.",
            },
        )

    logger.debug(f"Authenticated admin: {user.id} ({user.email})")
    return user


__all__ = [
    "AuthenticatedUser",
    "ROLE_ADMIN",
    "ROLE_STUDENT",
    "get_current_admin_user",
    "get_current_student",
]
