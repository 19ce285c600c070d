"""
Security Utilities

JWT decoding for access tokens issued by the platform's auth provider.
This service never issues student or admin credentials itself.
"""

import logging
from typing import Any

from jose import JWTError, jwt

from letterflow.core.config import settings

logger = logging.getLogger(__name__)


def decode_token(token: str) -> dict[str, Any] | None:
    """
    Decode and verify a JWT.

    Signature, algorithm and the ``exp`` claim are checked by python-jose.

    Args:
        token: Encoded JWT from the Authorization header

    Returns:
        The token payload, or None if the token is invalid or expired
    """
    try:
        return jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except JWTError as e:
        logger.debug(f"JWT decode failed: {e}")
        return None


def encode_token(claims: dict[str, Any]) -> str:
    """Encode claims into a signed JWT (used by scripts and tests)."""
    return jwt.encode(claims, settings.jwt_secret, algorithm=settings.jwt_algorithm)
