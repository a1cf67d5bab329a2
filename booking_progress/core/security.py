# File: booking_progress/core/security.py
"""
Token utilities for the booking progress service.

Tokens are issued by the platform's auth service; this module decodes them
into a caller identity. ``create_access_token`` mints tokens with the same
claims for local runs and tests.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Union
import logging

from jose import jwt, JWTError
from pydantic import ValidationError

from booking_progress.core.config import settings
from booking_progress.core.exceptions import AuthenticationException
from booking_progress.db.models.enums import CallerRole
from booking_progress.schemas.token import TokenPayload

logger = logging.getLogger(__name__)

# Get JWT settings from config
ALGORITHM = settings.JWT_ALGORITHM


def create_access_token(
    subject: Union[str, Any],
    role: CallerRole = CallerRole.CLIENT,
    expires_delta: Optional[timedelta] = None,
) -> str:
    """
    Create a JWT access token.

    Args:
        subject: Token subject (the user ID)
        role: Marketplace role of the user
        expires_delta: Optional token expiration time

    Returns:
        str: JWT access token
    """
    if expires_delta:
        expire = datetime.now(timezone.utc) + expires_delta
    else:
        expire = datetime.now(timezone.utc) + timedelta(
            minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
    to_encode = {"exp": expire, "sub": str(subject), "role": CallerRole(role).value, "type": "access"}
    return jwt.encode(to_encode, settings.SECRET_KEY, algorithm=ALGORITHM)


def decode_access_token(token: Optional[str]) -> TokenPayload:
    """
    Decode and validate a bearer token.

    Raises:
        AuthenticationException: If the token is missing, expired, malformed
            or carries an unknown role
    """
    if not token:
        raise AuthenticationException("Not authenticated")
    try:
        payload = jwt.decode(token, settings.SECRET_KEY, algorithms=[ALGORITHM])
        return TokenPayload.model_validate(payload)
    except (JWTError, ValidationError) as e:
        logger.warning(f"Token validation failed: {e}")
        raise AuthenticationException("Could not validate credentials") from e
