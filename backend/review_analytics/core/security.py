"""Security utilities: JWT access token encoding and verification."""

from __future__ import annotations

import secrets
from datetime import datetime, timedelta, timezone
from typing import Any
import logging

import jwt
from jwt.exceptions import PyJWTError

from review_analytics.core.config import settings

logger = logging.getLogger(__name__)

DEFAULT_TOKEN_TTL = timedelta(hours=1)


def create_access_token(data: dict[str, Any], expires_delta: timedelta | None = None) -> str:
    """Create a signed JWT access token.

    Tokens are normally minted by the auth provider; this is used by
    tooling and tests that need a token the service will accept.
    """
    to_encode = data.copy()
    now = datetime.now(timezone.utc)
    expire = now + (expires_delta or DEFAULT_TOKEN_TTL)

    to_encode.update({
        "exp": expire,
        "iat": now,
        "jti": secrets.token_urlsafe(16),
    })
    return jwt.encode(to_encode, settings.secret_key, algorithm=settings.algorithm)


def decode_access_token(token: str) -> dict[str, Any] | None:
    """Decode and validate a JWT token. Returns None when invalid or expired."""
    try:
        return jwt.decode(
            token,
            settings.secret_key,
            algorithms=[settings.algorithm],
            options={"require": ["exp"]}
        )
    except PyJWTError as e:
        logger.debug(f"JWT decode error: {e}")
        return None


def get_bearer_token(authorization: str | None) -> str | None:
    """Extract the token from an ``Authorization: Bearer <token>`` header."""
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None
