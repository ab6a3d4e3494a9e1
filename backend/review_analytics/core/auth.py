"""Tenant resolution from bearer tokens."""

import logging
from typing import Annotated

from fastapi import Depends, HTTPException, Request, status

from review_analytics.core.errors import AuthError
from review_analytics.core.security import decode_access_token, get_bearer_token

logger = logging.getLogger(__name__)


def resolve_tenant_id(authorization: str | None) -> str:
    """Resolve an Authorization header value to a tenant id.

    Raises:
        AuthError: token missing, invalid, expired or without a subject.
    """
    token = get_bearer_token(authorization)
    if not token:
        raise AuthError("Missing bearer token")

    payload = decode_access_token(token)
    if payload is None:
        raise AuthError("Invalid token")

    tenant_id = payload.get("sub")
    if not tenant_id or not isinstance(tenant_id, str):
        raise AuthError("Invalid token payload")
    return tenant_id


async def get_current_tenant(request: Request) -> str:
    """FastAPI dependency returning the authenticated tenant id."""
    try:
        return resolve_tenant_id(request.headers.get("Authorization"))
    except AuthError as e:
        logger.info(f"Rejected request to {request.url.path}: {e}")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Unauthorized",
            headers={"WWW-Authenticate": "Bearer"},
        )


CurrentTenant = Annotated[str, Depends(get_current_tenant)]
