"""Shared rate limiter instance for use across route files."""

from fastapi import Request
from slowapi import Limiter
from slowapi.util import get_remote_address

from review_analytics.core.config import settings
from review_analytics.core.security import decode_access_token, get_bearer_token


def get_tenant_or_ip(request: Request) -> str:
    """Rate limit by tenant if authenticated, else by IP."""
    token = get_bearer_token(request.headers.get("Authorization"))
    if token:
        payload = decode_access_token(token)
        if payload and payload.get("sub"):
            return f"tenant:{payload['sub']}"
    return get_remote_address(request)


limiter = Limiter(key_func=get_tenant_or_ip, enabled=settings.rate_limit_enabled)
