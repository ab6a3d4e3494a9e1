"""Security tests: token handling, tenant resolution, rate limit keys."""

from datetime import timedelta
from unittest.mock import MagicMock

import jwt
import pytest

from conftest import TENANT_ID
from review_analytics.core.auth import resolve_tenant_id
from review_analytics.core.config import settings
from review_analytics.core.errors import AuthError
from review_analytics.core.rate_limit import get_tenant_or_ip
from review_analytics.core.security import create_access_token, decode_access_token, get_bearer_token


# ============== Token Tests ==============

class TestAccessToken:
    def test_round_trip(self):
        token = create_access_token(data={"sub": TENANT_ID})
        payload = decode_access_token(token)
        assert payload["sub"] == TENANT_ID
        assert "exp" in payload
        assert "jti" in payload

    def test_expired_token_rejected(self):
        token = create_access_token(data={"sub": TENANT_ID}, expires_delta=timedelta(seconds=-5))
        assert decode_access_token(token) is None

    def test_wrong_key_rejected(self):
        token = jwt.encode({"sub": TENANT_ID, "exp": 9999999999}, "another-key", algorithm=settings.algorithm)
        assert decode_access_token(token) is None

    def test_token_without_expiry_rejected(self):
        token = jwt.encode({"sub": TENANT_ID}, settings.secret_key, algorithm=settings.algorithm)
        assert decode_access_token(token) is None

    def test_garbage_rejected(self):
        assert decode_access_token("not.a.token") is None


class TestBearerParsing:
    @pytest.mark.parametrize("header,expected", [
        ("Bearer abc", "abc"),
        ("bearer abc", "abc"),
        ("Bearer   abc  ", "abc"),
        ("Basic abc", None),
        ("Bearer", None),
        ("", None),
        (None, None),
    ])
    def test_get_bearer_token(self, header, expected):
        assert get_bearer_token(header) == expected


# ============== Tenant Resolution Tests ==============

class TestResolveTenant:
    def test_valid_token(self):
        token = create_access_token(data={"sub": TENANT_ID})
        assert resolve_tenant_id(f"Bearer {token}") == TENANT_ID

    def test_missing_header(self):
        with pytest.raises(AuthError, match="Missing"):
            resolve_tenant_id(None)

    def test_invalid_token(self):
        with pytest.raises(AuthError, match="Invalid token"):
            resolve_tenant_id("Bearer nope")

    def test_non_string_subject(self):
        token = create_access_token(data={"sub": 42})
        with pytest.raises(AuthError):
            resolve_tenant_id(f"Bearer {token}")


# ============== Rate Limit Key Tests ==============

class TestRateLimitKey:
    def _request(self, authorization=None, host="10.0.0.1"):
        request = MagicMock()
        request.headers = {"Authorization": authorization} if authorization else {}
        request.client.host = host
        return request

    def test_authenticated_requests_keyed_by_tenant(self):
        token = create_access_token(data={"sub": TENANT_ID})
        assert get_tenant_or_ip(self._request(f"Bearer {token}")) == f"tenant:{TENANT_ID}"

    def test_anonymous_requests_keyed_by_ip(self):
        assert get_tenant_or_ip(self._request()) == "10.0.0.1"
