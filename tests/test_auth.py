"""
Tests for session JWT helpers and handshake auth strategies.
"""

import jwt
import pytest
from fastapi import HTTPException

from shared.config.settings import settings
from shared.security.auth import sign_jwt, verify_jwt
from chat_gateway.components.auth.strategies import (
    AuthResult,
    CookieJWTAuthStrategy,
    NullAuthStrategy,
)


class TestVerifyJwt:

    def test_valid_token(self):
        token = sign_jwt({"userId": "u1", "username": "alice"})
        claims = verify_jwt(token)
        assert claims["userId"] == "u1"
        assert claims["username"] == "alice"
        assert "iat" in claims

    def test_numeric_user_id_is_normalized_to_string(self):
        token = sign_jwt({"userId": 42, "username": "alice"})
        assert verify_jwt(token)["userId"] == "42"

    def test_expired_token_rejected(self):
        token = sign_jwt({"userId": "u1", "username": "alice"}, ttl_seconds=-10)
        with pytest.raises(HTTPException) as exc_info:
            verify_jwt(token)
        assert exc_info.value.status_code == 401
        assert exc_info.value.detail == "Token has expired"

    def test_wrong_secret_rejected(self):
        token = jwt.encode(
            {"userId": "u1", "username": "alice"},
            "some-other-secret-entirely-0123456789",
            algorithm=settings.jwt_algorithm,
        )
        with pytest.raises(HTTPException) as exc_info:
            verify_jwt(token)
        assert exc_info.value.detail == "Invalid token"

    def test_garbage_rejected(self):
        with pytest.raises(HTTPException):
            verify_jwt("not-a-jwt")

    def test_missing_username_claim_rejected(self):
        token = sign_jwt({"userId": "u1"})
        with pytest.raises(HTTPException) as exc_info:
            verify_jwt(token)
        assert "username" in exc_info.value.detail


class TestCookieJWTAuthStrategy:

    @pytest.mark.asyncio
    async def test_valid_cookie_authenticates(self, make_ws):
        token = sign_jwt({"userId": "u1", "username": "alice"})
        ws = make_ws(cookies={"token": token})

        result = await CookieJWTAuthStrategy().authenticate(ws)

        assert result.success is True
        assert (result.user_id, result.username) == ("u1", "alice")

    @pytest.mark.asyncio
    async def test_missing_cookie_fails_without_raising(self, make_ws):
        result = await CookieJWTAuthStrategy().authenticate(make_ws())
        assert result.success is False
        assert result.audit_reason == "missing_token"

    @pytest.mark.asyncio
    async def test_invalid_cookie_fails_without_raising(self, make_ws):
        result = await CookieJWTAuthStrategy().authenticate(make_ws(cookies={"token": "garbage"}))
        assert result.success is False
        assert result.audit_reason == "jwt_validation_failed"

    @pytest.mark.asyncio
    async def test_custom_cookie_name(self, make_ws):
        token = sign_jwt({"userId": "u1", "username": "alice"})
        strategy = CookieJWTAuthStrategy(cookie_name="session")

        assert (await strategy.authenticate(make_ws(cookies={"session": token}))).success
        assert not (await strategy.authenticate(make_ws(cookies={"token": token}))).success

    @pytest.mark.asyncio
    async def test_null_strategy_is_always_anonymous(self, make_ws):
        result = await NullAuthStrategy().authenticate(make_ws())
        assert result == AuthResult.fail("Authentication disabled", audit_reason="auth_disabled")
