"""
Authentication Strategies for the Chat Gateway.

Implements Strategy pattern for pluggable handshake authentication.
A failed handshake never rejects the socket: the connection stays
anonymous, still registered, still receiving presence updates.

PATTERN: Strategy - Different authentication algorithms.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, TYPE_CHECKING

from fastapi import HTTPException

from shared.config.logging import get_logger
from shared.config.settings import settings

if TYPE_CHECKING:
    from fastapi import WebSocket


logger = get_logger(__name__)


# =============================================================================
# Result Types
# =============================================================================


@dataclass(frozen=True, slots=True)
class AuthResult:
    """
    Result of a handshake authentication attempt.

    Attributes:
        success: Whether authentication succeeded.
        user_id: Verified user ID if successful.
        username: Verified display name if successful.
        claims: Full token claims if successful.
        error_message: Human-readable error message if failed.
        audit_reason: Short reason code for audit logging.
    """

    success: bool
    user_id: str | None = None
    username: str | None = None
    claims: dict[str, Any] | None = None
    error_message: str | None = None
    audit_reason: str | None = None

    @classmethod
    def ok(cls, claims: dict[str, Any]) -> "AuthResult":
        """Create successful authentication result from verified claims."""
        return cls(
            success=True,
            user_id=str(claims["userId"]),
            username=str(claims["username"]),
            claims=claims,
        )

    @classmethod
    def fail(cls, message: str, audit_reason: str = "auth_failed") -> "AuthResult":
        """Create failed authentication result."""
        return cls(success=False, error_message=message, audit_reason=audit_reason)


# =============================================================================
# Strategy Interface
# =============================================================================


class AuthStrategy(ABC):
    """
    Abstract base class for handshake authentication strategies.

    Implementations:
    - CookieJWTAuthStrategy: signed session token from the `token` cookie
    - NullAuthStrategy: every connection stays anonymous

    Usage:
        strategy = CookieJWTAuthStrategy()
        result = await strategy.authenticate(websocket)
        if result.success:
            connection.bind_identity(result.user_id, result.username)
    """

    @abstractmethod
    async def authenticate(self, websocket: "WebSocket") -> AuthResult:
        """
        Authenticate a WebSocket connection from its handshake metadata.

        Must not raise on bad credentials; failures are returned.
        """
        pass


# =============================================================================
# Cookie JWT Strategy
# =============================================================================


class CookieJWTAuthStrategy(AuthStrategy):
    """
    Verifies the session JWT carried in a handshake cookie.

    Usage:
        strategy = CookieJWTAuthStrategy(cookie_name="token")
        result = await strategy.authenticate(websocket)
    """

    def __init__(self, cookie_name: str | None = None) -> None:
        self._cookie_name = cookie_name or settings.jwt_cookie_name

    @property
    def cookie_name(self) -> str:
        return self._cookie_name

    def extract_token(self, websocket: "WebSocket") -> str | None:
        """Read the token cookie from the handshake request, if present."""
        token = websocket.cookies.get(self._cookie_name)
        return token or None

    async def authenticate(self, websocket: "WebSocket") -> AuthResult:
        """Authenticate using the cookie JWT."""
        from shared.security.auth import verify_jwt

        token = self.extract_token(websocket)
        if token is None:
            return AuthResult.fail("No session token", audit_reason="missing_token")

        try:
            claims = verify_jwt(token)
        except HTTPException as e:
            logger.warning("Handshake JWT validation failed", error=str(e.detail))
            return AuthResult.fail(
                "Authentication failed",
                audit_reason="jwt_validation_failed",
            )

        return AuthResult.ok(claims)


class NullAuthStrategy(AuthStrategy):
    """Leaves every connection anonymous."""

    async def authenticate(self, websocket: "WebSocket") -> AuthResult:
        return AuthResult.fail("Authentication disabled", audit_reason="auth_disabled")
