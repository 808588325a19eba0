"""
Authentication utilities.
Handles the JWT session token that the login service places in the
`token` cookie and that the chat gateway verifies on every handshake.

Token claims:
    userId:   Stable user identifier (string).
    username: Display name shown in the presence roster.
    iat:      Issued-at timestamp.
    exp:      Optional expiry; verified when present.
"""

from __future__ import annotations

import time
from typing import Any

import jwt
from fastapi import HTTPException, status

from shared.config.settings import settings
from shared.config.logging import get_logger

logger = get_logger(__name__)

REQUIRED_CLAIMS = ("userId", "username")


def sign_jwt(
    payload: dict[str, Any],
    ttl_seconds: int | None = None,
) -> str:
    """
    Sign a session JWT with the given payload.

    Args:
        payload: Claims to include in the token (userId, username).
        ttl_seconds: Optional token lifetime in seconds. Tokens without
            an expiry stay valid until the secret rotates.

    Returns:
        Signed JWT token string.
    """
    now = int(time.time())
    data = {**payload, "iat": now}
    if ttl_seconds is not None:
        data["exp"] = now + ttl_seconds
    return jwt.encode(data, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_jwt(token: str) -> dict[str, Any]:
    """
    Verify and decode a session JWT.

    Args:
        token: The JWT token string.

    Returns:
        Decoded token claims.

    Raises:
        HTTPException: If token is invalid, expired, or missing identity claims.
    """
    try:
        payload = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
        )
    except jwt.ExpiredSignatureError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
        )
    except jwt.InvalidTokenError as e:
        # Log the actual error for debugging, but return generic message to client
        logger.warning("JWT validation failed", error=str(e))
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
        )

    for claim in REQUIRED_CLAIMS:
        value = payload.get(claim)
        if value is None or value == "":
            raise HTTPException(
                status_code=status.HTTP_401_UNAUTHORIZED,
                detail=f"Invalid token: missing {claim} claim",
            )

    # Identifiers are compared as strings everywhere in the gateway
    payload["userId"] = str(payload["userId"])
    payload["username"] = str(payload["username"])
    return payload
