"""
Authentication components.

Pluggable handshake strategies returning AuthResult values.
"""

from chat_gateway.components.auth.strategies import (
    AuthResult,
    AuthStrategy,
    CookieJWTAuthStrategy,
    NullAuthStrategy,
)

__all__ = [
    "AuthResult",
    "AuthStrategy",
    "CookieJWTAuthStrategy",
    "NullAuthStrategy",
]
