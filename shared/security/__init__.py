"""
Security module: Session token signing and verification.
"""

from shared.security.auth import sign_jwt, verify_jwt

__all__ = [
    "sign_jwt",
    "verify_jwt",
]
