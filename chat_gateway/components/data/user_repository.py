"""
Repository for the credential store.

Read-only lookup of user records. Password hashes are returned as stored;
verifying them belongs to the login service.
"""

from __future__ import annotations

import asyncio
from typing import Callable

from sqlalchemy import select
from sqlalchemy.orm import Session

from shared.config.logging import get_logger
from shared.infrastructure.db import SessionLocal
from shared.models import User

logger = get_logger(__name__)


class UserRepository:
    """
    Usage:
        users = UserRepository()
        user = await users.find_by_username("alice")
    """

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal) -> None:
        self._session_factory = session_factory

    async def find_by_username(self, username: str) -> User | None:
        """Return the user record or None. The instance is detached from its session."""
        if not username:
            return None
        return await asyncio.to_thread(self._find_by_username_sync, username)

    def _find_by_username_sync(self, username: str) -> User | None:
        db = self._session_factory()
        try:
            user = db.scalar(select(User).where(User.username == username))
            if user is not None:
                db.expunge(user)
            return user
        finally:
            db.close()
