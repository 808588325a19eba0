"""
Base class shared by all SQLAlchemy ORM models.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy.orm import DeclarativeBase


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


def new_id() -> str:
    """Generate a string primary key."""
    return uuid.uuid4().hex


def utcnow() -> datetime:
    """
    Timezone-aware creation timestamp.

    Assigned in Python rather than by the server so that messages written
    within the same second still sort in creation order.
    """
    return datetime.now(timezone.utc)
