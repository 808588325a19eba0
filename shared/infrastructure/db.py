"""
Database configuration and session management.
Uses SQLAlchemy 2.0 patterns with a synchronous engine; async callers
go through asyncio.to_thread (see chat_gateway.components.data).
"""

import os
from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import sessionmaker, Session

from shared.config.settings import DATABASE_URL


def _calculate_pool_size() -> int:
    """
    Calculate pool size based on CPU cores.
    Formula: (2 * CPU cores) + 1, capped at 20 for reasonable limits.
    """
    cores = os.cpu_count() or 4
    return min(cores * 2 + 1, 20)


def create_db_engine(url: str) -> Engine:
    """
    Create an engine with settings appropriate for the backend.

    SQLite has no server-side pool and forbids cross-thread use by default,
    which asyncio.to_thread needs, so it gets its own connect args.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            connect_args={"check_same_thread": False},
            echo=False,
        )
    return create_engine(
        url,
        pool_pre_ping=True,  # Verify connections before using
        pool_size=_calculate_pool_size(),
        max_overflow=15,
        pool_timeout=30,  # Wait max 30s for connection from pool
        pool_recycle=1800,  # Recycle connections after 30 minutes
        echo=False,
    )


engine = create_db_engine(DATABASE_URL)

# Session factory
SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    autocommit=False,
)


def init_db(bind: Engine | None = None) -> None:
    """Create tables for all registered models."""
    from shared.models import Base

    Base.metadata.create_all(bind=bind or engine)


def safe_commit(db: Session) -> None:
    """
    Safe commit with automatic rollback on failure.

    Usage:
        from shared.infrastructure.db import safe_commit
        safe_commit(db)

    Raises the original exception after rolling back.
    """
    try:
        db.commit()
    except Exception:
        db.rollback()
        raise
