"""
Infrastructure module: Database, blob storage and log correlation.

Provides:
- Database sessions and transactions (db.py)
- Attachment storage (storage.py)
- Connection ID propagation for logs (correlation.py)
"""

from shared.infrastructure.db import (
    engine,
    SessionLocal,
    init_db,
    safe_commit,
)
from shared.infrastructure.storage import BlobStore, LocalBlobStore

__all__ = [
    # db
    "engine",
    "SessionLocal",
    "init_db",
    "safe_commit",
    # storage
    "BlobStore",
    "LocalBlobStore",
]
