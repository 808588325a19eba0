"""
Shared module for common utilities used by the chat gateway.

CLEAN ARCHITECTURE STRUCTURE:
- shared.security: Authentication
  - auth.py: JWT signing and verification for the session cookie

- shared.infrastructure: Persistence and storage
  - db.py: SQLAlchemy engine, sessions, safe_commit()
  - storage.py: Blob storage for chat attachments
  - correlation.py: Connection ID propagation into log records

- shared.models: SQLAlchemy ORM models (Message, User)

- shared.config: Configuration
  - settings.py: Environment config (Pydantic)
  - logging.py: Structured logging

IMPORT EXAMPLES:
    from shared.security.auth import verify_jwt
    from shared.infrastructure.db import init_db, safe_commit
    from shared.infrastructure.storage import LocalBlobStore
    from shared.config.settings import settings
    from shared.models import Message, User
"""

# This module does not provide re-exports.
# All imports should use the canonical paths as documented above.
