"""
SQLAlchemy ORM Models Package.

- base: Declarative Base
- message: Message (relayed chat messages)
- user: User (credential store records)
"""

from .base import Base
from .message import Message
from .user import User

__all__ = [
    "Base",
    "Message",
    "User",
]
