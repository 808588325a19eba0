"""
Data access components: message store and credential store.
"""

from chat_gateway.components.data.message_repository import (
    CreationClock,
    MessageStore,
    MessageStoreError,
    SqlMessageStore,
    StoredMessage,
)
from chat_gateway.components.data.user_repository import UserRepository

__all__ = [
    "CreationClock",
    "MessageStore",
    "MessageStoreError",
    "SqlMessageStore",
    "StoredMessage",
    "UserRepository",
]
