"""
Chat message model.
"""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base, new_id, utcnow


class Message(Base):
    """
    One relayed chat message.

    Rows are written once by the relay and never updated or deleted by the
    gateway. `file` holds the stored attachment name, not the bytes.
    """

    __tablename__ = "message"

    id: Mapped[str] = mapped_column(String(32), primary_key=True, default=new_id)
    sender: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    recipient: Mapped[str] = mapped_column(String(64), nullable=False)
    text: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    file: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, nullable=False
    )

    __table_args__ = (
        # Conversation history lookups filter on both parties and sort by time
        Index("ix_message_sender_recipient_created", "sender", "recipient", "created_at"),
    )

    def __repr__(self) -> str:
        return f"<Message id={self.id} sender={self.sender} recipient={self.recipient}>"
