"""
Wire schemas for chat events.

Inbound:  {recipient, text?, file?: {name, data}}
Outbound: delivery {text, sender, recipient, file, id}
          error    {type: "error", code, detail}
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import BaseModel, ConfigDict, field_validator


def _stringify_id(value: Any) -> Any:
    # Clients may send numeric user IDs; identifiers are compared as strings
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return str(value)
    return value


class AttachmentPayload(BaseModel):
    """Inline attachment: original file name and base64 data (optionally a data URI)."""

    model_config = ConfigDict(extra="ignore")

    name: str
    data: str


class InboundChatMessage(BaseModel):
    """A chat event as sent by a client."""

    model_config = ConfigDict(extra="ignore")

    recipient: str | None = None
    text: str | None = None
    file: AttachmentPayload | None = None

    @field_validator("recipient", mode="before")
    @classmethod
    def normalize_recipient(cls, value: Any) -> Any:
        return _stringify_id(value)

    @property
    def has_content(self) -> bool:
        """At least one of text or file is present."""
        return bool(self.text) or self.file is not None


class DeliveryEvent(BaseModel):
    """A persisted message as forwarded to the recipient's sessions."""

    text: str | None
    sender: str | None
    recipient: str
    file: str | None
    id: str

    def to_wire(self) -> str:
        return json.dumps(self.model_dump())


# Error codes reported to the sending connection
ERROR_UNAUTHENTICATED = "unauthenticated"
ERROR_MESSAGE_NOT_SAVED = "message_not_saved"


def error_event(code: str, detail: str) -> str:
    """Serialized error event for the sending connection."""
    return json.dumps({"type": "error", "code": code, "detail": detail})
