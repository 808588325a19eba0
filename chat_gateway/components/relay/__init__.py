"""
Message relay components.
"""

from chat_gateway.components.relay.errors import MalformedPayloadError
from chat_gateway.components.relay.attachments import (
    StoredNameGenerator,
    decode_attachment_data,
    file_extension,
)
from chat_gateway.components.relay.schemas import (
    AttachmentPayload,
    DeliveryEvent,
    InboundChatMessage,
    error_event,
)
from chat_gateway.components.relay.relay import (
    MessageRelay,
    RelayOutcome,
    RelayResult,
    parse_chat_message,
)

__all__ = [
    "MalformedPayloadError",
    "StoredNameGenerator",
    "decode_attachment_data",
    "file_extension",
    "AttachmentPayload",
    "DeliveryEvent",
    "InboundChatMessage",
    "error_event",
    "MessageRelay",
    "RelayOutcome",
    "RelayResult",
    "parse_chat_message",
]
