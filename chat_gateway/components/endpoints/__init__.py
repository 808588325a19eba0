"""
WebSocket endpoints: base lifecycle, mixins and the chat handler.
"""

from chat_gateway.components.endpoints.base import WebSocketEndpointBase
from chat_gateway.components.endpoints.handlers import ChatEndpoint
from chat_gateway.components.endpoints.mixins import (
    ConnectionLifecycleMixin,
    MessageValidationMixin,
    OriginValidationMixin,
)

__all__ = [
    "WebSocketEndpointBase",
    "ChatEndpoint",
    "ConnectionLifecycleMixin",
    "MessageValidationMixin",
    "OriginValidationMixin",
]
