"""
Log-safe previews of client payloads.

Chat frames are attacker-controlled; anything from them that reaches a log
line goes through sanitize_log_data.
"""

from __future__ import annotations

import re

from chat_gateway.components.core.constants import WSConstants

# C0/C1 controls, zero-width marks, bidi overrides and isolates, BOM
_UNPRINTABLE = re.compile(r"[\x00-\x1f\x7f-\x9f\u200b-\u200f\u202a-\u202e\u2066-\u2069\ufeff]")

_ELLIPSIS = "..."


def sanitize_log_data(data: str | bytes, max_length: int = WSConstants.LOG_PAYLOAD_PREVIEW) -> str:
    """
    Return at most ``max_length`` characters of ``data`` with unprintable
    characters removed and quotes escaped. Truncation is marked with "...".
    """
    if isinstance(data, bytes):
        data = data.decode("utf-8", errors="replace")

    preview = _UNPRINTABLE.sub("", data[:max_length])
    preview = preview.replace("\\", "\\\\").replace('"', '\\"')
    return preview + _ELLIPSIS if len(data) > max_length else preview
