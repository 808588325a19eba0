"""
Attachment staging helpers.

Stored names are `<epoch-millis>.<ext>`; the extension comes from the last
dot-separated segment of the client's file name.
"""

from __future__ import annotations

import base64
import binascii
import re
import time
from typing import Callable

from chat_gateway.components.relay.errors import MalformedPayloadError

_EXTENSION_CHARS = re.compile(r"[^A-Za-z0-9]")
MAX_EXTENSION_LENGTH = 16
FALLBACK_EXTENSION = "bin"


def file_extension(name: str) -> str:
    """
    Last dot-separated segment of a file name, reduced to [A-Za-z0-9].

    "photo.final.PNG" -> "PNG". A name without dots yields the whole name.
    """
    extension = _EXTENSION_CHARS.sub("", name.rsplit(".", 1)[-1])
    return extension[:MAX_EXTENSION_LENGTH] or FALLBACK_EXTENSION


def decode_attachment_data(data: str) -> bytes:
    """
    Decode inline attachment data.

    Anything up to and including the first comma is treated as a media-type
    prefix (`data:image/png;base64,`) and dropped.

    Raises:
        MalformedPayloadError: If the remainder is not valid base64.
    """
    _, sep, encoded = data.partition(",")
    if not sep:
        encoded = data
    encoded = "".join(encoded.split())
    try:
        return base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedPayloadError("Attachment data is not valid base64") from e


class StoredNameGenerator:
    """
    Generates `<epoch-millis>.<ext>` names, strictly increasing per process
    so two attachments in the same millisecond do not overwrite each other.
    """

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self._last_ms = 0

    def next_name(self, extension: str) -> str:
        now_ms = int(self._clock() * 1000)
        self._last_ms = max(now_ms, self._last_ms + 1)
        return f"{self._last_ms}.{extension}"

    def for_file(self, name: str) -> str:
        """Stored name for a client-supplied file name."""
        return self.next_name(file_extension(name))
