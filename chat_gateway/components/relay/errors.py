"""
Relay exceptions.
"""


class MalformedPayloadError(ValueError):
    """
    Inbound frame could not be parsed as a chat event.

    Raised for non-JSON frames, JSON that is not an object, schema
    violations and undecodable attachment data. The endpoint closes the
    offending connection; other connections are unaffected.
    """
