"""
Error taxonomy for the location relay.

Protocol errors are contained within the connection that caused them,
delivery errors within a single recipient of a broadcast. Only
``ListenError`` is fatal to the process.
"""


class RelayError(Exception):
    """Base class for relay errors."""


class ProtocolError(RelayError):
    """An inbound frame could not be turned into a relay message."""


class MalformedMessageError(ProtocolError):
    """The frame is not a JSON object."""


class UnknownMessageTypeError(ProtocolError):
    """The frame's ``type`` is not one the relay understands."""

    def __init__(self, message_type: object) -> None:
        super().__init__(f"Unknown message type: {message_type!r}")
        self.message_type = message_type


class MissingFieldError(ProtocolError):
    """A required field is absent, empty or of the wrong type."""

    def __init__(self, message_type: str, field: str) -> None:
        super().__init__(f"'{message_type}' message is missing required field '{field}'")
        self.message_type = message_type
        self.field = field


class DeliveryError(RelayError):
    """Sending to one recipient failed."""

    def __init__(self, channel_name: str, reason: str) -> None:
        super().__init__(f"Could not deliver to {channel_name}: {reason}")
        self.channel_name = channel_name
        self.reason = reason


class ListenError(RelayError):
    """The relay cannot bind its listening address."""

    def __init__(self, host: str, port: int, reason: str) -> None:
        super().__init__(f"Cannot listen on {host}:{port}: {reason}")
        self.host = host
        self.port = port
        self.reason = reason
