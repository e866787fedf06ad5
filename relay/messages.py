"""
Wire messages exchanged with relay clients.

Clients send JSON text frames with a ``type`` discriminator:

- ``register``: announce publishing for a tracker ID
- ``subscribe``: follow a tracker ID, receiving its latest location at once
- ``location``: a new location for a tracker ID

The server only ever sends ``location`` messages back.
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any

from relay.exceptions import (MalformedMessageError, MissingFieldError,
                              UnknownMessageTypeError)


class MessageType(Enum):
    """Message types understood by the relay."""

    REGISTER = "register"
    SUBSCRIBE = "subscribe"
    LOCATION = "location"


@dataclass(frozen=True)
class RegisterMessage:
    """Associate the sending connection with a tracker ID."""

    tracker_id: str

    message_type = MessageType.REGISTER


@dataclass(frozen=True)
class SubscribeMessage:
    """Associate the sending connection with a tracker ID and catch up."""

    tracker_id: str

    message_type = MessageType.SUBSCRIBE


@dataclass(frozen=True)
class LocationMessage:
    """
    A location report for a tracker ID.

    Attributes:
        tracker_id: Tracker the location belongs to
        data: Location record, forwarded to subscribers unmodified
    """

    tracker_id: str
    data: dict[str, Any] = field(default_factory=dict)

    message_type = MessageType.LOCATION


InboundMessage = RegisterMessage | SubscribeMessage | LocationMessage


def _require_tracker_id(message: dict[str, Any], message_type: MessageType) -> str:
    tracker_id = message.get("trackerId")
    if not isinstance(tracker_id, str) or not tracker_id:
        raise MissingFieldError(message_type.value, "trackerId")
    return tracker_id


def _reject_constant(token: str) -> Any:
    """Refuse ``NaN`` and ``Infinity``, which browsers cannot parse."""
    raise ValueError(f"Non-standard JSON constant: {token}")


def parse_message(text: str | bytes) -> InboundMessage:
    """
    Decode one inbound frame into a relay message.

    Text and binary frames are both accepted; binary frames must hold
    UTF-8 JSON.

    Args:
        text: Raw frame contents

    Returns:
        The decoded message variant

    Raises:
        MalformedMessageError: The frame is not a standard JSON object
        UnknownMessageTypeError: ``type`` is not a known message type
        MissingFieldError: ``trackerId`` or ``data`` is missing or invalid
    """
    try:
        message = json.loads(text, parse_constant=_reject_constant)
    except (ValueError, RecursionError) as e:
        raise MalformedMessageError(f"Frame is not valid JSON: {e}") from e

    if not isinstance(message, dict):
        raise MalformedMessageError(f"Frame is not a JSON object: {type(message).__name__}")

    raw_type = message.get("type")
    try:
        message_type = MessageType(raw_type)
    except ValueError:
        raise UnknownMessageTypeError(raw_type) from None

    tracker_id = _require_tracker_id(message, message_type)

    match message_type:
        case MessageType.REGISTER:
            return RegisterMessage(tracker_id=tracker_id)
        case MessageType.SUBSCRIBE:
            return SubscribeMessage(tracker_id=tracker_id)
        case MessageType.LOCATION:
            data = message.get("data")
            if not isinstance(data, dict):
                raise MissingFieldError(message_type.value, "data")
            return LocationMessage(tracker_id=tracker_id, data=data)


def build_location_envelope(tracker_id: str, data: dict[str, Any]) -> str:
    """
    Build the server-to-client location message.

    The same text is used for broadcasts and for the catch-up sent on
    subscribe.

    Args:
        tracker_id: Tracker the location belongs to
        data: Location record as received from the publisher

    Returns:
        JSON text frame
    """
    return json.dumps({
        "type": MessageType.LOCATION.value,
        "trackerId": tracker_id,
        "data": data,
    })


def _format_timestamp(timestamp: Any) -> str:
    """Render an epoch-milliseconds timestamp as local time, if it is one."""
    if isinstance(timestamp, bool) or not isinstance(timestamp, (int, float)):
        return str(timestamp)
    try:
        return datetime.fromtimestamp(timestamp / 1000).strftime("%Y-%m-%d %H:%M:%S")
    except (ValueError, OverflowError, OSError):
        return str(timestamp)


def describe_location(tracker_id: str, data: dict[str, Any]) -> str:
    """
    Summarize a location update on one line for the server log.

    Values are shown as received; nothing here validates them.
    """
    return (
        f"tracker={tracker_id} "
        f"lat={data.get('latitude')} "
        f"lon={data.get('longitude')} "
        f"accuracy={data.get('accuracy')}m "
        f"at={_format_timestamp(data.get('timestamp'))}"
    )
