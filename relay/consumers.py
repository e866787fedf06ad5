"""
WebSocket consumer for the location relay.

Each browser tab holds one connection. A connection may register to publish
for a tracker ID, subscribe to it, or both, for any number of tracker IDs.
"""
import logging
from typing import Any

from channels.generic.websocket import AsyncWebsocketConsumer

from relay.exceptions import ProtocolError
from relay.messages import (LocationMessage, RegisterMessage,
                            SubscribeMessage, parse_message)
from relay.registry import get_tracker_registry

logger = logging.getLogger(__name__)


class TrackerRelayConsumer(AsyncWebsocketConsumer):
    """
    Relay connection handler.

    Inbound frames are handled one at a time in arrival order. Frames that
    cannot be decoded are logged and dropped; they never close the
    connection.
    """

    def get_client_ip(self) -> str:
        """Extract client IP address from WebSocket scope."""
        # Check for X-Forwarded-For header (if behind proxy)
        headers = dict(self.scope.get('headers', []))
        x_forwarded_for = headers.get(b'x-forwarded-for')
        if x_forwarded_for:
            return x_forwarded_for.decode().split(',')[0].strip()

        client = self.scope.get('client')
        if client:
            return client[0]
        return 'unknown'

    def get_client_address(self) -> str:
        """Get formatted client address (IP:port)."""
        ip = self.get_client_ip()
        client = self.scope.get('client')
        if client and len(client) > 1 and client[1]:
            return f"{ip}:{client[1]}"
        return ip

    async def connect(self) -> None:
        """Accept the handshake. Nothing is sent until the client asks."""
        await self.accept()

        client_addr = self.get_client_address()
        logger.info(
            "Relay client connected from %s", client_addr,
            extra={"channel": self.channel_name, "client_address": client_addr}
        )

    async def disconnect(self, close_code: int) -> None:
        """Drop every association this connection holds."""
        removed = await get_tracker_registry().disconnect(self.channel_name)

        client_addr = self.get_client_address()
        logger.info(
            "Relay client disconnected from %s", client_addr,
            extra={
                "channel": self.channel_name,
                "client_address": client_addr,
                "close_code": close_code,
                "tracker_ids": removed,
            }
        )

    async def receive(self, text_data: str | None = None, bytes_data: bytes | None = None) -> None:
        """Decode one frame and apply it to the registry."""
        client_addr = self.get_client_address()
        frame = text_data if text_data is not None else bytes_data
        if frame is None:
            return

        try:
            message = parse_message(frame)
        except ProtocolError as e:
            logger.warning(
                "Discarding message from %s: %s", client_addr, e,
                extra={"channel": self.channel_name, "client_address": client_addr}
            )
            return

        registry = get_tracker_registry()
        match message:
            case RegisterMessage(tracker_id=tracker_id):
                await registry.register(self.channel_name, tracker_id)
            case SubscribeMessage(tracker_id=tracker_id):
                await registry.subscribe(self.channel_name, tracker_id)
            case LocationMessage(tracker_id=tracker_id, data=data):
                await registry.publish(tracker_id, data)

    async def location_broadcast(self, event: dict[str, Any]) -> None:
        """
        Write a queued location message to the socket.

        Args:
            event: Channel layer message carrying the encoded envelope
        """
        await self.send(text_data=event['text'])
