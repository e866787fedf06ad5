"""
In-memory registry of tracker associations and latest locations.

The registry is the only state shared between connections. Every read and
write goes through a single ``asyncio.Lock``, so a broadcast always sees a
consistent association set and broadcasts for one tracker ID are queued in
the order they were processed.

Delivery uses the Channels channel layer: each recipient has its own bounded
queue, so a slow or dead connection never holds up the others. A recipient
whose queue rejects a message is skipped; its association is removed when
its connection closes.
"""
import asyncio
import logging
from typing import Any

from channels.exceptions import ChannelFull
from channels.layers import BaseChannelLayer, get_channel_layer
from django.conf import settings

from relay.exceptions import DeliveryError
from relay.messages import build_location_envelope, describe_location

logger = logging.getLogger(__name__)

# Channel layer message type, dispatched to TrackerRelayConsumer.location_broadcast
LOCATION_BROADCAST = "location.broadcast"


class TrackerRegistry:
    """
    Tracker ID to connections and latest location.

    Connections are identified by their channel name. A tracker's
    association set is created on first use and dropped when its last
    connection leaves; its latest location is kept for the life of the
    process so late subscribers can catch up.
    """

    def __init__(self, channel_layer: BaseChannelLayer | None = None) -> None:
        self._channel_layer = channel_layer
        self._lock = asyncio.Lock()
        self._subscribers: dict[str, set[str]] = {}
        self._locations: dict[str, dict[str, Any]] = {}

    @property
    def channel_layer(self) -> BaseChannelLayer:
        if self._channel_layer is None:
            self._channel_layer = get_channel_layer()
        return self._channel_layer

    @property
    def tracker_count(self) -> int:
        """Number of tracker IDs with at least one associated connection."""
        return len(self._subscribers)

    def subscribers(self, tracker_id: str) -> frozenset[str]:
        """Channel names currently associated with a tracker ID."""
        return frozenset(self._subscribers.get(tracker_id, ()))

    def latest_location(self, tracker_id: str) -> dict[str, Any] | None:
        """Most recently published location for a tracker ID, if any."""
        return self._locations.get(tracker_id)

    def tracker_ids_for(self, channel_name: str) -> list[str]:
        """Tracker IDs a connection is associated with."""
        return [
            tracker_id
            for tracker_id, channels in self._subscribers.items()
            if channel_name in channels
        ]

    def _associate(self, channel_name: str, tracker_id: str) -> None:
        self._subscribers.setdefault(tracker_id, set()).add(channel_name)

    async def _deliver(self, channel_name: str, envelope: str) -> None:
        """
        Queue an envelope for one connection.

        Raises:
            DeliveryError: The connection's queue did not accept the message
        """
        try:
            await self.channel_layer.send(channel_name, {
                "type": LOCATION_BROADCAST,
                "text": envelope,
            })
        except ChannelFull as e:
            raise DeliveryError(channel_name, "channel full") from e

    async def register(self, channel_name: str, tracker_id: str) -> None:
        """Associate a connection with a tracker ID. Idempotent."""
        async with self._lock:
            self._associate(channel_name, tracker_id)
        logger.info(
            "Registered connection for tracker %s", tracker_id,
            extra={"channel": channel_name, "tracker_id": tracker_id},
        )

    async def subscribe(self, channel_name: str, tracker_id: str) -> bool:
        """
        Associate a connection with a tracker ID and send it the latest location.

        The catch-up goes to this connection only and is queued before any
        broadcast processed after this call.

        Args:
            channel_name: Subscribing connection
            tracker_id: Tracker to follow

        Returns:
            True if a catch-up location was queued
        """
        async with self._lock:
            self._associate(channel_name, tracker_id)
            location = self._locations.get(tracker_id)
            if location is None:
                logger.info(
                    "Subscribed connection to tracker %s (no location yet)", tracker_id,
                    extra={"channel": channel_name, "tracker_id": tracker_id},
                )
                return False

            try:
                await self._deliver(channel_name, build_location_envelope(tracker_id, location))
            except DeliveryError as e:
                logger.warning("Catch-up for tracker %s skipped: %s", tracker_id, e)
                return False

        logger.info(
            "Subscribed connection to tracker %s (sent latest location)", tracker_id,
            extra={"channel": channel_name, "tracker_id": tracker_id},
        )
        return True

    async def publish(self, tracker_id: str, data: dict[str, Any]) -> int:
        """
        Store a location and broadcast it to every associated connection.

        The stored location is overwritten unconditionally, whatever its
        timestamp. A recipient that cannot take the message is skipped
        without affecting the others.

        Args:
            tracker_id: Tracker the location belongs to
            data: Location record, stored and forwarded as received

        Returns:
            Number of connections the broadcast was queued for
        """
        envelope = build_location_envelope(tracker_id, data)
        delivered = 0

        async with self._lock:
            self._locations[tracker_id] = data
            recipients = list(self._subscribers.get(tracker_id, ()))

            for channel_name in recipients:
                try:
                    await self._deliver(channel_name, envelope)
                except DeliveryError as e:
                    logger.warning("Broadcast for tracker %s skipped recipient: %s", tracker_id, e)
                    continue
                except Exception:
                    logger.exception(
                        "Unexpected error delivering tracker %s to %s", tracker_id, channel_name
                    )
                    continue
                delivered += 1
                logger.log(
                    settings.TRACE_LEVEL, "Queued location for tracker %s to %s",
                    tracker_id, channel_name,
                )

        logger.info(
            "Location update %s -> %d/%d recipients",
            describe_location(tracker_id, data), delivered, len(recipients),
        )
        return delivered

    async def disconnect(self, channel_name: str) -> list[str]:
        """
        Remove a connection from every tracker it is associated with.

        Association sets left empty are dropped; stored locations are kept.
        Safe to call more than once for the same connection.

        Returns:
            Tracker IDs the connection was removed from
        """
        removed: list[str] = []
        async with self._lock:
            for tracker_id in self.tracker_ids_for(channel_name):
                channels = self._subscribers[tracker_id]
                channels.discard(channel_name)
                if not channels:
                    del self._subscribers[tracker_id]
                removed.append(tracker_id)

        for tracker_id in removed:
            logger.info(
                "Connection removed from tracker %s", tracker_id,
                extra={"channel": channel_name, "tracker_id": tracker_id},
            )
        return removed


_registry = TrackerRegistry()


def get_tracker_registry() -> TrackerRegistry:
    """Return the process-wide registry."""
    return _registry


def reset_tracker_registry(channel_layer: BaseChannelLayer | None = None) -> TrackerRegistry:
    """Replace the process-wide registry with an empty one."""
    global _registry
    _registry = TrackerRegistry(channel_layer)
    return _registry
