"""
Tests for the relay WebSocket consumer, end to end through the ASGI app.
"""
import json

import pytest
from channels.testing import WebsocketCommunicator
from hamcrest import assert_that, empty, equal_to, is_, none

from config.asgi import application
from relay.registry import TrackerRegistry

TRACKER = "ABC-123"
LOCATION = {"latitude": 1.29, "longitude": 36.82, "accuracy": 15, "timestamp": 1000}


async def connect(path: str = "/") -> WebsocketCommunicator:
    """Open a relay connection."""
    communicator = WebsocketCommunicator(application, path)
    connected, _ = await communicator.connect()
    assert_that(connected, equal_to(True))
    return communicator


async def settle(*communicators: WebsocketCommunicator) -> None:
    """Let queued frames be processed, asserting nothing was sent back."""
    for communicator in communicators:
        assert_that(await communicator.receive_nothing(), is_(True))


def location_message(tracker_id: str, data: dict) -> dict:
    return {"type": "location", "trackerId": tracker_id, "data": data}


@pytest.mark.asyncio
class TestTrackerRelayConsumer:
    """Test cases for TrackerRelayConsumer."""

    async def test_connect_sends_nothing(self) -> None:
        """A new connection receives nothing until it asks."""
        communicator = await connect()
        await settle(communicator)
        await communicator.disconnect()

    async def test_connect_on_ws_path(self) -> None:
        """The relay is also served under ws/."""
        communicator = await connect("/ws/")
        await communicator.disconnect()

    async def test_subscribe_without_location(self, registry: TrackerRegistry) -> None:
        """Subscribing to an unknown tracker yields no catch-up."""
        subscriber = await connect()
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await settle(subscriber)
        assert_that(registry.tracker_count, equal_to(1))
        await subscriber.disconnect()

    async def test_broadcast_reaches_subscriber(self) -> None:
        """A location from a publisher reaches a subscriber."""
        publisher = await connect()
        subscriber = await connect()
        await publisher.send_json_to({"type": "register", "trackerId": TRACKER})
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await settle(publisher, subscriber)

        await publisher.send_json_to(location_message(TRACKER, LOCATION))

        response = await subscriber.receive_json_from()
        assert_that(response, equal_to(location_message(TRACKER, LOCATION)))

        await publisher.disconnect()
        await subscriber.disconnect()

    async def test_publisher_receives_own_broadcast(self) -> None:
        """A registered connection is sent its own location back."""
        publisher = await connect()
        await publisher.send_json_to({"type": "register", "trackerId": TRACKER})
        await settle(publisher)

        await publisher.send_json_to(location_message(TRACKER, LOCATION))

        response = await publisher.receive_json_from()
        assert_that(response, equal_to(location_message(TRACKER, LOCATION)))
        await publisher.disconnect()

    async def test_catch_up_on_subscribe(self) -> None:
        """A late subscriber gets the latest location straight away."""
        publisher = await connect()
        await publisher.send_json_to(location_message(TRACKER, LOCATION))
        await settle(publisher)

        subscriber = await connect()
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})

        response = await subscriber.receive_json_from()
        assert_that(response, equal_to(location_message(TRACKER, LOCATION)))
        await settle(subscriber)

        await publisher.disconnect()
        await subscriber.disconnect()

    async def test_catch_up_is_latest(self) -> None:
        """Catch-up carries the last location processed, not the newest timestamp."""
        newer = dict(LOCATION, timestamp=5000)
        older = dict(LOCATION, latitude=1.3, timestamp=10)
        publisher = await connect()
        await publisher.send_json_to(location_message(TRACKER, newer))
        await publisher.send_json_to(location_message(TRACKER, older))
        await settle(publisher)

        subscriber = await connect()
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})

        response = await subscriber.receive_json_from()
        assert_that(response["data"], equal_to(older))

        await publisher.disconnect()
        await subscriber.disconnect()

    async def test_other_tracker_not_notified(self) -> None:
        """Subscribers of a different tracker do not get the broadcast."""
        publisher = await connect()
        bystander = await connect()
        await bystander.send_json_to({"type": "subscribe", "trackerId": "OTHER"})
        await settle(bystander)

        await publisher.send_json_to(location_message(TRACKER, LOCATION))
        await settle(publisher, bystander)

        await publisher.disconnect()
        await bystander.disconnect()

    async def test_disconnect_cleans_up(self, registry: TrackerRegistry) -> None:
        """Closing a connection removes its associations but keeps the location."""
        publisher = await connect()
        await publisher.send_json_to({"type": "register", "trackerId": TRACKER})
        await publisher.send_json_to(location_message(TRACKER, LOCATION))
        await publisher.receive_json_from()

        await publisher.disconnect()

        assert_that(registry.subscribers(TRACKER), is_(empty()))
        assert_that(registry.tracker_count, equal_to(0))
        assert_that(registry.latest_location(TRACKER), equal_to(LOCATION))

        subscriber = await connect()
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        response = await subscriber.receive_json_from()
        assert_that(response["data"], equal_to(LOCATION))
        await subscriber.disconnect()

    @pytest.mark.parametrize("frame", [
        "not json",
        '{"type": "bogus", "trackerId": "ABC-123"}',
        '{"type": "register", "trackerId": ""}',
        '{"type": "location", "trackerId": "ABC-123"}',
        '"just a string"',
    ])
    async def test_bad_frame_keeps_connection_open(self, frame: str) -> None:
        """A bad frame is dropped and the connection keeps working."""
        sender = await connect()
        other = await connect()
        await sender.send_to(text_data=frame)
        await settle(sender)

        await other.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await sender.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await settle(other, sender)
        await other.send_json_to(location_message(TRACKER, LOCATION))

        assert_that(await sender.receive_json_from(), equal_to(location_message(TRACKER, LOCATION)))
        assert_that(await other.receive_json_from(), equal_to(location_message(TRACKER, LOCATION)))

        await sender.disconnect()
        await other.disconnect()

    async def test_binary_frame_processed(self) -> None:
        """Binary frames holding JSON are handled like text frames."""
        communicator = await connect()
        await communicator.send_to(bytes_data=b'{"type": "register", "trackerId": "ABC-123"}')
        await settle(communicator)

        await communicator.send_to(bytes_data=json.dumps(location_message(TRACKER, LOCATION)).encode())
        assert_that(await communicator.receive_json_from(), equal_to(location_message(TRACKER, LOCATION)))

        await communicator.send_to(bytes_data=b"\xff\xfe\x00")
        await settle(communicator)
        await communicator.disconnect()

    async def test_deeply_nested_frame_keeps_connection(self, registry: TrackerRegistry) -> None:
        """A frame too deep to decode is dropped and the connection keeps working."""
        subscriber = await connect()
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await settle(subscriber)

        await subscriber.send_to(text_data="[" * 200000)
        await settle(subscriber)

        publisher = await connect()
        await publisher.send_json_to(location_message(TRACKER, LOCATION))
        assert_that(await subscriber.receive_json_from(), equal_to(location_message(TRACKER, LOCATION)))

        await subscriber.disconnect()
        assert_that(registry.subscribers(TRACKER), is_(empty()))
        await publisher.disconnect()

    async def test_non_standard_number_not_relayed(self, registry: TrackerRegistry) -> None:
        """Locations carrying NaN or Infinity are neither stored nor broadcast."""
        subscriber = await connect()
        publisher = await connect()
        await subscriber.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await settle(subscriber)

        await publisher.send_to(text_data=(
            '{"type": "location", "trackerId": "ABC-123", '
            '"data": {"latitude": NaN, "longitude": Infinity, "accuracy": 15, "timestamp": 1000}}'
        ))
        await settle(publisher, subscriber)
        assert_that(registry.latest_location(TRACKER), is_(none()))

        await publisher.send_json_to(location_message(TRACKER, LOCATION))
        assert_that(await subscriber.receive_json_from(), equal_to(location_message(TRACKER, LOCATION)))

        await subscriber.disconnect()
        await publisher.disconnect()

    async def test_scenario(self, registry: TrackerRegistry) -> None:
        """Register, subscribe, broadcast, catch-up, publisher leaves, relay continues."""
        a = await connect()
        b = await connect()
        c = await connect()

        await a.send_json_to({"type": "register", "trackerId": TRACKER})
        await settle(a)
        await b.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        await settle(b)

        await a.send_json_to(location_message(TRACKER, LOCATION))
        expected = location_message(TRACKER, LOCATION)
        assert_that(await b.receive_json_from(), equal_to(expected))
        assert_that(await a.receive_json_from(), equal_to(expected))

        await c.send_json_to({"type": "subscribe", "trackerId": TRACKER})
        assert_that(await c.receive_json_from(), equal_to(expected))

        await a.disconnect()
        assert_that(len(registry.subscribers(TRACKER)), equal_to(2))

        d = await connect()
        moved = dict(LOCATION, latitude=1.31, timestamp=2000)
        await d.send_json_to({"type": "register", "trackerId": TRACKER})
        await settle(d)
        await d.send_json_to(location_message(TRACKER, moved))

        for communicator in (b, c, d):
            assert_that(await communicator.receive_json_from(), equal_to(location_message(TRACKER, moved)))

        for communicator in (b, c, d):
            await communicator.disconnect()
