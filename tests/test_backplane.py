"""
Tests for the broadcast backplanes.

The Redis backplane is driven with a small in-process stand-in for the
redis.asyncio client so no server is needed.
"""

import asyncio
import json

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from app.services.backplane import MemoryBackplane, RedisBackplane


class FakePubSub:
    def __init__(self):
        self.queue = asyncio.Queue()
        self.channels = []
        self.closed = False

    async def subscribe(self, channel):
        self.channels.append(channel)

    async def unsubscribe(self, channel):
        if channel in self.channels:
            self.channels.remove(channel)

    async def listen(self):
        while True:
            yield await self.queue.get()

    async def aclose(self):
        self.closed = True


class FakeRedis:
    def __init__(self):
        self.pubsub_handle = FakePubSub()
        self.published = []
        self.closed = False

    def pubsub(self):
        return self.pubsub_handle

    async def publish(self, channel, data):
        self.published.append((channel, data))
        await self.pubsub_handle.queue.put({"type": "message", "channel": channel, "data": data})
        return 1

    async def ping(self):
        return True

    async def aclose(self):
        self.closed = True


class DroppedPubSub(FakePubSub):
    """Subscription whose connection the server closes."""

    async def listen(self):
        raise RedisConnectionError("Connection closed by server.")
        yield


class UnreachablePubSub(FakePubSub):
    """Subscription attempted while the server is down."""

    async def subscribe(self, channel):
        raise RedisConnectionError("Error 111 connecting to localhost:6379.")


class BrokenPubSub(FakePubSub):
    async def listen(self):
        raise RuntimeError("unexpected frame")
        yield


class FlakyRedis(FakeRedis):
    """Hands out the given subscriptions in order, then unreachable ones."""

    def __init__(self, *handles):
        super().__init__()
        self.handles = list(handles)
        self.created = []

    def pubsub(self):
        self.pubsub_handle = self.handles.pop(0) if self.handles else UnreachablePubSub()
        self.created.append(self.pubsub_handle)
        return self.pubsub_handle


async def wait_until(condition, timeout=1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not condition():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def test_memory_backplane_delivers_immediately():
    delivered = []

    async def deliver(message):
        delivered.append(message)

    backplane = MemoryBackplane(deliver)
    asyncio.run(backplane.publish({"target": "ReceiveOrders", "arguments": ["[]"]}))

    assert delivered == [{"target": "ReceiveOrders", "arguments": ["[]"]}]


def test_redis_backplane_relays_published_messages():
    client = FakeRedis()

    async def scenario():
        received = asyncio.Queue()
        backplane = RedisBackplane(received.put, "redis://unused", "orders:test", client=client)

        await backplane.start()
        assert client.pubsub_handle.channels == ["orders:test"]

        # Subscription noise and malformed payloads are skipped
        await client.pubsub_handle.queue.put({"type": "subscribe", "data": 1})
        await client.pubsub_handle.queue.put({"type": "message", "data": "not json"})
        await backplane.publish({"target": "ReceiveOrders", "arguments": ["[]"]})

        message = await asyncio.wait_for(received.get(), timeout=1)
        healthy = await backplane.health_check()
        await backplane.stop()
        return message, healthy, received.empty()

    message, healthy, drained = asyncio.run(scenario())

    assert message == {"target": "ReceiveOrders", "arguments": ["[]"]}
    assert healthy is True
    assert drained is True
    assert client.published == [
        ("orders:test", json.dumps({"target": "ReceiveOrders", "arguments": ["[]"]}))
    ]
    assert client.pubsub_handle.closed is True
    assert client.closed is True


def test_redis_backplane_requires_start():
    async def deliver(message):
        pass

    backplane = RedisBackplane(deliver, "redis://unused", "orders:test")

    with pytest.raises(RuntimeError):
        asyncio.run(backplane.publish({"target": "Error", "arguments": ["x"]}))
    assert asyncio.run(backplane.health_check()) is False


def test_redis_backplane_resubscribes_after_dropped_connection():
    dropped = DroppedPubSub()
    client = FlakyRedis(dropped, FakePubSub())

    async def scenario():
        received = asyncio.Queue()
        backplane = RedisBackplane(
            received.put, "redis://unused", "orders:test", client=client, reconnect_delay=0
        )

        await backplane.start()
        await wait_until(lambda: len(client.created) == 2)
        await backplane.publish({"target": "ReceiveOrders", "arguments": ["[]"]})

        message = await asyncio.wait_for(received.get(), timeout=1)
        healthy = await backplane.health_check()
        await backplane.stop()
        return message, healthy

    message, healthy = asyncio.run(scenario())

    assert message == {"target": "ReceiveOrders", "arguments": ["[]"]}
    assert healthy is True
    assert dropped.closed is True
    assert client.created[1].closed is True
    assert client.closed is True


def test_redis_backplane_reports_lost_subscription_and_stops_cleanly():
    client = FlakyRedis(DroppedPubSub())
    delivered = []

    async def deliver(message):
        delivered.append(message)

    async def scenario():
        backplane = RedisBackplane(
            deliver, "redis://unused", "orders:test", client=client, reconnect_delay=0.01
        )

        await backplane.start()
        await wait_until(lambda: len(client.created) >= 3)

        # Publishing still reaches redis, but nothing is listening
        await backplane.publish({"target": "ReceiveOrders", "arguments": ["[]"]})
        healthy = await backplane.health_check()
        await backplane.stop()
        return healthy

    assert asyncio.run(scenario()) is False
    assert delivered == []
    assert client.closed is True


def test_redis_backplane_listener_crash_is_unhealthy():
    client = FlakyRedis(BrokenPubSub())

    async def deliver(message):
        pass

    async def scenario():
        backplane = RedisBackplane(deliver, "redis://unused", "orders:test", client=client)

        await backplane.start()
        await wait_until(lambda: backplane._task.done())
        healthy = await backplane.health_check()
        await backplane.stop()
        return healthy

    assert asyncio.run(scenario()) is False
    assert client.closed is True
