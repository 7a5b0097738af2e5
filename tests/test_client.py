"""Tests for the aiomqtt client wrapper."""

import asyncio
from types import SimpleNamespace

import aiomqtt
import pytest

from mqtt2cmd.config import MQTTConfig
from mqtt2cmd.errors import BusConnectionError, PublishError, SubscribeError
from mqtt2cmd.mqtt.client import MQTTClient


class FakeAiomqttClient:
    """In-memory aiomqtt.Client replaying scripted messages."""

    def __init__(self, broker, **kwargs):
        self.broker = broker
        self.kwargs = kwargs
        self.subscribed = []
        self.published = []
        self.closed = False
        self.fail_publish = False
        self.fail_subscribe = False
        self._queue = asyncio.Queue()
        for item in broker.scripts.pop(0) if broker.scripts else []:
            self._queue.put_nowait(item)

    async def __aenter__(self):
        if self.broker.refuse:
            self.broker.refuse -= 1
            raise aiomqtt.MqttError("Connection refused")
        return self

    async def __aexit__(self, *exc_info):
        self.closed = True
        self._queue.put_nowait(None)

    async def publish(self, topic, payload=None, qos=0, retain=False):
        if self.fail_publish:
            raise aiomqtt.MqttError("Operation timed out")
        self.published.append((topic, payload, qos, retain))

    async def subscribe(self, topic, qos=0):
        if self.fail_subscribe:
            raise aiomqtt.MqttError("Not authorized")
        self.subscribed.append((topic, qos))

    @property
    def messages(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            item = await self._queue.get()
            if item is None:
                return
            if isinstance(item, Exception):
                raise item
            yield item


class FakeBroker:
    """Hands out FakeAiomqttClient instances and records them."""

    def __init__(self):
        self.clients = []
        self.scripts = []
        self.refuse = 0

    def __call__(self, **kwargs):
        client = FakeAiomqttClient(self, **kwargs)
        self.clients.append(client)
        return client

    def script(self, *items):
        """Queue messages (or errors) for the next client created."""
        self.scripts.append(list(items))


def message(topic, payload):
    return SimpleNamespace(topic=topic, payload=payload)


@pytest.fixture
def broker(monkeypatch):
    fake = FakeBroker()
    monkeypatch.setattr(aiomqtt, "Client", fake)
    return fake


@pytest.fixture
def client():
    config = MQTTConfig(host="broker.local", username="bridge", password="secret", reconnect_interval=0.01)
    return MQTTClient(config, "home-0001", "home/available", "offline")


async def wait_until(condition, timeout=1.0):
    async def poll():
        while not condition():
            await asyncio.sleep(0.005)
    await asyncio.wait_for(poll(), timeout=timeout)


class TestConnect:
    """Tests for connecting and disconnecting."""

    @pytest.mark.asyncio
    async def test_connect_passes_identity_and_will(self, broker, client):
        """Test the aiomqtt client gets credentials, identity and a retained will."""
        await client.connect()

        kwargs = broker.clients[0].kwargs
        assert client.connected
        assert kwargs["hostname"] == "broker.local"
        assert kwargs["username"] == "bridge"
        assert kwargs["identifier"] == "home-0001"
        assert kwargs["will"].topic == "home/available"
        assert kwargs["will"].retain is True

    @pytest.mark.asyncio
    async def test_connect_failure_is_mapped(self, broker, client):
        """Test MqttError on connect becomes BusConnectionError."""
        broker.refuse = 1
        hooks = []

        async def hook():
            hooks.append(1)

        client.on_connect(hook)
        with pytest.raises(BusConnectionError):
            await client.connect()

        assert not client.connected
        assert hooks == []

    @pytest.mark.asyncio
    async def test_disconnect_closes_and_stops_run(self, broker, client):
        """Test run() returns once disconnect() was called."""
        await client.connect()
        await client.disconnect()

        await asyncio.wait_for(client.run(), timeout=1)

        assert broker.clients[0].closed
        assert not client.connected


class TestPublishSubscribe:
    """Tests for publish and subscribe error mapping."""

    @pytest.mark.asyncio
    async def test_publish(self, broker, client):
        await client.connect()
        await client.publish("home/switches/lamp1", "ON")

        assert broker.clients[0].published == [("home/switches/lamp1", "ON", 1, True)]

    @pytest.mark.asyncio
    async def test_not_connected(self, broker, client):
        """Test publish and subscribe refuse to run without a connection."""
        with pytest.raises(PublishError):
            await client.publish("home/switches/lamp1", "ON")
        with pytest.raises(SubscribeError):
            await client.subscribe("home/switches/lamp1/set", None)

    @pytest.mark.asyncio
    async def test_publish_failure_is_mapped(self, broker, client):
        await client.connect()
        broker.clients[0].fail_publish = True

        with pytest.raises(PublishError) as exc_info:
            await client.publish("home/switches/lamp1", "ON")
        assert exc_info.value.topic == "home/switches/lamp1"

    @pytest.mark.asyncio
    async def test_subscribe_failure_is_mapped(self, broker, client):
        await client.connect()
        broker.clients[0].fail_subscribe = True

        async def handler(payload):
            pass

        with pytest.raises(SubscribeError) as exc_info:
            await client.subscribe("home/switches/lamp1/set", handler)
        assert exc_info.value.topic == "home/switches/lamp1/set"


class TestRun:
    """Tests for message routing and reconnection."""

    @pytest.mark.asyncio
    async def test_routes_messages_and_reconnects(self, broker, client):
        """Test exact-topic routing, then reconnect with hooks and subscriptions."""
        received = []
        hooks = []

        async def handler(payload):
            received.append(payload)

        async def hook():
            hooks.append(1)
            await client.subscribe("home/switches/lamp1/set", handler)

        client.on_connect(hook)
        broker.script(
            message("home/switches/lamp1/set", b"x"),
            message("home/switches/other/set", b"y"),
            message("home/switches/lamp1/set", None),
            aiomqtt.MqttError("lost"),
        )

        await client.connect()
        task = asyncio.create_task(client.run())
        await wait_until(lambda: len(broker.clients) == 2 and broker.clients[1].subscribed)
        await client.disconnect()
        await asyncio.wait_for(task, timeout=1)

        assert received == [b"x", b""]
        assert hooks == [1, 1]
        assert broker.clients[0].closed
        assert broker.clients[0].subscribed == [("home/switches/lamp1/set", 1)]
        assert broker.clients[1].subscribed == [("home/switches/lamp1/set", 1)]

    @pytest.mark.asyncio
    async def test_retries_failed_reconnect(self, broker, client):
        """Test a refused reconnect is retried after the reconnect interval."""
        hooks = []

        async def hook():
            hooks.append(1)

        client.on_connect(hook)
        broker.script(aiomqtt.MqttError("lost"))

        await client.connect()
        broker.refuse = 1
        task = asyncio.create_task(client.run())
        await wait_until(lambda: len(hooks) == 2)
        await client.disconnect()
        await asyncio.wait_for(task, timeout=1)

        assert len(broker.clients) == 3
        assert hooks == [1, 1]

    @pytest.mark.asyncio
    async def test_handler_error_does_not_stop_loop(self, broker, client):
        """Test a failing handler is logged and later messages still arrive."""
        received = []

        async def handler(payload):
            if payload == b"boom":
                raise ValueError("bad payload")
            received.append(payload)

        broker.script(
            message("home/switches/lamp1/set", b"boom"),
            message("home/switches/lamp1/set", b"ok"),
        )
        await client.connect()
        await client.subscribe("home/switches/lamp1/set", handler)
        task = asyncio.create_task(client.run())
        await wait_until(lambda: received)
        await client.disconnect()
        await asyncio.wait_for(task, timeout=1)

        assert received == [b"ok"]
