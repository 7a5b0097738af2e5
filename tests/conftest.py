"""Shared fixtures: in-memory MQTT client, scripted executor and clock."""

import asyncio

import pytest

from mqtt2cmd.errors import (
    BusConnectionError,
    CommandExecutionError,
    NonZeroExitError,
    PublishError,
    SubscribeError,
)
from mqtt2cmd.models import DisplayEntity, EntityRegistry, SwitchEntity, VCPCommand


class FakeBus:
    """Stands in for MQTTClient, recording publishes and subscriptions."""

    def __init__(self, identity, will_topic, will_payload):
        self.identity = identity
        self.will_topic = will_topic
        self.will_payload = will_payload
        self.connected = False
        self.published = []
        self.subscriptions = []
        self.handlers = {}
        self.fail_connect = False
        self.fail_publish = False
        self.fail_subscribe = set()
        self.disconnected = False
        self._callbacks = []

    def on_connect(self, callback):
        self._callbacks.append(callback)

    async def connect(self):
        if self.fail_connect:
            raise BusConnectionError("Connection refused")
        self.connected = True
        for callback in self._callbacks:
            await callback()

    async def disconnect(self):
        self.connected = False
        self.disconnected = True

    async def publish(self, topic, payload, retain=True):
        if self.fail_publish:
            raise PublishError(topic, "broker unreachable")
        self.published.append((topic, payload, retain))

    async def subscribe(self, topic, handler):
        if topic in self.fail_subscribe:
            raise SubscribeError(topic, "not authorized")
        self.subscriptions.append(topic)
        self.handlers[topic] = handler

    async def deliver(self, topic, payload):
        """Simulate an incoming message."""
        await self.handlers[topic](payload)

    def payloads(self, topic):
        return [payload for t, payload, _ in self.published if t == topic]


class FakeExecutor:
    """Scripted command results; unknown commands succeed with no output."""

    def __init__(self):
        self.calls = []
        self._results = {}
        self._gates = {}

    def set(self, command, output="", returncode=0):
        if returncode == 0:
            self._results[command] = output
        else:
            self._results[command] = NonZeroExitError(command, returncode, output)

    def fail(self, command):
        self._results[command] = CommandExecutionError(command, "Cannot start command")

    def gate(self, command):
        """Make the command block until the returned event is set."""
        event = asyncio.Event()
        self._gates[command] = event
        return event

    async def run(self, command):
        self.calls.append(command)
        if command in self._gates:
            await self._gates[command].wait()
        result = self._results.get(command, "")
        if isinstance(result, Exception):
            raise result
        return result


class FakeClock:
    def __init__(self, now=1000.0):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def connector():
    """Connector that records every FakeBus it creates.

    Set ``connector.setup`` to a function to adjust new buses.
    """
    buses = []

    def connect(identity, will_topic, will_payload):
        bus = FakeBus(identity, will_topic, will_payload)
        if connect.setup:
            connect.setup(bus)
        buses.append(bus)
        return bus

    connect.buses = buses
    connect.setup = None
    return connect


@pytest.fixture
def lamp():
    return SwitchEntity(
        name="lamp1",
        turn_on="lamp on",
        turn_off="lamp off",
        get_state="lamp state",
        toggle="lamp toggle",
        set_value="lamp dim %d",
        refresh="60s",
    )


@pytest.fixture
def monitor():
    return DisplayEntity(
        name="monitor",
        command=VCPCommand(set_value="vcp set %s", get_value="vcp get"),
    )


@pytest.fixture
def registry(lamp, monitor):
    return EntityRegistry([lamp, monitor])
