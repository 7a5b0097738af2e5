"""Synchronization engine between entities and the MQTT broker."""

import asyncio
import functools
import logging
import random
import time
from typing import Callable, Dict, Optional, Tuple

from .errors import CommandExecutionError, SubscribeError
from .models import Entity, EntityRegistry, EntityRuntimeState
from .models.entities import Executor
from .mqtt.client import MQTTClient
from .mqtt.command_handler import CommandHandler
from .mqtt.publisher import StatePublisher
from .mqtt.topics import app_availability_topic, entity_topics

logger = logging.getLogger(__name__)

# Builds a bus client from (identity, will_topic, will_payload)
Connector = Callable[[str, str, str], MQTTClient]


def generate_client_id(app_id: str) -> str:
    """Build a per-process MQTT client identifier."""
    return f"{app_id}-{random.getrandbits(64):016x}"


class SyncEngine:
    """Keep entity state and the broker in sync.

    Polls entities through the executor, publishes state and
    availability when they change, and turns messages on the entities'
    command topics into entity commands. Operations on an entity are
    serialized by a single lock, so a refresh and a command never
    interleave their runtime state updates.
    """

    def __init__(
        self,
        app_id: str,
        registry: EntityRegistry,
        connector: Connector,
        executor: Executor,
        available_payload: str = "online",
        unavailable_payload: str = "offline",
        settle_delay: float = 0.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the engine.

        Args:
            app_id: Application ID used as topic prefix and client ID base
            registry: Entities to synchronize
            connector: Factory for the MQTT client
            executor: Runs entity commands
            available_payload: Default payload for 'available'
            unavailable_payload: Default payload for 'unavailable'
            settle_delay: Seconds to wait after toggle/SET before re-reading state
            clock: Monotonic time source in seconds
        """
        self.app_id = app_id
        self.registry = registry
        self.executor = executor
        self.settle_delay = settle_delay
        self._connector = connector
        self._available_payload = available_payload
        self._unavailable_payload = unavailable_payload
        self._clock = clock
        self._lock = asyncio.Lock()
        self._states: Dict[Tuple[str, str], EntityRuntimeState] = {
            (entity.kind, entity.name): EntityRuntimeState() for entity in registry
        }

        self.client: Optional[MQTTClient] = None
        self.publisher: Optional[StatePublisher] = None
        self.command_handler = CommandHandler(executor)

        self._stats = {
            "polls": 0,
            "poll_failures": 0,
            "commands": 0,
            "command_failures": 0,
        }

    def runtime_state(self, entity: Entity) -> EntityRuntimeState:
        """Get the runtime state of an entity."""
        return self._states[(entity.kind, entity.name)]

    async def connect(self) -> None:
        """Connect to the broker.

        The connection carries a retained last will marking the
        application unavailable.

        Raises:
            BusConnectionError: If the initial connection fails
        """
        identity = generate_client_id(self.app_id)
        self.client = self._connector(
            identity,
            app_availability_topic(self.app_id),
            self._unavailable_payload,
        )
        self.publisher = StatePublisher(
            self.client,
            self.app_id,
            available_payload=self._available_payload,
            unavailable_payload=self._unavailable_payload,
        )
        self.client.on_connect(self._on_connect)
        await self.client.connect()

    async def close(self) -> None:
        """Announce unavailability and disconnect."""
        if self.client is None:
            return
        if self.client.connected:
            await self.publisher.publish_app_availability(False)
        await self.client.disconnect()

    def _require_connected(self) -> None:
        if self.publisher is None:
            raise RuntimeError("engine not connected")

    async def _on_connect(self) -> None:
        """Announce availability and (re)subscribe all command topics.

        Runs on every connect. Application availability is published
        regardless of what was published before, since the retained
        value may be stale.
        """
        await self.publisher.publish_app_availability(True)

        for entity in self.registry:
            topic = entity_topics(self.app_id, entity).command
            try:
                await self.client.subscribe(topic, functools.partial(self.dispatch, entity))
            except SubscribeError as e:
                logger.error(f"Cannot subscribe commands of {entity.name}: {e}")

    async def refresh(self) -> None:
        """Poll every entity that is due, in registry order."""
        for entity in self.registry:
            await self.refresh_entity(entity)

    async def refresh_entity(self, entity: Entity, force: bool = False) -> None:
        """Poll one entity if it is due and publish what changed.

        An entity is due while its state or availability is unknown, or
        when its refresh interval has elapsed since the last poll attempt.

        Args:
            entity: Entity to poll
            force: Poll even if the entity is not due

        Raises:
            RuntimeError: If called before connect()
        """
        self._require_connected()
        async with self._lock:
            runtime = self.runtime_state(entity)
            now = self._clock()
            if not force and not runtime.refresh_due(now, entity.refresh_seconds):
                return

            runtime.last_refresh = now
            self._stats["polls"] += 1
            try:
                state = await entity.read_state(self.executor)
            except CommandExecutionError as e:
                self._stats["poll_failures"] += 1
                logger.error(f"Error querying state of {entity.name}: {e} {e.output}".rstrip())
                await self.publisher.publish_availability(entity, runtime, False)
                return

            await self.publisher.publish_state(entity, runtime, state)
            await self.publisher.publish_availability(entity, runtime, True)

    async def dispatch(self, entity: Entity, payload: bytes) -> None:
        """Handle a message received on an entity's command topic.

        Invalid messages are logged and dropped.

        Args:
            entity: Entity the message was addressed to
            payload: Raw message payload

        Raises:
            RuntimeError: If called before connect()
        """
        self._require_connected()
        async with self._lock:
            result = await self.command_handler.handle_message(entity, payload)
            if result is None:
                return

            self._stats["commands"] += 1
            runtime = self.runtime_state(entity)
            if not result.success:
                self._stats["command_failures"] += 1
                await self.publisher.publish_availability(entity, runtime, False)
                return

            if result.state is not None:
                await self.publisher.publish_state(entity, runtime, result.state)
                await self.publisher.publish_availability(entity, runtime, True)

        if result.refresh:
            if self.settle_delay > 0:
                await asyncio.sleep(self.settle_delay)
            await self.refresh_entity(entity, force=True)

    @property
    def stats(self) -> dict:
        """Get engine statistics."""
        return dict(self._stats)
