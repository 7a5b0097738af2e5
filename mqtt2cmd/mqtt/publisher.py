"""State publisher for MQTT."""

import logging
from typing import Optional

from ..errors import PublishError
from ..models.entities import Entity
from ..models.state import EntityRuntimeState
from .client import MQTTClient
from .topics import entity_topics, app_availability_topic

logger = logging.getLogger(__name__)


class StatePublisher:
    """Publisher for entity state and availability.

    State and availability are published retained, and only when they
    differ from what was last published (or nothing was published yet).
    The runtime state is updated only after the broker accepted the
    publish, so a failed publish is retried on the next differing read.
    """

    def __init__(
        self,
        mqtt_client: MQTTClient,
        app_id: str,
        available_payload: str = "online",
        unavailable_payload: str = "offline",
    ):
        """Initialize the state publisher.

        Args:
            mqtt_client: Connected MQTT client
            app_id: Application ID used as topic prefix
            available_payload: Default payload for 'available'
            unavailable_payload: Default payload for 'unavailable'
        """
        self.client = mqtt_client
        self.app_id = app_id
        self.available_payload = available_payload
        self.unavailable_payload = unavailable_payload

    def availability_payload(self, available: bool, entity: Optional[Entity] = None) -> str:
        """Get the availability payload, honoring per-entity overrides."""
        if available:
            if entity is not None and entity.available_payload is not None:
                return entity.available_payload
            return self.available_payload
        if entity is not None and entity.unavailable_payload is not None:
            return entity.unavailable_payload
        return self.unavailable_payload

    async def publish_state(
        self,
        entity: Entity,
        runtime: EntityRuntimeState,
        state: str,
    ) -> bool:
        """Publish an entity state if it changed.

        Returns:
            True if a message was published
        """
        if not runtime.state_changed(state):
            return False

        topic = entity_topics(self.app_id, entity).state
        try:
            await self.client.publish(topic, state, retain=True)
        except PublishError as e:
            logger.error(f"Error publishing state of {entity.name}: {e}")
            return False

        runtime.last_state = state
        runtime.state_known = True
        logger.debug(f"Published state of {entity.name} to {topic}: {state[:100]}")
        return True

    async def publish_availability(
        self,
        entity: Entity,
        runtime: EntityRuntimeState,
        available: bool,
    ) -> bool:
        """Publish an entity availability if it changed.

        Returns:
            True if a message was published
        """
        if not runtime.availability_changed(available):
            return False

        topic = entity_topics(self.app_id, entity).availability
        try:
            await self.client.publish(topic, self.availability_payload(available, entity), retain=True)
        except PublishError as e:
            logger.error(f"Error publishing availability of {entity.name}: {e}")
            return False

        runtime.last_available = available
        runtime.availability_known = True
        if available:
            logger.info(f"{entity.name} is available")
        else:
            logger.warning(f"{entity.name} is unavailable")
        return True

    async def publish_app_availability(self, available: bool) -> bool:
        """Publish application availability unconditionally.

        Returns:
            True if the broker accepted the message
        """
        topic = app_availability_topic(self.app_id)
        try:
            await self.client.publish(topic, self.availability_payload(available), retain=True)
        except PublishError as e:
            logger.error(f"Error publishing application availability: {e}")
            return False

        logger.info(f"Published application availability: {self.availability_payload(available)}")
        return True
