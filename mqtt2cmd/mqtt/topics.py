"""Topic naming for entities and the application."""

from typing import NamedTuple

from ..models.entities import Entity


class EntityTopics(NamedTuple):
    """The MQTT topics belonging to one entity."""
    command: str
    state: str
    availability: str


def state_topic(app_id: str, kind: str, name: str) -> str:
    """Get MQTT topic for entity state."""
    return f"{app_id}/{kind}/{name}"


def command_topic(app_id: str, kind: str, name: str) -> str:
    """Get MQTT topic for entity commands."""
    return f"{state_topic(app_id, kind, name)}/set"


def availability_topic(app_id: str, kind: str, name: str) -> str:
    """Get MQTT topic for entity availability."""
    return f"{state_topic(app_id, kind, name)}/available"


def app_availability_topic(app_id: str) -> str:
    """Get MQTT topic for application availability."""
    return f"{app_id}/available"


def entity_topics(app_id: str, entity: Entity) -> EntityTopics:
    """Get all topics of an entity."""
    return EntityTopics(
        command=command_topic(app_id, entity.kind, entity.name),
        state=state_topic(app_id, entity.kind, entity.name),
        availability=availability_topic(app_id, entity.kind, entity.name),
    )
