"""Data models for entities, runtime state and commands."""

from .entities import (
    Entity,
    SwitchEntity,
    DisplayEntity,
    VCPCommand,
    STATE_ON,
    STATE_OFF,
)

from .commands import (
    CommandType,
    CommandMessage,
    parse_command_message,
)

from .registry import EntityRegistry
from .state import EntityRuntimeState

__all__ = [
    # Entity models
    "Entity",
    "SwitchEntity",
    "DisplayEntity",
    "VCPCommand",
    "STATE_ON",
    "STATE_OFF",
    "EntityRegistry",
    "EntityRuntimeState",
    # Command models
    "CommandType",
    "CommandMessage",
    "parse_command_message",
]
