"""MQTT client, topic naming, state publishing and command handling."""

from .client import MQTTClient
from .publisher import StatePublisher
from .command_handler import CommandHandler, CommandResult

__all__ = ["MQTTClient", "StatePublisher", "CommandHandler", "CommandResult"]
