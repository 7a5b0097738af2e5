"""Exception types raised by mqtt2cmd components."""

from typing import Optional


class Mqtt2CmdError(Exception):
    """Base class for mqtt2cmd errors."""


class ConfigError(Mqtt2CmdError):
    """Configuration could not be loaded or failed validation."""


class BusConnectionError(Mqtt2CmdError, ConnectionError):
    """Connecting to the MQTT broker failed."""


class PublishError(Mqtt2CmdError):
    """A publish was not acknowledged by the broker."""

    def __init__(self, topic: str, message: str):
        self.topic = topic
        super().__init__(f"Publish to {topic} failed: {message}")


class SubscribeError(Mqtt2CmdError):
    """Subscribing to a topic failed."""

    def __init__(self, topic: str, message: str):
        self.topic = topic
        super().__init__(f"Subscribe to {topic} failed: {message}")


class CommandExecutionError(Mqtt2CmdError):
    """An entity command could not be executed."""

    def __init__(self, command: str, message: str, output: str = ""):
        self.command = command
        self.output = output
        super().__init__(f"{message}: {command}")


class NonZeroExitError(CommandExecutionError):
    """An entity command ran but exited with a non-zero status."""

    def __init__(self, command: str, returncode: int, output: str = ""):
        self.returncode = returncode
        super().__init__(command, f"Exit status {returncode}", output)


class MalformedPayloadError(Mqtt2CmdError, ValueError):
    """An inbound message payload is not a valid command object."""

    def __init__(self, message: str, payload: Optional[bytes] = None):
        self.payload = payload
        super().__init__(message)


class InvalidCommandError(Mqtt2CmdError, ValueError):
    """An inbound message names an unknown or inapplicable command."""
