"""Command message models for MQTT input validation.

Payloads received on an entity's command topic are JSON objects of the
form ``{"command": "ON", "value": "..."}``. They are validated here
before the engine turns them into entity actions.
"""

import re
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, ValidationError, field_validator

from ..errors import InvalidCommandError, MalformedPayloadError

# Integer values accepted by switch SET commands
_INTEGER = re.compile(r"[+-]?\d+")


class CommandType(str, Enum):
    """Commands understood by the engine."""
    ON = "ON"
    OFF = "OFF"
    TOGGLE = "toggle"
    SET = "SET"

    def __str__(self) -> str:
        return self.value

    @classmethod
    def parse(cls, text: str) -> "CommandType":
        """Match a command name case-insensitively.

        Raises:
            InvalidCommandError: If the name is not a known command
        """
        for member in cls:
            if member.value.upper() == text.strip().upper():
                return member
        raise InvalidCommandError(f"Unknown command: {text!r}")


class CommandMessage(BaseModel):
    """Validate an inbound command payload."""

    command: str = Field(
        ...,
        description="Command name: ON, OFF, toggle or SET"
    )
    value: Optional[str] = Field(
        default=None,
        description="Value for SET commands"
    )

    @field_validator("value", mode="before")
    @classmethod
    def stringify_value(cls, v):
        """Accept numeric values as strings."""
        if isinstance(v, bool):
            raise ValueError("value must be a string or number")
        if isinstance(v, (int, float)):
            return str(v)
        return v

    @property
    def command_type(self) -> CommandType:
        """The parsed command name.

        Raises:
            InvalidCommandError: If the name is not a known command
        """
        return CommandType.parse(self.command)

    def int_value(self) -> int:
        """Parse the value as an integer.

        Raises:
            InvalidCommandError: If the value is missing or not an integer
        """
        if self.value is None or not _INTEGER.fullmatch(self.value):
            raise InvalidCommandError(f"Value must be an integer, got {self.value!r}")
        return int(self.value)


def parse_command_message(payload: bytes) -> CommandMessage:
    """Parse and validate a raw command payload.

    Args:
        payload: The raw payload bytes from MQTT

    Returns:
        Validated command message with a known command name

    Raises:
        MalformedPayloadError: If the payload is not a valid command object
        InvalidCommandError: If the command name is unknown
    """
    try:
        text = payload.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedPayloadError(f"Invalid payload encoding: {e}", payload) from e

    try:
        message = CommandMessage.model_validate_json(text)
    except ValidationError as e:
        raise MalformedPayloadError(f"Invalid command payload: {e.errors()[0]['msg']}", payload) from e

    CommandType.parse(message.command)
    return message
