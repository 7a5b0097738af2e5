"""Pydantic models for controllable entities.

An entity is a named unit whose state is read and changed by running
shell commands. Two variants exist: switches (on/off, optionally toggle
and an integer set command) and displays (a VCP value read and written
through a parameterized command pair).
"""

from abc import ABC, abstractmethod
from datetime import timedelta
from typing import ClassVar, Optional, Protocol

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    field_serializer,
    field_validator,
)

from ..errors import NonZeroExitError
from ..executor import format_command
from ..utils.duration import parse_duration

# Characters that cannot appear in an MQTT topic level
RESERVED_NAME_CHARS = ("/", "+", "#")

STATE_ON = "ON"
STATE_OFF = "OFF"

# get_state exit status meaning "off" rather than failure
SWITCH_OFF_EXIT_STATUS = 1


class Executor(Protocol):
    """Anything that can run a shell command string."""

    async def run(self, command: str) -> str:
        ...


class Entity(BaseModel, ABC):
    """Common fields and capabilities of all entities."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    kind: ClassVar[str]

    name: str = Field(
        ...,
        min_length=1,
        description="Entity name, used verbatim in MQTT topics"
    )
    refresh: timedelta = Field(
        default=timedelta(0),
        description="Refresh interval (0 = only refresh while state is unknown)"
    )
    available_payload: Optional[str] = Field(
        default=None,
        description="Availability payload override for 'available'"
    )
    unavailable_payload: Optional[str] = Field(
        default=None,
        description="Availability payload override for 'unavailable'"
    )

    @field_validator("name")
    @classmethod
    def check_name(cls, v: str) -> str:
        """Reject names that would break topic structure."""
        for char in RESERVED_NAME_CHARS:
            if char in v:
                raise ValueError(f"Entity name {v!r} must not contain {char!r}")
        return v

    @field_validator("refresh", mode="before")
    @classmethod
    def parse_refresh(cls, v):
        """Parse seconds or Go-style duration strings."""
        return parse_duration(v)

    @field_serializer("refresh")
    def dump_refresh(self, v: timedelta) -> float:
        """Serialize the refresh interval as seconds."""
        return v.total_seconds()

    @property
    def refresh_seconds(self) -> float:
        """Refresh interval in seconds."""
        return self.refresh.total_seconds()

    @abstractmethod
    async def read_state(self, executor: Executor) -> str:
        """Query the entity and return its state payload.

        Raises:
            CommandExecutionError: If the state cannot be determined
        """

    @abstractmethod
    async def set_value(self, executor: Executor, value) -> str:
        """Run the entity's set command with a value.

        Raises:
            CommandExecutionError: If the command fails
        """


class SwitchEntity(Entity):
    """An on/off switch driven by shell commands."""

    kind: ClassVar[str] = "switches"

    turn_on: str = Field(..., min_length=1, description="Command that turns the switch on")
    turn_off: str = Field(..., min_length=1, description="Command that turns the switch off")
    get_state: str = Field(
        ...,
        min_length=1,
        description="Query command; exit 0 means on, exit 1 means off"
    )
    toggle: Optional[str] = Field(default=None, description="Command that toggles the switch")
    set_value_command: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("set_value", "set_value_command"),
        description="Template taking one integer, e.g. 'brightness %d'"
    )

    async def read_state(self, executor: Executor) -> str:
        try:
            await executor.run(self.get_state)
        except NonZeroExitError as e:
            if e.returncode == SWITCH_OFF_EXIT_STATUS:
                return STATE_OFF
            raise
        return STATE_ON

    async def switch(self, executor: Executor, on: bool) -> str:
        """Turn the switch on or off and return the command output."""
        return await executor.run(self.turn_on if on else self.turn_off)

    @property
    def can_toggle(self) -> bool:
        return bool(self.toggle)

    async def toggle_state(self, executor: Executor) -> str:
        """Run the toggle command and return its output."""
        return await executor.run(self.toggle)

    @property
    def can_set_value(self) -> bool:
        return bool(self.set_value_command)

    async def set_value(self, executor: Executor, value: int) -> str:
        return await executor.run(format_command(self.set_value_command, int(value)))


class VCPCommand(BaseModel):
    """A VCP feature read and written through a command pair."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    name: Optional[str] = Field(default=None, description="Feature label, e.g. 'input'")
    set_value: str = Field(
        ...,
        min_length=1,
        description="Template taking one value, e.g. 'ddcutil setvcp 0x60 %s'"
    )
    get_value: str = Field(
        ...,
        min_length=1,
        validation_alias=AliasChoices("get_value", "get_state"),
        description="Query command, e.g. 'ddcutil getvcp 0x60'"
    )


class DisplayEntity(Entity):
    """A monitor whose VCP value is controlled by shell commands."""

    kind: ClassVar[str] = "displays"

    command: VCPCommand = Field(..., description="VCP command pair")
    quote_values: bool = Field(
        default=False,
        description="Shell-quote SET values instead of substituting them verbatim"
    )

    async def read_state(self, executor: Executor) -> str:
        return await executor.run(self.command.get_value)

    async def set_value(self, executor: Executor, value: str) -> str:
        return await executor.run(format_command(self.command.set_value, value, quote=self.quote_values))
