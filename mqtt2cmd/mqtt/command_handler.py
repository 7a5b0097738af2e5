"""MQTT command handler for entity control operations.

Parses incoming command payloads, validates them against the target
entity and runs the matching entity command. Publishing the outcome is
left to the caller.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from ..errors import CommandExecutionError, InvalidCommandError, MalformedPayloadError
from ..models import (
    CommandMessage,
    CommandType,
    DisplayEntity,
    Entity,
    SwitchEntity,
    STATE_ON,
    STATE_OFF,
    parse_command_message,
)
from ..models.entities import Executor

logger = logging.getLogger(__name__)


@dataclass
class CommandResult:
    """Outcome of an executed entity command."""
    success: bool
    command: CommandType
    value: Optional[str] = None
    state: Optional[str] = None  # state implied by the command, published as-is
    refresh: bool = False  # state is device-defined and must be re-read
    output: str = ""


class CommandHandler:
    """Turn command messages into entity commands.

    ON/OFF results carry the implied switch state. toggle and SET
    results request a re-read, since their outcome is decided by the
    device. Messages that cannot be applied are logged and dropped.
    """

    def __init__(self, executor: Executor):
        """Initialize the command handler.

        Args:
            executor: Runs entity commands
        """
        self._executor = executor

    async def handle_message(self, entity: Entity, payload: bytes) -> Optional[CommandResult]:
        """Handle an incoming command message for an entity.

        Args:
            entity: Entity the message was addressed to
            payload: Raw payload bytes

        Returns:
            CommandResult if a command was run, None if the message was dropped
        """
        try:
            message = parse_command_message(payload)
        except (MalformedPayloadError, InvalidCommandError) as e:
            logger.error(f"Dropping command for {entity.name}: {e}")
            return None

        command_type = message.command_type
        logger.info(f"Received command for {entity.name}: {command_type} {message.value or ''}".rstrip())

        try:
            if command_type in (CommandType.ON, CommandType.OFF):
                return await self._switch(entity, command_type)
            if command_type == CommandType.TOGGLE:
                return await self._toggle(entity)
            return await self._set(entity, message)
        except InvalidCommandError as e:
            logger.error(f"Dropping command for {entity.name}: {e}")
            return None

    async def _switch(self, entity: Entity, command_type: CommandType) -> CommandResult:
        if not isinstance(entity, SwitchEntity):
            raise InvalidCommandError(f"{command_type} is not supported by {entity.kind}")

        on = command_type == CommandType.ON
        return await self._run(
            command_type,
            entity.switch(self._executor, on),
            entity,
            state=STATE_ON if on else STATE_OFF,
        )

    async def _toggle(self, entity: Entity) -> Optional[CommandResult]:
        if not isinstance(entity, SwitchEntity):
            raise InvalidCommandError(f"toggle is not supported by {entity.kind}")
        if not entity.can_toggle:
            logger.info(f"No toggle command configured for {entity.name}, ignoring")
            return None

        return await self._run(
            CommandType.TOGGLE,
            entity.toggle_state(self._executor),
            entity,
            refresh=True,
        )

    async def _set(self, entity: Entity, message: CommandMessage) -> Optional[CommandResult]:
        if isinstance(entity, SwitchEntity):
            value = message.int_value()
            if not entity.can_set_value:
                logger.info(f"No set_value command configured for {entity.name}, ignoring")
                return None
        elif isinstance(entity, DisplayEntity):
            if message.value is None:
                raise InvalidCommandError("SET requires a value")
            value = message.value
        else:
            raise InvalidCommandError(f"SET is not supported by {entity.kind}")

        return await self._run(
            CommandType.SET,
            entity.set_value(self._executor, value),
            entity,
            value=message.value,
            refresh=True,
        )

    async def _run(
        self,
        command_type: CommandType,
        action,
        entity: Entity,
        value: Optional[str] = None,
        state: Optional[str] = None,
        refresh: bool = False,
    ) -> CommandResult:
        """Await an entity command and wrap its outcome."""
        try:
            output = await action
        except CommandExecutionError as e:
            logger.error(f"Error running {command_type} for {entity.name}: {e} {e.output}".rstrip())
            return CommandResult(
                success=False,
                command=command_type,
                value=value,
                output=e.output,
            )

        logger.debug(f"Executed {command_type} for {entity.name} successfully: {output}".rstrip())
        return CommandResult(
            success=True,
            command=command_type,
            value=value,
            state=state,
            refresh=refresh,
            output=output,
        )
