"""Async shell command runner used for entity actions and state queries."""

import asyncio
import logging
import shlex
import time

from ..errors import CommandExecutionError, NonZeroExitError

logger = logging.getLogger(__name__)


class ShellExecutor:
    """Run shell command strings and capture their combined output.

    Each command is run through ``shell -c`` with stderr merged into
    stdout. Commands that outlive the timeout are killed.
    """

    def __init__(self, timeout: float = 30.0, shell: str = "/bin/sh"):
        """Initialize the executor.

        Args:
            timeout: Maximum run time of a single command in seconds
            shell: Shell used to interpret command strings
        """
        self.timeout = timeout
        self.shell = shell
        self._runs = 0
        self._failures = 0

    async def run(self, command: str) -> str:
        """Run a command and return its combined output.

        Args:
            command: Shell command string

        Returns:
            Decoded stdout and stderr of the command

        Raises:
            NonZeroExitError: If the command exits with a non-zero status
            CommandExecutionError: If the command cannot be started or times out
        """
        self._runs += 1
        start = time.monotonic()
        logger.debug(f"Running: {command}")

        try:
            process = await asyncio.create_subprocess_exec(
                self.shell,
                "-c",
                command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
            )
        except OSError as e:
            self._failures += 1
            raise CommandExecutionError(command, f"Cannot start command ({e})") from e

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError:
            self._failures += 1
            await self._kill(process)
            raise CommandExecutionError(command, f"Timed out after {self.timeout}s")

        output = (stdout or b"").decode("utf-8", errors="replace")
        elapsed = time.monotonic() - start
        logger.debug(f"Command exited with {process.returncode} after {elapsed:.3f}s: {command}")

        if process.returncode != 0:
            self._failures += 1
            raise NonZeroExitError(command, process.returncode, output)
        return output

    @staticmethod
    async def _kill(process: asyncio.subprocess.Process) -> None:
        """Kill a running process and reap it."""
        try:
            process.kill()
        except ProcessLookupError:
            return
        await process.wait()

    @property
    def stats(self) -> dict:
        """Get executor statistics."""
        return {"runs": self._runs, "failures": self._failures}


def format_command(template: str, value, quote: bool = False) -> str:
    """Substitute a single value into a printf-style command template.

    The value is substituted verbatim unless ``quote`` is set, in which
    case string values are shell-quoted so shell metacharacters stay
    inside a single argument.

    Args:
        template: Template such as ``ddcutil setvcp 0x60 %s``
        value: Value consumed by the template's placeholder
        quote: Shell-quote string values before substitution

    Returns:
        The formatted command

    Raises:
        CommandExecutionError: If the template does not accept the value
    """
    if quote and isinstance(value, str):
        value = shlex.quote(value)
    try:
        return template % (value,)
    except (TypeError, ValueError) as e:
        raise CommandExecutionError(template, f"Cannot format template with {value!r} ({e})") from e
