"""Shell command execution for entity actions."""

from .runner import ShellExecutor, format_command

__all__ = ["ShellExecutor", "format_command"]
