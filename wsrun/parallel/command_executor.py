"""
Command Executor
================

Runs package commands in their working directories and captures the result.

The scheduler and the conditional gate only depend on the CommandExecutor
protocol; ShellCommandExecutor is the default implementation backed by
asyncio subprocesses.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Protocol, Sequence
import asyncio
import logging
import shlex

logger = logging.getLogger(__name__)

# Exit status a POSIX shell reports when the command does not exist
COMMAND_NOT_FOUND = 127

SPAWN_FAILED = -1


@dataclass(frozen=True)
class CommandResult:
    """
    Outcome of one command invocation.

    Attributes:
        exit_code: Process exit status, SPAWN_FAILED when no process ran
        stdout: Captured standard output
        stderr: Captured standard error
        error: Executor-level diagnostic, None for an ordinary exit
    """
    exit_code: int
    stdout: str = ""
    stderr: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.exit_code == 0


class CommandExecutor(Protocol):
    async def run(self, command: str, cwd: str, args: Sequence[str] = ()) -> CommandResult:
        ...


def build_command_line(command: str, args: Sequence[str] = ()) -> str:
    """Append trailing arguments to a command, quoting each token for the shell."""
    if not args:
        return command
    return f"{command} {' '.join(shlex.quote(str(a)) for a in args)}"


class ShellCommandExecutor:
    """
    Runs commands through the system shell.

    Commands are script strings taken from package manifests, so they are
    executed with a shell; trailing arguments are quoted so each one arrives
    verbatim.
    """

    def __init__(self, shell: Optional[str] = None):
        self.shell = shell

    async def run(self, command: str, cwd: str, args: Sequence[str] = ()) -> CommandResult:
        """
        Run a command to completion.

        Args:
            command: Command string
            cwd: Working directory
            args: Trailing arguments appended to the command

        Returns:
            CommandResult with exit code and captured output
        """
        command_line = build_command_line(command, args)
        logger.debug(f"Running command: {command_line} in {cwd}")

        if not Path(cwd).is_dir():
            return CommandResult(
                exit_code=SPAWN_FAILED,
                error=f"spawn failed: working directory does not exist: {cwd}"
            )

        try:
            process = await asyncio.create_subprocess_shell(
                command_line,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                executable=self.shell
            )
            stdout, stderr = await process.communicate()
        except OSError as e:
            logger.error(f"Failed to spawn '{command_line}' in {cwd}: {e}")
            return CommandResult(exit_code=SPAWN_FAILED, error=f"spawn failed: {e}")

        stdout_str = stdout.decode('utf-8', errors='replace')
        stderr_str = stderr.decode('utf-8', errors='replace')

        error = None
        if process.returncode == COMMAND_NOT_FOUND:
            error = f"command not found: {command}"

        return CommandResult(
            exit_code=process.returncode,
            stdout=stdout_str,
            stderr=stderr_str,
            error=error
        )
