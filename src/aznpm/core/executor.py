"""Command execution for the external filtering tool.

Provides:
- Process spawning with combined stdout/stderr capture
- Exit status classification (success, not-found, failed)
- Dry-run mode support
- Optional per-command timeout

No retries happen here; callers decide what a failure means.
"""

import shlex
import subprocess
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from aznpm.core.context import ExecutionContext
from aznpm.core.exceptions import ExecutionError


# iptables exits with 1 when the rule or chain named by -C/-D/-X/-F is absent
DEFAULT_NOT_FOUND_EXIT_CODE = 1


class ExitStatus(str, Enum):
    """Classification of a finished command."""
    SUCCESS = "success"
    NOT_FOUND = "not-found"
    FAILED = "failed"


@dataclass(frozen=True)
class CommandResult:
    """Result of a command execution."""
    command: tuple[str, ...]
    return_code: int
    output: str
    status: ExitStatus

    @property
    def success(self) -> bool:
        """Check if command succeeded."""
        return self.status is ExitStatus.SUCCESS

    @property
    def not_found(self) -> bool:
        """Check if the command's target does not exist."""
        return self.status is ExitStatus.NOT_FOUND

    @property
    def failed(self) -> bool:
        """Check if the command failed for any other reason."""
        return self.status is ExitStatus.FAILED

    @property
    def display(self) -> str:
        """Command line as it would be typed in a shell."""
        return shlex.join(self.command)


class CommandExecutor:
    """Runs the filtering tool and classifies its exit code.

    This is the only place in the package that crosses the process boundary.
    """

    def __init__(
        self,
        ctx: ExecutionContext,
        *,
        not_found_exit_code: int = DEFAULT_NOT_FOUND_EXIT_CODE,
        timeout: Optional[int] = None,
    ) -> None:
        """Initialize executor with context.

        Args:
            ctx: Execution context with flags
            not_found_exit_code: Exit code meaning "target does not exist"
            timeout: Default timeout in seconds for every command
        """
        self.ctx = ctx
        self.not_found_exit_code = not_found_exit_code
        self.timeout = timeout

    def classify(self, return_code: int) -> ExitStatus:
        """Map a raw exit code onto an ExitStatus."""
        if return_code == 0:
            return ExitStatus.SUCCESS
        if return_code == self.not_found_exit_code:
            return ExitStatus.NOT_FOUND
        return ExitStatus.FAILED

    def run(
        self,
        command: list[str],
        *,
        log: bool = True,
        description: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """Execute a command and capture its combined output.

        Args:
            command: Command as list of strings
            log: Emit a debug line with the command before running it
            description: Human-readable description for logging
            timeout: Command timeout in seconds (overrides the default)

        Returns:
            CommandResult with classified status

        Raises:
            ExecutionError: If the command cannot be spawned or times out
        """
        if description:
            self.ctx.console.step(description)

        cmd_display = shlex.join(command)
        if log:
            self.ctx.console.debug(f"Running: {cmd_display}")

        if self.ctx.dry_run:
            self.ctx.console.dry_run_msg(f"Run: {cmd_display}")
            return CommandResult(
                command=tuple(command),
                return_code=0,
                output="",
                status=ExitStatus.SUCCESS,
            )

        effective_timeout = timeout if timeout is not None else self.timeout

        try:
            result = subprocess.run(
                command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                timeout=effective_timeout,
            )
        except FileNotFoundError as e:
            raise ExecutionError(
                f"Command not found: {command[0]}",
                command=cmd_display,
                hint="Install iptables or set iptables.command in the config file",
            ) from e
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(
                f"Command timed out after {effective_timeout}s: {cmd_display}",
                command=cmd_display,
            ) from e

        return CommandResult(
            command=tuple(command),
            return_code=result.returncode,
            output=(result.stdout or "").rstrip("\n"),
            status=self.classify(result.returncode),
        )
