"""
Shell Executor
--------------
Hands a resolved command string to the user's shell.

The string is NOT validated or sandboxed: it is exactly what the user's
template produced. stdin/stdout/stderr are inherited.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, auto
from typing import Callable, Optional
import subprocess
import time

from core.errors import ExecutionError
from infra.logging import get_logger


class ExecutionStatus(Enum):
    """Status of a command run."""
    SUCCESS = auto()
    FAILED = auto()       # Non-zero exit code
    SIGNALLED = auto()    # Terminated by a signal
    DRY_RUN = auto()      # Printed only


@dataclass
class ExecutionResult:
    """Result of running one command string."""
    command: str
    status: ExecutionStatus
    returncode: int = 0
    execution_time_ms: float = 0.0
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def success(self) -> bool:
        return self.status in (ExecutionStatus.SUCCESS, ExecutionStatus.DRY_RUN)

    @property
    def exit_code(self) -> int:
        """Exit code to propagate from the CLI."""
        if self.status == ExecutionStatus.SIGNALLED:
            return 128 + abs(self.returncode)
        return self.returncode

    def __repr__(self) -> str:
        status = "✓" if self.success else "✗"
        return f"ExecutionResult({status} {self.command!r}, code={self.returncode})"


class ShellExecutor:
    """
    Runs command strings through the shell.

    Rules:
    - One command at a time, blocking
    - No timeout (interactive commands like `watch` run until the user stops them)
    - All executions logged
    """

    def __init__(
        self,
        runner: Optional[Callable[..., subprocess.CompletedProcess]] = None,
        dry_run: bool = False,
    ):
        self._run = runner or subprocess.run
        self.dry_run = dry_run
        self._logger = get_logger("tools.executor")

    def execute(self, command_line: str) -> ExecutionResult:
        """Run `command_line` with inherited stdio."""
        if not command_line.strip():
            raise ExecutionError("Empty command")

        if self.dry_run:
            self._logger.info(f"Dry run: {command_line}")
            return ExecutionResult(command=command_line, status=ExecutionStatus.DRY_RUN)

        self._logger.info(f"Executing: {command_line}", extra={"command": command_line})
        start = time.monotonic()
        try:
            completed = self._run(command_line, shell=True, check=False)
        except OSError as e:
            raise ExecutionError(f"Failed to start shell for '{command_line}': {e}") from e

        elapsed_ms = (time.monotonic() - start) * 1000
        code = completed.returncode

        if code == 0:
            status = ExecutionStatus.SUCCESS
        elif code < 0:
            status = ExecutionStatus.SIGNALLED
        else:
            status = ExecutionStatus.FAILED

        result = ExecutionResult(
            command=command_line,
            status=status,
            returncode=code,
            execution_time_ms=elapsed_ms,
        )
        level = "info" if result.success else "warning"
        getattr(self._logger, level)(f"Command finished with code {code} in {elapsed_ms:.1f}ms")
        return result

    def execute_with_output(self, command_line: str) -> str:
        """Run `command_line` and return its stdout. Non-zero exit raises."""
        if not command_line.strip():
            raise ExecutionError("Empty command")

        try:
            completed = self._run(command_line, shell=True, check=False, capture_output=True, text=True)
        except OSError as e:
            raise ExecutionError(f"Failed to start shell for '{command_line}': {e}") from e

        if completed.returncode != 0:
            raise ExecutionError(f"Command failed: {(completed.stderr or '').strip()}")
        return completed.stdout
