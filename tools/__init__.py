# Tools module - Hands resolved command strings to the shell
# No validation, no sandboxing: the template is the user's own

from .executor import ShellExecutor, ExecutionResult, ExecutionStatus

__all__ = [
    "ShellExecutor",
    "ExecutionResult",
    "ExecutionStatus",
]
