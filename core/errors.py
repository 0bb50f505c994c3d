"""
Error Handling Module
---------------------
Typed errors for the launcher with classification and user-facing messages.

Propagation rules:
- Validation and import errors for one source are collected, never fatal
- Resolution errors abort the invocation that hit them
- Sync errors are aggregated into the sync report
"""

from enum import Enum, auto
from typing import Dict, List, Optional, Sequence, Tuple
import logging


class ErrorCategory(Enum):
    """Categories of errors for handling decisions."""
    VALIDATION = auto()        # Source file failed schema validation
    AMBIGUOUS = auto()         # Unresolved name collision
    UNKNOWN_COMMAND = auto()   # Name not found after merge
    RESOLUTION = auto()        # Placeholder could not be substituted
    IMPORT = auto()            # Remote fetch or import validation failed
    SYNC = auto()              # Re-fetch of one origin failed
    STORAGE = auto()           # Config directory could not be read/written
    EXECUTION = auto()         # Shell could not be started
    USER = auto()              # Bad CLI input


class DooError(Exception):
    """Base class for all launcher errors."""

    category: ErrorCategory = ErrorCategory.USER

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigValidationError(DooError):
    """A source file is malformed. Only that source is rejected."""

    category = ErrorCategory.VALIDATION

    def __init__(self, source_id: str, reason: str):
        super().__init__(f"Invalid config source '{source_id}': {reason}")
        self.source_id = source_id
        self.reason = reason


class AmbiguousCommandError(DooError):
    """Several sources define the same command and nobody picked one."""

    category = ErrorCategory.AMBIGUOUS

    def __init__(self, name: str, candidates: Sequence[Tuple[str, str]]):
        listing = ", ".join(f"{source_id} ({template})" for source_id, template in candidates)
        super().__init__(f"Command '{name}' is defined in multiple sources: {listing}")
        self.name = name
        self.candidates: List[Tuple[str, str]] = list(candidates)


class UnknownCommandError(DooError):
    """No source defines the requested command."""

    category = ErrorCategory.UNKNOWN_COMMAND

    def __init__(self, name: str):
        super().__init__(f"Command '{name}' not found")
        self.name = name


class ResolutionError(DooError):
    """A placeholder token could not be substituted."""

    category = ErrorCategory.RESOLUTION

    def __init__(self, token: str, message: str):
        super().__init__(message)
        self.token = token


class MissingArgumentError(ResolutionError):
    """A direct `$N` token has no matching positional argument."""

    def __init__(self, token: str, provided: int):
        super().__init__(
            token,
            f"Missing argument for {token}: {provided} argument(s) provided",
        )
        self.provided = provided


class UnresolvedVariableError(ResolutionError):
    """A persistent `#N` token has neither a stored value nor an argument."""

    def __init__(self, token: str, context: Optional[str] = None):
        where = f" in context '{context}'" if context else ""
        super().__init__(
            token,
            f"Variable {token} is not set{where} and no argument was provided for it",
        )
        self.context = context


class SourceImportError(DooError):
    """Import of a local file or remote repository failed."""

    category = ErrorCategory.IMPORT

    def __init__(self, ref: str, reason: str):
        super().__init__(f"Failed to import '{ref}': {reason}")
        self.ref = ref
        self.reason = reason


class SyncError(DooError):
    """Re-fetching one imported source from its origin failed."""

    category = ErrorCategory.SYNC

    def __init__(self, source_id: str, reason: str):
        super().__init__(f"Failed to sync '{source_id}': {reason}")
        self.source_id = source_id
        self.reason = reason


class StorageError(DooError):
    """The configuration directory could not be read or written."""

    category = ErrorCategory.STORAGE


class ExecutionError(DooError):
    """The resolved command could not be handed to the shell."""

    category = ErrorCategory.EXECUTION


class ErrorHandler:
    """
    Central error handler: logs with the right level and produces
    the message shown to the user.
    """

    LOG_LEVELS: Dict[ErrorCategory, int] = {
        ErrorCategory.USER: logging.INFO,
        ErrorCategory.UNKNOWN_COMMAND: logging.INFO,
        ErrorCategory.VALIDATION: logging.WARNING,
        ErrorCategory.AMBIGUOUS: logging.WARNING,
        ErrorCategory.RESOLUTION: logging.WARNING,
        ErrorCategory.IMPORT: logging.ERROR,
        ErrorCategory.SYNC: logging.ERROR,
        ErrorCategory.STORAGE: logging.ERROR,
        ErrorCategory.EXECUTION: logging.ERROR,
    }

    HINTS: Dict[ErrorCategory, str] = {
        ErrorCategory.UNKNOWN_COMMAND: "Run 'doo' without arguments to browse available commands.",
        ErrorCategory.AMBIGUOUS: "Run interactively to pick a source, or remove the duplicate definition.",
        ErrorCategory.RESOLUTION: "Pass the argument on the command line or set it with 'doo var'.",
    }

    def __init__(self):
        self._logger = logging.getLogger("doo.errors")
        self._history: List[DooError] = []
        self._max_history = 100

    def handle(self, error: DooError) -> str:
        """Log an error and return the user-facing message."""
        level = self.LOG_LEVELS.get(error.category, logging.ERROR)
        self._logger.log(level, f"{error.category.name}: {error.message}")

        self._history.append(error)
        if len(self._history) > self._max_history:
            self._history.pop(0)

        hint = self.HINTS.get(error.category)
        return f"{error.message}\n{hint}" if hint else error.message

    def get_error_stats(self) -> Dict[str, int]:
        """Count handled errors per category."""
        stats: Dict[str, int] = {}
        for error in self._history:
            key = error.category.name
            stats[key] = stats.get(key, 0) + 1
        return stats
