# Core module - Error types and the launcher facade
# The launcher is the ONLY coordinator; import it from core.launcher

from .errors import (
    DooError, ErrorCategory, ErrorHandler,
    ConfigValidationError, AmbiguousCommandError, UnknownCommandError,
    ResolutionError, MissingArgumentError, UnresolvedVariableError,
    SourceImportError, SyncError, StorageError, ExecutionError,
)

__all__ = [
    "DooError", "ErrorCategory", "ErrorHandler",
    "ConfigValidationError", "AmbiguousCommandError", "UnknownCommandError",
    "ResolutionError", "MissingArgumentError", "UnresolvedVariableError",
    "SourceImportError", "SyncError", "StorageError", "ExecutionError",
]
