"""
Context Manager
---------------
Tracks which context (variable namespace) is active.

The persisted pointer is only a default: every operation that reads
variables takes the context explicitly.
"""

from typing import List
import re

from core.errors import DooError
from infra.logging import get_logger
from infra.storage import Storage

DEFAULT_CONTEXT = "default"
CONTEXT_NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class InvalidContextError(DooError):
    """Context names become file names and must be plain identifiers."""

    def __init__(self, name: str):
        super().__init__(f"Invalid context name '{name}' (allowed: letters, digits, '_' and '-')")
        self.name = name


def validate_context_name(name: str) -> None:
    if not isinstance(name, str) or not CONTEXT_NAME_PATTERN.match(name):
        raise InvalidContextError(name)


class ContextManager:
    """Reads and switches the active context pointer."""

    def __init__(self, storage: Storage):
        self._storage = storage
        self._logger = get_logger("memory.context")

    def active_context(self) -> str:
        """The persisted active context, `default` on first run."""
        name = self._storage.read_active_context()
        if not name or not CONTEXT_NAME_PATTERN.match(name):
            return DEFAULT_CONTEXT
        return name

    def switch_context(self, name: str) -> None:
        """Make `name` active. Variable stores are left untouched."""
        validate_context_name(name)
        self._storage.write_active_context(name)
        self._logger.info(f"Switched to context '{name}'")

    def list_contexts(self) -> List[str]:
        """`default` plus every context that has stored variables."""
        contexts = set(self._storage.list_variable_contexts())
        contexts.add(DEFAULT_CONTEXT)
        contexts.add(self.active_context())
        return sorted(contexts)
