"""
Variable Store
--------------
Per-context key-value store for persistent placeholders (#1, #2, ...).
Explicit updates only.

Rules:
- One document per context, created on first write
- Writing one context never touches another
- Nothing is deleted automatically
"""

from dataclasses import dataclass, field
from typing import Dict, Optional
import re

import yaml

from core.errors import DooError, StorageError
from infra.logging import get_logger
from infra.storage import Storage

from .context import validate_context_name

VARIABLE_KEY_PATTERN = re.compile(r"^#[1-9][0-9]*$")


class InvalidVariableKeyError(DooError):
    """Variable keys must look like #1, #2, ..."""

    def __init__(self, key: str):
        super().__init__(f"Invalid variable name '{key}': expected #1, #2, ...")
        self.key = key


@dataclass
class Variables:
    """Variables of one context."""

    vars: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict:
        return {"vars": dict(self.vars)}

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "Variables":
        raw = (data or {}).get("vars") or {}
        if not isinstance(raw, dict):
            raise ValueError("'vars' must be a mapping")
        for key, value in raw.items():
            if value is None:
                raise ValueError(f"variable {key} has no value")
        return cls(vars={str(k): str(v) for k, v in raw.items()})


class VariableStore:
    """
    Persistent variable storage, one YAML document per context.
    """

    def __init__(self, storage: Storage):
        self._storage = storage
        self._logger = get_logger("memory.variables")

    def _load(self, context: str) -> Variables:
        validate_context_name(context)
        text = self._storage.read_variables(context)
        if text is None:
            return Variables()
        try:
            return Variables.from_dict(yaml.safe_load(text))
        except (yaml.YAMLError, ValueError, AttributeError) as e:
            raise StorageError(f"Failed to parse variables for context '{context}': {e}") from e

    def _save(self, context: str, variables: Variables) -> None:
        text = yaml.safe_dump(variables.to_dict(), default_flow_style=False, sort_keys=True)
        self._storage.write_variables(context, text)
        self._logger.debug(f"Variables saved for context '{context}'")

    def set(self, context: str, key: str, value: str) -> None:
        """
        Set a variable (overwrites).

        This is the ONLY way persistent values change.
        """
        validate_context_name(context)
        if not VARIABLE_KEY_PATTERN.match(key):
            raise InvalidVariableKeyError(key)

        variables = self._load(context)
        variables.vars[key] = value
        self._save(context, variables)
        self._logger.info(f"Variable {key} set in context '{context}'")

    def get(self, context: str, key: str) -> Optional[str]:
        """Get a variable value."""
        return self._load(context).vars.get(key)

    def remove(self, context: str, key: str) -> bool:
        """Remove a variable. Returns True if it existed."""
        variables = self._load(context)
        if key not in variables.vars:
            return False
        del variables.vars[key]
        self._save(context, variables)
        return True

    def list(self, context: str) -> Dict[str, str]:
        """All variables of a context, sorted by index."""
        items = self._load(context).vars
        return {k: items[k] for k in sorted(items, key=_sort_key)}

    def snapshot(self, context: str) -> Dict[str, str]:
        """Copy of a context's variables for resolution."""
        return dict(self._load(context).vars)


def _sort_key(key: str):
    if VARIABLE_KEY_PATTERN.match(key):
        return (0, int(key[1:]), key)
    return (1, 0, key)
