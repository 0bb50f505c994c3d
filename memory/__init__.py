# Memory module - Persistent variables and the active context
# Explicit updates only, one document per context

from .context import ContextManager, DEFAULT_CONTEXT, InvalidContextError
from .variables import VariableStore, Variables, InvalidVariableKeyError

__all__ = [
    "ContextManager",
    "DEFAULT_CONTEXT",
    "InvalidContextError",
    "VariableStore",
    "Variables",
    "InvalidVariableKeyError",
]
