# Commands module - Source schema, registry merging and placeholder resolution
# This module does NOT execute commands and does NOT touch the terminal

from .schema import (
    CommandDefinition, ConfigSource, SourceOrigin, Visibility,
    parse_source, render_source, ensure_schema_header,
)
from .registry import (
    CommandRegistry, Conflict, ConflictSet, ConflictResolver,
    SourceLoadResult, read_sources,
)
from .resolver import resolve, placeholders

__all__ = [
    "CommandDefinition", "ConfigSource", "SourceOrigin", "Visibility",
    "parse_source", "render_source", "ensure_schema_header",
    "CommandRegistry", "Conflict", "ConflictSet", "ConflictResolver",
    "SourceLoadResult", "read_sources",
    "resolve", "placeholders",
]
