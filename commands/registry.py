"""
Command Registry
----------------
Merges command definitions from independent sources into one lookup table.

Rules:
- Sources are scanned in a stable order (main, flat imports, repository groups)
- A malformed source is rejected on its own; the others still load
- A name defined by two sources becomes a Conflict and is never resolved eagerly
- Resolution happens through an explicit call or a caller-owned callback
- Nothing about a resolution is persisted; the registry is rebuilt every run
"""

from dataclasses import dataclass, field
from typing import Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from core.errors import AmbiguousCommandError, ConfigValidationError, UnknownCommandError
from infra.logging import get_logger
from infra.storage import SourceKey, Storage

from .schema import CommandDefinition, ConfigSource, parse_source


@dataclass
class SourceLoadResult:
    """Outcome of reading one source: either a source or the reason it was rejected."""
    source_id: str
    source: Optional[ConfigSource] = None
    error: Optional[ConfigValidationError] = None

    @property
    def ok(self) -> bool:
        return self.source is not None


@dataclass
class Conflict:
    """A command name defined by more than one source."""
    name: str
    candidates: List[CommandDefinition] = field(default_factory=list)

    @property
    def options(self) -> List[Tuple[str, str]]:
        """(source_id, template) pairs in merge order."""
        return [(c.source_id, c.template) for c in self.candidates]

    def to_error(self) -> AmbiguousCommandError:
        return AmbiguousCommandError(self.name, self.options)


# Receives a conflict, returns the index of the chosen candidate
ConflictResolver = Callable[[Conflict], int]


class ConflictSet:
    """Pending collisions, keyed by command name, in detection order."""

    def __init__(self):
        self._conflicts: Dict[str, Conflict] = {}

    def add(self, name: str, candidate: CommandDefinition, existing: Optional[CommandDefinition] = None) -> None:
        conflict = self._conflicts.get(name)
        if conflict is None:
            conflict = Conflict(name=name)
            if existing is not None:
                conflict.candidates.append(existing)
            self._conflicts[name] = conflict
        conflict.candidates.append(candidate)

    def get(self, name: str) -> Optional[Conflict]:
        return self._conflicts.get(name)

    def pop(self, name: str) -> Conflict:
        return self._conflicts.pop(name)

    @property
    def names(self) -> List[str]:
        return list(self._conflicts)

    def __contains__(self, name: str) -> bool:
        return name in self._conflicts

    def __iter__(self) -> Iterator[Conflict]:
        return iter(list(self._conflicts.values()))

    def __len__(self) -> int:
        return len(self._conflicts)


SourceInput = Union[ConfigSource, SourceLoadResult]


class CommandRegistry:
    """
    Registry for command definitions merged from all sources.

    Responsibilities:
    - Merge sources and detect duplicate names
    - Hold pending conflicts until the caller resolves them
    - Look up and search commands

    Forbidden:
    - Any terminal interaction (the resolver callback owns that)
    - Persisting resolution choices
    """

    def __init__(self, resolver: Optional[ConflictResolver] = None):
        self._commands: Dict[str, CommandDefinition] = {}
        self._conflicts = ConflictSet()
        self._candidates: Dict[str, List[CommandDefinition]] = {}
        self._sources: List[ConfigSource] = []
        self._errors: List[ConfigValidationError] = []
        self._resolver = resolver
        self._logger = get_logger("commands.registry")

    @classmethod
    def load(
        cls,
        sources: Sequence[SourceInput],
        resolver: Optional[ConflictResolver] = None,
    ) -> "CommandRegistry":
        """Build a registry from sources; rejected ones end up in `errors`."""
        registry = cls(resolver=resolver)
        registry.merge(sources)
        return registry

    def merge(self, sources: Sequence[SourceInput]) -> ConflictSet:
        """
        Merge sources in order and return the pending conflicts.

        Collisions are only recorded here; see resolve_conflict().
        """
        for item in sources:
            if isinstance(item, SourceLoadResult):
                if not item.ok:
                    self._errors.append(item.error)
                    self._logger.warning(str(item.error))
                    continue
                source = item.source
            else:
                source = item

            self._sources.append(source)
            for name, definition in source.commands.items():
                self._insert(name, definition)

        self._logger.debug(
            f"Merged {len(self._sources)} source(s): {len(self._commands)} command(s), "
            f"{len(self._conflicts)} conflict(s)"
        )
        return self._conflicts

    def _insert(self, name: str, definition: CommandDefinition) -> None:
        known = self._candidates.setdefault(name, [])
        for i, existing in enumerate(known):
            if existing.source_id == definition.source_id:
                known[i] = definition
                if name in self._commands:
                    self._commands[name] = definition
                return
        known.append(definition)

        if name in self._conflicts:
            self._conflicts.add(name, definition)
        elif name in self._commands:
            existing = self._commands.pop(name)
            self._conflicts.add(name, definition, existing=existing)
            self._logger.info(
                f"Command '{name}' defined in '{existing.source_id}' and '{definition.source_id}'"
            )
        else:
            self._commands[name] = definition

    @property
    def conflicts(self) -> ConflictSet:
        return self._conflicts

    @property
    def errors(self) -> List[ConfigValidationError]:
        return list(self._errors)

    @property
    def sources(self) -> List[ConfigSource]:
        return list(self._sources)

    def resolve_conflict(self, name: str, index: int) -> CommandDefinition:
        """Pick candidate `index` for a collided name."""
        conflict = self._conflicts.get(name)
        if conflict is None:
            if name in self._commands:
                return self._commands[name]
            raise UnknownCommandError(name)

        if not 0 <= index < len(conflict.candidates):
            raise ValueError(
                f"Choice {index} out of range for '{name}' ({len(conflict.candidates)} candidates)"
            )

        chosen = conflict.candidates[index]
        self._conflicts.pop(name)
        self._commands[name] = chosen
        self._logger.info(f"Conflict for '{name}' resolved to source '{chosen.source_id}'")
        return chosen

    def resolve_conflicts(self, resolver: Optional[ConflictResolver] = None) -> None:
        """
        Resolve every pending conflict with the callback.

        Without a callback (non-interactive), the first pending conflict
        raises AmbiguousCommandError.
        """
        resolver = resolver or self._resolver
        for conflict in self._conflicts:
            if resolver is None:
                raise conflict.to_error()
            self.resolve_conflict(conflict.name, resolver(conflict))

    def lookup(self, name: str) -> CommandDefinition:
        """Return the single definition for `name`."""
        conflict = self._conflicts.get(name)
        if conflict is not None:
            if self._resolver is None:
                raise conflict.to_error()
            return self.resolve_conflict(name, self._resolver(conflict))

        definition = self._commands.get(name)
        if definition is None:
            raise UnknownCommandError(name)
        return definition

    def candidates(self, name: str) -> List[CommandDefinition]:
        """Every definition of `name` across sources, in merge order."""
        return list(self._candidates.get(name, []))

    def search(self, query: str = "") -> List[CommandDefinition]:
        """
        Case-insensitive search over name, template and description.
        Collided names appear once per candidate.
        """
        q = query.lower()
        results = []
        for name in sorted(self._candidates):
            for definition in self._candidates[name]:
                if (
                    not q
                    or q in name.lower()
                    or q in definition.template.lower()
                    or (definition.description and q in definition.description.lower())
                ):
                    results.append(definition)
        return results

    def list_commands(self) -> List[CommandDefinition]:
        """Resolved commands only, sorted by name."""
        return [self._commands[name] for name in sorted(self._commands)]

    def __len__(self) -> int:
        return len(self._candidates)

    def __contains__(self, name: str) -> bool:
        return name in self._candidates


def read_sources(storage: Storage) -> List[SourceLoadResult]:
    """
    Read and validate every stored source in merge order.

    A source whose id is already taken by an earlier one (a flat `a-b_c`
    against `c` in group `a-b`) is rejected instead of replacing it.
    """
    logger = get_logger("commands.registry")
    results: List[SourceLoadResult] = []
    seen: Dict[str, SourceKey] = {}

    for key in storage.list_sources():
        source_id = key.source_id
        text = storage.read_source(key)
        if text is None:
            continue
        if source_id in seen:
            error = ConfigValidationError(source_id, f"source id already used by {seen[source_id].display_path}")
            logger.debug(f"Rejected source {key.display_path}: {error.reason}")
            results.append(SourceLoadResult(source_id, error=error))
            continue
        seen[source_id] = key
        try:
            results.append(SourceLoadResult(source_id, source=parse_source(source_id, text)))
        except ConfigValidationError as e:
            logger.debug(f"Rejected source {source_id}: {e.reason}")
            results.append(SourceLoadResult(source_id, error=e))

    return results
