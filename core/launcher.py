"""
Launcher
--------
Central coordinator for the command resolution engine.
The CLI talks to this module only.

Flow:
    load_registry() -> resolve(name, args) -> executor

The active context is a default: every variable-reading call accepts an
explicit context and falls back to the persisted pointer.
"""

from typing import Dict, List, Optional, Sequence, Tuple

from commands.registry import CommandRegistry, ConflictResolver, read_sources
from commands.resolver import resolve as resolve_template
from commands.schema import (
    CommandDefinition, ConfigSource, parse_source, render_source, validate_command_name,
)
from core.errors import ConfigValidationError
from infra.logging import get_logger
from infra.settings import Settings
from infra.storage import MAIN_SOURCE, MAIN_SOURCE_ID, FileStorage, Storage
from memory.context import ContextManager
from memory.variables import VariableStore
from remote.github import GitCloner, GitHubClient
from remote.importer import ImportEngine, RepoImportReport, SyncReport
from tools.executor import ExecutionResult, ShellExecutor

# Written to config.yaml on first run
DEFAULT_COMMANDS: Dict[str, Tuple[str, Optional[str]]] = {
    "watch": ("watch kubectl -n #1 get pods", "Watch pods in current namespace (#1)"),
    "logs": ("kubectl logs -f -n #1 #2", None),
    "pods": ("kubectl get pods -n #1", None),
    "describe": ("kubectl describe pod -n #1 #2", None),
}


def default_main_source() -> ConfigSource:
    source = ConfigSource(source_id=MAIN_SOURCE_ID)
    for name, (template, description) in DEFAULT_COMMANDS.items():
        source.commands[name] = CommandDefinition(
            name=name, template=template, source_id=MAIN_SOURCE_ID, description=description
        )
    return source


class Launcher:
    """
    Entry point for every launcher operation.

    Responsibilities:
    - Wire storage, registry, variables, import engine and executor
    - Thread the context through every call
    - Rebuild the registry after anything that changes sources
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        storage: Optional[Storage] = None,
        github: Optional[GitHubClient] = None,
        git: Optional[GitCloner] = None,
        executor: Optional[ShellExecutor] = None,
        conflict_resolver: Optional[ConflictResolver] = None,
        seed_defaults: bool = True,
    ):
        self.settings = settings or Settings.from_env()
        self._logger = get_logger("core.launcher")

        self._storage = storage or FileStorage(self.settings.config_dir)
        self._contexts = ContextManager(self._storage)
        self._variables = VariableStore(self._storage)
        self._github = github or GitHubClient(
            api_url=self.settings.github_api,
            token=self.settings.github_token,
            timeout_seconds=self.settings.http_timeout_seconds,
        )
        self._importer = ImportEngine(
            self._storage,
            github=self._github,
            git=git or GitCloner(interactive=not self.settings.non_interactive),
        )
        self._executor = executor or ShellExecutor(dry_run=self.settings.dry_run)
        self._conflict_resolver = None if self.settings.non_interactive else conflict_resolver
        self._registry: Optional[CommandRegistry] = None

        if seed_defaults:
            self.ensure_main_source()

    @property
    def storage(self) -> Storage:
        return self._storage

    def ensure_main_source(self) -> None:
        """Create config.yaml with example commands on first run."""
        if self._storage.read_source(MAIN_SOURCE) is None:
            self._storage.write_source(MAIN_SOURCE, render_source(default_main_source(), header=False))
            self._logger.info("Created default main config")

    # Registry

    def load_registry(self, reload: bool = False) -> CommandRegistry:
        """Merge all stored sources. Cached until sources change."""
        if self._registry is None or reload:
            self._registry = CommandRegistry.load(
                read_sources(self._storage), resolver=self._conflict_resolver
            )
        return self._registry

    def _invalidate(self) -> None:
        self._registry = None

    def lookup(self, name: str) -> CommandDefinition:
        return self.load_registry().lookup(name)

    def search(self, query: str = "") -> List[CommandDefinition]:
        return self.load_registry().search(query)

    def source_errors(self) -> List[ConfigValidationError]:
        return self.load_registry().errors

    # Resolution

    def context_or_active(self, context: Optional[str] = None) -> str:
        return context or self._contexts.active_context()

    def resolve(self, name: str, args: Sequence[str], context: Optional[str] = None) -> str:
        """Look up `name` and substitute its placeholders."""
        context = self.context_or_active(context)
        definition = self.lookup(name)
        resolved = resolve_template(
            definition.template, self._variables.snapshot(context), list(args), context=context
        )
        self._logger.debug(
            f"Resolved '{name}' from '{definition.source_id}' in context '{context}'",
            extra={"command": name, "context": context, "source_id": definition.source_id},
        )
        return resolved

    def run(self, name: str, args: Sequence[str], context: Optional[str] = None) -> Tuple[str, ExecutionResult]:
        """Resolve and execute. Resolution errors abort before the shell starts."""
        resolved = self.resolve(name, args, context)
        return resolved, self.execute(resolved)

    def execute(self, command_line: str) -> ExecutionResult:
        """Run an already resolved command line."""
        return self._executor.execute(command_line)

    # Variables and contexts

    def set_variable(self, key: str, value: str, context: Optional[str] = None) -> str:
        """Set `key` in `context` (or the active one). Returns the context used."""
        context = self.context_or_active(context)
        self._variables.set(context, key, value)
        return context

    def get_variable(self, key: str, context: Optional[str] = None) -> Optional[str]:
        return self._variables.get(self.context_or_active(context), key)

    def remove_variable(self, key: str, context: Optional[str] = None) -> bool:
        return self._variables.remove(self.context_or_active(context), key)

    def list_variables(self, context: Optional[str] = None) -> Dict[str, str]:
        return self._variables.list(self.context_or_active(context))

    def active_context(self) -> str:
        return self._contexts.active_context()

    def switch_context(self, name: str) -> None:
        self._contexts.switch_context(name)

    def list_contexts(self) -> List[str]:
        return self._contexts.list_contexts()

    # Main source editing

    def _main_source(self) -> ConfigSource:
        text = self._storage.read_source(MAIN_SOURCE)
        if text is None:
            return ConfigSource(source_id=MAIN_SOURCE_ID)
        return parse_source(MAIN_SOURCE_ID, text)

    def add_command(self, name: str, template: str, description: Optional[str] = None) -> None:
        """Add or replace a command in the main source."""
        reason = validate_command_name(name)
        if reason:
            raise ConfigValidationError(MAIN_SOURCE_ID, reason)
        if not template.strip():
            raise ConfigValidationError(MAIN_SOURCE_ID, f"command '{name}' has an empty template")

        source = self._main_source()
        source.commands[name] = CommandDefinition(
            name=name, template=template, source_id=MAIN_SOURCE_ID, description=description
        )
        self._storage.write_source(MAIN_SOURCE, render_source(source, header=False))
        self._invalidate()

    def remove_command(self, name: str) -> bool:
        """Remove a command from the main source."""
        source = self._main_source()
        if name not in source.commands:
            return False
        del source.commands[name]
        self._storage.write_source(MAIN_SOURCE, render_source(source, header=False))
        self._invalidate()
        return True

    # Import / sync

    def import_single(self, ref: str) -> ConfigSource:
        source = self._importer.import_single(ref)
        self._invalidate()
        return source

    def import_repo(self, ref: str) -> RepoImportReport:
        report = self._importer.import_repo(ref)
        self._invalidate()
        return report

    def sync_all(self) -> SyncReport:
        report = self._importer.sync()
        self._invalidate()
        return report

    def close(self) -> None:
        self._github.close()

