"""
Source Schema
-------------
Parsing, validation and rendering of command-source files.

File format:
    # yaml-language-server: $schema=https://bucket.u11g.com/doo-config.schema.json
    commands:
      pods: "kubectl get pods -n #1"
      watch:
        command: "watch kubectl -n #1 get pods"
        description: "Watch pods in namespace #1"
    origin:                      # written by the import engine only
      repo: owner/repo
      import_type: Public        # or Private
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional
import re

import yaml

from core.errors import ConfigValidationError

SCHEMA_URL = "https://bucket.u11g.com/doo-config.schema.json"
SCHEMA_HEADER = f"# yaml-language-server: $schema={SCHEMA_URL}"
SCHEMA_PREFIX = "# yaml-language-server:"

NAME_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")
REPO_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9_-]*/[A-Za-z0-9_.-]+$")
RESERVED_NAMES = frozenset({"var", "context", "import", "import-repo", "sync"})


class Visibility(Enum):
    """How an imported source was fetched."""
    PUBLIC = "Public"    # GitHub contents API
    PRIVATE = "Private"  # git clone with the host's credentials


@dataclass(frozen=True)
class SourceOrigin:
    """Where an imported source came from, used by sync."""
    repo: str
    visibility: Visibility

    @property
    def owner(self) -> str:
        return self.repo.split("/", 1)[0]

    @property
    def repo_name(self) -> str:
        return self.repo.split("/", 1)[1]

    def to_dict(self) -> Dict[str, str]:
        return {"repo": self.repo, "import_type": self.visibility.value}


@dataclass(frozen=True)
class CommandDefinition:
    """One named command template from one source."""
    name: str
    template: str
    source_id: str
    description: Optional[str] = None

    def __repr__(self) -> str:
        return f"CommandDefinition(name={self.name}, source={self.source_id})"


@dataclass
class ConfigSource:
    """One loaded definition file."""
    source_id: str
    commands: Dict[str, CommandDefinition] = field(default_factory=dict)
    origin: Optional[SourceOrigin] = None

    def __len__(self) -> int:
        return len(self.commands)

    def __contains__(self, name: str) -> bool:
        return name in self.commands


def validate_command_name(name: Any) -> Optional[str]:
    """Return a reason when a command name is invalid, None otherwise."""
    if not isinstance(name, str) or not NAME_PATTERN.match(name):
        return f"invalid command name {name!r} (allowed: letters, digits, '_' and '-')"
    if name in RESERVED_NAMES:
        return f"command name '{name}' is reserved"
    return None


def is_repo_slug(ref: str) -> bool:
    """True for 'owner/repo' references."""
    return bool(REPO_PATTERN.match(ref)) and ".." not in ref


def _parse_entry(source_id: str, name: str, entry: Any) -> CommandDefinition:
    if isinstance(entry, str):
        template, description = entry, None
    elif isinstance(entry, dict):
        template = entry.get("command")
        description = entry.get("description")
        if not isinstance(template, str):
            raise ConfigValidationError(source_id, f"command '{name}' has no string 'command' field")
        if description is not None and not isinstance(description, str):
            raise ConfigValidationError(source_id, f"description of '{name}' must be a string")
    else:
        raise ConfigValidationError(
            source_id, f"command '{name}' must be a string or a mapping with 'command'"
        )

    if not template.strip():
        raise ConfigValidationError(source_id, f"command '{name}' has an empty template")

    return CommandDefinition(name=name, template=template, source_id=source_id, description=description)


def _parse_origin(source_id: str, data: Any) -> SourceOrigin:
    if not isinstance(data, dict):
        raise ConfigValidationError(source_id, "'origin' must be a mapping")

    repo = data.get("repo")
    if not isinstance(repo, str) or not is_repo_slug(repo):
        raise ConfigValidationError(source_id, f"origin repo {repo!r} is not in owner/repo form")

    try:
        visibility = Visibility(data.get("import_type"))
    except ValueError:
        raise ConfigValidationError(
            source_id, f"origin import_type {data.get('import_type')!r} must be Public or Private"
        ) from None

    return SourceOrigin(repo=repo, visibility=visibility)


def parse_source(source_id: str, text: str) -> ConfigSource:
    """
    Parse and validate one source document.

    Raises ConfigValidationError describing the first problem found.
    """
    try:
        data = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigValidationError(source_id, f"not valid YAML: {e}") from e

    if not isinstance(data, dict):
        raise ConfigValidationError(source_id, "top level must be a mapping")

    if "commands" not in data:
        raise ConfigValidationError(source_id, "missing 'commands' key")

    raw_commands = data["commands"]
    if raw_commands is None:
        raw_commands = {}
    if not isinstance(raw_commands, dict):
        raise ConfigValidationError(source_id, "'commands' must be a mapping")

    source = ConfigSource(source_id=source_id)

    for name, entry in raw_commands.items():
        reason = validate_command_name(name)
        if reason:
            raise ConfigValidationError(source_id, reason)
        source.commands[name] = _parse_entry(source_id, name, entry)

    if data.get("origin") is not None:
        source.origin = _parse_origin(source_id, data["origin"])

    return source


def render_source(source: ConfigSource, header: bool = True) -> str:
    """Serialize a source back to YAML, origin last."""
    commands: Dict[str, Any] = {}
    for name, definition in source.commands.items():
        if definition.description:
            commands[name] = {"command": definition.template, "description": definition.description}
        else:
            commands[name] = definition.template

    document: Dict[str, Any] = {"commands": commands}
    if source.origin:
        document["origin"] = source.origin.to_dict()

    body = yaml.safe_dump(document, default_flow_style=False, sort_keys=False, allow_unicode=True)
    if header:
        return f"{SCHEMA_HEADER}\n\n{body}"
    return body


def ensure_schema_header(text: str) -> str:
    """Prepend the schema reference unless the first line already is one."""
    if text.lstrip().startswith(SCHEMA_PREFIX):
        return text
    return f"{SCHEMA_HEADER}\n\n{text}"
