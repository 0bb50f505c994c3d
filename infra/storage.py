"""
Configuration Storage
---------------------
Key-value view of the configuration directory.

Namespaces:
- sources:   main source, flat imported files, repository groups
- variables: one document per context
- state:     the active-context pointer

Design:
- Every document is written independently (temp file + os.replace),
  so a crash corrupts at most one file
- Documents are exchanged as raw text; parsing belongs to the callers
- MemoryStorage has the same contract and backs the tests

Layout of FileStorage:
    <root>/config.yaml                      main source
    <root>/configs/<name>.yaml|.yml         flat imported sources
    <root>/configs/<group>/<name>.yaml|.yml repository imports
    <root>/variables/<context>.yaml         variable stores
    <root>/current_context                  active context name
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import os
import tempfile

from core.errors import StorageError
from infra.logging import get_logger

MAIN_SOURCE_ID = "main"
YAML_SUFFIXES = (".yaml", ".yml")


@dataclass(frozen=True)
class SourceKey:
    """Location of one source document."""
    name: str
    group: Optional[str] = None

    @property
    def source_id(self) -> str:
        if self.group:
            return f"{self.group}_{self.name}"
        return self.name

    @property
    def is_main(self) -> bool:
        return self.group is None and self.name == MAIN_SOURCE_ID

    @property
    def display_path(self) -> str:
        if self.group:
            return f"{self.group}/{self.name}"
        return self.name


MAIN_SOURCE = SourceKey(MAIN_SOURCE_ID)


class Storage:
    """Interface shared by the file and in-memory backends."""

    # Sources

    def list_sources(self) -> List[SourceKey]:
        """Main source first, then flat sources, then groups, each sorted by name."""
        raise NotImplementedError

    def read_source(self, key: SourceKey) -> Optional[str]:
        raise NotImplementedError

    def write_source(self, key: SourceKey, text: str) -> None:
        raise NotImplementedError

    def delete_source(self, key: SourceKey) -> bool:
        raise NotImplementedError

    def list_groups(self) -> List[str]:
        raise NotImplementedError

    # Variables

    def read_variables(self, context: str) -> Optional[str]:
        raise NotImplementedError

    def write_variables(self, context: str, text: str) -> None:
        raise NotImplementedError

    def list_variable_contexts(self) -> List[str]:
        raise NotImplementedError

    # State

    def read_active_context(self) -> Optional[str]:
        raise NotImplementedError

    def write_active_context(self, name: str) -> None:
        raise NotImplementedError

    def find_source(self, source_id: str) -> Optional[SourceKey]:
        """Return the key whose source_id matches, if any."""
        for key in self.list_sources():
            if key.source_id == source_id:
                return key
        return None


class MemoryStorage(Storage):
    """In-memory storage. Nothing touches the disk."""

    def __init__(self):
        self._sources: Dict[Tuple[Optional[str], str], str] = {}
        self._variables: Dict[str, str] = {}
        self._active_context: Optional[str] = None

    def list_sources(self) -> List[SourceKey]:
        keys = [SourceKey(name, group) for group, name in self._sources]
        keys.sort(key=lambda k: (not k.is_main, k.group is not None, k.group or "", k.name))
        return keys

    def read_source(self, key: SourceKey) -> Optional[str]:
        return self._sources.get((key.group, key.name))

    def write_source(self, key: SourceKey, text: str) -> None:
        self._sources[(key.group, key.name)] = text

    def delete_source(self, key: SourceKey) -> bool:
        return self._sources.pop((key.group, key.name), None) is not None

    def list_groups(self) -> List[str]:
        return sorted({group for group, _ in self._sources if group})

    def read_variables(self, context: str) -> Optional[str]:
        return self._variables.get(context)

    def write_variables(self, context: str, text: str) -> None:
        self._variables[context] = text

    def list_variable_contexts(self) -> List[str]:
        return sorted(self._variables)

    def read_active_context(self) -> Optional[str]:
        return self._active_context

    def write_active_context(self, name: str) -> None:
        self._active_context = name


class FileStorage(Storage):
    """Storage backed by the configuration directory."""

    def __init__(self, root: Path):
        self._root = Path(root)
        self._configs_dir = self._root / "configs"
        self._variables_dir = self._root / "variables"
        self._logger = get_logger("infra.storage")

        try:
            self._configs_dir.mkdir(parents=True, exist_ok=True)
            self._variables_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StorageError(f"Failed to create config directory {self._root}: {e}") from e

    @property
    def root(self) -> Path:
        return self._root

    @property
    def main_path(self) -> Path:
        return self._root / "config.yaml"

    # Path helpers

    @staticmethod
    def _yaml_files(directory: Path) -> List[Path]:
        if not directory.is_dir():
            return []
        return sorted(
            p for p in directory.iterdir()
            if p.is_file() and p.suffix in YAML_SUFFIXES
        )

    def _group_dir(self, group: str) -> Path:
        return self._configs_dir / group

    def _source_path(self, key: SourceKey) -> Path:
        """Existing path for a key, or the .yaml path it would be written to."""
        if key.is_main:
            return self.main_path

        directory = self._group_dir(key.group) if key.group else self._configs_dir
        for suffix in YAML_SUFFIXES:
            candidate = directory / f"{key.name}{suffix}"
            if candidate.is_file():
                return candidate
        return directory / f"{key.name}.yaml"

    def _read(self, path: Path) -> Optional[str]:
        if not path.is_file():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise StorageError(f"Failed to read {path}: {e}") from e

    def _write_atomic(self, path: Path, text: str) -> None:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(path.parent), prefix=f".{path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    f.write(text)
                os.replace(tmp_name, path)
            except BaseException:
                Path(tmp_name).unlink(missing_ok=True)
                raise
        except OSError as e:
            raise StorageError(f"Failed to write {path}: {e}") from e

    # Sources

    def list_sources(self) -> List[SourceKey]:
        keys: List[SourceKey] = []
        if self.main_path.is_file():
            keys.append(MAIN_SOURCE)

        seen = set()
        for path in self._yaml_files(self._configs_dir):
            if path.stem == MAIN_SOURCE_ID:
                self._logger.warning(f"Ignoring {path}: '{MAIN_SOURCE_ID}' is reserved for config.yaml")
                continue
            if path.stem in seen:
                self._logger.warning(f"Ignoring {path}: duplicate source name")
                continue
            seen.add(path.stem)
            keys.append(SourceKey(path.stem))

        for group in self.list_groups():
            group_seen = set()
            for path in self._yaml_files(self._group_dir(group)):
                if path.stem in group_seen:
                    continue
                group_seen.add(path.stem)
                keys.append(SourceKey(path.stem, group))

        return keys

    def read_source(self, key: SourceKey) -> Optional[str]:
        return self._read(self._source_path(key))

    def write_source(self, key: SourceKey, text: str) -> None:
        self._write_atomic(self._source_path(key), text)

    def delete_source(self, key: SourceKey) -> bool:
        path = self._source_path(key)
        if not path.is_file():
            return False
        try:
            path.unlink()
            # Last member of a group takes the directory with it
            if key.group and not any(path.parent.iterdir()):
                path.parent.rmdir()
        except OSError as e:
            raise StorageError(f"Failed to delete {path}: {e}") from e
        return True

    def list_groups(self) -> List[str]:
        if not self._configs_dir.is_dir():
            return []
        return sorted(
            p.name for p in self._configs_dir.iterdir()
            if p.is_dir() and not p.name.startswith(".")
        )

    # Variables

    def read_variables(self, context: str) -> Optional[str]:
        return self._read(self._variables_dir / f"{context}.yaml")

    def write_variables(self, context: str, text: str) -> None:
        self._write_atomic(self._variables_dir / f"{context}.yaml", text)

    def list_variable_contexts(self) -> List[str]:
        return [p.stem for p in self._yaml_files(self._variables_dir) if p.suffix == ".yaml"]

    # State

    def read_active_context(self) -> Optional[str]:
        text = self._read(self._root / "current_context")
        if text is None:
            return None
        return text.strip() or None

    def write_active_context(self, name: str) -> None:
        self._write_atomic(self._root / "current_context", name)
