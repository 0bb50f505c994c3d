"""
Import / Sync Engine
--------------------
Pulls external config sources into local storage and keeps them current.

Naming (deterministic, collision-free):
- local file        -> <stem>, then <stem>_1, <stem>_2 ... if taken by other content
- remote doo.yaml   -> <owner>-<repo>
- repository import -> <owner>-<repo>_<stem>, stored in group <owner>-<repo>

Rules:
- Every stored import gets the schema header
- Remote imports carry an origin record so sync can re-fetch them
- One bad file or one unreachable origin never aborts the others
"""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Tuple
import re
import tempfile

from commands.schema import (
    ConfigSource, SourceOrigin, Visibility,
    ensure_schema_header, is_repo_slug, parse_source, render_source,
)
from core.errors import ConfigValidationError, DooError, SourceImportError, SyncError
from infra.logging import get_logger
from infra.storage import Storage, SourceKey, YAML_SUFFIXES

from .github import GitCloner, GitHubClient, RemoteError, RepositoryNotFoundError

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


@dataclass
class RepoImportReport:
    """Result of importing every config file of one repository."""
    repo: str
    imported: List[ConfigSource] = field(default_factory=list)
    skipped: Dict[str, str] = field(default_factory=dict)  # filename -> reason

    @property
    def source_ids(self) -> List[str]:
        return [source.source_id for source in self.imported]


@dataclass
class SyncReport:
    """Per-source outcome of a sync run."""
    updated: List[str] = field(default_factory=list)
    unchanged: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)  # source_id -> reason
    errors: List[SyncError] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed

    @property
    def total(self) -> int:
        return len(self.updated) + len(self.unchanged) + len(self.removed) + len(self.failed)

    def fail(self, source_id: str, reason: str) -> None:
        error = SyncError(source_id, reason)
        self.failed[source_id] = reason
        self.errors.append(error)


@dataclass
class _Prepared:
    """A validated source ready to be written."""
    key: SourceKey
    source: ConfigSource
    text: str


def group_name(repo: str) -> str:
    """Storage group (and source-id prefix) for a repository."""
    owner, name = repo.split("/", 1)
    return f"{owner}-{name}"


def _safe_stem(stem: str) -> str:
    return _UNSAFE_CHARS.sub("-", stem).strip("-") or "imported"


class ImportEngine:
    """
    Imports config sources from local files and GitHub, and syncs them.

    Responsibilities:
    - Validate fetched files with the same schema as the registry
    - Assign deterministic source ids
    - Write each source independently through Storage
    """

    def __init__(
        self,
        storage: Storage,
        github: Optional[GitHubClient] = None,
        git: Optional[GitCloner] = None,
    ):
        self._storage = storage
        self._github = github or GitHubClient()
        self._git = git or GitCloner()
        self._logger = get_logger("remote.importer")

    # Validation helpers

    @staticmethod
    def _parse_with_commands(source_id: str, text: str) -> ConfigSource:
        source = parse_source(source_id, text)
        if not source.commands:
            raise ConfigValidationError(source_id, "file contains no commands")
        return source

    def _prepare_remote(self, key: SourceKey, text: str, origin: SourceOrigin) -> _Prepared:
        source = self._parse_with_commands(key.source_id, text)
        source.origin = origin
        return _Prepared(key=key, source=source, text=render_source(source))

    # Single import

    def import_single(self, ref: str) -> ConfigSource:
        """
        Import one source from a local path or an `owner/repo` slug.

        Raises SourceImportError on any failure; nothing is written then.
        """
        path = Path(ref).expanduser()
        if path.is_file():
            return self._import_local(ref, path)
        if is_repo_slug(ref):
            return self._import_remote(ref)
        raise SourceImportError(ref, "not an existing file and not an owner/repo reference")

    def _import_local(self, ref: str, path: Path) -> ConfigSource:
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise SourceImportError(ref, f"cannot read file: {e}") from e

        base = _safe_stem(path.stem)
        stored_text = ensure_schema_header(text)

        try:
            self._parse_with_commands(base, stored_text)
        except ConfigValidationError as e:
            raise SourceImportError(ref, e.reason) from e

        key = self._unique_local_key(base, stored_text)
        if self._storage.read_source(key) == stored_text:
            self._logger.info(f"Source '{key.source_id}' already imported with identical content")
        else:
            self._storage.write_source(key, stored_text)
            self._logger.info(f"Imported {path} as '{key.source_id}'")

        return parse_source(key.source_id, stored_text)

    def _unique_local_key(self, base: str, text: str) -> SourceKey:
        """First free id among base, base_1, ... or the one already holding `text`."""
        taken = {key.source_id: key for key in self._storage.list_sources()}
        candidate = base
        counter = 1
        while True:
            existing = taken.get(candidate)
            if existing is None:
                return SourceKey(candidate)
            if existing.group is None and not existing.is_main and self._storage.read_source(existing) == text:
                return existing
            candidate = f"{base}_{counter}"
            counter += 1

    def _import_remote(self, repo: str) -> ConfigSource:
        key = SourceKey(group_name(repo))
        existing = self._storage.find_source(key.source_id)
        if existing is not None and existing != key:
            raise SourceImportError(repo, f"source id '{key.source_id}' is already used by {existing.display_path}")

        try:
            text, visibility = self._fetch_root_config(repo)
            prepared = self._prepare_remote(key, text, SourceOrigin(repo=repo, visibility=visibility))
        except ConfigValidationError as e:
            raise SourceImportError(repo, e.reason) from e
        except (RemoteError, OSError, UnicodeDecodeError) as e:
            raise SourceImportError(repo, str(e)) from e

        self._storage.write_source(prepared.key, prepared.text)
        self._logger.info(f"Imported {repo} ({visibility.value}) as '{prepared.key.source_id}'")
        return prepared.source

    def _fetch_root_config(self, repo: str) -> Tuple[str, Visibility]:
        """Contents API first, git clone when the repository is not public."""
        try:
            _, text = self._github.fetch_config(repo)
            return text, Visibility.PUBLIC
        except RepositoryNotFoundError:
            self._logger.info(f"{repo} not accessible via public API, trying git clone")

        return self._clone_root_config(repo), Visibility.PRIVATE

    def _clone_root_config(self, repo: str) -> str:
        with tempfile.TemporaryDirectory(prefix="doo-") as tmp:
            checkout = Path(tmp) / "repo"
            self._git.clone(repo, checkout)
            _, text = self._git.read_root_config(checkout, repo)
            return text

    # Repository import

    def import_repo(self, repo: str) -> RepoImportReport:
        """
        Import every top-level YAML file of a repository as its own source.

        A previous import of the same repository is replaced. New files are
        written before stale members are deleted.
        """
        if not is_repo_slug(repo):
            raise SourceImportError(repo, "expected an owner/repo reference")

        try:
            prepared, skipped = self._clone_repo_sources(repo)
        except (RemoteError, OSError) as e:
            raise SourceImportError(repo, str(e)) from e

        report = RepoImportReport(repo=repo, skipped=skipped)
        for filename, reason in skipped.items():
            self._logger.warning(f"Skipped {repo}/{filename}: {reason}")

        if not prepared:
            raise SourceImportError(repo, "no valid YAML configuration files in the repository root")

        group = group_name(repo)
        previous = [key for key in self._storage.list_sources() if key.group == group]

        # New files first; a failed write leaves the previous import in place
        for item in prepared:
            self._storage.write_source(item.key, item.text)
            report.imported.append(item.source)

        fresh = {item.key for item in prepared}
        for key in previous:
            if key not in fresh:
                self._storage.delete_source(key)

        self._logger.info(f"Imported {len(prepared)} source(s) from {repo}")
        return report

    def _clone_repo_sources(self, repo: str) -> Tuple[List[_Prepared], Dict[str, str]]:
        group = group_name(repo)
        origin = SourceOrigin(repo=repo, visibility=Visibility.PRIVATE)
        prepared: List[_Prepared] = []
        skipped: Dict[str, str] = {}
        flat_ids = {key.source_id for key in self._storage.list_sources() if key.group is None}

        with tempfile.TemporaryDirectory(prefix="doo-") as tmp:
            checkout = Path(tmp) / "repo"
            self._git.clone(repo, checkout)

            seen = set()
            files = sorted(p for p in checkout.iterdir() if p.is_file() and p.suffix in YAML_SUFFIXES)
            for path in files:
                stem = _safe_stem(path.stem)
                if stem in seen:
                    skipped[path.name] = f"another file already provides '{stem}'"
                    continue
                key = SourceKey(stem, group)
                if key.source_id in flat_ids:
                    skipped[path.name] = f"source id '{key.source_id}' is already used by another source"
                    continue
                try:
                    text = path.read_text(encoding="utf-8")
                    prepared.append(self._prepare_remote(key, text, origin))
                    seen.add(stem)
                except ConfigValidationError as e:
                    skipped[path.name] = e.reason
                except (OSError, UnicodeDecodeError) as e:
                    skipped[path.name] = f"cannot read file: {e}"

        return prepared, skipped

    # Sync

    def sync(self) -> SyncReport:
        """Re-fetch every source that carries an origin record."""
        report = SyncReport()
        singles: List[Tuple[SourceKey, str, SourceOrigin]] = []
        groups: Dict[str, Dict[SourceKey, Tuple[str, SourceOrigin]]] = {}

        for key in self._storage.list_sources():
            text = self._storage.read_source(key)
            if text is None:
                continue
            try:
                source = parse_source(key.source_id, text)
            except ConfigValidationError as e:
                self._logger.warning(f"Not syncing {key.source_id}: {e.reason}")
                continue
            if source.origin is None:
                continue
            if key.group:
                groups.setdefault(key.group, {})[key] = (text, source.origin)
            else:
                singles.append((key, text, source.origin))

        for key, text, origin in singles:
            self._sync_single(key, text, origin, report)

        for group, members in groups.items():
            self._sync_group(group, members, report)

        self._logger.info(
            f"Sync finished: {len(report.updated)} updated, {len(report.unchanged)} unchanged, "
            f"{len(report.removed)} removed, {len(report.failed)} failed"
        )
        return report

    def _sync_single(self, key: SourceKey, current: str, origin: SourceOrigin, report: SyncReport) -> None:
        try:
            if origin.visibility is Visibility.PUBLIC:
                _, text = self._github.fetch_config(origin.repo)
            else:
                text = self._clone_root_config(origin.repo)
            prepared = self._prepare_remote(key, text, origin)
        except ConfigValidationError as e:
            report.fail(key.source_id, e.reason)
            return
        except (DooError, OSError, UnicodeDecodeError) as e:
            report.fail(key.source_id, str(e))
            return

        self._apply(prepared, current, report)

    def _sync_group(
        self,
        group: str,
        members: Dict[SourceKey, Tuple[str, SourceOrigin]],
        report: SyncReport,
    ) -> None:
        repo = next(iter(members.values()))[1].repo
        try:
            prepared, skipped = self._clone_repo_sources(repo)
        except (DooError, OSError) as e:
            for key in members:
                report.fail(key.source_id, str(e))
            return

        fresh = {item.key: item for item in prepared}
        skipped_stems = {_safe_stem(Path(name).stem): reason for name, reason in skipped.items()}

        for item in prepared:
            current = members[item.key][0] if item.key in members else None
            self._apply(item, current, report)

        for key in members:
            if key in fresh:
                continue
            if key.name in skipped_stems:
                report.fail(key.source_id, skipped_stems[key.name])
                continue
            self._storage.delete_source(key)
            report.removed.append(key.source_id)
            self._logger.info(f"Removed {key.source_id}: no longer in {repo}")

    def _apply(self, prepared: _Prepared, current: Optional[str], report: SyncReport) -> None:
        if current == prepared.text:
            report.unchanged.append(prepared.key.source_id)
            return
        self._storage.write_source(prepared.key, prepared.text)
        report.updated.append(prepared.key.source_id)
        self._logger.info(f"Updated {prepared.key.source_id}")
