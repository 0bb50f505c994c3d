# Remote module - GitHub access and the import/sync engine
# Network and git calls are blocking, no retries

from .github import GitHubClient, GitCloner, RemoteError, RepositoryNotFoundError, ConfigFileNotFoundError
from .importer import ImportEngine, RepoImportReport, SyncReport, group_name

__all__ = [
    "GitHubClient",
    "GitCloner",
    "RemoteError",
    "RepositoryNotFoundError",
    "ConfigFileNotFoundError",
    "ImportEngine",
    "RepoImportReport",
    "SyncReport",
    "group_name",
]
