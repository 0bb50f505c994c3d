"""
GitHub Access
-------------
Fetches doo config files from GitHub.

Two paths:
- GitHubClient: public repositories through the contents API (httpx)
- GitCloner:    any repository through `git clone`, using the host's
                configured credentials (SSH keys, credential helpers)

No retries. Transport failures surface as RemoteError.
"""

from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple
import base64
import binascii
import os
import shutil
import subprocess

import httpx

from core.errors import DooError, ErrorCategory
from infra.logging import get_logger

CONFIG_FILENAMES = ("doo.yaml", "doo.yml")
USER_AGENT = "doo-cli/0.1.0"


class RemoteError(DooError):
    """A remote repository could not be reached or read."""

    category = ErrorCategory.IMPORT


class RepositoryNotFoundError(RemoteError):
    """The contents API reports the repository as missing (or private)."""


class ConfigFileNotFoundError(RemoteError):
    """The repository has no doo.yaml / doo.yml at its root."""

    def __init__(self, repo: str):
        super().__init__(
            f"No doo configuration file found in repository '{repo}'. "
            f"Expected {' or '.join(CONFIG_FILENAMES)} in the repository root."
        )
        self.repo = repo


class GitHubClient:
    """
    Minimal GitHub contents API client.

    Rules:
    - Token read from settings only, never logged
    - One request per call, no retries
    """

    def __init__(
        self,
        api_url: str = "https://api.github.com",
        token: Optional[str] = None,
        timeout_seconds: float = 30.0,
        client: Optional[httpx.Client] = None,
    ):
        self._api_url = api_url.rstrip("/")
        self._token = token
        self._timeout = timeout_seconds
        self._client = client
        self._logger = get_logger("remote.github")

    def _get_headers(self) -> dict:
        headers = {
            "Accept": "application/vnd.github+json",
            "User-Agent": USER_AGENT,
        }
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        return headers

    def _http(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self._timeout, headers=self._get_headers())
        return self._client

    def _get(self, path: str) -> httpx.Response:
        url = f"{self._api_url}/{path.lstrip('/')}"
        try:
            return self._http().get(url, headers=self._get_headers())
        except httpx.HTTPError as e:
            raise RemoteError(f"Failed to connect to GitHub API: {e}") from e

    def fetch_config(self, repo: str) -> Tuple[str, str]:
        """
        Return (filename, text) of the repository's root doo config.

        Raises:
            RepositoryNotFoundError: repository missing or not public
            ConfigFileNotFoundError: no doo.yaml / doo.yml
            RemoteError: transport or decoding failure
        """
        response = self._get(f"repos/{repo}")
        if response.status_code == 404:
            raise RepositoryNotFoundError(f"Repository '{repo}' not found or not public")
        if not response.is_success:
            raise RemoteError(f"Failed to access repository '{repo}': HTTP {response.status_code}")

        for filename in CONFIG_FILENAMES:
            response = self._get(f"repos/{repo}/contents/{filename}")
            if response.status_code == 404:
                continue
            if not response.is_success:
                raise RemoteError(f"Failed to fetch {filename} from '{repo}': HTTP {response.status_code}")

            self._logger.debug(f"Fetched {filename} from {repo}")
            return filename, self._decode(response, repo, filename)

        raise ConfigFileNotFoundError(repo)

    @staticmethod
    def _decode(response: httpx.Response, repo: str, filename: str) -> str:
        try:
            payload = response.json()
        except ValueError as e:
            raise RemoteError(f"Failed to parse GitHub API response for {repo}/{filename}") from e

        if not isinstance(payload, dict) or payload.get("encoding") != "base64":
            raise RemoteError(f"Unexpected content encoding for {repo}/{filename}")

        try:
            raw = base64.b64decode(payload.get("content", "").replace("\n", ""))
            return raw.decode("utf-8")
        except (binascii.Error, UnicodeDecodeError) as e:
            raise RemoteError(f"Failed to decode {repo}/{filename}: {e}") from e

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


# Signature of subprocess.run, injectable for tests
CommandRunner = Callable[..., subprocess.CompletedProcess]


class GitCloner:
    """
    Shallow clones through the git CLI.

    Authentication is whatever git is configured with on the host.
    """

    def __init__(
        self,
        runner: Optional[CommandRunner] = None,
        base_urls: Sequence[str] = ("git@github.com:{repo}.git", "https://github.com/{repo}.git"),
        interactive: bool = True,
    ):
        self._run = runner or subprocess.run
        self._base_urls = list(base_urls)
        self._interactive = interactive
        self._logger = get_logger("remote.git")

    def _env(self) -> dict:
        env = dict(os.environ)
        if not self._interactive:
            env["GIT_TERMINAL_PROMPT"] = "0"
        return env

    def check_available(self) -> None:
        """Raise RemoteError when git is not on PATH."""
        try:
            self._run(["git", "--version"], capture_output=True, text=True, check=False)
        except OSError as e:
            raise RemoteError(
                "Git command not found. Importing repositories needs git installed "
                "and authentication set up (SSH keys or git credentials)."
            ) from e

    def clone_urls(self, repo: str) -> List[str]:
        return [template.format(repo=repo) for template in self._base_urls]

    def clone(self, repo: str, destination: Path) -> str:
        """
        Clone `repo` into `destination`, trying SSH then HTTPS.

        Returns the URL that worked.
        """
        self.check_available()
        last_error = ""

        for url in self.clone_urls(repo):
            if destination.exists():
                shutil.rmtree(destination, ignore_errors=True)

            self._logger.info(f"Cloning {url}")
            try:
                result = self._run(
                    ["git", "clone", "--depth=1", "--quiet", url, str(destination)],
                    capture_output=True,
                    text=True,
                    check=False,
                    env=self._env(),
                )
            except OSError as e:
                last_error = str(e)
                continue

            if result.returncode == 0:
                return url
            last_error = (result.stderr or "").strip()
            self._logger.debug(f"Clone of {url} failed: {last_error}")

        raise RemoteError(
            f"Failed to clone repository '{repo}'. Check that it exists and that your "
            f"git authentication is set up. Last error: {last_error or 'unknown'}"
        )

    @staticmethod
    def read_root_config(checkout: Path, repo: str) -> Tuple[str, str]:
        """Return (filename, text) of the root doo config in a checkout."""
        for filename in CONFIG_FILENAMES:
            path = checkout / filename
            if path.is_file():
                return filename, path.read_text(encoding="utf-8")
        raise ConfigFileNotFoundError(repo)
