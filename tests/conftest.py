"""
doo Test Configuration
----------------------
Shared fixtures and configuration for all tests.

Test isolation:
- No test touches the real ~/.config/doo
- No test reaches the network or runs a real git clone
"""

import base64
import subprocess
import sys
from pathlib import Path
from typing import Dict, List

import httpx
import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from infra.settings import Settings
from infra.storage import FileStorage, MemoryStorage
from remote.github import GitCloner, GitHubClient


# =============================================================================
# Test Isolation: Block Side Effects
# =============================================================================

@pytest.fixture(autouse=True)
def isolate_config_dir(tmp_path, monkeypatch):
    """Point every default config location at a temp directory."""
    monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path / "xdg"))
    monkeypatch.setenv("DOO_CONFIG_DIR", str(tmp_path / "doo-config"))
    monkeypatch.delenv("GITHUB_TOKEN", raising=False)
    monkeypatch.delenv("DOO_NON_INTERACTIVE", raising=False)
    monkeypatch.delenv("DOO_LOG_DIR", raising=False)


@pytest.fixture(autouse=True)
def block_network(monkeypatch):
    """
    Block real HTTP traffic.

    Clients built with an explicit MockTransport are unaffected.
    """
    def _blocked(self, request, *args, **kwargs):
        raise RuntimeError(f"Network access is forbidden during tests: {request.url}")

    monkeypatch.setattr(httpx.HTTPTransport, "handle_request", _blocked)


# =============================================================================
# Fakes
# =============================================================================

class FakeGitHub:
    """Serves repositories through the GitHub contents API shape."""

    def __init__(self):
        self.repos: Dict[str, Dict[str, str]] = {}
        self.requests: List[str] = []

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        parts = request.url.path.strip("/").split("/")

        if len(parts) >= 3 and parts[0] == "repos":
            repo = f"{parts[1]}/{parts[2]}"
            files = self.repos.get(repo)
            if files is None:
                return httpx.Response(404, json={"message": "Not Found"})
            if len(parts) == 3:
                return httpx.Response(200, json={"name": parts[2], "description": None})
            if len(parts) == 5 and parts[3] == "contents" and parts[4] in files:
                encoded = base64.b64encode(files[parts[4]].encode("utf-8")).decode("ascii")
                # The API wraps base64 at 60 columns
                wrapped = "\n".join(encoded[i:i + 60] for i in range(0, len(encoded), 60))
                return httpx.Response(200, json={"name": parts[4], "encoding": "base64", "content": wrapped})

        return httpx.Response(404, json={"message": "Not Found"})

    def client(self) -> GitHubClient:
        return GitHubClient(client=httpx.Client(transport=httpx.MockTransport(self.handler)))


class FakeGit:
    """Stands in for subprocess.run when git is invoked."""

    def __init__(self):
        self.repos: Dict[str, Dict[str, str]] = {}
        self.calls: List[List[str]] = []

    def __call__(self, args, **kwargs) -> subprocess.CompletedProcess:
        self.calls.append(list(args))

        if args[:2] == ["git", "--version"]:
            return subprocess.CompletedProcess(args, 0, "git version 2.45.0\n", "")

        if args[:2] == ["git", "clone"]:
            url, destination = args[-2], Path(args[-1])
            for repo, files in self.repos.items():
                if url.endswith(f"{repo}.git"):
                    destination.mkdir(parents=True, exist_ok=True)
                    (destination / ".git").mkdir(exist_ok=True)
                    for name, text in files.items():
                        (destination / name).write_text(text, encoding="utf-8")
                    return subprocess.CompletedProcess(args, 0, "", "")
            return subprocess.CompletedProcess(args, 128, "", f"fatal: repository '{url}' not found")

        raise AssertionError(f"Unexpected command: {args}")

    @property
    def clone_calls(self) -> List[List[str]]:
        return [call for call in self.calls if call[:2] == ["git", "clone"]]


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture(scope="session")
def project_root():
    """Return the project root path."""
    return PROJECT_ROOT


@pytest.fixture
def memory_storage():
    return MemoryStorage()


@pytest.fixture
def file_storage(tmp_path):
    return FileStorage(tmp_path / "config")


@pytest.fixture
def fake_github():
    return FakeGitHub()


@pytest.fixture
def fake_git():
    return FakeGit()


@pytest.fixture
def git_cloner(fake_git):
    return GitCloner(runner=fake_git, interactive=False)


@pytest.fixture
def settings(tmp_path):
    return Settings(config_dir=tmp_path / "config", non_interactive=True)


@pytest.fixture
def write_yaml(tmp_path):
    """Write a YAML file outside the config dir and return its path."""
    def _write(name: str, text: str) -> Path:
        path = tmp_path / "incoming" / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path
    return _write
