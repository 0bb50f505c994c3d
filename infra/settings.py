"""
Settings
--------
Runtime configuration for the launcher.
Defaults are overridden by DOO_* environment variables.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional
import logging
import os


def default_config_dir() -> Path:
    """Return ~/.config/doo, honouring XDG_CONFIG_HOME."""
    base = os.getenv("XDG_CONFIG_HOME")
    root = Path(base) if base else Path.home() / ".config"
    return root / "doo"


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass
class Settings:
    """Configuration for one launcher instance."""
    config_dir: Path
    log_level: str = "WARNING"
    log_dir: Optional[Path] = None
    github_api: str = "https://api.github.com"
    github_token: Optional[str] = None
    http_timeout_seconds: float = 30.0
    non_interactive: bool = False
    dry_run: bool = False

    @property
    def log_level_value(self) -> int:
        return getattr(logging, self.log_level.upper(), logging.WARNING)

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        """
        Build settings from the environment.

        Recognised variables:
            DOO_CONFIG_DIR, DOO_LOG_LEVEL, DOO_LOG_DIR, DOO_GITHUB_API,
            DOO_HTTP_TIMEOUT, DOO_NON_INTERACTIVE, GITHUB_TOKEN
        """
        env = os.environ if environ is None else environ

        config_dir = env.get("DOO_CONFIG_DIR")
        log_dir = env.get("DOO_LOG_DIR")
        timeout = env.get("DOO_HTTP_TIMEOUT")

        return cls(
            config_dir=Path(config_dir).expanduser() if config_dir else default_config_dir(),
            log_level=env.get("DOO_LOG_LEVEL", "WARNING"),
            log_dir=Path(log_dir).expanduser() if log_dir else None,
            github_api=env.get("DOO_GITHUB_API", "https://api.github.com"),
            github_token=env.get("GITHUB_TOKEN") or None,
            http_timeout_seconds=float(timeout) if timeout else 30.0,
            non_interactive=_as_bool(env.get("DOO_NON_INTERACTIVE", "")),
        )
