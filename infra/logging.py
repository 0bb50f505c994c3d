"""
Doo Centralized Logging
-----------------------
Structured logging with invocation_id propagation.

Design:
- Every CLI invocation gets a unique invocation_id
- invocation_id is attached to every record by a filter
- Console output goes through Rich on stderr, file output is JSON lines
- Severity discipline: INFO=state change, WARNING=recoverable, ERROR=abort

Usage:
    from infra.logging import get_logger, InvocationContext

    logger = get_logger("registry")

    with InvocationContext() as invocation_id:
        logger.info("Loading sources")
"""

import contextvars
import json
import logging
import logging.handlers
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from rich.console import Console
from rich.logging import RichHandler

_invocation_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "invocation_id", default=None
)

LOGGER_NAMESPACE = "doo"


def generate_invocation_id() -> str:
    """Generate a unique invocation ID."""
    return f"inv_{uuid.uuid4().hex[:12]}"


def get_invocation_id() -> Optional[str]:
    """Get the current invocation ID from context."""
    return _invocation_id_var.get()


class InvocationContext:
    """
    Context manager for invocation scoping.

    Usage:
        with InvocationContext() as invocation_id:
            logger.info("Processing...")
    """

    def __init__(self, invocation_id: Optional[str] = None):
        self._invocation_id = invocation_id or generate_invocation_id()
        self._token: Optional[contextvars.Token] = None

    def __enter__(self) -> str:
        self._token = _invocation_id_var.set(self._invocation_id)
        return self._invocation_id

    def __exit__(self, *args) -> None:
        if self._token is not None:
            _invocation_id_var.reset(self._token)


class InvocationIdFilter(logging.Filter):
    """Logging filter that adds invocation_id to every log record."""

    def filter(self, record: logging.LogRecord) -> bool:
        if getattr(record, "invocation_id", None) is None:
            record.invocation_id = get_invocation_id() or "-"
        return True


class JSONFormatter(logging.Formatter):
    """JSON formatter for structured file logging."""

    EXTRA_FIELDS = ("source_id", "command", "context", "ref")

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "invocation_id": getattr(record, "invocation_id", "-"),
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        for key in self.EXTRA_FIELDS:
            if hasattr(record, key):
                log_entry[key] = getattr(record, key)

        return json.dumps(log_entry)


_logging_initialized = False


def configure_logging(
    level: int = logging.WARNING,
    log_dir: Optional[str] = None,
    console: bool = True,
    file: bool = False,
    force: bool = False,
) -> None:
    """
    Configure the doo logging system.

    Args:
        level: Console logging level (default WARNING, the launcher is quiet)
        log_dir: Directory for the JSON log file
        console: Enable Rich console output on stderr
        file: Enable file output (requires log_dir)
        force: Reconfigure even if already initialized
    """
    global _logging_initialized

    if _logging_initialized and not force:
        return

    root_logger = logging.getLogger(LOGGER_NAMESPACE)
    root_logger.setLevel(logging.DEBUG if file else level)
    root_logger.handlers.clear()
    root_logger.propagate = False

    invocation_filter = InvocationIdFilter()

    if console:
        console_handler = RichHandler(
            console=Console(stderr=True),
            rich_tracebacks=True,
            show_path=False,
        )
        console_handler.setLevel(level)
        console_handler.addFilter(invocation_filter)
        root_logger.addHandler(console_handler)

    if file and log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            str(log_path / "doo.log"),
            maxBytes=5 * 1024 * 1024,
            backupCount=3,
            encoding="utf-8",
        )
        file_handler.setLevel(logging.DEBUG)  # File gets everything
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(invocation_filter)
        root_logger.addHandler(file_handler)

    _logging_initialized = True


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger with the doo namespace.

    Args:
        name: Logger name (prefixed with 'doo.' if not already)
    """
    if not name.startswith(LOGGER_NAMESPACE):
        name = f"{LOGGER_NAMESPACE}.{name}"

    return logging.getLogger(name)
