# Infrastructure module - Logging, settings and configuration storage

from .logging import (
    get_logger, configure_logging, InvocationContext,
    get_invocation_id, generate_invocation_id
)
from .settings import Settings, default_config_dir
from .storage import (
    Storage, FileStorage, MemoryStorage, SourceKey,
    MAIN_SOURCE, MAIN_SOURCE_ID
)

__all__ = [
    # Logging
    "get_logger",
    "configure_logging",
    "InvocationContext",
    "get_invocation_id",
    "generate_invocation_id",
    # Settings
    "Settings",
    "default_config_dir",
    # Storage
    "Storage",
    "FileStorage",
    "MemoryStorage",
    "SourceKey",
    "MAIN_SOURCE",
    "MAIN_SOURCE_ID",
]
