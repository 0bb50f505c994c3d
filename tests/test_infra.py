"""
Infrastructure Tests
--------------------
Tests for settings, logging and error handling.
"""

import json
import logging
from pathlib import Path

import pytest

from core.errors import (
    AmbiguousCommandError, ConfigValidationError, DooError, ErrorCategory,
    ErrorHandler, MissingArgumentError, SourceImportError, UnknownCommandError,
)
from infra.logging import (
    InvocationContext, InvocationIdFilter, JSONFormatter,
    generate_invocation_id, get_invocation_id, get_logger,
)
from infra.settings import Settings, default_config_dir


class TestSettings:

    def test_defaults(self):
        settings = Settings.from_env({})

        assert settings.config_dir == default_config_dir()
        assert settings.log_level == "WARNING"
        assert settings.log_dir is None
        assert settings.github_api == "https://api.github.com"
        assert settings.github_token is None
        assert settings.non_interactive is False

    def test_environment_overrides(self, tmp_path):
        settings = Settings.from_env({
            "DOO_CONFIG_DIR": str(tmp_path / "cfg"),
            "DOO_LOG_LEVEL": "debug",
            "DOO_LOG_DIR": str(tmp_path / "logs"),
            "DOO_GITHUB_API": "https://github.example.com/api/v3",
            "DOO_HTTP_TIMEOUT": "5",
            "DOO_NON_INTERACTIVE": "yes",
            "GITHUB_TOKEN": "ghp_test",
        })

        assert settings.config_dir == tmp_path / "cfg"
        assert settings.log_level_value == logging.DEBUG
        assert settings.log_dir == tmp_path / "logs"
        assert settings.github_api == "https://github.example.com/api/v3"
        assert settings.http_timeout_seconds == 5.0
        assert settings.non_interactive is True
        assert settings.github_token == "ghp_test"

    def test_xdg_config_home(self, monkeypatch, tmp_path):
        monkeypatch.setenv("XDG_CONFIG_HOME", str(tmp_path))
        assert default_config_dir() == tmp_path / "doo"

    def test_unknown_level_falls_back_to_warning(self):
        assert Settings(config_dir=Path("."), log_level="chatty").log_level_value == logging.WARNING


class TestInvocationContext:

    def test_id_scoped_to_block(self):
        assert get_invocation_id() is None

        with InvocationContext("inv_test") as invocation_id:
            assert invocation_id == "inv_test"
            assert get_invocation_id() == "inv_test"

        assert get_invocation_id() is None

    def test_generated_ids_unique(self):
        first, second = generate_invocation_id(), generate_invocation_id()
        assert first != second
        assert first.startswith("inv_")

    def test_filter_stamps_records(self):
        record = logging.LogRecord("doo.test", logging.INFO, __file__, 1, "hello", None, None)

        with InvocationContext("inv_abc"):
            InvocationIdFilter().filter(record)

        assert record.invocation_id == "inv_abc"


class TestJSONFormatter:

    def test_extra_fields_included(self):
        record = logging.LogRecord("doo.test", logging.WARNING, __file__, 1, "resolved %s", ("pods",), None)
        record.invocation_id = "inv_1"
        record.command = "pods"
        record.context = "work"

        entry = json.loads(JSONFormatter().format(record))

        assert entry["message"] == "resolved pods"
        assert entry["level"] == "WARNING"
        assert entry["invocation_id"] == "inv_1"
        assert entry["command"] == "pods"
        assert entry["context"] == "work"
        assert "source_id" not in entry


class TestGetLogger:

    def test_namespace_prefix(self):
        assert get_logger("registry").name == "doo.registry"
        assert get_logger("doo.registry").name == "doo.registry"


class TestErrorHandler:

    def test_categories(self):
        assert ConfigValidationError("x", "bad").category is ErrorCategory.VALIDATION
        assert AmbiguousCommandError("p", []).category is ErrorCategory.AMBIGUOUS
        assert MissingArgumentError("$1", 0).category is ErrorCategory.RESOLUTION
        assert SourceImportError("a/b", "down").category is ErrorCategory.IMPORT
        assert DooError("plain").category is ErrorCategory.USER

    def test_hint_appended(self):
        message = ErrorHandler().handle(UnknownCommandError("nope"))

        assert message.startswith("Command 'nope' not found")
        assert "Run 'doo'" in message

    def test_no_hint(self):
        assert ErrorHandler().handle(SourceImportError("a/b", "down")) == "Failed to import 'a/b': down"

    def test_stats(self):
        handler = ErrorHandler()
        handler.handle(UnknownCommandError("a"))
        handler.handle(UnknownCommandError("b"))
        handler.handle(MissingArgumentError("$1", 0))

        assert handler.get_error_stats() == {"UNKNOWN_COMMAND": 2, "RESOLUTION": 1}

    def test_logs_at_category_level(self, caplog, monkeypatch):
        # configure_logging() detaches the doo namespace from the root logger
        monkeypatch.setattr(logging.getLogger("doo"), "propagate", True)

        with caplog.at_level(logging.INFO, logger="doo.errors"):
            ErrorHandler().handle(SourceImportError("a/b", "down"))

        assert caplog.records[-1].levelno == logging.ERROR
