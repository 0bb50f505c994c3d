"""
Source Schema Tests
-------------------
Tests for parsing and rendering command-source files.
"""

import pytest
import yaml

from commands.schema import (
    SCHEMA_HEADER,
    SourceOrigin,
    Visibility,
    ensure_schema_header,
    is_repo_slug,
    parse_source,
    render_source,
    validate_command_name,
)
from core.errors import ConfigValidationError


class TestParseSource:
    """Validation of one source document."""

    def test_short_and_long_forms(self):
        text = """
commands:
  pods: "kubectl get pods -n #1"
  watch:
    command: "watch kubectl -n #1 get pods"
    description: "Watch pods"
"""
        source = parse_source("main", text)

        assert len(source) == 2
        assert source.commands["pods"].template == "kubectl get pods -n #1"
        assert source.commands["pods"].description is None
        assert source.commands["watch"].description == "Watch pods"
        assert all(d.source_id == "main" for d in source.commands.values())
        assert source.origin is None

    def test_empty_commands_mapping(self):
        assert len(parse_source("main", "commands: {}\n")) == 0
        assert len(parse_source("main", "commands:\n")) == 0

    def test_origin_parsed(self):
        text = "commands:\n  a: echo a\norigin:\n  repo: alice/tools\n  import_type: Private\n"
        source = parse_source("alice-tools", text)

        assert source.origin == SourceOrigin(repo="alice/tools", visibility=Visibility.PRIVATE)
        assert source.origin.owner == "alice"
        assert source.origin.repo_name == "tools"

    @pytest.mark.parametrize("text,fragment", [
        ("commands: [\n", "not valid YAML"),
        ("- a\n- b\n", "top level must be a mapping"),
        ("origin: {}\n", "missing 'commands'"),
        ("commands: [a, b]\n", "'commands' must be a mapping"),
        ("commands:\n  'bad name': echo\n", "invalid command name"),
        ("commands:\n  sync: echo\n", "reserved"),
        ("commands:\n  a: ''\n", "empty template"),
        ("commands:\n  a: 42\n", "must be a string or a mapping"),
        ("commands:\n  a:\n    description: x\n", "no string 'command'"),
        ("commands:\n  a: echo\norigin:\n  repo: nope\n  import_type: Public\n", "owner/repo"),
        ("commands:\n  a: echo\norigin:\n  repo: a/b\n  import_type: Secret\n", "Public or Private"),
    ])
    def test_invalid_documents(self, text, fragment):
        with pytest.raises(ConfigValidationError) as exc_info:
            parse_source("broken", text)

        assert exc_info.value.source_id == "broken"
        assert fragment in exc_info.value.reason


class TestRenderSource:
    """Serialization back to YAML."""

    def test_render_then_parse_keeps_commands_and_origin(self):
        text = "commands:\n  b: echo b\n  a:\n    command: echo a\n    description: first\n"
        source = parse_source("x", text)
        source.origin = SourceOrigin(repo="bob/cfg", visibility=Visibility.PUBLIC)

        rendered = render_source(source)
        assert rendered.startswith(SCHEMA_HEADER)

        data = yaml.safe_load(rendered)
        assert list(data) == ["commands", "origin"]
        assert list(data["commands"]) == ["b", "a"]
        assert data["commands"]["a"] == {"command": "echo a", "description": "first"}
        assert data["origin"] == {"repo": "bob/cfg", "import_type": "Public"}

    def test_render_without_header(self):
        rendered = render_source(parse_source("main", "commands:\n  a: echo\n"), header=False)
        assert not rendered.startswith("#")


class TestHelpers:

    def test_ensure_schema_header_adds_once(self):
        text = ensure_schema_header("commands: {}\n")
        assert text.startswith(SCHEMA_HEADER)
        assert ensure_schema_header(text) == text

    def test_existing_language_server_line_kept(self):
        text = "# yaml-language-server: $schema=other.json\ncommands: {}\n"
        assert ensure_schema_header(text) == text

    @pytest.mark.parametrize("name,valid", [
        ("pods", True),
        ("k8s-logs_2", True),
        ("has space", False),
        ("", False),
        ("var", False),
        ("import-repo", False),
        (42, False),
    ])
    def test_command_names(self, name, valid):
        assert (validate_command_name(name) is None) == valid

    @pytest.mark.parametrize("ref,expected", [
        ("alice/repo1", True),
        ("my-org/dot.files", True),
        ("alice", False),
        ("a/b/c", False),
        ("../etc", False),
        ("./cfg.yaml", False),
    ])
    def test_repo_slug(self, ref, expected):
        assert is_repo_slug(ref) == expected
