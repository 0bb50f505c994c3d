"""
Storage Tests
-------------
Tests for the configuration directory layout.

Test Cases:
1. File layout of sources, variables and the context pointer
2. Stable source ordering
3. Atomic writes leave no temp files
4. MemoryStorage honours the same contract
"""

import pytest

from core.errors import StorageError
from infra.storage import MAIN_SOURCE, FileStorage, MemoryStorage, SourceKey


class TestSourceKey:

    def test_source_ids(self):
        assert MAIN_SOURCE.source_id == "main"
        assert MAIN_SOURCE.is_main
        assert SourceKey("k8s").source_id == "k8s"
        assert SourceKey("net", "alice-repo1").source_id == "alice-repo1_net"
        assert not SourceKey("main", "g").is_main


class TestFileStorageLayout:
    """Where each document lives on disk."""

    def test_directories_created(self, file_storage):
        assert (file_storage.root / "configs").is_dir()
        assert (file_storage.root / "variables").is_dir()

    def test_main_source_is_config_yaml(self, file_storage):
        file_storage.write_source(MAIN_SOURCE, "commands: {}\n")

        assert (file_storage.root / "config.yaml").read_text() == "commands: {}\n"
        assert file_storage.read_source(MAIN_SOURCE) == "commands: {}\n"

    def test_flat_and_group_paths(self, file_storage):
        file_storage.write_source(SourceKey("k8s"), "a")
        file_storage.write_source(SourceKey("net", "alice-repo1"), "b")

        assert (file_storage.root / "configs" / "k8s.yaml").read_text() == "a"
        assert (file_storage.root / "configs" / "alice-repo1" / "net.yaml").read_text() == "b"

    def test_yml_suffix_read_and_rewritten_in_place(self, file_storage):
        path = file_storage.root / "configs" / "tools.yml"
        path.write_text("old")

        assert file_storage.read_source(SourceKey("tools")) == "old"
        file_storage.write_source(SourceKey("tools"), "new")

        assert path.read_text() == "new"
        assert not (file_storage.root / "configs" / "tools.yaml").exists()

    def test_variables_and_context_paths(self, file_storage):
        file_storage.write_variables("work", "vars: {}\n")
        file_storage.write_active_context("work")

        assert (file_storage.root / "variables" / "work.yaml").read_text() == "vars: {}\n"
        assert (file_storage.root / "current_context").read_text() == "work"
        assert file_storage.read_active_context() == "work"
        assert file_storage.list_variable_contexts() == ["work"]

    def test_missing_documents_read_as_none(self, file_storage):
        assert file_storage.read_source(SourceKey("nope")) is None
        assert file_storage.read_variables("nope") is None
        assert file_storage.read_active_context() is None

    def test_blank_context_pointer_is_none(self, file_storage):
        (file_storage.root / "current_context").write_text("\n")
        assert file_storage.read_active_context() is None


class TestFileStorageListing:

    def test_order_main_flat_groups(self, file_storage):
        file_storage.write_source(SourceKey("net", "bob-repo1"), "x")
        file_storage.write_source(SourceKey("zeta"), "x")
        file_storage.write_source(SourceKey("alpha"), "x")
        file_storage.write_source(SourceKey("net", "alice-repo1"), "x")
        file_storage.write_source(MAIN_SOURCE, "x")

        ids = [key.source_id for key in file_storage.list_sources()]

        assert ids == ["main", "alpha", "zeta", "alice-repo1_net", "bob-repo1_net"]

    def test_reserved_and_hidden_entries_skipped(self, file_storage):
        configs = file_storage.root / "configs"
        (configs / "main.yaml").write_text("x")
        (configs / "notes.txt").write_text("x")
        (configs / ".cache").mkdir()
        (configs / ".cache" / "a.yaml").write_text("x")

        assert file_storage.list_sources() == []
        assert file_storage.list_groups() == []

    def test_duplicate_stem_listed_once(self, file_storage):
        configs = file_storage.root / "configs"
        (configs / "k8s.yaml").write_text("a")
        (configs / "k8s.yml").write_text("b")

        assert [key.source_id for key in file_storage.list_sources()] == ["k8s"]

    def test_find_source(self, file_storage):
        file_storage.write_source(SourceKey("net", "alice-repo1"), "x")

        assert file_storage.find_source("alice-repo1_net") == SourceKey("net", "alice-repo1")
        assert file_storage.find_source("missing") is None


class TestFileStorageWrites:

    def test_no_temp_files_left(self, file_storage):
        for i in range(3):
            file_storage.write_source(SourceKey("k8s"), f"version {i}")

        leftovers = [p.name for p in (file_storage.root / "configs").iterdir()]
        assert leftovers == ["k8s.yaml"]

    def test_delete_source_prunes_empty_group(self, file_storage):
        file_storage.write_source(SourceKey("k8s"), "x")
        file_storage.write_source(SourceKey("a", "g"), "x")
        file_storage.write_source(SourceKey("b", "g"), "x")

        assert file_storage.delete_source(SourceKey("k8s")) is True
        assert file_storage.delete_source(SourceKey("k8s")) is False

        file_storage.delete_source(SourceKey("a", "g"))
        assert (file_storage.root / "configs" / "g").is_dir()

        file_storage.delete_source(SourceKey("b", "g"))
        assert file_storage.list_sources() == []
        assert not (file_storage.root / "configs" / "g").exists()

    def test_unwritable_root_raises_storage_error(self, tmp_path):
        blocker = tmp_path / "file"
        blocker.write_text("not a directory")

        with pytest.raises(StorageError):
            FileStorage(blocker / "config")


class TestMemoryStorage:
    """Same ordering contract as FileStorage."""

    def test_order(self):
        storage = MemoryStorage()
        storage.write_source(SourceKey("net", "bob-repo1"), "x")
        storage.write_source(SourceKey("zeta"), "x")
        storage.write_source(MAIN_SOURCE, "x")
        storage.write_source(SourceKey("alpha"), "x")

        ids = [key.source_id for key in storage.list_sources()]
        assert ids == ["main", "alpha", "zeta", "bob-repo1_net"]

    def test_groups(self):
        storage = MemoryStorage()
        storage.write_source(SourceKey("a", "g1"), "x")
        storage.write_source(SourceKey("b", "g2"), "x")

        assert storage.list_groups() == ["g1", "g2"]
        storage.delete_source(SourceKey("a", "g1"))
        assert [key.source_id for key in storage.list_sources()] == ["g2_b"]
