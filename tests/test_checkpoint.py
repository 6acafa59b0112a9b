"""
Tests for file checkpoints — create, restore, dispose.
"""

from pathlib import Path

import pytest

from execsafe.core.services.capabilities.execution.checkpoint import (
    CheckpointManager,
    default_checkpoint_root,
)


@pytest.fixture
def manager(tmp_path: Path) -> CheckpointManager:
    return CheckpointManager(tmp_path / "checkpoints")


class TestCreate:
    def test_existing_file_backed_up(self, manager, tmp_path):
        target = tmp_path / "config.ini"
        target.write_text("original")

        checkpoint = manager.create(target)

        assert checkpoint.existed
        assert Path(checkpoint.backup_path).read_text() == "original"
        assert Path(checkpoint.backup_path).parent == manager.root
        assert checkpoint.file_path == str(target)

    def test_missing_file(self, manager, tmp_path):
        checkpoint = manager.create(tmp_path / "new.txt")
        assert not checkpoint.existed
        assert checkpoint.backup_path is None
        assert not manager.root.exists()

    def test_ids_are_unique(self, manager, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("x")
        assert manager.create(target).id != manager.create(target).id

    def test_default_root_under_tempdir(self):
        assert default_checkpoint_root().name == "execsafe-checkpoints"
        assert CheckpointManager().root == default_checkpoint_root()


class TestRestore:
    def test_restores_original_content(self, manager, tmp_path):
        target = tmp_path / "config.ini"
        target.write_text("original")
        checkpoint = manager.create(target)
        target.write_text("clobbered")

        result = manager.restore(checkpoint)

        assert result.ok
        assert target.read_text() == "original"
        assert not Path(checkpoint.backup_path).exists()
        assert checkpoint.consumed

    def test_restores_deleted_file(self, manager, tmp_path):
        target = tmp_path / "config.ini"
        target.write_text("original")
        checkpoint = manager.create(target)
        target.unlink()

        assert manager.restore(checkpoint).ok
        assert target.read_text() == "original"

    def test_new_file_removed(self, manager, tmp_path):
        target = tmp_path / "new.txt"
        checkpoint = manager.create(target)
        target.write_text("created by the write")

        result = manager.restore(checkpoint)

        assert result.ok
        assert not target.exists()
        assert result.detail.startswith("Removed")

    def test_restore_only_once(self, manager, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("v1")
        checkpoint = manager.create(target)
        manager.restore(checkpoint)
        target.write_text("v2")

        again = manager.restore(checkpoint)

        assert not again.ok
        assert again.detail == "Checkpoint already consumed."
        assert target.read_text() == "v2"

    def test_copy_of_consumed_checkpoint_refused(self, manager, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("v1")
        checkpoint = manager.create(target)
        clone = checkpoint.model_copy()
        manager.restore(checkpoint)
        assert not manager.restore(clone).ok

    def test_missing_backup(self, manager, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("v1")
        checkpoint = manager.create(target)
        Path(checkpoint.backup_path).unlink()

        result = manager.restore(checkpoint)

        assert not result.ok
        assert result.detail.startswith("Backup missing")


class TestDispose:
    def test_dispose_removes_backup(self, manager, tmp_path):
        target = tmp_path / "a.txt"
        target.write_text("v1")
        checkpoint = manager.create(target)
        manager.dispose(checkpoint)
        assert not Path(checkpoint.backup_path).exists()
        manager.dispose(checkpoint)  # idempotent

    def test_dispose_without_backup(self, manager, tmp_path):
        manager.dispose(manager.create(tmp_path / "none.txt"))

    def test_usage(self, manager, tmp_path):
        assert manager.usage() == {"backups": 0, "bytes": 0}
        target = tmp_path / "a.txt"
        target.write_text("12345")
        manager.create(target)
        assert manager.usage() == {"backups": 1, "bytes": 5}
