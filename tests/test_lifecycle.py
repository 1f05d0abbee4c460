"""Tests for the working-directory lifecycle manager."""

import json
import tempfile
from pathlib import Path

import pytest

from specfirst.errors import LifecycleError
from specfirst.workspace.lifecycle import DirectoryLifecycleManager


def _with_run(root: Path) -> DirectoryLifecycleManager:
    manager = DirectoryLifecycleManager(root)
    manager.run("first")
    manager.artifact.write_text("# Spec\n")
    (manager.work_dir / "notes.md").write_text("notes\n")
    (manager.work_dir / "drafts").mkdir()
    (manager.work_dir / "drafts" / "d1.md").write_text("draft\n")
    return manager


def test_first_is_idempotent():
    with tempfile.TemporaryDirectory() as tmp:
        manager = DirectoryLifecycleManager(tmp)
        assert manager.run().mode == "first"
        (manager.work_dir / "keep.md").write_text("x\n")
        assert manager.run().mode == "first"
        assert (manager.work_dir / "keep.md").exists()


def test_mode_flag_is_consumed_once():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        manager.set_mode("update")
        assert manager.read_mode() == "update"

        assert manager.run().mode == "update"
        assert not manager.mode_file.exists()
        assert manager.read_mode() == "first"


def test_update_backs_up_spec_and_clears_work():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        transition = manager.run("update")

        assert transition.backup.read_text() == "# Spec\n"
        assert transition.cleared == 2
        assert manager.artifact.read_text() == "# Spec\n"
        assert manager.work_dir.is_dir()
        assert list(manager.work_dir.iterdir()) == []


def test_new_archives_and_points_current_into_archive():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        transition = manager.run("new")

        entry = manager.archive_dir / transition.archive_id
        assert (entry / "spec.md").read_text() == "# Spec\n"
        assert (entry / "work" / "drafts" / "d1.md").exists()
        assert not manager.artifact.exists()
        assert manager.work_dir.is_dir()
        assert list(manager.work_dir.iterdir()) == []

        assert manager.pointer() == transition.archive_id
        assert json.loads(manager.pointer_file.read_text())["archived"] == transition.archive_id
        assert manager.current_artifact() == entry / "spec.md"
        assert manager.archives() == [transition.archive_id]


def test_new_spec_takes_over_from_pointer():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        manager.run("new")
        manager.artifact.write_text("# Spec v2\n")

        assert manager.current_artifact() == manager.artifact
        manager.run()
        assert manager.pointer() is None


def test_archive_ids_are_unique_and_sortable():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        first = manager.run("new").archive_id
        manager.artifact.write_text("# Spec 2\n")
        second = manager.run("new").archive_id

        assert first != second
        assert manager.archives() == sorted([first, second])


def test_repeated_new_keeps_pointer_on_archived_spec():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        first = manager.run("new")

        second = manager.run("new")

        assert second.archive_id is None
        assert manager.archives() == [first.archive_id]
        assert manager.pointer() == first.archive_id
        assert manager.current_artifact() == manager.archive_dir / first.archive_id / "spec.md"


def test_new_with_only_work_files_leaves_pointer_alone():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        first = manager.run("new")
        (manager.work_dir / "scratch.md").write_text("scratch\n")

        second = manager.run("new")

        assert second.archive_id is not None
        assert (manager.archive_dir / second.archive_id / "work" / "scratch.md").exists()
        assert manager.pointer() == first.archive_id
        assert manager.current_artifact() == manager.archive_dir / first.archive_id / "spec.md"


def test_updates_in_the_same_second_keep_every_backup():
    with tempfile.TemporaryDirectory() as tmp:
        manager = _with_run(Path(tmp))
        first = manager.run("update").backup
        manager.artifact.write_text("# Spec v2\n")
        second = manager.run("update").backup

        assert first != second
        assert first.read_text() == "# Spec\n"
        assert second.read_text() == "# Spec v2\n"


def test_failed_archive_is_rolled_back():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        _with_run(root)
        calls = []

        def mover(src, dst):
            calls.append(src)
            if len(calls) == 2:
                raise OSError("Device busy")
            Path(src).rename(dst)

        manager = DirectoryLifecycleManager(root, mover=mover)
        manager.set_mode("new")
        with pytest.raises(LifecycleError):
            manager.run()

        assert manager.artifact.read_text() == "# Spec\n"
        assert (manager.work_dir / "notes.md").exists()
        assert manager.archives() == []
        assert manager.pointer() is None
        # The flag stays so the transition can be retried
        assert manager.read_mode() == "new"


def test_invalid_mode():
    with tempfile.TemporaryDirectory() as tmp:
        manager = DirectoryLifecycleManager(tmp)
        with pytest.raises(LifecycleError):
            manager.set_mode("later")
        manager.mode_file.parent.mkdir(parents=True, exist_ok=True)
        manager.mode_file.write_text("sometime\n")
        with pytest.raises(LifecycleError):
            manager.run()
