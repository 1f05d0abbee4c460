"""Tests for clean installs and their rollback."""

import shutil
import tempfile
from pathlib import Path

import pytest

from specfirst.deploy.install import InstallTransaction
from specfirst.deploy.layout import DeploymentLayout, SourceTree
from specfirst.deploy.ledger import Ledger
from specfirst.deploy.store import DeploymentStore
from specfirst.errors import InstallFailed, MissingFileError


def _make_source(root: Path, version: str = "0.1.0", instructions: str | None = None) -> SourceTree:
    files = {
        "agents/a.md": "agent a\n",
        "agents/b.md": "agent b\n",
        "commands/c.md": "command c\n",
        "commands/sub/d.md": "command d\n",
        "utils/e.sh": "#!/bin/sh\necho e\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    (root / "VERSION").write_text(version + "\n")
    if instructions is not None:
        (root / "INSTRUCTIONS.md").write_text(instructions)
    return SourceTree(root)


def _tree(root: Path) -> dict[str, bytes]:
    if not root.exists():
        return {}
    return {
        p.relative_to(root).as_posix(): (p.read_bytes() if p.is_file() else b"<dir>")
        for p in sorted(root.rglob("*"))
    }


def _failing_copier(fail_at: int, exc: BaseException = OSError("No space left on device")):
    calls = {"n": 0}

    def copier(src, dst):
        calls["n"] += 1
        if calls["n"] == fail_at:
            raise exc
        return shutil.copy2(src, dst)

    return copier


def _transaction(source, target, **kwargs):
    store = DeploymentStore(DeploymentLayout(target))
    return InstallTransaction(source, store, trap_signals=False, **kwargs)


# --- Install Tests ---


def test_clean_install():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src")
        target = Path(tmp) / "host"

        result = _transaction(source, target).run()

        assert result.counts == {"agents": 2, "commands": 2, "utils": 1}
        assert result.total == 5
        assert (target / "agents" / "specfirst" / "a.md").read_text() == "agent a\n"
        assert (target / "commands" / "specfirst" / "sub" / "d.md").exists()
        assert (target / ".specfirst" / "utils" / "e.sh").exists()
        assert (target / ".specfirst" / "VERSION").read_text() == "0.1.0\n"
        assert (target / ".specfirst" / ".installed").exists()

        store = DeploymentStore(DeploymentLayout(target))
        record = store.read_record()
        assert record.version == "0.1.0"
        assert record.installed_at
        assert "agents/specfirst" in record.created_dirs
        assert len(store.read_manifest()) == 5


def test_failure_at_copy_three_of_five_leaves_nothing():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src")
        target = Path(tmp) / "host"

        with pytest.raises(InstallFailed) as exc:
            _transaction(source, target, copier=_failing_copier(3)).run()

        assert isinstance(exc.value.__cause__, OSError)
        assert not target.exists()


@pytest.mark.parametrize("fail_at", [1, 2, 3, 4, 5])
def test_failure_at_any_copy_restores_existing_target(fail_at):
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src")
        target = Path(tmp) / "host"
        (target / "agents" / "other").mkdir(parents=True)
        (target / "agents" / "other" / "keep.md").write_text("not ours\n")
        (target / "settings.json").write_text("{}\n")
        before = _tree(target)

        with pytest.raises(InstallFailed):
            _transaction(source, target, copier=_failing_copier(fail_at)).run()

        assert _tree(target) == before


def test_interrupt_rolls_back():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src")
        target = Path(tmp) / "host"

        with pytest.raises(InstallFailed) as exc:
            _transaction(source, target, copier=_failing_copier(4, KeyboardInterrupt())).run()

        assert isinstance(exc.value.__cause__, KeyboardInterrupt)
        assert not target.exists()


def test_failure_after_shared_merge_restores_shared_file():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src", instructions="Use specfirst.\n")
        target = Path(tmp) / "host"
        target.mkdir()
        (target / "INSTRUCTIONS.md").write_text("# Mine\n")
        before = _tree(target)

        transaction = _transaction(source, target)

        def boom(files):
            raise OSError("manifest write failed")

        transaction.store.write_manifest = boom
        with pytest.raises(InstallFailed):
            transaction.run()

        assert _tree(target) == before


def test_shared_file_appended():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src", instructions="Use specfirst.\n")
        target = Path(tmp) / "host"
        target.mkdir()
        (target / "INSTRUCTIONS.md").write_text("# Mine\n")

        result = _transaction(source, target).run()

        text = (target / "INSTRUCTIONS.md").read_text()
        assert text.startswith("# Mine\n")
        assert "<!-- specfirst:begin -->\nUse specfirst.\n<!-- specfirst:end -->" in text
        assert not result.shared.created


def test_shared_file_replace_preserves_original():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src", instructions="Use specfirst.\n")
        target = Path(tmp) / "host"
        target.mkdir()
        (target / "INSTRUCTIONS.md").write_text("# Mine\n")

        _transaction(source, target, shared_mode="replace").run()

        assert (target / "INSTRUCTIONS.md").read_text() == "Use specfirst.\n"
        assert (target / ".specfirst" / "preinstall" / "INSTRUCTIONS.md").read_text() == "# Mine\n"


def test_missing_source_version_touches_nothing():
    with tempfile.TemporaryDirectory() as tmp:
        source = _make_source(Path(tmp) / "src")
        source.version_file.unlink()
        target = Path(tmp) / "host"

        with pytest.raises(MissingFileError):
            _transaction(source, target).run()
        assert not target.exists()


# --- Ledger Tests ---


def test_ledger_rolls_back_in_reverse_order():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        existing = root / "existing.txt"
        existing.write_text("original\n")
        order = []

        with pytest.raises(RuntimeError):
            with Ledger(trap_signals=False) as ledger:
                ledger.on_rollback(lambda: order.append("first"))
                ledger.ensure_dir(root / "a" / "b")
                ledger.created_file(root / "a" / "b" / "f.txt")
                (root / "a" / "b" / "f.txt").write_text("new\n")
                ledger.modified_file(existing)
                existing.write_text("changed\n")
                ledger.on_rollback(lambda: order.append("last"))
                raise RuntimeError("boom")

        assert order == ["last", "first"]
        assert not (root / "a").exists()
        assert existing.read_text() == "original\n"


def test_ledger_commit_keeps_changes():
    with tempfile.TemporaryDirectory() as tmp:
        path = Path(tmp) / "kept.txt"
        with Ledger(trap_signals=False) as ledger:
            ledger.created_file(path)
            path.write_text("x")
            ledger.commit()
        assert path.exists()


def test_ledger_leaves_non_empty_dirs():
    with tempfile.TemporaryDirectory() as tmp:
        root = Path(tmp)
        with pytest.raises(RuntimeError):
            with Ledger(trap_signals=False) as ledger:
                ledger.ensure_dir(root / "d")
                (root / "d" / "foreign.txt").write_text("someone else\n")
                raise RuntimeError("boom")
        assert (root / "d" / "foreign.txt").exists()
