"""Tests for uninstall and the shared instructions document."""

import tempfile
from pathlib import Path

import pytest

from specfirst.deploy import shared
from specfirst.deploy.install import InstallTransaction
from specfirst.deploy.layout import DeploymentLayout, SourceTree
from specfirst.deploy.store import DeploymentStore
from specfirst.deploy.uninstall import UninstallTransaction
from specfirst.errors import SharedSectionError, UninstallPartialFailure


def _make_source(root: Path, instructions: str | None = None) -> SourceTree:
    files = {
        "agents/a.md": "agent a\n",
        "commands/c.md": "command c\n",
        "commands/sub/d.md": "command d\n",
        "utils/e.sh": "echo e\n",
    }
    for rel, content in files.items():
        path = root / rel
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
    (root / "VERSION").write_text("0.1.0\n")
    if instructions is not None:
        (root / "INSTRUCTIONS.md").write_text(instructions)
    return SourceTree(root)


def _install(tmp: str, instructions: str | None = None, shared_mode: str = "append"):
    target = Path(tmp) / "host"
    store = DeploymentStore(DeploymentLayout(target))
    source = _make_source(Path(tmp) / "src", instructions)
    InstallTransaction(source, store, shared_mode=shared_mode, trap_signals=False).run()
    return target, store


def _tree(root: Path) -> dict[str, bytes]:
    return {
        p.relative_to(root).as_posix(): (p.read_bytes() if p.is_file() else b"<dir>")
        for p in sorted(root.rglob("*"))
    }


def _yes(plan) -> bool:
    return True


# --- Uninstall Tests ---


def test_uninstall_removes_everything_it_created():
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp, instructions="Use specfirst.\n")
        seen = []

        result = UninstallTransaction(store, confirm=lambda plan: seen.append(plan) or True).run()

        assert len(seen[0].files) == 4
        assert seen[0].shared_file == target / "INSTRUCTIONS.md"
        assert len(result.removed) == 4
        assert result.shared_action == "removed"
        assert list(target.iterdir()) == []


def test_declining_is_a_no_op():
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp)
        before = _tree(target)

        result = UninstallTransaction(store, confirm=lambda plan: False).run()

        assert result.cancelled
        assert _tree(target) == before


def test_confirmation_callback_is_required():
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp)
        before = _tree(target)

        with pytest.raises(TypeError):
            UninstallTransaction(store)
        assert _tree(target) == before


def test_nothing_installed():
    with tempfile.TemporaryDirectory() as tmp:
        store = DeploymentStore(DeploymentLayout(Path(tmp) / "host"))
        asked = []
        result = UninstallTransaction(store, confirm=lambda plan: asked.append(plan) or True).run()
        assert result.nothing_installed
        assert not asked


def test_non_owned_files_and_their_dirs_survive():
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp)
        mine = target / "commands" / "specfirst" / "sub" / "mine.md"
        mine.write_text("user command\n")
        other = target / "agents" / "other-package" / "x.md"
        other.parent.mkdir(parents=True)
        other.write_text("other\n")

        UninstallTransaction(store, confirm=_yes).run()

        assert mine.read_text() == "user command\n"
        assert other.exists()
        assert not (target / "commands" / "specfirst" / "c.md").exists()
        assert not (target / "agents" / "specfirst").exists()
        assert not (target / ".specfirst").exists()


def test_appended_section_is_excised():
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "host"
        target.mkdir()
        (target / "INSTRUCTIONS.md").write_text("# Mine\n\nKeep this.\n")
        _, store = _install(tmp, instructions="Use specfirst.\n")

        result = UninstallTransaction(store, confirm=_yes).run()

        assert result.shared_action == "excised"
        assert (target / "INSTRUCTIONS.md").read_text() == "# Mine\n\nKeep this.\n"


def test_replaced_file_is_restored_from_preinstall_copy():
    with tempfile.TemporaryDirectory() as tmp:
        target = Path(tmp) / "host"
        target.mkdir()
        (target / "INSTRUCTIONS.md").write_text("# Mine\n")
        _, store = _install(tmp, instructions="Use specfirst.\n", shared_mode="replace")
        assert (target / "INSTRUCTIONS.md").read_text() == "Use specfirst.\n"

        result = UninstallTransaction(store, confirm=_yes).run()

        assert result.shared_action == "restored"
        assert (target / "INSTRUCTIONS.md").read_text() == "# Mine\n"
        assert not (target / ".specfirst").exists()


def test_missing_manifest_falls_back_to_namespaced_dirs():
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp)
        store.layout.manifest.unlink()

        plan = UninstallTransaction(store, confirm=_yes).plan()
        assert not plan.from_manifest
        assert len(plan.files) == 4

        UninstallTransaction(store, confirm=_yes).run()
        assert not (target / "agents" / "specfirst").exists()
        assert not (target / ".specfirst").exists()


def test_malformed_shared_section_stops_before_deleting():
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp, instructions="Use specfirst.\n")
        path = target / "INSTRUCTIONS.md"
        path.write_text(path.read_text() + "<!-- specfirst:begin -->\n")
        before = _tree(target)

        with pytest.raises(SharedSectionError):
            UninstallTransaction(store, confirm=_yes).run()
        assert _tree(target) == before


def test_partial_failure_reports_paths(monkeypatch):
    with tempfile.TemporaryDirectory() as tmp:
        target, store = _install(tmp)
        stuck = target / "commands" / "specfirst" / "c.md"
        original_unlink = Path.unlink

        def unlink(self, missing_ok=False):
            if self == stuck:
                raise PermissionError("Operation not permitted")
            return original_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", unlink)

        with pytest.raises(UninstallPartialFailure) as exc:
            UninstallTransaction(store, confirm=_yes).run()

        assert exc.value.paths == [stuck]
        assert stuck.exists()
        assert not (target / "agents" / "specfirst" / "a.md").exists()
        assert (target / "commands" / "specfirst").exists()


# --- Shared Section Tests ---


def test_upsert_into_empty_and_existing_text():
    assert shared.upsert_section("", "ns", "body\n") == "<!-- ns:begin -->\nbody\n<!-- ns:end -->\n"
    text = shared.upsert_section("# Title\n\n\n", "ns", "body")
    assert text == "# Title\n\n<!-- ns:begin -->\nbody\n<!-- ns:end -->\n"


def test_upsert_replaces_in_place():
    text = "top\n<!-- ns:begin -->\nold\n<!-- ns:end -->\nbottom\n"
    assert shared.upsert_section(text, "ns", "new") == (
        "top\n<!-- ns:begin -->\nnew\n<!-- ns:end -->\nbottom\n"
    )


def test_remove_section_keeps_surroundings():
    text = "top\n\n<!-- ns:begin -->\nbody\n<!-- ns:end -->\n\nbottom\n"
    assert shared.remove_section(text, "ns") == "top\n\nbottom\n"
    assert shared.remove_section("<!-- ns:begin -->\nx\n<!-- ns:end -->\n", "ns") == ""
    assert shared.remove_section("no section\n", "ns") == "no section\n"


def test_other_namespaces_are_ignored():
    text = "<!-- other:begin -->\nx\n<!-- other:end -->\n"
    assert shared.find_section(text, "ns") is None
    assert "<!-- other:begin -->" in shared.upsert_section(text, "ns", "y")


@pytest.mark.parametrize(
    "text",
    [
        "<!-- ns:begin -->\na\n<!-- ns:end -->\n<!-- ns:begin -->\nb\n<!-- ns:end -->\n",
        "<!-- ns:begin -->\n<!-- ns:begin -->\nb\n<!-- ns:end -->\n",
        "<!-- ns:begin -->\nunterminated\n",
        "<!-- ns:end -->\nx\n<!-- ns:begin -->\n",
    ],
)
def test_malformed_delimiters_raise(text):
    with pytest.raises(SharedSectionError):
        shared.find_section(text, "ns")
