"""Where things live — in the source tree and under the target root.

Target layout for namespace ``ns``::

    <target>/agents/<ns>/...        agents
    <target>/commands/<ns>/...      commands
    <target>/.<ns>/utils/...        utils
    <target>/.<ns>/VERSION          version marker
    <target>/.<ns>/.installed       install record
    <target>/.<ns>/manifest.json    owned paths
    <target>/.<ns>/backups/<ts>/    update snapshots
    <target>/.<ns>/preinstall/      shared files found before install
    <target>/<shared_file>          shared instructions document
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

CATEGORIES = ("agents", "commands", "utils")


@dataclass
class DeploymentLayout:
    """Paths of a deployment under one target root."""

    target_root: Path
    namespace: str = "specfirst"
    shared_file: str = "INSTRUCTIONS.md"

    def __post_init__(self):
        self.target_root = Path(self.target_root)

    @property
    def meta_dir(self) -> Path:
        return self.target_root / f".{self.namespace}"

    @property
    def marker(self) -> Path:
        return self.meta_dir / "VERSION"

    @property
    def install_record(self) -> Path:
        return self.meta_dir / ".installed"

    @property
    def manifest(self) -> Path:
        return self.meta_dir / "manifest.json"

    @property
    def backups_dir(self) -> Path:
        return self.meta_dir / "backups"

    @property
    def preinstall_dir(self) -> Path:
        return self.meta_dir / "preinstall"

    @property
    def shared_path(self) -> Path:
        return self.target_root / self.shared_file

    def category_dir(self, category: str) -> Path:
        if category == "utils":
            return self.meta_dir / "utils"
        if category in CATEGORIES:
            return self.target_root / category / self.namespace
        raise KeyError(f"Unknown category: {category}")

    def category_dirs(self) -> dict[str, Path]:
        return {c: self.category_dir(c) for c in CATEGORIES}

    def metadata_files(self) -> list[Path]:
        return [self.marker, self.install_record, self.manifest]

    def relative(self, path: Path) -> str:
        """Target-relative POSIX form, as stored in the manifest."""
        return Path(path).relative_to(self.target_root).as_posix()

    def absolute(self, rel: str) -> Path:
        return self.target_root / rel

    def contains(self, path: Path) -> bool:
        """True when *path* resolves inside the target root."""
        try:
            resolved = Path(path).resolve()
            base = self.target_root.resolve()
        except OSError:
            return False
        return resolved == base or base in resolved.parents


@dataclass
class Artifact:
    """One file to deploy."""

    category: str
    source: Path
    relative: str  # path inside the category directory

    def destination(self, layout: DeploymentLayout) -> Path:
        return layout.category_dir(self.category) / self.relative


@dataclass
class SourceTree:
    """The package as shipped: ``VERSION`` plus one directory per category."""

    root: Path
    shared_file: str = "INSTRUCTIONS.md"

    def __post_init__(self):
        self.root = Path(self.root)

    @property
    def version_file(self) -> Path:
        return self.root / "VERSION"

    @property
    def shared_path(self) -> Path:
        return self.root / self.shared_file

    def exists(self) -> bool:
        return self.root.is_dir()

    def artifacts(self) -> list[Artifact]:
        """Every deployable file, grouped by category in a stable order."""
        found: list[Artifact] = []
        for category in CATEGORIES:
            base = self.root / category
            if not base.is_dir():
                continue
            for path in sorted(base.rglob("*")):
                if path.is_file():
                    found.append(
                        Artifact(
                            category=category,
                            source=path,
                            relative=path.relative_to(base).as_posix(),
                        )
                    )
        return found
