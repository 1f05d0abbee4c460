"""Health check of an installed deployment."""

from __future__ import annotations

from dataclasses import dataclass, field

from specfirst.deploy import shared
from specfirst.deploy.store import DeploymentStore
from specfirst.errors import SpecFirstError


@dataclass
class DoctorReport:
    installed: bool = False
    version: str = ""
    checked: int = 0
    problems: list[str] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return self.installed and not self.problems


def check_installation(store: DeploymentStore) -> DoctorReport:
    """Check record, marker, manifest and shared section of a deployment."""
    layout = store.layout
    report = DoctorReport()

    try:
        record = store.read_record()
    except SpecFirstError as e:
        report.installed = True
        report.problems.append(str(e))
        record = None
    else:
        report.installed = record is not None

    if not report.installed:
        report.problems.append(f"Not installed: no install record at {layout.install_record}")
        return report

    try:
        report.version = str(store.read_version())
    except SpecFirstError as e:
        report.problems.append(str(e))

    if record is not None and report.version and record.version != report.version:
        report.problems.append(
            f"Install record says {record.version} but the marker says {report.version}"
        )

    manifest = store.read_manifest()
    if manifest is None:
        report.problems.append(f"Missing or unreadable manifest: {layout.manifest}")
    else:
        for rel in manifest:
            report.checked += 1
            if not layout.absolute(rel).exists():
                report.problems.append(f"Missing file: {rel}")

    try:
        shared.check_section(layout)
    except SpecFirstError as e:
        report.problems.append(str(e))

    return report
