"""specfirst CLI — install, update and version-gate the specfirst package."""

import logging
import os
import sys

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from specfirst import __version__
from specfirst.errors import SpecFirstError

console = Console()
err_console = Console(stderr=True)


class SpecFirstGroup(click.Group):
    """Turns expected errors into a red diagnostic and exit code 1."""

    def invoke(self, ctx):
        try:
            return super().invoke(ctx)
        except SpecFirstError as e:
            err_console.print(f"[red]Error:[/] {e}")
            sys.exit(1)


@click.group(cls=SpecFirstGroup)
@click.version_option(version=__version__)
@click.option("--config", "config_path", default=None, help="YAML settings file")
@click.option(
    "--log-level",
    default=None,
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Log level (default: WARNING, or $SPECFIRST_LOG_LEVEL)",
)
@click.pass_context
def main(ctx, config_path: str | None, log_level: str | None):
    """specfirst — lifecycle manager for the specfirst package.

    Installs, updates and uninstalls the package in a target directory, and
    enforces the version bump policy in CI.
    """
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config_path
    _configure_logging(log_level or _settings(ctx).log_level)


def _configure_logging(level: str) -> None:
    logger = logging.getLogger("specfirst")
    logger.setLevel(getattr(logging, level.upper(), logging.WARNING))
    # main() runs once per command; keep a single handler
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
    logger.addHandler(RichHandler(console=err_console, show_time=False, show_path=False))


def _settings(ctx, **overrides):
    from specfirst.config import load_settings

    return load_settings(ctx.obj.get("config_path"), **overrides)


# ── Install / Update ─────────────────────────────────────────────────


@main.command()
@click.option("--target", "-t", default=None, help="Target directory (default: $SPECFIRST_TARGET_DIR)")
@click.option("--source", "-s", default=None, help="Package source tree (default: ./framework)")
@click.option("--repo-url", default=None, help="Clone the package from this git repository first (default: $SPECFIRST_REPO_URL)")
@click.pass_context
def install(ctx, target: str | None, source: str | None, repo_url: str | None):
    """Install the package, or update it if it is already installed."""
    from specfirst.deploy.driver import deploy

    settings = _settings(ctx, target_root=target, source_root=source, repo_url=repo_url)
    console.print(f"\n[bold blue]specfirst[/] — Installing into {settings.target_root}\n")
    _print_deploy_result(deploy(settings))


@main.command()
@click.option("--target", "-t", default=None, help="Target directory (default: $SPECFIRST_TARGET_DIR)")
@click.option("--source", "-s", default=None, help="Package source tree (default: ./framework)")
@click.option("--repo-url", default=None, help="Clone the package from this git repository first (default: $SPECFIRST_REPO_URL)")
@click.pass_context
def update(ctx, target: str | None, source: str | None, repo_url: str | None):
    """Update an installed package in place, keeping a backup.

    Falls back to a clean install when nothing is installed yet.
    """
    from specfirst.deploy.driver import deploy

    settings = _settings(ctx, target_root=target, source_root=source, repo_url=repo_url)
    console.print(f"\n[bold blue]specfirst[/] — Updating {settings.target_root}\n")
    _print_deploy_result(deploy(settings, force_update=True))


def _print_deploy_result(result) -> None:
    from specfirst.deploy.update import UpdateResult

    table = Table(title="Deployed files")
    table.add_column("Category", style="cyan")
    table.add_column("Files", justify="right", style="green")
    for category, count in result.counts.items():
        table.add_row(category, str(count))
    console.print(table)

    if result.shared is not None:
        console.print(f"  Shared file: {result.shared.path} ({result.shared.mode})")

    if isinstance(result, UpdateResult):
        previous = result.previous_version or "unknown"
        console.print(f"\n[green]Updated[/] {previous} -> {result.version}")
        console.print(f"  Backup: {result.backup_dir}")
        for pruned in result.pruned:
            console.print(f"  [dim]Pruned old backup {pruned.name}[/]")
    else:
        console.print(f"\n[green]Installed[/] version {result.version}")


# ── Uninstall ────────────────────────────────────────────────────────


@main.command()
@click.option("--target", "-t", default=None, help="Target directory (default: $SPECFIRST_TARGET_DIR)")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def uninstall(ctx, target: str | None, yes: bool):
    """Remove the package's files from the target directory."""
    from specfirst.deploy.driver import build_store
    from specfirst.deploy.uninstall import UninstallTransaction
    from specfirst.errors import UninstallPartialFailure

    settings = _settings(ctx, target_root=target)
    console.print(f"\n[bold blue]specfirst[/] — Uninstalling from {settings.target_root}\n")

    def confirm(plan) -> bool:
        console.print(f"  Version: {plan.version or 'unknown'}")
        console.print(f"  Files to remove: {len(plan.files)}")
        if not plan.from_manifest:
            console.print("  [yellow]![/] No manifest, removing everything under the package directories")
        if plan.shared_file is not None:
            console.print(f"  Shared file to clean up: {plan.shared_file}")
        if yes:
            return True
        return click.confirm("\nProceed?", default=False)

    try:
        result = UninstallTransaction(build_store(settings), confirm=confirm).run()
    except UninstallPartialFailure as e:
        console.print("[red]Uninstall incomplete. Could not remove:[/]")
        for path in e.paths:
            console.print(f"  [red]x[/] {path}")
        sys.exit(1)

    if result.nothing_installed:
        console.print("[yellow]Nothing to uninstall.[/]")
        return
    if result.cancelled:
        console.print("[yellow]Uninstall cancelled.[/]")
        return

    console.print(f"\n[green]Removed[/] {len(result.removed)} file(s), {len(result.removed_dirs)} director(ies)")
    if result.shared_action:
        console.print(f"  Shared file {result.shared_action}")


# ── Version ──────────────────────────────────────────────────────────


@main.group()
def version():
    """Read, change and compare version markers."""


def _marker_path(ctx, file: str | None):
    from specfirst.versioning import marker

    if file:
        return file
    settings = _settings(ctx)
    return marker.resolve_marker(".", namespace=settings.namespace).path


_file_option = click.option("--file", "-f", "file", default=None, help="Marker file to use")


@version.command(name="get")
@_file_option
@click.pass_context
def version_get(ctx, file: str | None):
    """Print the current version."""
    from specfirst.versioning import marker

    click.echo(str(marker.read(_marker_path(ctx, file))))


@version.command(name="set")
@click.argument("new_version")
@_file_option
@click.pass_context
def version_set(ctx, new_version: str, file: str | None):
    """Set the version (a backup of the old marker is kept)."""
    from specfirst.versioning import marker
    from specfirst.versioning.semver import parse

    value = parse(new_version)
    path = file or _marker_path(ctx, None)
    backup = marker.write(path, value)
    console.print(f"[green]Version set to[/] {value}")
    if backup is not None:
        console.print(f"  [dim]Backup: {backup}[/]")


@version.command(name="increment")
@click.argument("field", type=click.Choice(["major", "minor", "patch"]))
@_file_option
@click.pass_context
def version_increment(ctx, field: str, file: str | None):
    """Increment the major, minor or patch field."""
    from specfirst.versioning import marker
    from specfirst.versioning.semver import increment

    path = _marker_path(ctx, file)
    current = marker.read(path)
    new = increment(current, field)
    marker.write(path, new)
    console.print(f"[green]Version incremented:[/] {current} -> {new}")


@version.command(name="compare")
@click.argument("first")
@click.argument("second")
def version_compare(first: str, second: str):
    """Compare two versions and print the relation (<, == or >)."""
    from specfirst.versioning.semver import compare

    relation = compare(first, second)
    click.echo(f"{first.strip()} {relation.value} {second.strip()}")


@version.command(name="validate")
@click.argument("value", required=False)
@_file_option
@click.pass_context
def version_validate(ctx, value: str | None, file: str | None):
    """Check that VALUE (or the marker) is a valid X.Y.Z version."""
    from specfirst.versioning import marker
    from specfirst.versioning.semver import validate

    if value is None:
        value = str(marker.read(_marker_path(ctx, file)))
    if validate(value):
        console.print(f"[green]v[/] Valid version: {value}")
    else:
        console.print(f"[red]x[/] Invalid version: {value!r} (expected: X.Y.Z)")
        sys.exit(1)


@version.command(name="info")
@_file_option
@click.pass_context
def version_info(ctx, file: str | None):
    """Show the version, where its marker lives and its backups."""
    from specfirst.versioning import marker

    if file:
        details = marker.info(file)
    else:
        settings = _settings(ctx)
        details = marker.resolve_marker(".", namespace=settings.namespace)

    backups = marker.list_backups(details.path)
    body = "\n".join(
        [
            f"Version:  {details.version}",
            f"Mode:     {details.mode}",
            f"Location: {details.location}",
            f"Marker:   {details.path}",
            f"Backups:  {len(backups)}",
        ]
    )
    console.print(Panel(body, title="Version Info"))


# ── Policy gate ──────────────────────────────────────────────────────


@main.command()
@click.option("--base", "base_ref", default=None, help="Base ref to diff against (default: origin/main)")
@click.option("--repo", "repo_path", default=".", help="Repository path")
@click.option("--verbose", "-v", is_flag=True, help="List every changed file and its bucket")
@click.option("--machine-readable", is_flag=True, help="Print key=value pairs only")
@click.pass_context
def check(ctx, base_ref: str | None, repo_path: str, verbose: bool, machine_readable: bool):
    """Check whether the changes since BASE require a version bump.

    Exits 0 when no bump is required or the requirement is satisfied.
    """
    from specfirst.policy.gate import check_requirements, format_outputs, write_github_output

    settings = _settings(ctx, base_ref=base_ref)
    report = check_requirements(
        repo_path,
        base_ref=settings.base_ref,
        table=settings.patterns,
        version_file=settings.version_file,
        changelog_file=settings.changelog,
    )
    outputs = report.outputs()

    if os.environ.get("GITHUB_OUTPUT"):
        write_github_output(outputs, os.environ["GITHUB_OUTPUT"])

    if machine_readable:
        click.echo(format_outputs(outputs))
    else:
        console.print(f"\n[bold blue]specfirst[/] — Version requirement check against {settings.base_ref}\n")
        console.print(Panel(report.classification.summary(), title="Change Impact"))

        if verbose:
            table = Table(title="Changed files")
            table.add_column("Path", style="cyan")
            table.add_column("Bucket")
            buckets = [
                ("[red]bump-required[/]", report.classification.bump_required),
                ("[green]exempt[/]", report.classification.exempt),
                ("[yellow]unclassified[/]", report.classification.unclassified),
            ]
            for label, paths in buckets:
                for path in paths:
                    table.add_row(path, label)
            console.print(table)

        console.print(f"  Base version:    {report.base_version}")
        console.print(f"  Current version: {report.current_version}")
        for problem in report.problems:
            console.print(f"  [red]x[/] {problem}")

        if report.status == "satisfied":
            console.print(f"\n[green]Version requirement satisfied[/] ({report.reason})")
        elif report.status == "not_required":
            console.print(f"\n[green]No version bump required[/] ({report.reason})")
        else:
            console.print(f"\n[red]Version requirement not satisfied[/] ({report.reason})")

    if not report.passed:
        sys.exit(1)


@main.command()
@click.option("--base", "base_ref", default=None, help="Base ref to diff against (default: origin/main)")
@click.option("--repo", "repo_path", default=".", help="Repository path")
@click.option("--skip-changelog", is_flag=True, help="Do not check the changelog entry")
@click.option("--skip-semantics", is_flag=True, help="Do not check that the version increased")
@click.option("--machine-readable", is_flag=True, help="Print key=value pairs only")
@click.pass_context
def changes(
    ctx,
    base_ref: str | None,
    repo_path: str,
    skip_changelog: bool,
    skip_semantics: bool,
    machine_readable: bool,
):
    """Validate a version change: changelog entry and forward progression."""
    from specfirst.policy.gate import check_version_change, format_outputs, write_github_output

    settings = _settings(ctx, base_ref=base_ref)
    report = check_version_change(
        repo_path,
        base_ref=settings.base_ref,
        version_file=settings.version_file,
        changelog_file=settings.changelog,
        check_changelog=not skip_changelog,
        check_semantics=not skip_semantics,
    )
    outputs = report.outputs()

    if os.environ.get("GITHUB_OUTPUT"):
        write_github_output(outputs, os.environ["GITHUB_OUTPUT"])

    if machine_readable:
        click.echo(format_outputs(outputs))
    else:
        console.print(f"\n[bold blue]specfirst[/] — Version change validation against {settings.base_ref}\n")
        if not report.version_changed:
            console.print(f"  No version change ({report.current_version})")
        else:
            console.print(f"  {report.base_version} -> {report.current_version}")
            for problem in report.problems:
                console.print(f"  [red]x[/] {problem}")
            if report.passed:
                console.print("\n[green]Version change is valid[/]")
            else:
                console.print("\n[red]Version change validation failed[/]")

    if not report.passed:
        sys.exit(1)


# ── Workspace ────────────────────────────────────────────────────────


@main.command()
@click.argument("mode", required=False, type=click.Choice(["first", "update", "new"]))
@click.option("--root", "-r", default="specs", help="Workspace root directory")
def run(mode: str | None, root: str):
    """Run one workspace transition (default: the pending mode, else first)."""
    from specfirst.workspace.lifecycle import DirectoryLifecycleManager

    manager = DirectoryLifecycleManager(root)
    if mode:
        manager.set_mode(mode)
    transition = manager.run()

    console.print(f"[green]{transition.mode}[/] transition complete in {manager.root}")
    if transition.backup is not None:
        console.print(f"  Backup: {transition.backup.name}")
    if transition.cleared:
        console.print(f"  Cleared {transition.cleared} working item(s)")
    if transition.archive_id:
        console.print(f"  Archived as {transition.archive_id}")
    current = manager.current_artifact()
    console.print(f"  Current spec: {current if current else '[dim]none[/]'}")


# ── Doctor ───────────────────────────────────────────────────────────


@main.command()
@click.option("--target", "-t", default=None, help="Target directory (default: $SPECFIRST_TARGET_DIR)")
@click.pass_context
def doctor(ctx, target: str | None):
    """Check an installed deployment for missing or damaged files."""
    from specfirst.deploy.doctor import check_installation
    from specfirst.deploy.driver import build_store

    settings = _settings(ctx, target_root=target)
    report = check_installation(build_store(settings))

    console.print(f"\n[bold blue]specfirst[/] — Checking {settings.target_root}\n")
    if report.version:
        console.print(f"  Version: {report.version}")
    console.print(f"  Manifest entries checked: {report.checked}")
    for problem in report.problems:
        console.print(f"  [red]x[/] {problem}")

    if report.healthy:
        console.print("\n[green]Installation is healthy[/]")
    else:
        sys.exit(1)


if __name__ == "__main__":
    main()
