"""CLI application for ComposerFix."""

import json

import typer
from rich.console import Console
from rich.table import Table

from composerfix.audit import AuditRunner
from composerfix.compat import CompatScanner
from composerfix.config import load_settings
from composerfix.doctor import check_environment, count_issues
from composerfix.log import setup_logging
from composerfix.models import CompatReport, Outcome, Selection, UpgradeReport
from composerfix.oracle import make_oracle
from composerfix.patches import PatchManager
from composerfix.script import write_upgrade_script
from composerfix.selector import select_safe_version

console = Console()

OUTCOME_STYLES = {
    Outcome.SELECTED: "green",
    Outcome.NO_SAFE_VERSION: "yellow",
    Outcome.NO_VALID_RANGES: "yellow",
    Outcome.LOOKUP_ERROR: "red",
    Outcome.INDETERMINATE: "red",
}


def format_report_json(report: UpgradeReport) -> str:
    """Format JSON output."""
    return json.dumps(report.to_dict(), indent=2)


def format_report_table(report: UpgradeReport) -> Table:
    """Format an audit report as a table."""
    table = Table(title="Security upgrades")
    table.add_column("Package")
    table.add_column("Installed")
    table.add_column("Selected")
    table.add_column("Outcome")
    table.add_column("Applied")

    for decision in report:
        if decision.applied is None:
            applied = "-"
        else:
            applied = "yes" if decision.applied else "failed"
        table.add_row(
            decision.package,
            decision.installed_version or "?",
            decision.selected_version or "-",
            f"[{OUTCOME_STYLES[decision.outcome]}]{decision.outcome.value}[/]",
            applied,
        )
    return table


def format_selection_json(selection: Selection) -> str:
    """Format a single selector decision as JSON."""
    return json.dumps({
        "package": selection.package,
        "outcome": selection.outcome.value,
        "version": selection.version,
        "reason": selection.reason,
        "ranges": selection.ranges,
        "checks": [
            {"version": c.version, "verdict": c.verdict.value, "matched_range": c.matched_range}
            for c in selection.checks
        ],
    }, indent=2)


def format_compat_table(report: CompatReport) -> Table:
    """Format compatibility scan results as a table."""
    table = Table(title=f"Drupal {report.target_major} compatibility")
    table.add_column("Package")
    table.add_column("Constraint")
    table.add_column("Tested majors")
    for result in report.results:
        table.add_row(
            result.package,
            result.constraint or "[red]incompatible[/]",
            ", ".join(str(m) for m in result.tested_majors) or "-",
        )
    return table


def _split_versions(values: list[str]) -> list[str]:
    versions = []
    for value in values:
        versions.extend(v for v in value.replace(",", " ").split() if v)
    return versions


app = typer.Typer(
    name="composerfix",
    help="ComposerFix - Audit, patch and upgrade Composer/Drupal projects",
    add_completion=False,
)
patch_app = typer.Typer(help="Create, list and remove composer-patches entries")
app.add_typer(patch_app, name="patch")


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug output"),
    quiet: bool = typer.Option(False, "--quiet", "-q", help="Only show warnings and errors"),
) -> None:
    """ComposerFix - Audit, patch and upgrade Composer/Drupal projects."""
    if verbose:
        level = "DEBUG"
    elif quiet:
        level = "WARNING"
    else:
        level = load_settings().log_level
    setup_logging(level)


@app.command()
def audit(
    project_folder: str = typer.Argument(help="Project folder containing composer.json"),
    allow_major: bool = typer.Option(False, "--allow-major", "-u", help="Enable major version upgrades"),
    branch: str | None = typer.Option(None, "--branch", help="Git branch to check out before auditing"),
    no_git: bool = typer.Option(False, "--no-git", help="Skip git checkout and pull"),
    no_install: bool = typer.Option(False, "--no-install", help="Skip composer install"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Select upgrades without applying them"),
    script: str | None = typer.Option(None, "--script", help="Write selected upgrades to a script instead of applying"),
    oracle_kind: str = typer.Option("native", "--oracle", help="Range checker: native or php"),
    advisories: str = typer.Option("composer", "--advisories", help="Advisory source: composer or packagist"),
    versions: str = typer.Option("composer", "--versions", help="Version source: composer or packagist"),
    format_type: str = typer.Option("table", "--format", help="Output format: table or json"),
) -> None:
    """Audit a project and upgrade vulnerable packages to safe versions."""

    try:
        settings = load_settings()
        if branch:
            settings.branch = branch

        oracle = make_oracle(oracle_kind, php_bin=settings.php_bin, composer_bin=settings.composer_bin)
        runner = AuditRunner(
            project_folder,
            oracle,
            settings=settings,
            allow_major=allow_major,
            sync_git=not no_git,
            install=not no_install,
            apply=not (dry_run or script),
            advisories_source=advisories,
            versions_source=versions,
        )
        report = runner.run()

        if script:
            path = write_upgrade_script(
                script,
                report.requirements(),
                comment="This script runs composer require for safe security upgrades",
            )
            if format_type != "json":
                console.print(f"Generated upgrade script at {path}")

        if format_type == "json":
            typer.echo(format_report_json(report))
        elif len(report):
            console.print(format_report_table(report))
        else:
            console.print("No advisories found")

    except typer.Exit:
        raise
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)


@app.command("select")
def select_version(
    installed: str = typer.Option(..., "--installed", help="Currently installed version"),
    ranges: list[str] = typer.Option(..., "--range", "-r", help="Affected version range (repeatable)"),
    available: list[str] = typer.Option(..., "--available", "-a", help="Published versions, comma or space separated"),
    package: str = typer.Option("package", "--package", help="Package name for reporting"),
    allow_major: bool = typer.Option(False, "--allow-major", "-u", help="Enable major version upgrades"),
    oracle_kind: str = typer.Option("native", "--oracle", help="Range checker: native or php"),
    format_type: str = typer.Option("text", "--format", help="Output format: text or json"),
) -> None:
    """Pick a safe version from explicit inputs, without touching a project."""

    try:
        settings = load_settings()
        oracle = make_oracle(oracle_kind, php_bin=settings.php_bin, composer_bin=settings.composer_bin)
        oracle.ensure_ready()
        try:
            selection = select_safe_version(
                package, installed, ranges, _split_versions(available), oracle, allow_major=allow_major
            )
        finally:
            oracle.close()

        if format_type == "json":
            typer.echo(format_selection_json(selection))
        elif selection.outcome == Outcome.SELECTED:
            console.print(f"{package}:{selection.version}")
        else:
            console.print(f"{selection.outcome.value}: {selection.reason}", style="yellow")

    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if selection.outcome != Outcome.SELECTED:
        raise typer.Exit(2)  # Nothing to upgrade


@app.command()
def compat(
    project_dir: str = typer.Argument(help="Path to the Drupal project"),
    major: int = typer.Option(11, "--major", help="Target drupal/core major version"),
    workdir: str | None = typer.Option(None, "--workdir", help="Scratch directory for the test project"),
) -> None:
    """Find releases of blocking packages that work with a Drupal core major."""

    try:
        scanner = CompatScanner(project_dir, target_major=major, workdir=workdir, settings=load_settings())
        report = scanner.run()

        console.print(format_compat_table(report))
        console.print(f"Upgradable packages saved to: {scanner.upgradable_file}")
        console.print(f"Incompatible packages saved to: {scanner.incompatible_file}")
        console.print(f"Generated upgrade script at {report.script_path}")

    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)


@patch_app.command("create")
def patch_create(
    package: str = typer.Argument(help="Package name, e.g. drupal/symfony_mailer"),
    description: str | None = typer.Argument(None, help="Patch description"),
    project: str = typer.Option(".", "--project", help="Project root containing composer.json"),
    core: str = typer.Option("^10", "--core", help="drupal/core constraint for the pristine copy"),
) -> None:
    """Create a patch from local changes to a package."""

    try:
        entry = PatchManager(project, settings=load_settings()).create_patch(
            package, description, core_constraint=core
        )
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if entry is None:
        console.print("No differences found between original and modified versions", style="yellow")
        raise typer.Exit(2)

    console.print(f"Patch file: {entry.path}", style="green")
    console.print(f"Description: {entry.description}")
    console.print("Remember to run 'composer install' to apply the patch", style="yellow")


@patch_app.command("remove")
def patch_remove(
    package: str = typer.Argument(help="Package name"),
    description: str | None = typer.Argument(None, help="Patch description; omit to remove all"),
    project: str = typer.Option(".", "--project", help="Project root containing composer.json"),
) -> None:
    """Remove one patch, or all patches, of a package from composer.json."""

    try:
        removed = PatchManager(project, settings=load_settings()).remove_patch(package, description)
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if not removed:
        console.print(f"No patches found for package {package}", style="yellow")
        raise typer.Exit(2)
    console.print(f"Removed {removed} patch(es) for package {package}", style="green")


@patch_app.command("list")
def patch_list(
    package: str | None = typer.Argument(None, help="Only list patches for this package"),
    project: str = typer.Option(".", "--project", help="Project root containing composer.json"),
) -> None:
    """List registered patches."""

    try:
        entries = PatchManager(project, settings=load_settings()).list_patches(package)
    except Exception as e:
        console.print(f"Error: {e}", style="red", markup=False)
        raise typer.Exit(1)

    if not entries:
        console.print("No patches found")
        return

    current = None
    for entry in entries:
        if entry.package != current:
            typer.echo(f"{entry.package}:")
            current = entry.package
        typer.echo(f"  - {entry.description}: {entry.path}")


@app.command()
def doctor() -> None:
    """Check that git, composer, php and patch are available."""
    checks = check_environment(load_settings())

    for check in checks:
        if check.found:
            console.print(f"[green]ok[/] {check.name}: {check.version or ''}")
        else:
            console.print(f"[red]missing[/] {check.name}: {check.version or 'Not found'}")
            if check.hint:
                console.print(f"   Install: {check.hint}")

    issues = count_issues(checks)
    if issues:
        console.print(f"Found {issues} issue(s) that need to be resolved.", style="yellow")
        raise typer.Exit(1)
    console.print("All dependencies are satisfied.", style="green")


if __name__ == "__main__":
    app()
