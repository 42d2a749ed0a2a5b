"""Drupal core major-version compatibility scanning."""

import logging
import re
import shutil
import tempfile
from pathlib import Path

from .composer import ComposerClient
from .config import Settings
from .errors import CommandError, LookupFailed
from .models import CompatReport, CompatResult, WhyNotEntry
from .script import write_upgrade_script

logger = logging.getLogger(__name__)

IGNORED_PREFIXES = ("drupal/core", "drupal-composer/drupal-project", "Not finding")
_MAJOR = re.compile(r"^([0-9]+)\.")


def parse_why_not(output: str) -> list[WhyNotEntry]:
    """Parse ``composer why-not`` output into blocking packages.

    Lines about drupal/core itself and the project template are skipped, as
    are duplicate packages.
    """
    entries: list[WhyNotEntry] = []
    seen: set[str] = set()
    for line in output.splitlines():
        stripped = line.strip()
        if not stripped or stripped.startswith(IGNORED_PREFIXES):
            continue

        fields = stripped.split()
        package = fields[0]
        if "/" not in package or package in seen:
            continue
        seen.add(package)
        entries.append(
            WhyNotEntry(
                package=package,
                version=fields[1] if len(fields) > 1 else "",
                relation=fields[2] if len(fields) > 2 else "",
                constraint=" ".join(fields[3:]),
            )
        )
    return entries


def major_versions(versions: list[str]) -> list[int]:
    """Unique numeric major versions, ascending."""
    majors = set()
    for version in versions:
        match = _MAJOR.match(version.strip().lstrip("*"))
        if match:
            majors.add(int(match.group(1)))
    return sorted(majors)


class CompatScanner:
    """Finds which blocking packages have a release compatible with a Drupal major."""

    def __init__(
        self,
        project_dir: str | Path,
        target_major: int = 11,
        workdir: str | Path | None = None,
        settings: Settings | None = None,
    ):
        self.project_dir = Path(project_dir).resolve()
        self.target_major = target_major
        self.settings = settings or Settings()
        if workdir is None:
            workdir = Path(tempfile.gettempdir()) / f"d{target_major}check"
        self.workdir = Path(workdir).resolve()
        self.project = ComposerClient(self.project_dir, binary=self.settings.composer_bin)
        self.sandbox = ComposerClient(self.workdir, binary=self.settings.composer_bin)

    @property
    def upgradable_file(self) -> Path:
        return self.workdir / f"d{self.target_major}-upgradable.csv"

    @property
    def incompatible_file(self) -> Path:
        return self.workdir / f"d{self.target_major}-incompatible.csv"

    @property
    def script_file(self) -> Path:
        return self.project_dir / "upgrade-packages.sh"

    def prepare_sandbox(self) -> None:
        """Create a fresh drupal/recommended-project for the target major."""
        logger.info("Resetting test Composer project in %s...", self.workdir)
        shutil.rmtree(self.workdir, ignore_errors=True)
        self.workdir.parent.mkdir(parents=True, exist_ok=True)

        self.sandbox.create_project(
            f"drupal/recommended-project:^{self.target_major}",
            self.workdir,
            "--no-interaction",
            "--no-install",
        )
        # Allow RC/beta/alpha versions
        self.sandbox.config("minimum-stability", "rc")
        self.sandbox.config("prefer-stable", "true")
        self.sandbox.install("--no-scripts", "--no-plugins")

    def blocking_packages(self) -> list[WhyNotEntry]:
        """Packages in the project that prevent drupal/core at the target major."""
        logger.info("Generating input from %s...", self.project_dir)
        output = self.project.why_not("drupal/core", str(self.target_major))
        entries = parse_why_not(output)

        self.workdir.mkdir(parents=True, exist_ok=True)
        input_file = self.workdir / "why-not.csv"
        input_file.write_text(
            "".join(f"{e.package},{e.version},{e.relation},{e.constraint}\n" for e in entries)
        )
        logger.info("Parsed package constraints saved to %s", input_file)
        return entries

    def check_package(self, package: str) -> CompatResult:
        """Try each published major of a package against the sandbox project."""
        logger.info("Checking %s...", package)
        try:
            versions = self.sandbox.available_versions(package)
        except LookupFailed:
            logger.warning("Could not fetch versions for %s", package)
            return CompatResult(package=package, reason="Could not fetch versions")

        tested = []
        for major in major_versions(versions):
            tested.append(major)
            try:
                self.sandbox.require(package, f"^{major}", with_all_dependencies=False, dry_run=True)
            except CommandError:
                logger.info("  %s:^%d not compatible", package, major)
                continue
            logger.info("  %s:^%d compatible", package, major)
            return CompatResult(package=package, constraint=f"^{major}", tested_majors=tested)

        return CompatResult(package=package, tested_majors=tested, reason="No compatible major version")

    def run(self) -> CompatReport:
        """Run the full scan and write the CSV results and upgrade script."""
        self.prepare_sandbox()
        report = CompatReport(target_major=self.target_major)

        logger.info("Starting compatibility checks...")
        for entry in self.blocking_packages():
            report.results.append(self.check_package(entry.package))

        self.upgradable_file.write_text(
            "".join(f"{r.package}:{r.constraint}\n" for r in report.upgradable)
        )
        self.incompatible_file.write_text("".join(f"{r.package}\n" for r in report.incompatible))

        script = write_upgrade_script(
            self.script_file,
            [(r.package, r.constraint) for r in report.upgradable],
        )
        report.script_path = str(script)
        logger.info("Generated upgrade script at %s", script)
        return report
