"""Security audit with safe-upgrade selection for Composer projects."""

import json
import logging
from pathlib import Path

from . import shell
from .composer import ComposerClient, find_composer_json
from .config import Settings
from .errors import AdvisoryFeedError, CommandError, LookupFailed
from .models import Advisory, Outcome, UpgradeDecision, UpgradeReport
from .oracle import RangeOracle
from .packagist import PackagistClient, parse_advisories
from .selector import candidate_versions, select_safe_version, split_ranges

logger = logging.getLogger(__name__)

SOURCES = ("composer", "packagist")


class AuditRunner:
    """Audits a project and upgrades vulnerable packages to safe versions."""

    def __init__(
        self,
        project_folder: str | Path,
        oracle: RangeOracle,
        settings: Settings | None = None,
        allow_major: bool = False,
        sync_git: bool = True,
        install: bool = True,
        apply: bool = True,
        advisories_source: str = "composer",
        versions_source: str = "composer",
        composer: ComposerClient | None = None,
        packagist: PackagistClient | None = None,
    ):
        """Initialize audit runner.

        Args:
            project_folder: Folder holding composer.json (or a subdirectory that does)
            oracle: Range-satisfaction oracle
            settings: Binaries, branch and Packagist settings
            allow_major: Permit upgrades across major versions
            sync_git: Check out the configured branch and pull before auditing
            install: Run composer install before auditing
            apply: Run composer require for each selected version
            advisories_source: "composer" (composer audit) or "packagist"
            versions_source: "composer" (composer show --all) or "packagist"
            composer: Preconfigured Composer client
            packagist: Preconfigured Packagist client
        """
        for source in (advisories_source, versions_source):
            if source not in SOURCES:
                raise ValueError(f"Unknown source: {source}")

        self.project_folder = Path(project_folder)
        self.oracle = oracle
        self.settings = settings or Settings()
        self.allow_major = allow_major
        self.sync_git = sync_git
        self.install = install
        self.apply = apply
        self.advisories_source = advisories_source
        self.versions_source = versions_source
        self.composer = composer
        self.packagist = packagist
        self.project_dir: Path | None = None

    def run(self) -> UpgradeReport:
        """Run the audit and return one decision per vulnerable package."""
        composer_json = find_composer_json(self.project_folder)
        self.project_dir = composer_json.parent
        logger.info("Found composer.json at: %s", composer_json)

        if self.composer is None:
            self.composer = ComposerClient(self.project_dir, binary=self.settings.composer_bin)

        if self.sync_git:
            self._sync_git()

        if self.install:
            logger.info("Installing/updating Composer dependencies...")
            self.composer.install("-q")

        report = UpgradeReport()
        self.oracle.ensure_ready()
        try:
            advisories = self.fetch_advisories()
            if not advisories:
                logger.info("No advisories found")
                return report

            logger.info("Checking %d vulnerable package(s) for safe upgrades", len(advisories))
            for package, package_advisories in advisories.items():
                decision = self.evaluate(package, package_advisories)
                if decision.outcome == Outcome.SELECTED and self.apply:
                    self._apply(decision)
                report.add(decision)
        finally:
            self.oracle.close()

        return report

    def _sync_git(self) -> None:
        git = self.settings.git_bin
        logger.info("Checking out '%s' branch...", self.settings.branch)
        shell.run([git, "checkout", self.settings.branch], cwd=self.project_dir)
        logger.info("Pulling latest changes from remote...")
        shell.run([git, "pull"], cwd=self.project_dir)

    def _packagist_client(self) -> PackagistClient:
        if self.packagist is None:
            self.packagist = PackagistClient(
                repo_url=self.settings.packagist_repo_url,
                advisories_url=self.settings.advisories_url,
                timeout=self.settings.http_timeout,
            )
        return self.packagist

    def fetch_advisories(self) -> dict[str, list[Advisory]]:
        """Load advisories from the configured source.

        Returns:
            Mapping of package name to advisories, sorted by package name
        """
        if self.advisories_source == "packagist":
            try:
                packages = self.composer.locked_packages()
                return self._packagist_client().security_advisories(packages)
            except LookupFailed as e:
                raise AdvisoryFeedError(str(e))

        raw = self.composer.audit()
        if not raw.strip():
            raise AdvisoryFeedError("No audit output received")

        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Invalid JSON received from composer audit: %s...", raw[:200])
            return {}

        if not isinstance(data, dict) or "advisories" not in data:
            return {}
        return parse_advisories(data)

    def _available_versions(self, package: str) -> list[str]:
        if self.versions_source == "packagist":
            return self._packagist_client().available_versions(package)
        return self.composer.available_versions(package)

    def evaluate(self, package: str, advisories: list[Advisory]) -> UpgradeDecision:
        """Decide the upgrade for one vulnerable package without applying it."""
        logger.info("Checking %s", package)

        try:
            installed = self.composer.installed_version(package)
        except LookupFailed as e:
            logger.warning("%s, skipping", e)
            return UpgradeDecision(package=package, outcome=Outcome.LOOKUP_ERROR, reason=str(e))
        logger.info("Installed version: %s", installed)

        ranges = [a.affected_versions for a in advisories]
        logger.info("Affected ranges: %s", " ".join(split_ranges(ranges)))

        try:
            available = self._available_versions(package)
        except LookupFailed as e:
            logger.warning("%s, skipping", e)
            return UpgradeDecision(
                package=package,
                outcome=Outcome.LOOKUP_ERROR,
                installed_version=installed,
                reason=str(e),
            )

        if not candidate_versions(available):
            reason = f"No stable versions published for {package}"
            logger.warning("%s, skipping", reason)
            return UpgradeDecision(
                package=package,
                outcome=Outcome.LOOKUP_ERROR,
                installed_version=installed,
                reason=reason,
            )

        selection = select_safe_version(
            package,
            installed,
            ranges,
            available,
            self.oracle,
            allow_major=self.allow_major,
        )
        if selection.outcome == Outcome.SELECTED:
            logger.info("Safe version found: %s (%s)", selection.version, selection.reason)
        else:
            logger.warning("%s: %s", package, selection.reason)

        return UpgradeDecision(
            package=package,
            outcome=selection.outcome,
            installed_version=installed,
            selected_version=selection.version,
            ranges=selection.ranges,
            reason=selection.reason,
        )

    def _apply(self, decision: UpgradeDecision) -> None:
        logger.info(
            "Running: composer require %s --with-all-dependencies", decision.requirement
        )
        try:
            self.composer.require(decision.package, decision.selected_version)
        except CommandError as e:
            logger.warning(
                "Failed to upgrade %s to %s, continuing with other packages",
                decision.package, decision.selected_version,
            )
            decision.applied = False
            decision.error = str(e)
            return
        logger.info("Successfully upgraded %s to %s", decision.package, decision.selected_version)
        decision.applied = True
