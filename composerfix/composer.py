"""Composer CLI client and project discovery."""

import json
import logging
import subprocess
from pathlib import Path

from . import shell
from .errors import CommandError, LookupFailed, ProjectNotFound

logger = logging.getLogger(__name__)


def normalize_version(version: str) -> str:
    """Drop a leading "v" so tags like v6.4.3 compare as 6.4.3."""
    if version[:1] in ("v", "V") and version[1:2].isdigit():
        return version[1:]
    return version


def find_composer_json(folder: str | Path) -> Path:
    """Find composer.json in a folder or one of its immediate subdirectories.

    Args:
        folder: Project folder to search

    Returns:
        Path to the composer.json file
    """
    root = Path(folder)
    if not root.is_dir():
        raise ProjectNotFound(f"Project folder '{folder}' does not exist")

    direct = root / "composer.json"
    if direct.is_file():
        return direct

    for child in sorted(p for p in root.iterdir() if p.is_dir()):
        candidate = child / "composer.json"
        if candidate.is_file():
            return candidate

    raise ProjectNotFound(
        f"No composer.json found in {folder} or its immediate subdirectories"
    )


class ComposerClient:
    """Runs composer commands against a project directory."""

    def __init__(self, project_dir: str | Path, binary: str = "composer"):
        self.project_dir = Path(project_dir)
        self.binary = binary

    def run(self, *args: str, cwd: str | Path | None = None, check: bool = True) -> subprocess.CompletedProcess:
        return shell.run([self.binary, *args], cwd=cwd or self.project_dir, check=check)

    def _show_json(self, *args: str) -> dict:
        try:
            result = self.run("show", *args, "--format=json")
            return json.loads(result.stdout)
        except (CommandError, json.JSONDecodeError) as e:
            raise LookupFailed(f"composer show {' '.join(args)} failed: {e}")

    def installed_version(self, package: str) -> str:
        """Return the version of a package installed in the project."""
        data = self._show_json(package)
        versions = data.get("versions") or []
        if not versions or not versions[0]:
            raise LookupFailed(f"Could not determine current version for {package}")
        return normalize_version(versions[0])

    def available_versions(self, package: str) -> list[str]:
        """Return every published version of a package, as reported by composer."""
        data = self._show_json(package, "--all")
        versions = data.get("versions") or []
        if not versions:
            raise LookupFailed(f"Could not retrieve available versions for {package}")
        return [normalize_version(v) for v in versions]

    def install(self, *flags: str, cwd: str | Path | None = None) -> None:
        self.run("install", *flags, cwd=cwd)

    def audit(self) -> str:
        """Run composer audit and return its raw JSON output.

        composer audit exits non-zero when advisories are found, so the exit
        status is not checked.
        """
        return self.run("audit", "--format=json", check=False).stdout

    def require(
        self,
        package: str,
        constraint: str,
        with_all_dependencies: bool = True,
        dry_run: bool = False,
        cwd: str | Path | None = None,
    ) -> None:
        args = ["require", f"{package}:{constraint}"]
        if with_all_dependencies:
            args.append("--with-all-dependencies")
        if dry_run:
            args.append("--dry-run")
        self.run(*args, cwd=cwd)

    def why_not(self, package: str, version: str) -> str:
        return self.run("why-not", package, version, check=False).stdout

    def create_project(self, package: str, target: str | Path, *flags: str) -> None:
        target = Path(target).resolve()
        self.run("create-project", package, str(target), *flags, cwd=target.parent)

    def config(self, key: str, value: str, cwd: str | Path | None = None) -> None:
        self.run("config", key, value, cwd=cwd)

    def locked_packages(self) -> list[str]:
        """Names of all packages in composer.lock, dev packages included."""
        lock_file = self.project_dir / "composer.lock"
        if not lock_file.is_file():
            raise LookupFailed(f"composer.lock not found in {self.project_dir}")
        data = json.loads(lock_file.read_text())
        names = [p["name"] for p in data.get("packages", []) + data.get("packages-dev", [])]
        return sorted(set(names))
