"""Patch management for Composer packages via composer-patches.

Patches live in ``patches/`` next to composer.json and are registered under
``extra.patches`` as ``{package: {description: "./patches/<file>"}}``.
"""

import difflib
import hashlib
import json
import logging
import re
import shutil
import tempfile
from fnmatch import fnmatch
from pathlib import Path

from . import shell
from .composer import ComposerClient
from .config import Settings
from .errors import CommandError, LookupFailed, PatchError
from .models import PatchEntry

logger = logging.getLogger(__name__)

DIFF_EXCLUDES = ("*.rej", "PATCHES.txt", ".git*")
DRUPAL_PACKAGES_URL = "https://packages.drupal.org/8"


def default_description(package: str) -> str:
    return f"Custom patch for {package}"


def patch_filename(package: str, description: str) -> str:
    """Build a stable patch filename from the package and description."""
    safe_name = re.sub(r"[/\\]", "_", package)
    digest = hashlib.md5(f"{description}\n".encode()).hexdigest()[:8]
    return f"{safe_name}_{digest}.patch"


def _excluded(rel: Path, excludes: tuple[str, ...]) -> bool:
    return any(fnmatch(part, pattern) for part in rel.parts for pattern in excludes)


def _walk(root: Path, excludes: tuple[str, ...]) -> set[str]:
    files = set()
    for path in root.rglob("*"):
        rel = path.relative_to(root)
        if path.is_file() and not _excluded(rel, excludes):
            files.add(rel.as_posix())
    return files


def _read_lines(path: Path) -> list[str] | None:
    if not path.is_file():
        return []
    try:
        return path.read_text(encoding="utf-8").splitlines(keepends=True)
    except UnicodeDecodeError:
        return None


def diff_trees(original: Path, modified: Path, excludes: tuple[str, ...] = DIFF_EXCLUDES) -> str:
    """Unified diff of two directory trees with a/ and b/ relative headers.

    Args:
        original: Pristine package directory
        modified: Locally modified package directory
        excludes: Glob patterns matched against every path component

    Returns:
        Patch text, empty when the trees are identical
    """
    chunks: list[str] = []
    for rel in sorted(_walk(original, excludes) | _walk(modified, excludes)):
        before = _read_lines(original / rel)
        after = _read_lines(modified / rel)
        if before is None or after is None:
            logger.warning("Skipping binary file %s", rel)
            continue
        if before == after:
            continue

        fromfile = f"a/{rel}" if (original / rel).is_file() else "/dev/null"
        tofile = f"b/{rel}" if (modified / rel).is_file() else "/dev/null"
        for line in difflib.unified_diff(before, after, fromfile, tofile):
            if not line.endswith("\n"):
                line += "\n\\ No newline at end of file\n"
            chunks.append(line)
    return "".join(chunks)


class PatchManager:
    """Creates, lists and removes package patches for a Composer project."""

    def __init__(self, project_dir: str | Path = ".", settings: Settings | None = None):
        self.project_dir = Path(project_dir).resolve()
        self.settings = settings or Settings()
        self.composer_json = self.project_dir / "composer.json"
        self.patches_dir = self.project_dir / "patches"

    def _load(self) -> dict:
        if not self.composer_json.is_file():
            raise PatchError(
                f"composer.json not found at {self.composer_json}; run from the project root"
            )
        return json.loads(self.composer_json.read_text())

    def _save(self, data: dict) -> None:
        shutil.copyfile(self.composer_json, self.composer_json.with_name("composer.json.backup"))
        self.composer_json.write_text(json.dumps(data, indent=4, ensure_ascii=False) + "\n")

    @staticmethod
    def _patches_section(data: dict) -> dict:
        patches = data.get("extra", {}).get("patches", {})
        if not isinstance(patches, dict):
            raise PatchError("extra.patches is not an object (patches-file is not supported)")
        return patches

    def list_patches(self, package: str | None = None) -> list[PatchEntry]:
        """List registered patches, optionally for a single package."""
        patches = self._patches_section(self._load())
        entries = []
        for name, descriptions in patches.items():
            if package and name != package:
                continue
            for description, path in descriptions.items():
                entries.append(PatchEntry(package=name, description=description, path=path))
        return entries

    def remove_patch(self, package: str, description: str | None = None) -> int:
        """Unregister one patch, or every patch of a package.

        Returns:
            Number of patch entries removed
        """
        data = self._load()
        patches = self._patches_section(data)
        if package not in patches:
            logger.warning("No patches found for package %s", package)
            return 0

        if description and description != default_description(package):
            if description not in patches[package]:
                logger.warning("No patch '%s' found for package %s", description, package)
                return 0
            del patches[package][description]
            removed = 1
        else:
            removed = len(patches[package])
            del patches[package]

        self._save(data)
        logger.info("Removed %d patch(es) for package %s", removed, package)
        return removed

    def locate_package(self, package: str) -> Path:
        """Find the locally installed (and modified) copy of a package."""
        base = package.split("/")[-1]
        for candidate in (
            self.project_dir / "vendor" / package,
            self.project_dir / "web" / "modules" / "contrib" / base,
            self.project_dir / "web" / "themes" / "contrib" / base,
        ):
            if candidate.is_dir():
                return candidate
        raise PatchError(
            f"Package {package} not found in vendor, modules/contrib, or themes/contrib directories"
        )

    def _pristine_project(self, package: str, version: str, core_constraint: str) -> dict:
        return {
            "name": "temp/patch-project",
            "type": "project",
            "repositories": [{"type": "composer", "url": DRUPAL_PACKAGES_URL}],
            "require": {
                "composer/installers": "^1.9",
                "drupal/core": core_constraint,
                package: version,
            },
            "minimum-stability": "dev",
            "prefer-stable": True,
            "config": {
                "allow-plugins": {
                    "composer/installers": True,
                    "drupal/core-composer-scaffold": True,
                }
            },
        }

    @staticmethod
    def _find_installed(root: Path, package: str) -> Path:
        base = package.split("/")[-1]
        for candidate in (
            root / "vendor" / package,
            root / "web" / "modules" / "contrib" / base,
            root / "web" / "themes" / "contrib" / base,
            root / "modules" / base,
            root / "themes" / base,
        ):
            if candidate.is_dir():
                return candidate

        matches = sorted(p for p in root.rglob(base) if p.is_dir())
        if matches:
            return matches[0]
        raise PatchError(f"Could not find installed package {package} in temporary project")

    def _apply_existing(self, package: str, existing: dict, target: Path) -> None:
        """Re-apply registered patches so the new patch holds only new changes."""
        base = package.split("/")[-1]
        header = re.compile(rf"^(---|\+\+\+) ([ab])/{re.escape(base)}/", re.MULTILINE)

        for patch_path in existing.values():
            path = Path(patch_path)
            if not path.is_absolute():
                path = self.project_dir / path
            if not path.is_file():
                logger.warning("Patch file not found: %s", path)
                continue

            content = header.sub(r"\1 \2/", path.read_text())
            for level in (0, 1, 2):
                cmd = [self.settings.patch_bin, f"-p{level}", "-d", str(target)]
                if shell.run([*cmd, "--dry-run"], input=content, check=False).returncode == 0:
                    shell.run(cmd, input=content)
                    logger.info("Applied patch: %s (with -p%d)", path.name, level)
                    break
            else:
                logger.warning("Failed to apply patch: %s (tried -p0, -p1, -p2)", path.name)

    def create_patch(
        self,
        package: str,
        description: str | None = None,
        core_constraint: str = "^10",
    ) -> PatchEntry | None:
        """Capture local changes to a package as a patch and register it.

        Args:
            package: Package name, e.g. "drupal/symfony_mailer"
            description: Patch description used as the composer.json key
            core_constraint: drupal/core constraint for the temporary project

        Returns:
            The registered patch, or None when there are no local changes
        """
        description = description or default_description(package)
        data = self._load()
        existing = self._patches_section(data).get(package, {})
        if description in existing:
            raise PatchError(
                f"Patch with description '{description}' already exists for package {package}; "
                "use a different description or remove the existing patch first"
            )

        local_path = self.locate_package(package)
        logger.info("Found package at %s", local_path)

        try:
            version = ComposerClient(self.project_dir, binary=self.settings.composer_bin).installed_version(package)
        except LookupFailed:
            version = "*"

        temp_dir = Path(tempfile.mkdtemp(prefix="composer-patch-"))
        try:
            (temp_dir / "composer.json").write_text(
                json.dumps(self._pristine_project(package, version, core_constraint), indent=4)
            )
            logger.info("Installing %s:%s in temporary project...", package, version)
            try:
                ComposerClient(temp_dir, binary=self.settings.composer_bin).install(
                    "--no-dev", "--no-scripts", "--quiet"
                )
            except CommandError as e:
                raise PatchError(f"Could not install pristine {package}: {e}")

            pristine_path = self._find_installed(temp_dir, package)
            if existing:
                self._apply_existing(package, existing, pristine_path)

            patch_text = diff_trees(pristine_path, local_path)
        finally:
            shutil.rmtree(temp_dir, ignore_errors=True)

        if not patch_text:
            logger.warning("No differences found between original and modified versions")
            return None

        self.patches_dir.mkdir(parents=True, exist_ok=True)
        filename = patch_filename(package, description)
        (self.patches_dir / filename).write_text(patch_text)
        logger.info("Patch file created: %s", self.patches_dir / filename)

        entry = PatchEntry(package=package, description=description, path=f"./patches/{filename}")
        self._register(data, entry)
        return entry

    def _register(self, data: dict, entry: PatchEntry) -> None:
        extra = data.setdefault("extra", {})
        patches = extra.setdefault("patches", {})
        patches.setdefault(entry.package, {})[entry.description] = entry.path
        self._save(data)
        logger.info("Patch added to composer.json")
