"""Checks that the external tools ComposerFix drives are installed."""

import shutil
import sys

from . import shell
from .config import Settings
from .errors import CommandError
from .models import ToolCheck

MIN_PYTHON = (3, 10)

INSTALL_HINTS = {
    "git": "brew install git",
    "composer": "brew install composer",
    "php": "brew install php",
    "patch": "brew install gpatch",
}


def tool_version(binary: str) -> str | None:
    """First line of ``<binary> --version``, or None if it cannot be run."""
    try:
        result = shell.run([binary, "--version"], check=False)
    except CommandError:
        return None
    output = (result.stdout or result.stderr).strip()
    return output.splitlines()[0] if output else ""


def check_python() -> ToolCheck:
    version = ".".join(str(part) for part in sys.version_info[:3])
    return ToolCheck(
        name="python",
        found=sys.version_info[:2] >= MIN_PYTHON,
        version=version,
        hint=None if sys.version_info[:2] >= MIN_PYTHON else "Python 3.10 or higher is required",
    )


def check_environment(settings: Settings | None = None) -> list[ToolCheck]:
    """Check Python and every external tool on PATH."""
    settings = settings or Settings()
    binaries = {
        "git": settings.git_bin,
        "composer": settings.composer_bin,
        "php": settings.php_bin,
        "patch": settings.patch_bin,
    }

    checks = [check_python()]
    for name, binary in binaries.items():
        if shutil.which(binary) is None:
            checks.append(ToolCheck(name=name, found=False, hint=INSTALL_HINTS[name]))
            continue
        checks.append(ToolCheck(name=name, found=True, version=tool_version(binary)))
    return checks


def count_issues(checks: list[ToolCheck]) -> int:
    return sum(1 for check in checks if not check.found)
