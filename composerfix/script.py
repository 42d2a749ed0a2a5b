"""Generated shell scripts that replay upgrade decisions."""

import shlex
import stat
from collections.abc import Iterable
from pathlib import Path


def render_upgrade_script(requirements: Iterable[tuple[str, str]], comment: str | None = None) -> str:
    """Render a bash script running one batch ``composer require``.

    Args:
        requirements: (package, constraint) pairs, emitted as shell-quoted "package:constraint"
        comment: Header comment, folded onto a single line

    Returns:
        Script content
    """
    lines = [
        "#!/bin/bash",
        "set -e",
        "# " + " ".join((comment or "This script runs composer require for upgradable packages").split()),
    ]
    args = [shlex.quote(f"{package}:{constraint}") for package, constraint in requirements]
    if args:
        lines.append("composer require " + " ".join(args) + " -W")
    else:
        lines.append("# Nothing to upgrade")
    return "\n".join(lines) + "\n"


def write_upgrade_script(path: str | Path, requirements: Iterable[tuple[str, str]], comment: str | None = None) -> Path:
    """Write an executable upgrade script and return its path."""
    script = Path(path)
    script.write_text(render_upgrade_script(requirements, comment))
    script.chmod(script.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return script
