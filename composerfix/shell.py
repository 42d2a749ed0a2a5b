"""Thin wrapper around subprocess for external tool calls."""

import logging
import subprocess
from pathlib import Path

from .errors import CommandError, ToolNotFound

logger = logging.getLogger(__name__)


def run(
    cmd: list[str],
    cwd: str | Path | None = None,
    check: bool = True,
    input: str | None = None,
) -> subprocess.CompletedProcess:
    """Run a command to completion and capture its output.

    Args:
        cmd: Command and arguments
        cwd: Working directory for the command
        check: Raise CommandError on a non-zero exit status
        input: Text passed to the command's stdin

    Returns:
        The completed process with text stdout and stderr
    """
    logger.debug("$ %s", " ".join(cmd))
    try:
        result = subprocess.run(
            cmd,
            cwd=str(cwd) if cwd is not None else None,
            input=input,
            text=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
        )
    except FileNotFoundError as e:
        if cwd is not None and e.filename == str(cwd):
            raise CommandError(cmd, 1, f"Working directory does not exist: {cwd}")
        raise ToolNotFound(cmd)

    if check and result.returncode != 0:
        raise CommandError(cmd, result.returncode, result.stderr or result.stdout)
    return result
