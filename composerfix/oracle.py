"""Range-satisfaction oracles used by the safe-upgrade selector."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Protocol

from . import semver, shell
from .errors import CommandError, ConstraintError, OracleUnavailable

logger = logging.getLogger(__name__)

SEMVER_CHECK_PHP = """<?php
require __DIR__ . '/vendor/autoload.php';
use Composer\\Semver\\Semver;
[$_, $ver, $range] = $argv;
exit(Semver::satisfies($ver, $range) ? 0 : 1);
"""


class RangeOracle(Protocol):
    """Answers whether a version falls inside a constraint."""

    name: str

    def ensure_ready(self) -> None: ...

    def satisfies(self, version: str, constraint: str) -> bool: ...

    def close(self) -> None: ...


class NativeOracle:
    """In-process evaluator backed by composerfix.semver."""

    name = "native"

    def ensure_ready(self) -> None:
        pass

    def satisfies(self, version: str, constraint: str) -> bool:
        return semver.satisfies(version, constraint)

    def close(self) -> None:
        pass


class PhpSemverOracle:
    """Evaluator that asks composer/semver through a php helper script.

    The helper and its dependency are installed into a private temporary
    directory by ensure_ready() and removed by close().
    """

    name = "php"

    def __init__(self, php_bin: str = "php", composer_bin: str = "composer"):
        self.php_bin = php_bin
        self.composer_bin = composer_bin
        self._workdir: Path | None = None

    @property
    def script_path(self) -> Path:
        if self._workdir is None:
            raise OracleUnavailable("PHP semver oracle has not been prepared")
        return self._workdir / "semver-check.php"

    def ensure_ready(self) -> None:
        if self._workdir is not None:
            return
        workdir = Path(tempfile.mkdtemp(prefix="composerfix-semver-"))
        try:
            (workdir / "semver-check.php").write_text(SEMVER_CHECK_PHP)
            logger.debug("Installing composer/semver into %s", workdir)
            shell.run(
                [self.composer_bin, "--no-interaction", "--quiet", "require", "composer/semver"],
                cwd=workdir,
            )
            shell.run([self.php_bin, "--version"])
        except CommandError as e:
            shutil.rmtree(workdir, ignore_errors=True)
            raise OracleUnavailable(f"Could not prepare composer/semver: {e}")
        self._workdir = workdir

    def satisfies(self, version: str, constraint: str) -> bool:
        result = shell.run(
            [self.php_bin, str(self.script_path), version, constraint],
            check=False,
        )
        if result.returncode == 0:
            return True
        if result.returncode == 1:
            return False
        raise ConstraintError(
            f"composer/semver failed on {version!r} against {constraint!r}: {result.stderr.strip()}"
        )

    def close(self) -> None:
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    def __enter__(self) -> "PhpSemverOracle":
        self.ensure_ready()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()


def make_oracle(kind: str, php_bin: str = "php", composer_bin: str = "composer") -> RangeOracle:
    """Build an oracle by name ("native" or "php")."""
    if kind == "native":
        return NativeOracle()
    if kind == "php":
        return PhpSemverOracle(php_bin=php_bin, composer_bin=composer_bin)
    raise ValueError(f"Unknown oracle: {kind}")
