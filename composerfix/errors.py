"""Exceptions raised by ComposerFix."""


class ComposerFixError(Exception):
    """Base class for all ComposerFix errors."""


class CommandError(ComposerFixError):
    """An external command exited with a non-zero status."""

    def __init__(self, cmd: list[str], returncode: int, output: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.output = output
        message = f"Command failed ({returncode}): {' '.join(cmd)}"
        if output.strip():
            message += f"\n{output.strip()}"
        super().__init__(message)


class ToolNotFound(CommandError):
    """The executable for an external command is not on PATH."""

    def __init__(self, cmd: list[str]):
        super().__init__(cmd, 127, f"{cmd[0]}: command not found")


class LookupFailed(ComposerFixError):
    """Registry lookup for a package's versions failed."""


class ConstraintError(ComposerFixError):
    """A version or constraint could not be evaluated."""


class OracleUnavailable(ComposerFixError):
    """The range-satisfaction oracle could not be prepared."""


class AdvisoryFeedError(ComposerFixError):
    """No usable advisory input was received."""


class ProjectNotFound(ComposerFixError):
    """No composer.json could be located."""


class PatchError(ComposerFixError):
    """Patch creation or registration failed."""
