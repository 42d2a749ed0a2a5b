"""Configuration helpers for ComposerFix."""

import os
from dataclasses import dataclass

DEFAULT_PACKAGIST_REPO_URL = "https://repo.packagist.org"
DEFAULT_ADVISORIES_URL = "https://packagist.org/api/security-advisories/"


def _float_env(name: str, default: float) -> float:
    try:
        value = os.getenv(name)
        return float(value) if value is not None else default
    except ValueError:
        return default


def _int_env(name: str, default: int) -> int:
    try:
        value = os.getenv(name)
        return int(value) if value is not None else default
    except ValueError:
        return default


@dataclass
class Settings:
    """Runtime settings, overridable per command from the CLI."""

    composer_bin: str = "composer"
    php_bin: str = "php"
    git_bin: str = "git"
    patch_bin: str = "patch"
    branch: str = "dev"
    packagist_repo_url: str = DEFAULT_PACKAGIST_REPO_URL
    advisories_url: str = DEFAULT_ADVISORIES_URL
    http_timeout: float = 30.0
    log_level: str = "INFO"
    web_host: str = "127.0.0.1"
    web_port: int = 8000

    @classmethod
    def from_env(cls) -> "Settings":
        """Create settings from COMPOSERFIX_* environment variables."""
        return cls(
            composer_bin=os.getenv("COMPOSERFIX_COMPOSER", cls.composer_bin),
            php_bin=os.getenv("COMPOSERFIX_PHP", cls.php_bin),
            git_bin=os.getenv("COMPOSERFIX_GIT", cls.git_bin),
            patch_bin=os.getenv("COMPOSERFIX_PATCH", cls.patch_bin),
            branch=os.getenv("COMPOSERFIX_BRANCH", cls.branch),
            packagist_repo_url=os.getenv("COMPOSERFIX_PACKAGIST_URL", cls.packagist_repo_url).rstrip("/"),
            advisories_url=os.getenv("COMPOSERFIX_ADVISORIES_URL", cls.advisories_url),
            http_timeout=_float_env("COMPOSERFIX_HTTP_TIMEOUT", cls.http_timeout),
            log_level=os.getenv("COMPOSERFIX_LOG_LEVEL", cls.log_level).upper(),
            web_host=os.getenv("COMPOSERFIX_WEB_HOST", cls.web_host),
            web_port=_int_env("COMPOSERFIX_WEB_PORT", cls.web_port),
        )


def load_settings() -> Settings:
    """Load settings from the environment with sensible defaults."""
    return Settings.from_env()
