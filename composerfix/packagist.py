"""Packagist metadata and security advisory lookups."""

import logging

import httpx

from .composer import normalize_version
from .config import DEFAULT_ADVISORIES_URL, DEFAULT_PACKAGIST_REPO_URL
from .errors import LookupFailed
from .models import Advisory

logger = logging.getLogger(__name__)


class PackagistClient:
    """Client for the Packagist v2 metadata and advisories APIs."""

    def __init__(
        self,
        repo_url: str = DEFAULT_PACKAGIST_REPO_URL,
        advisories_url: str = DEFAULT_ADVISORIES_URL,
        timeout: float = 30.0,
    ):
        """Initialize Packagist client.

        Args:
            repo_url: Base URL of the Composer v2 metadata repository
            advisories_url: Security advisories API endpoint
            timeout: Request timeout in seconds
        """
        self.repo_url = repo_url.rstrip("/")
        self.advisories_url = advisories_url
        self.timeout = timeout
        self._cache: dict[str, dict] = {}

    def _request_json(self, url: str, data: dict | None = None) -> dict | None:
        """GET a JSON document, or POST form data when ``data`` is given."""
        try:
            with httpx.Client(timeout=self.timeout) as client:
                if data is None:
                    response = client.get(url)
                else:
                    response = client.post(url, data=data)
                if response.status_code == 404:
                    return None
                response.raise_for_status()
                return response.json()
        except httpx.TimeoutException:
            raise LookupFailed(f"Timeout fetching {url}")
        except httpx.HTTPStatusError as e:
            raise LookupFailed(f"HTTP error fetching {url}: {e}")
        except (httpx.HTTPError, ValueError) as e:
            raise LookupFailed(f"Network error fetching {url}: {e}")

    def _fetch_package_metadata(self, package: str) -> dict | None:
        """Fetch package metadata from the v2 repository.

        Args:
            package: Package name ("vendor/name")

        Returns:
            Metadata dict or None if the package does not exist
        """
        if package in self._cache:
            return self._cache[package]

        metadata = self._request_json(f"{self.repo_url}/p2/{package}.json")
        if metadata is not None:
            self._cache[package] = metadata
        return metadata

    def available_versions(self, package: str) -> list[str]:
        """Return published versions, in the order Packagist lists them."""
        metadata = self._fetch_package_metadata(package)
        if not metadata:
            raise LookupFailed(f"Package {package} not found on Packagist")

        releases = metadata.get("packages", {}).get(package, [])
        versions = [normalize_version(r["version"]) for r in releases if r.get("version")]
        if not versions:
            raise LookupFailed(f"No releases found for package {package}")
        return versions

    def security_advisories(self, packages: list[str]) -> dict[str, list[Advisory]]:
        """Fetch advisories for a set of packages.

        Args:
            packages: Package names to query

        Returns:
            Mapping of package name to its advisories; unaffected packages are omitted
        """
        if not packages:
            return {}

        data = self._request_json(self.advisories_url, data={"packages[]": list(packages)})
        if data is None:
            raise LookupFailed(f"Advisories endpoint not found: {self.advisories_url}")
        return parse_advisories(data)


def parse_advisories(data: dict) -> dict[str, list[Advisory]]:
    """Parse the ``advisories`` section shared by composer audit and Packagist.

    Each package maps to either a list or an id-keyed object of advisories.
    """
    advisories: dict[str, list[Advisory]] = {}
    section = data.get("advisories") or {}
    if not isinstance(section, dict):
        return advisories

    for package in sorted(section):
        entries = section[package]
        if isinstance(entries, dict):
            entries = list(entries.values())
        parsed = [
            Advisory(
                package=package,
                affected_versions=entry.get("affectedVersions") or "",
                advisory_id=entry.get("advisoryId"),
                title=entry.get("title"),
                cve=entry.get("cve"),
                link=entry.get("link"),
            )
            for entry in entries
            if isinstance(entry, dict)
        ]
        if parsed:
            advisories[package] = parsed
    return advisories
