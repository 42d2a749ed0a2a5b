"""Safe-upgrade selection for packages with security advisories."""

import logging
from collections.abc import Iterable

from packaging.version import InvalidVersion, Version

from .errors import ConstraintError
from .models import CandidateCheck, Outcome, Selection, Verdict
from .oracle import RangeOracle
from .semver import is_strict_version, split_or

logger = logging.getLogger(__name__)


def split_ranges(ranges: Iterable[str]) -> list[str]:
    """Flatten compound advisory ranges into trimmed, non-empty sub-ranges."""
    flattened = []
    for compound in ranges:
        flattened.extend(split_or(compound or ""))
    return flattened


def candidate_versions(versions: Iterable[str]) -> list[str]:
    """Keep strict MAJOR.MINOR.PATCH versions, sorted ascending."""
    candidates = [v for v in versions if is_strict_version(v)]
    return sorted(candidates, key=Version)


def major_of(version: str) -> str:
    """Return the major component of a version string."""
    return version.lstrip("vV").split(".", 1)[0]


def _is_downgrade(version: str, installed_version: str) -> bool:
    try:
        return Version(version) < Version(installed_version.lstrip("vV"))
    except InvalidVersion:
        return False


def select_safe_version(
    package: str,
    installed_version: str,
    ranges: Iterable[str],
    available_versions: Iterable[str],
    oracle: RangeOracle,
    allow_major: bool = False,
) -> Selection:
    """Pick the first safe, policy-compatible version of a package.

    Args:
        package: Package identifier, e.g. "drupal/core"
        installed_version: Currently installed version
        ranges: Affected version ranges, possibly "|"-joined unions
        available_versions: Published versions as reported by the registry
        oracle: Range-satisfaction oracle
        allow_major: Permit selecting a different major version

    Returns:
        Selection with the chosen version or the reason none was chosen
    """
    affected = split_ranges(ranges)
    if not affected:
        return Selection(
            package=package,
            outcome=Outcome.NO_VALID_RANGES,
            reason="No valid affected ranges found",
        )

    installed_major = major_of(installed_version)
    checks: list[CandidateCheck] = []

    for version in candidate_versions(available_versions):
        try:
            matched = next((r for r in affected if oracle.satisfies(version, r)), None)
        except ConstraintError as e:
            return Selection(
                package=package,
                outcome=Outcome.INDETERMINATE,
                ranges=affected,
                checks=checks,
                reason=str(e),
            )

        if matched is not None:
            logger.debug("%s %s satisfies %s (vulnerable)", package, version, matched)
            checks.append(CandidateCheck(version, Verdict.VULNERABLE, matched))
            continue

        if allow_major or major_of(version) == installed_major:
            checks.append(CandidateCheck(version, Verdict.SAFE))
            if allow_major:
                reason = "Not in any affected range, major upgrade allowed"
            else:
                reason = "Not in any affected range, same major version"
            if _is_downgrade(version, installed_version):
                logger.warning(
                    "%s: selected %s is lower than installed %s (downgrade)",
                    package, version, installed_version,
                )
            return Selection(
                package=package,
                outcome=Outcome.SELECTED,
                version=version,
                ranges=affected,
                checks=checks,
                reason=reason,
            )

        logger.info(
            "%s is safe but major version differs (%s vs %s), skipping",
            version, installed_major, major_of(version),
        )
        checks.append(CandidateCheck(version, Verdict.POLICY_BLOCKED))

    return Selection(
        package=package,
        outcome=Outcome.NO_SAFE_VERSION,
        ranges=affected,
        checks=checks,
        reason="No safe upgrade available",
    )
