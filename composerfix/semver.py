"""Composer version-constraint evaluation built atop packaging.version.

Supported expressions:
- unions split by ``|`` or ``||``
- comparator sets split by ``,`` or whitespace, e.g. ">=1.0.0,<2.0.0"
- hyphen ranges ``1.0.0 - 2.0.0`` (inclusive upper bound when fully specified)
- caret ranges ^x.y.z and tilde ranges ~x.y.z with Composer semantics
- wildcards ``1.2.*`` / ``1.2.x`` and the catch-all ``*``
- operators ``>= > <= < != <> == =``; a bare version means exact match
"""

import re

from packaging.version import InvalidVersion, Version

from .errors import ConstraintError

STRICT_VERSION = re.compile(r"^[0-9]+\.[0-9]+\.[0-9]+$")

_OR_SPLIT = re.compile(r"\s*\|\|?\s*")
_HYPHEN = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")
_OPERATOR_GAP = re.compile(r"(>=|<=|!=|<>|==|>|<|=|\^|~)\s+")
_AND_SPLIT = re.compile(r"\s*,\s*|\s+")
_ATOM = re.compile(r"^(?P<op>>=|<=|!=|<>|==|>|<|=|\^|~)?(?P<version>.+)$")
_STABILITY_FLAG = re.compile(r"@(dev|alpha|beta|rc|stable)$", re.IGNORECASE)
_WILDCARD = re.compile(r"^(?P<prefix>[0-9]+(?:\.[0-9]+)*)\.[*xX]$")

Bound = tuple[str, Version]


def is_strict_version(version: str) -> bool:
    """Return True for plain numeric MAJOR.MINOR.PATCH strings."""
    return bool(STRICT_VERSION.match(version))


def split_or(constraint: str) -> list[str]:
    """Split a constraint on its "or" delimiter, dropping empty fragments."""
    return [part.strip() for part in _OR_SPLIT.split(constraint) if part.strip()]


def parse_version(text: str) -> Version:
    """Parse a Composer version string (optional leading v, stability flag)."""
    cleaned = _STABILITY_FLAG.sub("", text.strip())
    if cleaned[:1] in ("v", "V"):
        cleaned = cleaned[1:]
    try:
        return Version(cleaned)
    except InvalidVersion:
        raise ConstraintError(f"Invalid version: {text!r}")


def _release(parts: list[int]) -> str:
    return ".".join(str(p) for p in parts)


def _dev_floor(version: Version) -> Version:
    # Composer normalizes ">=1.2" to ">=1.2.0.0-dev", pulling pre-releases in
    if version.is_prerelease or version.is_postrelease:
        return version
    return Version(f"{version.base_version}.dev0")


def _upper(parts: list[int]) -> Version:
    return Version(f"{_release(parts)}.dev0")


def _caret(version: Version) -> list[Bound]:
    release = list(version.release)
    if release[0] != 0 or len(release) == 1:
        upper = [release[0] + 1]
    elif release[1] != 0 or len(release) == 2:
        upper = [0, release[1] + 1]
    else:
        upper = [0, 0, release[2] + 1]
    return [(">=", _dev_floor(version)), ("<", _upper(upper))]


def _tilde(version: Version) -> list[Bound]:
    release = list(version.release)
    if len(release) == 1:
        upper = [release[0] + 1]
    else:
        upper = release[:-1]
        upper[-1] += 1
    return [(">=", _dev_floor(version)), ("<", _upper(upper))]


def _wildcard(prefix: str) -> list[Bound]:
    parts = [int(p) for p in prefix.split(".")]
    upper = parts[:]
    upper[-1] += 1
    return [(">=", _upper(parts)), ("<", _upper(upper))]


def _hyphen(low: str, high: str) -> list[Bound]:
    lower = parse_version(low)
    upper = parse_version(high)
    bounds: list[Bound] = [(">=", _dev_floor(lower))]
    if len(upper.release) >= 3 or upper.is_prerelease:
        bounds.append(("<=", upper))
    else:
        # Partial upper bound: "1.0 - 2.1" means anything below 2.2
        parts = list(upper.release)
        parts[-1] += 1
        bounds.append(("<", _upper(parts)))
    return bounds


def _parse_atom(atom: str) -> list[Bound]:
    if atom in ("*", "x", "X"):
        return []

    match = _ATOM.match(atom)
    if not match:
        raise ConstraintError(f"Invalid constraint: {atom!r}")
    op = match.group("op") or ""
    raw = _STABILITY_FLAG.sub("", match.group("version"))

    wildcard = _WILDCARD.match(raw.lstrip("vV"))
    if wildcard:
        if op not in ("", "=", "=="):
            raise ConstraintError(f"Operator {op!r} cannot be combined with a wildcard: {atom!r}")
        return _wildcard(wildcard.group("prefix"))

    version = parse_version(raw)
    if op == "^":
        return _caret(version)
    if op == "~":
        return _tilde(version)
    if op in ("", "=", "=="):
        return [("==", version)]
    if op == "<>":
        op = "!="
    if op in ("<", ">="):
        version = _dev_floor(version)
    return [(op, version)]


def parse_constraint(constraint: str) -> list[list[Bound]]:
    """Parse a constraint into a union of comparator sets.

    Args:
        constraint: Composer constraint expression

    Returns:
        One list of (operator, version) bounds per "or" branch
    """
    branches = split_or(constraint)
    if not branches:
        raise ConstraintError(f"Empty constraint: {constraint!r}")

    parsed = []
    for branch in branches:
        hyphen = _HYPHEN.match(branch)
        if hyphen:
            parsed.append(_hyphen(hyphen.group("low"), hyphen.group("high")))
            continue

        atoms = [a for a in _AND_SPLIT.split(_OPERATOR_GAP.sub(r"\1", branch)) if a]
        if not atoms:
            raise ConstraintError(f"Invalid constraint: {branch!r}")

        bounds: list[Bound] = []
        for atom in atoms:
            bounds.extend(_parse_atom(atom))
        parsed.append(bounds)
    return parsed


def _compare(candidate: Version, op: str, bound: Version) -> bool:
    if op == "==":
        return candidate == bound
    if op == "!=":
        return candidate != bound
    if op == ">=":
        return candidate >= bound
    if op == ">":
        return candidate > bound
    if op == "<=":
        return candidate <= bound
    if op == "<":
        return candidate < bound
    raise ConstraintError(f"Unknown operator: {op!r}")


def satisfies(version: str, constraint: str) -> bool:
    """Check whether a version satisfies a Composer constraint.

    Raises:
        ConstraintError: If the version or constraint cannot be parsed
    """
    candidate = parse_version(version)
    for bounds in parse_constraint(constraint):
        if all(_compare(candidate, op, bound) for op, bound in bounds):
            return True
    return False
