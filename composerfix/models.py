"""Core data models for ComposerFix."""

from collections import OrderedDict
from dataclasses import asdict, dataclass, field
from enum import Enum


class Outcome(str, Enum):
    """Per-package result of a safe-upgrade evaluation."""

    SELECTED = "selected"
    NO_VALID_RANGES = "no-valid-ranges"
    NO_SAFE_VERSION = "no-safe-version"
    LOOKUP_ERROR = "lookup-error"
    INDETERMINATE = "indeterminate"


class Verdict(str, Enum):
    """Classification of a single candidate version."""

    VULNERABLE = "vulnerable"
    SAFE = "safe"
    POLICY_BLOCKED = "policy-blocked"


@dataclass
class Advisory:
    """A security advisory affecting one package."""

    package: str
    affected_versions: str
    advisory_id: str | None = None
    title: str | None = None
    cve: str | None = None
    link: str | None = None


@dataclass
class CandidateCheck:
    """How one candidate version was classified."""

    version: str
    verdict: Verdict
    matched_range: str | None = None


@dataclass
class Selection:
    """Decision returned by the safe-upgrade selector."""

    package: str
    outcome: Outcome
    version: str | None = None
    ranges: list[str] = field(default_factory=list)
    checks: list[CandidateCheck] = field(default_factory=list)
    reason: str = ""


@dataclass
class UpgradeDecision:
    """Final decision for a vulnerable package in an audit run."""

    package: str
    outcome: Outcome
    installed_version: str | None = None
    selected_version: str | None = None
    ranges: list[str] = field(default_factory=list)
    reason: str = ""
    applied: bool | None = None  # None: not attempted
    error: str | None = None

    @property
    def requirement(self) -> str | None:
        """The ``package:version`` line consumed by generated scripts."""
        if self.selected_version is None:
            return None
        return f"{self.package}:{self.selected_version}"


class UpgradeReport:
    """Ordered mapping of package name to upgrade decision."""

    def __init__(self):
        self._decisions: OrderedDict[str, UpgradeDecision] = OrderedDict()

    def add(self, decision: UpgradeDecision) -> None:
        self._decisions[decision.package] = decision

    def get(self, package: str) -> UpgradeDecision | None:
        return self._decisions.get(package)

    def __iter__(self):
        return iter(self._decisions.values())

    def __len__(self) -> int:
        return len(self._decisions)

    def selected(self) -> list[UpgradeDecision]:
        return [d for d in self._decisions.values() if d.outcome == Outcome.SELECTED]

    def requirements(self) -> list[tuple[str, str]]:
        """(package, version) pairs for every selected upgrade, in run order."""
        return [(d.package, d.selected_version) for d in self.selected()]

    def to_dict(self) -> dict:
        decisions = []
        for decision in self._decisions.values():
            item = asdict(decision)
            item["outcome"] = decision.outcome.value
            decisions.append(item)
        return {
            "decisions": decisions,
            "selected": [d.requirement for d in self.selected()],
        }


@dataclass
class WhyNotEntry:
    """A package that blocks a Drupal core upgrade, from ``composer why-not``."""

    package: str
    version: str = ""
    relation: str = ""
    constraint: str = ""


@dataclass
class CompatResult:
    """Compatibility outcome for one blocking package."""

    package: str
    constraint: str | None = None  # e.g. "^3" when a compatible major exists
    tested_majors: list[int] = field(default_factory=list)
    reason: str = ""

    @property
    def compatible(self) -> bool:
        return self.constraint is not None


@dataclass
class CompatReport:
    """Result of a Drupal core compatibility scan."""

    target_major: int
    results: list[CompatResult] = field(default_factory=list)
    script_path: str | None = None

    @property
    def upgradable(self) -> list[CompatResult]:
        return [r for r in self.results if r.compatible]

    @property
    def incompatible(self) -> list[CompatResult]:
        return [r for r in self.results if not r.compatible]


@dataclass
class PatchEntry:
    """A patch registered under ``extra.patches`` in composer.json."""

    package: str
    description: str
    path: str


@dataclass
class ToolCheck:
    """Availability of one external tool."""

    name: str
    found: bool
    version: str | None = None
    hint: str | None = None
