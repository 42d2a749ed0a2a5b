"""Tests for safe-upgrade selection."""

import logging

from composerfix.errors import ConstraintError
from composerfix.models import Outcome, Verdict
from composerfix.oracle import NativeOracle
from composerfix.selector import candidate_versions, major_of, select_safe_version, split_ranges

RANGES = ["<1.2.0", "1.5.0 - 1.5.3"]


class RecordingOracle(NativeOracle):
    """Native oracle that remembers every (version, range) it was asked about."""

    def __init__(self):
        self.calls = []

    def satisfies(self, version, constraint):
        self.calls.append((version, constraint))
        return super().satisfies(version, constraint)


class FailingOracle(NativeOracle):
    def satisfies(self, version, constraint):
        raise ConstraintError("range check failed")


class TestHelpers:
    """Test range splitting and candidate filtering."""

    def test_split_ranges_flattens_compound_ranges(self):
        assert split_ranges(["<1.2.0|1.5.0 - 1.5.3", " >=2.0.0 "]) == ["<1.2.0", "1.5.0 - 1.5.3", ">=2.0.0"]

    def test_split_ranges_discards_empty_fragments(self):
        assert split_ranges(["", "  ", " | ", None]) == []

    def test_candidate_versions_excludes_non_strict(self):
        versions = ["2.0.0-beta1", "dev-main", "2.0.0", "1.x-dev", "2.0"]
        assert candidate_versions(versions) == ["2.0.0"]

    def test_candidate_versions_sorted_ascending(self):
        assert candidate_versions(["1.10.0", "1.2.0", "1.9.3"]) == ["1.2.0", "1.9.3", "1.10.0"]

    def test_major_of(self):
        assert major_of("1.2.5") == "1"
        assert major_of("v10.0.0") == "10"


class TestSelectSafeVersion:
    """Test the safe-upgrade selector."""

    def test_scenario_installed_version_is_already_safe(self):
        """Should select the installed version when it is outside every range."""
        selection = select_safe_version(
            "acme/lib", "1.2.5", RANGES, ["1.1.0", "1.2.5", "1.5.1", "1.6.0"], NativeOracle()
        )

        assert selection.outcome == Outcome.SELECTED
        assert selection.version == "1.2.5"
        assert [c.verdict for c in selection.checks] == [Verdict.VULNERABLE, Verdict.SAFE]
        assert selection.checks[0].matched_range == "<1.2.0"

    def test_scenario_all_candidates_vulnerable(self):
        """Should report no safe version when every candidate is affected."""
        selection = select_safe_version(
            "acme/lib", "1.1.0", RANGES, ["1.1.0", "1.5.1"], NativeOracle()
        )

        assert selection.outcome == Outcome.NO_SAFE_VERSION
        assert selection.version is None
        assert all(c.verdict == Verdict.VULNERABLE for c in selection.checks)

    def test_scenario_major_upgrade_allowed(self):
        """Should cross a major version when policy allows it."""
        selection = select_safe_version(
            "acme/lib", "1.9.0", ["<2.0.0"], ["1.9.0", "3.0.0"], NativeOracle(), allow_major=True
        )

        assert selection.outcome == Outcome.SELECTED
        assert selection.version == "3.0.0"
        assert "major upgrade allowed" in selection.reason

    def test_scenario_no_valid_ranges(self):
        """Should skip packages whose advisories have no usable ranges."""
        oracle = RecordingOracle()
        selection = select_safe_version("acme/lib", "1.0.0", ["", "  "], ["1.0.0"], oracle)

        assert selection.outcome == Outcome.NO_VALID_RANGES
        assert oracle.calls == []

    def test_policy_blocks_cross_major_versions(self):
        """Should never select a different major when major upgrades are disabled."""
        selection = select_safe_version(
            "acme/lib", "1.9.0", ["<2.0.0"], ["1.9.0", "3.0.0"], NativeOracle()
        )

        assert selection.outcome == Outcome.NO_SAFE_VERSION
        assert [c.verdict for c in selection.checks] == [Verdict.VULNERABLE, Verdict.POLICY_BLOCKED]

    def test_policy_block_continues_scanning(self):
        """Should keep scanning past a blocked version for a same-major one."""
        selection = select_safe_version(
            "acme/lib", "1.0.0", ["<1.5.0"], ["1.0.0", "2.0.0", "1.6.0"], NativeOracle()
        )

        assert selection.outcome == Outcome.SELECTED
        assert selection.version == "1.6.0"

    def test_vulnerable_versions_never_selected(self):
        selection = select_safe_version(
            "acme/lib", "1.0.0", [">=1.0.0,<2.0.0"], ["1.0.0", "1.5.0", "1.9.9"], NativeOracle(), allow_major=True
        )

        assert selection.outcome == Outcome.NO_SAFE_VERSION

    def test_non_strict_versions_are_not_candidates(self):
        oracle = RecordingOracle()
        selection = select_safe_version(
            "acme/lib", "1.0.0", ["<1.0.0"], ["2.0.0-beta1", "dev-main", "2.0.0"], oracle, allow_major=True
        )

        assert selection.version == "2.0.0"
        assert {version for version, _ in oracle.calls} == {"2.0.0"}

    def test_candidates_scanned_in_ascending_order(self):
        """Should pick the lowest safe version even if the registry lists newest first."""
        selection = select_safe_version(
            "acme/lib", "1.0.0", ["<1.1.0"], ["1.4.0", "1.3.0", "1.1.0", "1.0.0"], NativeOracle()
        )

        assert selection.version == "1.1.0"

    def test_compound_ranges_are_split(self):
        selection = select_safe_version(
            "acme/lib", "1.0.0", ["<1.2.0|1.5.0 - 1.5.3"], ["1.1.0", "1.5.1", "1.5.4"], NativeOracle()
        )

        assert selection.ranges == ["<1.2.0", "1.5.0 - 1.5.3"]
        assert selection.version == "1.5.4"

    def test_stops_at_first_selected_candidate(self):
        oracle = RecordingOracle()
        select_safe_version("acme/lib", "1.0.0", ["<1.0.0"], ["1.0.0", "1.1.0"], oracle)

        assert {version for version, _ in oracle.calls} == {"1.0.0"}

    def test_oracle_failure_is_indeterminate(self):
        selection = select_safe_version("acme/lib", "1.0.0", ["<1.0.0"], ["1.0.0"], FailingOracle())

        assert selection.outcome == Outcome.INDETERMINATE
        assert "range check failed" in selection.reason

    def test_no_candidates_means_no_safe_version(self):
        selection = select_safe_version("acme/lib", "1.0.0", ["<1.0.0"], ["dev-main"], NativeOracle())

        assert selection.outcome == Outcome.NO_SAFE_VERSION

    def test_selection_is_idempotent(self):
        args = ("acme/lib", "1.2.5", RANGES, ["1.1.0", "1.2.5", "1.5.1", "1.6.0"], NativeOracle())

        assert select_safe_version(*args) == select_safe_version(*args)

    def test_downgrade_is_logged(self, caplog):
        """Should warn when the lowest safe version is below the installed one."""
        with caplog.at_level(logging.WARNING, logger="composerfix.selector"):
            selection = select_safe_version(
                "acme/lib", "1.5.1", ["1.5.0 - 1.5.3"], ["1.4.0", "1.5.1", "1.5.4"], NativeOracle()
            )

        assert selection.version == "1.4.0"
        assert "downgrade" in caplog.text

    def test_upgrade_is_not_logged_as_downgrade(self, caplog):
        with caplog.at_level(logging.WARNING, logger="composerfix.selector"):
            select_safe_version("acme/lib", "1.1.0", ["<1.2.0"], ["1.1.0", "1.2.5"], NativeOracle())

        assert "downgrade" not in caplog.text
