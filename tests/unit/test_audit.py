"""Tests for the audit run."""

import json
from unittest.mock import MagicMock, call, patch

import pytest

from composerfix.audit import AuditRunner
from composerfix.composer import ComposerClient
from composerfix.config import Settings
from composerfix.errors import AdvisoryFeedError, CommandError, LookupFailed, OracleUnavailable
from composerfix.models import Advisory, Outcome
from composerfix.oracle import NativeOracle
from composerfix.packagist import PackagistClient

INSTALLED = {"acme/lib": "1.1.0", "acme/util": "2.1.0"}
AVAILABLE = {
    "acme/lib": ["1.6.0", "1.5.1", "1.2.5", "1.1.0", "2.0.x-dev"],
    "acme/util": ["3.0.0", "2.3.1", "2.1.0"],
}


def make_composer(audit_output):
    composer = MagicMock(spec=ComposerClient)
    composer.audit.return_value = audit_output
    composer.installed_version.side_effect = lambda pkg: INSTALLED[pkg]
    composer.available_versions.side_effect = lambda pkg: AVAILABLE[pkg]
    return composer


class TestAuditRunner:
    """Test the audit-and-fix workflow."""

    def make_runner(self, project_dir, composer, **kwargs):
        kwargs.setdefault("sync_git", False)
        kwargs.setdefault("install", False)
        return AuditRunner(project_dir, NativeOracle(), composer=composer, **kwargs)

    def test_selects_and_applies_safe_versions(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)

        report = self.make_runner(project_dir, composer).run()

        assert report.requirements() == [("acme/lib", "1.2.5"), ("acme/util", "2.3.1")]
        assert composer.require.call_args_list == [call("acme/lib", "1.2.5"), call("acme/util", "2.3.1")]
        assert all(d.applied for d in report)
        assert report.get("acme/lib").installed_version == "1.1.0"
        assert report.get("acme/lib").ranges == ["<1.2.0", "1.5.0 - 1.5.3"]

    def test_dry_run_does_not_apply(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)

        report = self.make_runner(project_dir, composer, apply=False).run()

        composer.require.assert_not_called()
        assert report.get("acme/lib").applied is None
        assert len(report.selected()) == 2

    def test_lookup_failure_skips_package(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)

        def installed(pkg):
            if pkg == "acme/lib":
                raise LookupFailed("Could not determine current version for acme/lib")
            return INSTALLED[pkg]

        composer.installed_version.side_effect = installed

        report = self.make_runner(project_dir, composer).run()

        assert report.get("acme/lib").outcome == Outcome.LOOKUP_ERROR
        assert report.get("acme/util").outcome == Outcome.SELECTED
        composer.require.assert_called_once_with("acme/util", "2.3.1")

    def test_available_versions_failure_skips_package(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)
        composer.available_versions.side_effect = LookupFailed("registry down")

        report = self.make_runner(project_dir, composer).run()

        assert [d.outcome for d in report] == [Outcome.LOOKUP_ERROR, Outcome.LOOKUP_ERROR]
        assert report.get("acme/util").installed_version == "2.1.0"

    def test_no_stable_versions_is_lookup_error(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)
        composer.available_versions.side_effect = lambda pkg: ["dev-main", "3.0.0-beta1"]

        report = self.make_runner(project_dir, composer).run()

        assert report.get("acme/lib").outcome == Outcome.LOOKUP_ERROR

    def test_apply_failure_continues(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)
        composer.require.side_effect = [CommandError(["composer", "require"], 2, "conflict"), None]

        report = self.make_runner(project_dir, composer).run()

        assert report.get("acme/lib").applied is False
        assert "conflict" in report.get("acme/lib").error
        assert report.get("acme/util").applied is True

    def test_no_valid_ranges(self, project_dir):
        audit = json.dumps({"advisories": {"acme/lib": [{"affectedVersions": " | "}]}})
        composer = make_composer(audit)

        report = self.make_runner(project_dir, composer).run()

        assert report.get("acme/lib").outcome == Outcome.NO_VALID_RANGES
        composer.require.assert_not_called()

    def test_no_safe_version(self, project_dir):
        audit = json.dumps({"advisories": {"acme/util": [{"affectedVersions": ">=2.0.0,<2.5.0"}]}})
        composer = make_composer(audit)

        report = self.make_runner(project_dir, composer).run()

        assert report.get("acme/util").outcome == Outcome.NO_SAFE_VERSION

    def test_allow_major(self, project_dir):
        audit = json.dumps({"advisories": {"acme/util": [{"affectedVersions": ">=2.0.0,<2.5.0"}]}})
        composer = make_composer(audit)

        report = self.make_runner(project_dir, composer, allow_major=True).run()

        assert report.get("acme/util").selected_version == "3.0.0"

    def test_empty_audit_output_aborts(self, project_dir):
        composer = make_composer("")

        with pytest.raises(AdvisoryFeedError):
            self.make_runner(project_dir, composer).run()
        composer.installed_version.assert_not_called()

    def test_invalid_audit_json_yields_empty_report(self, project_dir):
        composer = make_composer("PHP Warning: something broke")

        report = self.make_runner(project_dir, composer).run()

        assert len(report) == 0

    def test_no_advisories_key(self, project_dir):
        composer = make_composer(json.dumps({"abandoned": {}}))

        report = self.make_runner(project_dir, composer).run()

        assert len(report) == 0

    def test_oracle_unavailable_aborts_before_packages(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)
        oracle = MagicMock()
        oracle.ensure_ready.side_effect = OracleUnavailable("php not found")

        runner = AuditRunner(project_dir, oracle, sync_git=False, install=False, composer=composer)
        with pytest.raises(OracleUnavailable):
            runner.run()
        composer.audit.assert_not_called()
        composer.installed_version.assert_not_called()

    def test_oracle_closed_after_run(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)
        oracle = MagicMock()
        oracle.satisfies.return_value = False

        AuditRunner(project_dir, oracle, sync_git=False, install=False, composer=composer).run()

        oracle.close.assert_called_once()

    def test_git_sync_and_install(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)
        settings = Settings(branch="release")

        with patch("composerfix.audit.shell.run") as mock_run:
            runner = AuditRunner(
                project_dir, NativeOracle(), settings=settings, apply=False, composer=composer
            )
            runner.run()

            commands = [c[0][0] for c in mock_run.call_args_list]
            assert commands == [["git", "checkout", "release"], ["git", "pull"]]
            assert mock_run.call_args_list[0][1]["cwd"] == project_dir
        composer.install.assert_called_once_with("-q")

    def test_git_failure_is_fatal(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)

        with patch("composerfix.audit.shell.run") as mock_run:
            mock_run.side_effect = CommandError(["git", "checkout", "dev"], 1, "pathspec 'dev' did not match")
            with pytest.raises(CommandError):
                AuditRunner(project_dir, NativeOracle(), install=False, composer=composer).run()
        composer.audit.assert_not_called()

    def test_composer_json_in_subdirectory(self, tmp_path, sample_audit_json):
        site = tmp_path / "site"
        site.mkdir()
        (site / "composer.json").write_text("{}")
        composer = make_composer(sample_audit_json)

        runner = self.make_runner(tmp_path, composer, apply=False)
        runner.run()

        assert runner.project_dir == site

    def test_packagist_sources(self, project_dir):
        composer = make_composer("")
        composer.locked_packages.return_value = ["acme/lib", "acme/safe"]
        packagist = MagicMock(spec=PackagistClient)
        packagist.security_advisories.return_value = {
            "acme/lib": [Advisory(package="acme/lib", affected_versions="<1.2.0")]
        }
        packagist.available_versions.return_value = ["1.1.0", "1.2.0"]

        report = self.make_runner(
            project_dir,
            composer,
            apply=False,
            advisories_source="packagist",
            versions_source="packagist",
            packagist=packagist,
        ).run()

        packagist.security_advisories.assert_called_once_with(["acme/lib", "acme/safe"])
        composer.audit.assert_not_called()
        composer.available_versions.assert_not_called()
        assert report.get("acme/lib").selected_version == "1.2.0"

    def test_packagist_advisory_failure_is_fatal(self, project_dir):
        composer = make_composer("")
        composer.locked_packages.side_effect = LookupFailed("composer.lock not found")

        runner = self.make_runner(project_dir, composer, advisories_source="packagist")
        with pytest.raises(AdvisoryFeedError):
            runner.run()

    def test_unknown_source(self, project_dir):
        with pytest.raises(ValueError):
            AuditRunner(project_dir, NativeOracle(), versions_source="npm")

    def test_report_serialization(self, project_dir, sample_audit_json):
        composer = make_composer(sample_audit_json)

        report = self.make_runner(project_dir, composer, apply=False).run()
        data = report.to_dict()

        assert data["selected"] == ["acme/lib:1.2.5", "acme/util:2.3.1"]
        assert data["decisions"][0]["outcome"] == "selected"
        json.dumps(data)
