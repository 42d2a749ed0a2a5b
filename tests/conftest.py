"""Pytest configuration and fixtures."""

import json

import pytest


@pytest.fixture
def sample_audit_json():
    """composer audit --format=json output with two vulnerable packages."""
    return json.dumps({
        "advisories": {
            "acme/lib": [
                {
                    "advisoryId": "PKSA-1111-2222-3333",
                    "packageName": "acme/lib",
                    "affectedVersions": "<1.2.0|1.5.0 - 1.5.3",
                    "title": "Remote code execution",
                    "cve": "CVE-2024-0001",
                    "link": "https://example.com/advisory/1",
                }
            ],
            "acme/util": {
                "0": {
                    "advisoryId": "PKSA-4444-5555-6666",
                    "packageName": "acme/util",
                    "affectedVersions": ">=2.0.0,<2.3.1",
                    "title": "Cross-site scripting",
                    "cve": None,
                    "link": "https://example.com/advisory/2",
                }
            },
        },
        "abandoned": {},
    })


@pytest.fixture
def project_dir(tmp_path):
    """A Composer project directory with an empty composer.json."""
    (tmp_path / "composer.json").write_text(json.dumps({"name": "acme/site", "require": {}}))
    return tmp_path


@pytest.fixture
def patched_project(tmp_path):
    """A project with patches registered in composer.json."""
    composer = {
        "name": "acme/site",
        "extra": {
            "patches": {
                "drupal/symfony_mailer": {
                    "add Token replacement to legacy": "./patches/drupal_symfony_mailer_1a2b3c4d.patch",
                    "fix header encoding": "./patches/drupal_symfony_mailer_5e6f7a8b.patch",
                },
                "drupal/webform": {
                    "Custom patch for drupal/webform": "./patches/drupal_webform_0a0b0c0d.patch",
                },
            }
        },
    }
    (tmp_path / "composer.json").write_text(json.dumps(composer, indent=4))
    return tmp_path
