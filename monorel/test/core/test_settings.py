"""Tests for monorel.core.settings module."""

from __future__ import annotations

from pathlib import Path

import pytest

from monorel.core.result import Err, Ok
from monorel.core.settings import (
    DEFAULT_TAG_FORMAT,
    Settings,
    load_settings,
    load_settings_or_default,
)


class TestDefaults:
    def test_release_defaults(self) -> None:
        settings = Settings()
        assert settings.release.config_dir == "scripts/release-config"
        assert settings.release.manifest == "release-manifest.json"
        assert settings.release.env_prefix == "RELEASE_CONFIG"
        assert settings.release.branches == ("main", "master")
        assert settings.release.tag_format == DEFAULT_TAG_FORMAT == "{component}-v{version}"
        assert settings.release.synthesize_defaults is True

    def test_remote_defaults(self) -> None:
        remote = Settings().remote
        assert remote.workflow == "release.yml"
        assert remote.poll_interval == 10.0
        assert remote.timeout == 3600.0

    def test_frozen(self) -> None:
        settings = Settings()
        with pytest.raises(AttributeError):
            settings.release = settings.release  # type: ignore[misc]


class TestFromDict:
    def test_overrides_are_applied(self) -> None:
        settings = Settings.from_dict(
            {
                "release": {
                    "owner": "acme",
                    "branches": ["trunk"],
                    "synthesize_defaults": False,
                    "tag_format": "v{version}",
                },
                "defaults": {"package_dir": "libs/{name}"},
                "remote": {"timeout": 120},
            }
        )
        assert settings.release.owner == "acme"
        assert settings.release.branches == ("trunk",)
        assert settings.release.synthesize_defaults is False
        assert settings.release.tag_format == "v{version}"
        assert settings.defaults.package_dir == "libs/{name}"
        assert settings.defaults.build_command == "nx build mcp-{name}"
        assert settings.remote.timeout == 120.0

    def test_wrong_types_fall_back_to_defaults(self) -> None:
        settings = Settings.from_dict({"release": {"branches": "main", "manifest": 3}})
        assert settings.release.branches == ("main", "master")
        assert settings.release.manifest == "release-manifest.json"


class TestLoad:
    def test_load_valid_file(self, tmp_path: Path) -> None:
        path = tmp_path / "release.toml"
        path.write_text('[release]\nowner = "acme"\n', encoding="utf-8")

        result = load_settings(path)
        assert isinstance(result, Ok)
        assert result.value.release.owner == "acme"

    def test_missing_file_is_error(self, tmp_path: Path) -> None:
        result = load_settings(tmp_path / "release.toml")
        assert isinstance(result, Err)
        assert "not found" in result.error.message

    def test_invalid_toml(self, tmp_path: Path) -> None:
        path = tmp_path / "release.toml"
        path.write_text("[release\n", encoding="utf-8")

        result = load_settings_or_default(path)
        assert isinstance(result, Err)
        assert "Invalid TOML" in result.error.message

    def test_missing_file_defaults(self, tmp_path: Path) -> None:
        result = load_settings_or_default(tmp_path / "release.toml")
        assert result == Ok(Settings())


class TestTemplates:
    def test_defaults_render(self) -> None:
        assert Settings().template_problems() == []

    def test_unknown_placeholders(self) -> None:
        settings = Settings.from_dict(
            {
                "release": {"tag_format": "{name}-v{version}"},
                "defaults": {"package_dir": "packages/{component}"},
            }
        )
        problems = settings.template_problems()
        assert len(problems) == 2
        assert problems[0].startswith("release.tag_format '{name}-v{version}': unknown")
        assert problems[1].startswith("defaults.package_dir 'packages/{component}': unknown")

    def test_tag_format_needs_version(self) -> None:
        settings = Settings.from_dict({"release": {"tag_format": "{component}-latest"}})
        assert settings.template_problems() == [
            "release.tag_format '{component}-latest': must contain {version}"
        ]

    def test_unbalanced_brace(self) -> None:
        settings = Settings.from_dict({"defaults": {"build_command": "nx build {name"}})
        (problem,) = settings.template_problems()
        assert problem.startswith("defaults.build_command 'nx build {name': ")

    def test_load_rejects_bad_template(self, tmp_path: Path) -> None:
        path = tmp_path / "release.toml"
        path.write_text('[release]\ntag_format = "{name}-v{version}"\n', encoding="utf-8")

        result = load_settings(path)
        assert isinstance(result, Err)
        assert result.error.path == path
        assert "release.tag_format" in result.error.message
