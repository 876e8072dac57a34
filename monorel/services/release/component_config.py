"""Per-component release configuration.

A component is described by ``<config_dir>/<name>.json``. When no file
exists a configuration is synthesized from the naming conventions in
``release.toml [defaults]``, so every component is releasable without
mandatory configuration. CI can re-point individual fields through
``<PREFIX>_<COMPONENT>_<FIELD>`` variables; those arrive here as an
explicit override map snapshotted once by the caller.

Validation collects every problem before failing so a user fixes a
config in one pass.
"""

from __future__ import annotations

import json
import re
from collections.abc import Mapping
from pathlib import Path

from monorel.core.result import Err, Ok, Result
from monorel.core.settings import Settings
from monorel.core.structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_list,
    get_raw_str,
    get_str,
    get_str_list,
    get_table,
)
from monorel.services.release.errors import ConfigError, ConfigNotFound, ConfigValidationError
from monorel.services.release.model import ComponentConfig, RepositoryRef, VersionSyncRule

_PACKAGE_JSON_VERSION_PATTERN = r'"version":\s*"[^"]+"'
_PACKAGE_JSON_VERSION_REPLACEMENT = '"version": "$VERSION"'

# <FIELD> suffix -> JSON key
_ENV_FIELDS: dict[str, str] = {
    "BUILD_COMMAND": "buildCommand",
    "TEST_COMMAND": "testCommand",
    "PACKAGE_DIR": "packageDir",
    "NPM_PACKAGE_NAME": "npmPackageName",
    "DOCKER_IMAGE_NAME": "dockerImageName",
    "VSCODE_EXTENSION_NAME": "vscodeExtensionName",
    "BUILD_BINARIES": "buildBinaries",
}


def env_key(prefix: str, component: str, field: str) -> str:
    return f"{prefix}_{component.upper().replace('-', '_')}_{field}"


class ConfigLoader:
    """Load, override and validate component configs."""

    def __init__(
        self,
        *,
        root: Path,
        settings: Settings,
        overrides: Mapping[str, str] | None = None,
    ) -> None:
        self.root = root
        self.settings = settings
        self.overrides: Mapping[str, str] = overrides or {}

    @property
    def config_dir(self) -> Path:
        return self.root / self.settings.release.config_dir

    def config_path(self, component: str) -> Path:
        return self.config_dir / f"{component}.json"

    def list_available(self) -> list[str]:
        """Components that have an explicit JSON config."""
        if not self.config_dir.is_dir():
            return []
        return sorted(p.stem for p in self.config_dir.glob("*.json") if p.is_file())

    def load(self, component: str) -> Result[ComponentConfig, ConfigError]:
        # tag and default-name templates are rendered for every component
        template_problems = tuple(self.settings.template_problems())
        if template_problems:
            return Err(ConfigValidationError(component=component, problems=template_problems))

        raw = self._load_raw(component)
        if isinstance(raw, Err):
            return raw

        data = dict(raw.value)
        self._apply_overrides(component, data)
        return self._parse(component, data)

    def default_raw(self, component: str) -> StrDict:
        d = self.settings.defaults
        package_dir = d.package_dir.format(name=component)
        return {
            "packageName": component,
            "npmPackageName": d.package_name.format(name=component),
            "packageDir": package_dir,
            "testCommand": d.test_command.format(name=component),
            "buildCommand": d.build_command.format(name=component),
            "filesToSync": [
                {
                    "path": f"{package_dir}/package.json",
                    "pattern": _PACKAGE_JSON_VERSION_PATTERN,
                    "replacement": _PACKAGE_JSON_VERSION_REPLACEMENT,
                }
            ],
        }

    def _load_raw(self, component: str) -> Result[StrDict, ConfigError]:
        path = self.config_path(component)
        if not path.is_file():
            if self.settings.release.synthesize_defaults:
                return Ok(self.default_raw(component))
            return Err(ConfigNotFound(component=component, path=path))

        def invalid(problem: str) -> Err[ConfigError]:
            return Err(ConfigValidationError(component=component, problems=(problem,)))

        try:
            obj: object = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            return invalid(f"cannot read {path}: {e}")
        except json.JSONDecodeError as e:
            return invalid(f"invalid JSON in {path}: {e}")

        data = as_str_dict(obj)
        if data is None:
            return invalid(f"{path} must contain an object")
        return Ok(data)

    def _apply_overrides(self, component: str, data: StrDict) -> None:
        prefix = self.settings.release.env_prefix
        for field, json_key in _ENV_FIELDS.items():
            value = self.overrides.get(env_key(prefix, component, field))
            if value is None:
                continue
            if json_key == "buildBinaries":
                data[json_key] = value.strip().lower() == "true"
            else:
                data[json_key] = value

    def _parse(self, component: str, data: StrDict) -> Result[ComponentConfig, ConfigError]:
        problems: list[str] = []

        package_name = get_str(data, "packageName")
        package_dir = get_str(data, "packageDir")
        test_command = get_str(data, "testCommand")
        build_command = get_str(data, "buildCommand")
        if package_name is None:
            problems.append("packageName is required")
        if package_dir is None:
            problems.append("packageDir is required")
        if test_command is None:
            problems.append("testCommand is required")
        if build_command is None:
            problems.append("buildCommand is required")

        rules = self._parse_rules(data, problems)

        has_binaries = get_bool(data, "buildBinaries") or False
        platforms = tuple(get_str_list(data, "binaryPlatforms") or [])
        if has_binaries and not platforms:
            problems.append("binaryPlatforms is required when buildBinaries is true")

        repository = self._parse_repository(component, data, problems)

        if (
            problems
            or package_name is None
            or package_dir is None
            or test_command is None
            or build_command is None
        ):
            return Err(ConfigValidationError(component=component, problems=tuple(problems)))

        return Ok(
            ComponentConfig(
                name=component,
                display_name=get_str(data, "displayName") or package_name,
                package_dir=package_dir,
                repository=repository,
                test_command=test_command,
                build_command=build_command,
                package_name=get_str(data, "npmPackageName"),
                container_image=get_str(data, "dockerImageName"),
                extension_name=get_str(data, "vscodeExtensionName"),
                extension_dir=get_str(data, "vscodeExtensionDir"),
                has_binaries=has_binaries,
                binary_platforms=platforms,
                binary_command=get_str(data, "binaryCommand"),
                manifest_file=get_str(data, "manifestFile") or "package.json",
                sync_rules=tuple(rules),
                release_template=get_raw_str(data, "githubReleaseTemplate"),
            )
        )

    def _parse_rules(self, data: StrDict, problems: list[str]) -> list[VersionSyncRule]:
        raw_rules = get_list(data, "filesToSync")
        if raw_rules is None:
            if "filesToSync" in data:
                problems.append("filesToSync must be a list")
            return []

        rules: list[VersionSyncRule] = []
        for i, item in enumerate(raw_rules):
            entry = as_str_dict(item)
            if entry is None:
                problems.append(f"filesToSync[{i}] must be an object")
                continue

            path = get_str(entry, "path")
            # Patterns and replacements are significant verbatim.
            pattern = get_raw_str(entry, "pattern")
            replacement = get_raw_str(entry, "replacement")
            if path is None:
                problems.append(f"filesToSync[{i}].path is required")
            if not pattern:
                problems.append(f"filesToSync[{i}].pattern is required")
            else:
                try:
                    re.compile(pattern)
                except re.error as e:
                    problems.append(f"filesToSync[{i}].pattern is not a valid regex: {e}")
            if not replacement:
                problems.append(f"filesToSync[{i}].replacement is required")

            if path and pattern and replacement:
                rules.append(
                    VersionSyncRule(
                        path=path,
                        pattern=pattern,
                        replacement=replacement,
                        optional=get_bool(entry, "optional") or False,
                    )
                )
        return rules

    def _parse_repository(
        self, component: str, data: StrDict, problems: list[str]
    ) -> RepositoryRef | None:
        owner = self.settings.release.owner
        name = self.settings.defaults.repo_name.format(name=component)
        url: str | None = None

        table = get_table(data, "repository")
        if table is None and "repository" in data:
            problems.append("repository must be an object")
        if table is not None:
            owner = get_str(table, "owner") or owner
            name = get_str(table, "name") or name
            url = get_str(table, "url")

        if not owner or not name:
            return None
        url = url or f"https://github.com/{owner}/{name}"
        return RepositoryRef(owner=owner, name=name, url=url)
