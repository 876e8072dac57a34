"""Workspace-wide release settings (`release.toml`).

Every key is optional; a monorepo without `release.toml` releases with the
defaults below. Per-component shape lives in JSON files under
``config_dir`` and is handled by the component config loader.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

from .result import Err, Ok, Result
from .structured import StrDict, as_str_dict, get_bool, get_float, get_str, get_str_list, get_table

__all__ = [
    "ComponentDefaults",
    "ReleaseSettings",
    "RemoteSettings",
    "Settings",
    "SettingsError",
    "load_settings",
    "load_settings_or_default",
    "DEFAULT_TAG_FORMAT",
    "MONOREPO_TAG_FORMAT",
]

DEFAULT_TAG_FORMAT = "{component}-v{version}"
MONOREPO_TAG_FORMAT = "v{version}"


@dataclass(frozen=True, slots=True)
class SettingsError:
    """Error when release.toml cannot be loaded or parsed."""

    message: str
    path: Path | None = None


@dataclass(frozen=True, slots=True)
class ReleaseSettings:
    config_dir: str = "scripts/release-config"
    manifest: str = "release-manifest.json"
    env_prefix: str = "RELEASE_CONFIG"
    owner: str = "digital-defiance"
    branches: tuple[str, ...] = ("main", "master")
    tag_format: str = DEFAULT_TAG_FORMAT
    synthesize_defaults: bool = True
    remote: str = "origin"


@dataclass(frozen=True, slots=True)
class ComponentDefaults:
    """Templates used to synthesize a config for components without one.

    ``{name}`` is replaced by the component name.
    """

    package_dir: str = "packages/mcp-{name}"
    package_name: str = "@ai-capabilities-suite/mcp-{name}"
    test_command: str = "nx test mcp-{name}"
    build_command: str = "nx build mcp-{name}"
    repo_name: str = "mcp-{name}"


@dataclass(frozen=True, slots=True)
class RemoteSettings:
    """Remote CI mode (workflow dispatch + bounded wait)."""

    workflow: str = "release.yml"
    ref: str = "main"
    poll_interval: float = 10.0
    max_poll_interval: float = 60.0
    timeout: float = 3600.0


@dataclass(frozen=True, slots=True)
class Settings:
    release: ReleaseSettings = field(default_factory=ReleaseSettings)
    defaults: ComponentDefaults = field(default_factory=ComponentDefaults)
    remote: RemoteSettings = field(default_factory=RemoteSettings)

    @classmethod
    def from_dict(cls, data: Mapping[str, object]) -> Settings:
        """Create Settings from a mapping (parsed TOML)."""
        release: StrDict = get_table(data, "release") or {}
        defaults: StrDict = get_table(data, "defaults") or {}
        remote: StrDict = get_table(data, "remote") or {}

        base_release = ReleaseSettings()
        base_defaults = ComponentDefaults()
        base_remote = RemoteSettings()

        branches = get_str_list(release, "branches")
        synthesize = get_bool(release, "synthesize_defaults")

        return cls(
            release=ReleaseSettings(
                config_dir=get_str(release, "config_dir") or base_release.config_dir,
                manifest=get_str(release, "manifest") or base_release.manifest,
                env_prefix=get_str(release, "env_prefix") or base_release.env_prefix,
                owner=get_str(release, "owner") or base_release.owner,
                branches=tuple(branches) if branches else base_release.branches,
                tag_format=get_str(release, "tag_format") or base_release.tag_format,
                synthesize_defaults=(
                    base_release.synthesize_defaults if synthesize is None else synthesize
                ),
                remote=get_str(release, "remote") or base_release.remote,
            ),
            defaults=ComponentDefaults(
                package_dir=get_str(defaults, "package_dir") or base_defaults.package_dir,
                package_name=get_str(defaults, "package_name") or base_defaults.package_name,
                test_command=get_str(defaults, "test_command") or base_defaults.test_command,
                build_command=get_str(defaults, "build_command") or base_defaults.build_command,
                repo_name=get_str(defaults, "repo_name") or base_defaults.repo_name,
            ),
            remote=RemoteSettings(
                workflow=get_str(remote, "workflow") or base_remote.workflow,
                ref=get_str(remote, "ref") or base_remote.ref,
                poll_interval=get_float(remote, "poll_interval") or base_remote.poll_interval,
                max_poll_interval=(
                    get_float(remote, "max_poll_interval") or base_remote.max_poll_interval
                ),
                timeout=get_float(remote, "timeout") or base_remote.timeout,
            ),
        )

    def template_problems(self) -> list[str]:
        """Placeholders in tag_format and [defaults] that cannot be rendered."""
        problems: list[str] = []
        tag_format = self.release.tag_format
        problem = _template_problem(tag_format, component="screenshot", version="1.0.0")
        if problem is not None:
            problems.append(f"release.tag_format {tag_format!r}: {problem}")
        elif "{version}" not in tag_format:
            problems.append(f"release.tag_format {tag_format!r}: must contain {{version}}")

        for key in ("package_dir", "package_name", "test_command", "build_command", "repo_name"):
            template: str = getattr(self.defaults, key)
            problem = _template_problem(template, name="screenshot")
            if problem is not None:
                problems.append(f"defaults.{key} {template!r}: {problem}")
        return problems


def _template_problem(template: str, **values: str) -> str | None:
    try:
        template.format(**values)
    except KeyError as e:
        allowed = ", ".join("{" + k + "}" for k in values)
        return f"unknown placeholder {{{e.args[0]}}} (allowed: {allowed})"
    except (IndexError, ValueError, AttributeError) as e:
        return str(e)
    return None


def _parse_toml(path: Path) -> Result[StrDict, SettingsError]:
    import tomllib

    try:
        content = path.read_bytes()
        data_obj: object = tomllib.loads(content.decode("utf-8"))
        data = as_str_dict(data_obj)
        if data is None:
            return Err(SettingsError("Settings root must be a TOML table", path=path))
        return Ok(data)
    except FileNotFoundError:
        return Err(SettingsError(f"Settings file not found: {path}", path=path))
    except PermissionError:
        return Err(SettingsError(f"Permission denied reading: {path}", path=path))
    except tomllib.TOMLDecodeError as e:
        return Err(SettingsError(f"Invalid TOML syntax: {e}", path=path))
    except UnicodeDecodeError as e:
        return Err(SettingsError(f"Error reading settings: {e}", path=path))


def load_settings(path: Path) -> Result[Settings, SettingsError]:
    """Load and parse release.toml.

    Args:
        path: Path to release.toml

    Returns:
        Ok(Settings) on success, Err(SettingsError) on failure
    """
    result = _parse_toml(path)
    if isinstance(result, Err):
        return result
    settings = Settings.from_dict(result.value)
    problems = settings.template_problems()
    if problems:
        return Err(SettingsError("; ".join(problems), path=path))
    return Ok(settings)


def load_settings_or_default(path: Path) -> Result[Settings, SettingsError]:
    """Like load_settings, but a missing file yields the defaults.

    A file that exists but cannot be parsed is still an error.
    """
    if not path.exists():
        return Ok(Settings())
    return load_settings(path)
