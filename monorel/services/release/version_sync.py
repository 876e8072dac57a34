"""Version bump and multi-file version synchronization.

Usage:
    engine = VersionSyncEngine(root=workspace.root)

    bump = engine.bump_version(config.path(root) / "package.json", "patch")
    sync = engine.sync_versions(config.sync_rules, bump.value.version)
    assert engine.verify_versions(config.sync_rules, bump.value.version)

``sync_versions`` never aborts on one bad rule; each failure becomes one
error string and processing moves on. ``verify_versions`` is the
authoritative pre-publish check.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path

from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_str_dict, get_str
from monorel.platform.files import atomic_write_text
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import ReleaseBump, VersionSyncRule
from monorel.services.release.semver import is_valid_version, parse_version

_JSON_VERSION_RE = re.compile(r'("version"\s*:\s*")([^"]+)(")')
_TOML_VERSION_RE = re.compile(r'^(version\s*=\s*")([^"]+)(")', re.MULTILINE)


@dataclass(frozen=True, slots=True)
class VersionBump:
    previous: str
    version: str


@dataclass(frozen=True, slots=True)
class SyncReport:
    files_updated: tuple[str, ...]
    errors: tuple[str, ...]

    @property
    def ok(self) -> bool:
        return not self.errors


def _version_regex(path: Path) -> re.Pattern[str]:
    return _TOML_VERSION_RE if path.suffix == ".toml" else _JSON_VERSION_RE


def read_manifest_version(path: Path) -> Result[str, ReleaseError]:
    """Read the version recorded in a component manifest file."""
    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return Err(ReleaseError(kind="invalid_version", message=f"manifest not found: {path}"))
    except (OSError, UnicodeDecodeError) as e:
        return Err(ReleaseError(kind="io_failed", message=f"cannot read {path}: {e}"))

    version: str | None = None
    if path.suffix == ".json":
        try:
            obj: object = json.loads(text)
        except json.JSONDecodeError as e:
            return Err(ReleaseError(kind="invalid_version", message=f"invalid JSON in {path}: {e}"))
        data = as_str_dict(obj)
        version = get_str(data, "version") if data is not None else None
    else:
        m = _version_regex(path).search(text)
        version = m.group(2) if m else None

    if version is None:
        return Err(ReleaseError(kind="invalid_version", message=f"no version field in {path}"))
    return Ok(version)


class VersionSyncEngine:
    def __init__(self, *, root: Path) -> None:
        self.root = root

    def bump_version(
        self,
        manifest: Path,
        kind: ReleaseBump,
        *,
        explicit: str | None = None,
        dry_run: bool = False,
    ) -> Result[VersionBump, ReleaseError]:
        """Compute the next version and write it back to ``manifest``.

        ``explicit`` bypasses the bump computation but is still validated.
        With ``dry_run`` nothing is written.
        """
        current = read_manifest_version(manifest)
        if isinstance(current, Err):
            return current
        previous = current.value

        if explicit is not None:
            new_version = explicit.strip()
        else:
            parsed = parse_version(previous)
            if parsed is None:
                return Err(
                    ReleaseError(
                        kind="invalid_version",
                        message=f"current version is not semver: {previous}",
                        hint=str(manifest),
                    )
                )
            new_version = str(parsed.bump(kind))

        if not is_valid_version(new_version):
            return Err(
                ReleaseError(
                    kind="invalid_version",
                    message=f"invalid version: {new_version}",
                    hint="Expected MAJOR.MINOR.PATCH[-prerelease][+build]",
                )
            )

        if dry_run or new_version == previous:
            return Ok(VersionBump(previous=previous, version=new_version))

        written = self._write_manifest_version(manifest, new_version)
        if isinstance(written, Err):
            return written
        return Ok(VersionBump(previous=previous, version=new_version))

    def sync_versions(
        self,
        rules: tuple[VersionSyncRule, ...] | list[VersionSyncRule],
        version: str,
        *,
        dry_run: bool = False,
    ) -> SyncReport:
        updated: list[str] = []
        errors: list[str] = []

        for rule in rules:
            path = self.root / rule.path
            if not path.is_file():
                if not rule.optional:
                    errors.append(f"{rule.path}: file not found")
                continue

            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                errors.append(f"{rule.path}: {e}")
                continue

            expected = rule.expected(version)
            new_content, count = re.subn(rule.pattern, lambda _m: expected, content, count=1)
            if count == 0:
                if expected not in content:
                    errors.append(f"{rule.path}: pattern not found: {rule.pattern}")
                continue
            if new_content == content:
                continue

            if not dry_run:
                try:
                    atomic_write_text(path, new_content)
                except OSError as e:
                    errors.append(f"{rule.path}: {e}")
                    continue
            updated.append(rule.path)

        return SyncReport(files_updated=tuple(updated), errors=tuple(errors))

    def verify_versions(
        self,
        rules: tuple[VersionSyncRule, ...] | list[VersionSyncRule],
        version: str,
    ) -> bool:
        for rule in rules:
            path = self.root / rule.path
            if not path.is_file():
                if rule.optional:
                    continue
                return False
            try:
                content = path.read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError):
                return False
            if rule.expected(version) not in content:
                return False
        return True

    def _write_manifest_version(self, manifest: Path, version: str) -> Result[None, ReleaseError]:
        try:
            text = manifest.read_text(encoding="utf-8")
            # First occurrence only; nested dependency versions stay untouched.
            new_text, count = _version_regex(manifest).subn(
                lambda m: f"{m.group(1)}{version}{m.group(3)}", text, count=1
            )
            if count == 0:
                return Err(
                    ReleaseError(kind="invalid_version", message=f"no version field in {manifest}")
                )
            atomic_write_text(manifest, new_text)
        except (OSError, UnicodeDecodeError) as e:
            return Err(ReleaseError(kind="io_failed", message=f"cannot write {manifest}: {e}"))
        return Ok(None)
