"""Append-only release manifest.

The manifest is an audit log: ``{formatVersion, releases: [...]}``.
Entries read from disk are written back verbatim on save; new entries
can only be appended, never replaced.

Usage:
    writer = ManifestWriter(workspace.manifest_path(settings))
    loaded = writer.load()
    writer.add_release(record)
    writer.save()
"""

from __future__ import annotations

import json
from pathlib import Path

from monorel.core.result import Err, Ok, Result
from monorel.core.structured import (
    StrDict,
    as_str_dict,
    get_bool,
    get_int,
    get_list,
    get_raw_str,
    get_str,
    get_table,
)
from monorel.platform.files import atomic_write_text
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import (
    ArtifactRecord,
    BinaryArtifact,
    ReleaseArtifacts,
    ReleaseMode,
    ReleaseOutcome,
    SubmoduleRelease,
    VerificationCheck,
    VerificationResult,
)

MANIFEST_FORMAT_VERSION = 1


def _artifact_to_dict(rec: ArtifactRecord | None) -> StrDict | None:
    if rec is None:
        return None
    return {"name": rec.name, "published": rec.published, "url": rec.url, "checksum": rec.checksum}


def record_to_dict(record: SubmoduleRelease) -> StrDict:
    a = record.artifacts
    return {
        "component": record.component,
        "version": record.version,
        "timestamp": record.timestamp,
        "mode": record.mode,
        "status": record.status,
        "artifacts": {
            "package": _artifact_to_dict(a.package),
            "container": _artifact_to_dict(a.container),
            "extension": _artifact_to_dict(a.extension),
            "binaries": [
                {
                    "platform": b.platform,
                    "path": b.path,
                    "checksum": b.checksum,
                    "published": b.published,
                }
                for b in a.binaries
            ],
            "releaseUrl": a.release_url,
        },
        "verification": {
            "skipped": record.verification.skipped,
            "passed": record.verification.passed,
            "checks": [
                {"target": c.target, "passed": c.passed, "url": c.url, "message": c.message}
                for c in record.verification.checks
            ],
        },
        "changelog": record.changelog,
        "commit": record.commit,
    }


def _artifact_from_dict(data: StrDict | None) -> ArtifactRecord | None:
    if data is None:
        return None
    name = get_str(data, "name")
    if name is None:
        return None
    return ArtifactRecord(
        name=name,
        published=get_bool(data, "published") or False,
        url=get_str(data, "url"),
        checksum=get_str(data, "checksum"),
    )


def record_from_dict(data: StrDict) -> SubmoduleRelease | None:
    component = get_str(data, "component")
    version = get_str(data, "version")
    timestamp = get_str(data, "timestamp")
    if component is None or version is None or timestamp is None:
        return None

    mode: ReleaseMode = "remote" if get_str(data, "mode") == "remote" else "local"
    status: ReleaseOutcome = "success"
    match get_str(data, "status"):
        case "unverified":
            status = "unverified"
        case "failed":
            status = "failed"
        case "rolled_back":
            status = "rolled_back"
        case _:
            pass

    artifacts = ReleaseArtifacts()
    art = get_table(data, "artifacts")
    if art is not None:
        binaries: list[BinaryArtifact] = []
        for item in get_list(art, "binaries") or []:
            b = as_str_dict(item)
            if b is None:
                continue
            platform = get_str(b, "platform")
            path = get_str(b, "path")
            if platform is None or path is None:
                continue
            binaries.append(
                BinaryArtifact(
                    platform=platform,
                    path=path,
                    checksum=get_str(b, "checksum") or "",
                    published=get_bool(b, "published") or False,
                )
            )
        artifacts = ReleaseArtifacts(
            package=_artifact_from_dict(get_table(art, "package")),
            container=_artifact_from_dict(get_table(art, "container")),
            extension=_artifact_from_dict(get_table(art, "extension")),
            binaries=tuple(binaries),
            release_url=get_str(art, "releaseUrl"),
        )

    verification = VerificationResult()
    ver = get_table(data, "verification")
    if ver is not None:
        checks: list[VerificationCheck] = []
        for item in get_list(ver, "checks") or []:
            c = as_str_dict(item)
            if c is None:
                continue
            target = get_str(c, "target")
            if target is None:
                continue
            checks.append(
                VerificationCheck(
                    target=target,
                    passed=get_bool(c, "passed") or False,
                    url=get_str(c, "url"),
                    message=get_str(c, "message"),
                )
            )
        verification = VerificationResult(
            checks=tuple(checks), skipped=get_bool(ver, "skipped") or False
        )

    return SubmoduleRelease(
        component=component,
        version=version,
        timestamp=timestamp,
        mode=mode,
        status=status,
        artifacts=artifacts,
        verification=verification,
        changelog=get_raw_str(data, "changelog") or "",
        commit=get_str(data, "commit"),
    )


class ManifestWriter:
    """Load / append / save discipline for the release manifest."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self.format_version = MANIFEST_FORMAT_VERSION
        self._existing: list[object] = []
        self._records: list[SubmoduleRelease] = []
        self._appended: list[SubmoduleRelease] = []
        self._loaded = False

    @property
    def releases(self) -> tuple[SubmoduleRelease, ...]:
        return tuple(self._records)

    def load(self) -> Result[tuple[SubmoduleRelease, ...], ReleaseError]:
        """Read the manifest, or start an empty one if the file is absent."""
        self._existing = []
        self._records = []
        self._appended = []
        self._loaded = False

        if not self.path.exists():
            self._loaded = True
            return Ok(())

        try:
            obj: object = json.loads(self.path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError) as e:
            return Err(ReleaseError(kind="io_failed", message=f"cannot read {self.path}: {e}"))
        except json.JSONDecodeError as e:
            return Err(
                ReleaseError(kind="manifest_invalid", message=f"invalid JSON in {self.path}: {e}")
            )

        data = as_str_dict(obj)
        raw = get_list(data, "releases") if data is not None else None
        if data is None or raw is None:
            return Err(
                ReleaseError(
                    kind="manifest_invalid",
                    message=f"{self.path} is not a release manifest",
                    hint="Expected {formatVersion, releases: [...]}",
                )
            )

        self.format_version = get_int(data, "formatVersion") or MANIFEST_FORMAT_VERSION
        self._existing = list(raw)
        for item in raw:
            entry = as_str_dict(item)
            record = record_from_dict(entry) if entry is not None else None
            if record is not None:
                self._records.append(record)
        self._loaded = True
        return Ok(self.releases)

    def add_release(self, record: SubmoduleRelease) -> Result[None, ReleaseError]:
        if not self._loaded:
            loaded = self.load()
            if isinstance(loaded, Err):
                return loaded

        key = (record.component, record.version, record.timestamp)
        for existing in self._records:
            if (existing.component, existing.version, existing.timestamp) == key:
                return Err(
                    ReleaseError(
                        kind="manifest_invalid",
                        message=(
                            f"manifest already has {record.component} {record.version} "
                            f"at {record.timestamp}"
                        ),
                        hint="Manifest entries are append-only",
                    )
                )

        self._records.append(record)
        self._appended.append(record)
        return Ok(None)

    def save(self) -> Result[None, ReleaseError]:
        if not self._loaded:
            loaded = self.load()
            if isinstance(loaded, Err):
                return loaded

        payload: StrDict = {
            "formatVersion": self.format_version,
            "releases": [*self._existing, *(record_to_dict(r) for r in self._appended)],
        }
        try:
            atomic_write_text(self.path, json.dumps(payload, indent=2, ensure_ascii=False) + "\n")
        except OSError as e:
            return Err(ReleaseError(kind="io_failed", message=f"cannot write {self.path}: {e}"))
        return Ok(None)

    def history(self, component: str | None = None) -> list[SubmoduleRelease]:
        return [r for r in self._records if component is None or r.component == component]
