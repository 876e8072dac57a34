from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from monorel.services.release.errors import ReleaseError

ReleaseBump = Literal["major", "minor", "patch"]
ReleaseMode = Literal["local", "remote"]
StepStatus = Literal["pending", "running", "success", "failed", "skipped"]
ArtifactKind = Literal["package", "container", "extension", "binaries"]
ReleaseOutcome = Literal["success", "unverified", "failed", "rolled_back"]

ARTIFACT_KINDS: tuple[ArtifactKind, ...] = ("package", "container", "extension", "binaries")

VERSION_PLACEHOLDER = "$VERSION"


@dataclass(frozen=True, slots=True)
class VersionSyncRule:
    """One file that must carry the release version.

    ``replacement`` contains ``$VERSION``; ``pattern`` is a regex whose first
    match is replaced. ``optional`` files may be missing without error.
    """

    path: str
    pattern: str
    replacement: str
    optional: bool = False

    def expected(self, version: str) -> str:
        return self.replacement.replace(VERSION_PLACEHOLDER, version)


@dataclass(frozen=True, slots=True)
class RepositoryRef:
    owner: str
    name: str
    url: str

    @property
    def slug(self) -> str:
        return f"{self.owner}/{self.name}"


@dataclass(frozen=True, slots=True)
class ComponentConfig:
    """Release shape of one component. Loaded per invocation, never persisted."""

    name: str
    display_name: str
    package_dir: str
    repository: RepositoryRef | None
    test_command: str
    build_command: str
    package_name: str | None = None
    container_image: str | None = None
    extension_name: str | None = None
    extension_dir: str | None = None
    has_binaries: bool = False
    binary_platforms: tuple[str, ...] = ()
    binary_command: str | None = None
    manifest_file: str = "package.json"
    sync_rules: tuple[VersionSyncRule, ...] = ()
    release_template: str | None = None

    @property
    def has_package(self) -> bool:
        return bool(self.package_name)

    @property
    def has_container(self) -> bool:
        return bool(self.container_image)

    @property
    def has_extension(self) -> bool:
        return bool(self.extension_name)

    def has_artifact(self, kind: ArtifactKind) -> bool:
        match kind:
            case "package":
                return self.has_package
            case "container":
                return self.has_container
            case "extension":
                return self.has_extension
            case "binaries":
                return self.has_binaries

    def path(self, root: Path) -> Path:
        return root / self.package_dir


@dataclass(frozen=True, slots=True)
class ReleaseOptions:
    """Behavioral switches for one invocation.

    ``dry_run`` and ``skip_verify`` are independent.
    """

    components: tuple[str, ...]
    bump: ReleaseBump = "patch"
    version: str | None = None
    dry_run: bool = False
    skip_tests: bool = False
    skip_build: bool = False
    skip_verify: bool = False
    include_container: bool = False
    skip_submodule_update: bool = False
    mode: ReleaseMode = "local"
    timeout: float | None = None


@dataclass(frozen=True, slots=True)
class StepResult:
    name: str
    status: StepStatus = "pending"
    started_at: float | None = None
    finished_at: float | None = None
    error: ReleaseError | None = None
    output: str | None = None
    attempt: int = 1

    @property
    def duration(self) -> float | None:
        if self.started_at is None or self.finished_at is None:
            return None
        return self.finished_at - self.started_at

    @property
    def is_terminal(self) -> bool:
        return self.status in ("success", "failed", "skipped")


@dataclass(frozen=True, slots=True)
class ArtifactRecord:
    name: str
    published: bool = False
    url: str | None = None
    checksum: str | None = None


@dataclass(frozen=True, slots=True)
class BinaryArtifact:
    platform: str
    path: str
    checksum: str
    published: bool = False


@dataclass(frozen=True, slots=True)
class ReleaseArtifacts:
    package: ArtifactRecord | None = None
    container: ArtifactRecord | None = None
    extension: ArtifactRecord | None = None
    binaries: tuple[BinaryArtifact, ...] = ()
    release_url: str | None = None

    def record(self, kind: ArtifactKind) -> ArtifactRecord | None:
        match kind:
            case "package":
                return self.package
            case "container":
                return self.container
            case "extension":
                return self.extension
            case "binaries":
                return None

    def published_kinds(self) -> tuple[ArtifactKind, ...]:
        out: list[ArtifactKind] = []
        for kind in ("package", "container", "extension"):
            rec = self.record(kind)
            if rec is not None and rec.published:
                out.append(kind)
        if any(b.published for b in self.binaries):
            out.append("binaries")
        return tuple(out)


@dataclass(frozen=True, slots=True)
class CommitInfo:
    hash: str
    author: str
    date: str
    message: str
    pr_number: int | None = None

    @property
    def short_hash(self) -> str:
        return self.hash[:7]


@dataclass(frozen=True, slots=True)
class Changelog:
    breaking: tuple[CommitInfo, ...] = ()
    features: tuple[CommitInfo, ...] = ()
    fixes: tuple[CommitInfo, ...] = ()
    other: tuple[CommitInfo, ...] = ()

    @property
    def total(self) -> int:
        return len(self.breaking) + len(self.features) + len(self.fixes) + len(self.other)

    @property
    def is_empty(self) -> bool:
        return self.total == 0


@dataclass(frozen=True, slots=True)
class VerificationCheck:
    target: str
    passed: bool
    url: str | None = None
    message: str | None = None


@dataclass(frozen=True, slots=True)
class VerificationResult:
    checks: tuple[VerificationCheck, ...] = ()
    skipped: bool = False

    @property
    def passed(self) -> bool:
        return all(c.passed for c in self.checks)

    def check(self, target: str) -> VerificationCheck | None:
        for c in self.checks:
            if c.target == target:
                return c
        return None


@dataclass(frozen=True, slots=True)
class SubmoduleRelease:
    """One durable manifest record."""

    component: str
    version: str
    timestamp: str
    mode: ReleaseMode
    status: ReleaseOutcome
    artifacts: ReleaseArtifacts = field(default_factory=ReleaseArtifacts)
    verification: VerificationResult = field(default_factory=VerificationResult)
    changelog: str = ""
    commit: str | None = None
