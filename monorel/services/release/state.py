"""Mutable accumulator for one component's release attempt.

Only the orchestrator touches a ``ReleaseState``. Every pipeline step has
exactly one current ``StepResult``; results are frozen, so each transition
swaps in a new value and a retry archives the previous attempt instead of
mutating it.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace

from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import (
    ComponentConfig,
    ReleaseArtifacts,
    ReleaseOptions,
    StepResult,
    StepStatus,
    VerificationResult,
)

STEP_PREFLIGHT = "preflight"
STEP_VERSION_BUMP = "versionBump"
STEP_VERSION_SYNC = "versionSync"
STEP_BUILD = "build"
STEP_GIT_TAG_AND_RELEASE = "gitTagAndRelease"
STEP_PUBLISH_PACKAGE = "publish:package"
STEP_PUBLISH_CONTAINER = "publish:container"
STEP_PUBLISH_EXTENSION = "publish:extension"
STEP_PUBLISH_BINARIES = "publish:binaries"
STEP_VERIFY = "verify"
STEP_CHANGELOG = "changelog"
STEP_SUBMODULE_UPDATE = "submoduleUpdate"
STEP_MANIFEST_WRITE = "manifestWrite"

STEP_DISPATCH = "dispatch"
STEP_MONITOR = "monitor"

PUBLISH_STEPS: tuple[str, ...] = (
    STEP_PUBLISH_PACKAGE,
    STEP_PUBLISH_CONTAINER,
    STEP_PUBLISH_EXTENSION,
    STEP_PUBLISH_BINARIES,
)

LOCAL_PIPELINE: tuple[str, ...] = (
    STEP_PREFLIGHT,
    STEP_VERSION_BUMP,
    STEP_VERSION_SYNC,
    STEP_BUILD,
    STEP_GIT_TAG_AND_RELEASE,
    *PUBLISH_STEPS,
    STEP_VERIFY,
    STEP_CHANGELOG,
    STEP_SUBMODULE_UPDATE,
    STEP_MANIFEST_WRITE,
)

REMOTE_PIPELINE: tuple[str, ...] = (STEP_DISPATCH, STEP_MONITOR)


class StepTransitionError(RuntimeError):
    """Illegal state-machine transition (a programming error)."""


@dataclass(slots=True)
class ReleaseState:
    options: ReleaseOptions
    config: ComponentConfig
    started_at: float
    pipeline: tuple[str, ...] = LOCAL_PIPELINE
    steps: list[StepResult] = field(default_factory=list)
    superseded: list[StepResult] = field(default_factory=list)

    previous_version: str | None = None
    version: str | None = None
    files_updated: tuple[str, ...] = ()
    bump_commit: str | None = None
    tag: str | None = None
    tag_created: bool = False
    tag_pushed: bool = False
    release_created: bool = False
    artifacts: ReleaseArtifacts = field(default_factory=ReleaseArtifacts)
    verification: VerificationResult = field(default_factory=VerificationResult)
    changelog: str = ""
    reference_commit: str | None = None

    def __post_init__(self) -> None:
        if not self.steps:
            self.steps = [StepResult(name=name) for name in self.pipeline]

    def step(self, name: str) -> StepResult:
        return self.steps[self._index(name)]

    def status(self, name: str) -> StepStatus:
        return self.step(name).status

    def begin(self, name: str, *, now: float) -> None:
        current = self.step(name)
        if current.status != "pending":
            raise StepTransitionError(f"{name}: cannot start from {current.status}")
        self._put(replace(current, status="running", started_at=now))

    def succeed(self, name: str, *, now: float, output: str | None = None) -> None:
        self._finish(name, "success", now=now, output=output)

    def fail(
        self,
        name: str,
        error: ReleaseError,
        *,
        now: float,
        output: str | None = None,
    ) -> None:
        self._finish(name, "failed", now=now, error=error, output=output)

    def skip(self, name: str, *, reason: str | None = None) -> None:
        current = self.step(name)
        if current.status not in ("pending", "running"):
            raise StepTransitionError(f"{name}: cannot skip from {current.status}")
        self._put(replace(current, status="skipped", output=reason))

    def skip_pending(self, *, reason: str) -> None:
        for result in list(self.steps):
            if result.status == "pending":
                self.skip(result.name, reason=reason)

    def retry(self, name: str) -> None:
        """Archive a failed attempt and reset the step for a fresh one."""
        current = self.step(name)
        if current.status != "failed":
            raise StepTransitionError(f"{name}: only failed steps can be retried")
        self.superseded.append(current)
        self._put(StepResult(name=name, attempt=current.attempt + 1))

    def record_failure(self, name: str, error: ReleaseError, *, now: float) -> None:
        """Fail a step whether or not it was already started."""
        if self.status(name) == "pending":
            self.begin(name, now=now)
        self.fail(name, error, now=now)

    @property
    def failed_step(self) -> StepResult | None:
        for result in self.steps:
            if result.status == "failed":
                return result
        return None

    @property
    def external_writes(self) -> bool:
        """Whether anything outside this machine has been changed."""
        return self.tag_pushed or self.release_created or bool(self.artifacts.published_kinds())

    def _finish(
        self,
        name: str,
        status: StepStatus,
        *,
        now: float,
        error: ReleaseError | None = None,
        output: str | None = None,
    ) -> None:
        current = self.step(name)
        if current.status != "running":
            raise StepTransitionError(f"{name}: cannot finish from {current.status}")
        self._put(replace(current, status=status, finished_at=now, error=error, output=output))

    def _index(self, name: str) -> int:
        for i, result in enumerate(self.steps):
            if result.name == name:
                return i
        raise KeyError(name)

    def _put(self, result: StepResult) -> None:
        self.steps[self._index(result.name)] = result
