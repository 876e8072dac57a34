"""Release orchestration engine.

One invocation releases one or more components, strictly one after the
other; the first failing component stops the batch. For each component
the pipeline is:

    preflight -> versionBump -> versionSync -> build -> gitTagAndRelease
    -> publish:{package,container,extension,binaries} -> verify
    -> changelog -> submoduleUpdate -> manifestWrite

Rules enforced here:
- A failed pre-flight skips every later step.
- Failures before anything left this machine are never rolled back; a
  local bump commit or tag is discarded and no manifest entry is written.
- Once a tag was pushed, a release created or an artifact published, a
  failure rolls back every write of the attempt in reverse order, then
  records the outcome.
- Verification is advisory: a failed check is reported and recorded, but
  published artifacts stay published.
- Dry run executes every step's simulation path; the collaborators decide
  what is simulated, not this module.

Collaborators are injected through ``ReleaseServices`` so every external
system can be replaced in tests.
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from functools import partial
from pathlib import Path
from time import time
from typing import Protocol

from monorel.core.result import Err, Ok, Result
from monorel.core.settings import Settings
from monorel.git.repository import Repository
from monorel.output.console import ConsoleProtocol, Style
from monorel.platform.process import run_shell
from monorel.services.checkers.preflight import PreflightChecker, PreflightReport
from monorel.services.release.changelog import ChangelogGenerator
from monorel.services.release.component_config import ConfigLoader
from monorel.services.release.errors import ReleaseError
from monorel.services.release.git_ops import (
    GitOperations,
    GitOperationsProtocol,
    format_tag,
)
from monorel.services.release.manifest import ManifestWriter
from monorel.services.release.model import (
    ARTIFACT_KINDS,
    ArtifactKind,
    ArtifactRecord,
    Changelog,
    ComponentConfig,
    ReleaseArtifacts,
    ReleaseOptions,
    ReleaseOutcome,
    SubmoduleRelease,
    VerificationCheck,
    VerificationResult,
)
from monorel.services.release.notes import render_release_notes
from monorel.services.release.publishers import default_publishers
from monorel.services.release.publishers.base import PublishContext, Publisher
from monorel.services.release.report import ComponentReport, ReleaseReport
from monorel.services.release.rollback import (
    RollbackReport,
    discard_local,
    needs_rollback,
    rollback,
)
from monorel.services.release.semver import parse_version
from monorel.services.release.state import (
    REMOTE_PIPELINE,
    STEP_BUILD,
    STEP_CHANGELOG,
    STEP_DISPATCH,
    STEP_GIT_TAG_AND_RELEASE,
    STEP_MANIFEST_WRITE,
    STEP_MONITOR,
    STEP_PREFLIGHT,
    STEP_SUBMODULE_UPDATE,
    STEP_VERIFY,
    STEP_VERSION_BUMP,
    STEP_VERSION_SYNC,
    ReleaseState,
)
from monorel.services.release.submodule import SubmoduleUpdater
from monorel.services.release.timeouts import BUILD_TIMEOUT_SECONDS
from monorel.services.release.verification import CheckFn, host_release_check, run_checks
from monorel.services.release.version_sync import VersionSyncEngine
from monorel.services.release.workflow import (
    CancelToken,
    PollPolicy,
    WorkflowRun,
    WorkflowRunState,
    dispatch_release_workflow,
    validate_mode,
    wait_for_run,
)

# Failures in these steps never invalidate a published release.
_ADVISORY_STEPS = frozenset({STEP_VERIFY})

_OUTPUT_TAIL_LINES = 40


class ChangelogSource(Protocol):
    def generate(
        self, from_ref: str | None, to_ref: str = "HEAD"
    ) -> Result[Changelog, ReleaseError]: ...

    def format(self, changelog: Changelog) -> str: ...


class ReferenceUpdater(Protocol):
    def update_reference(
        self, path: str, *, component: str, version: str
    ) -> Result[str | None, ReleaseError]: ...

    def verify_reference(self, path: str, expected_sha: str) -> bool: ...


@dataclass(frozen=True, slots=True)
class ReleaseServices:
    """Factories for every external collaborator of a release."""

    preflight: Callable[[ComponentConfig, ReleaseOptions], PreflightReport]
    git_ops: Callable[[ComponentConfig, ReleaseOptions], GitOperationsProtocol]
    publishers: Callable[[], dict[ArtifactKind, Publisher]]
    changelog: Callable[[ComponentConfig], ChangelogSource]
    submodule: Callable[[ComponentConfig, ReleaseOptions], ReferenceUpdater | None]
    host_check: Callable[[ComponentConfig, str], VerificationCheck]
    remote_dispatch: Callable[[ComponentConfig, ReleaseOptions], Result[WorkflowRun, ReleaseError]]
    remote_wait: Callable[
        [WorkflowRun, ComponentConfig, ReleaseOptions], Result[WorkflowRunState, ReleaseError]
    ]


@dataclass(frozen=True, slots=True)
class StepFailure:
    error: ReleaseError
    output: str | None = None


type StepResultValue = Result[str | None, ReleaseError | StepFailure]


def _tail(text: str) -> str:
    lines = text.strip().splitlines()
    return "\n".join(lines[-_OUTPUT_TAIL_LINES:])


def default_services(
    *,
    root: Path,
    settings: Settings,
    console: ConsoleProtocol,
    environ: Mapping[str, str] | None = None,
    cancel: CancelToken | None = None,
) -> ReleaseServices:
    """Production collaborators: git, gh, npm, docker, vsce."""

    def slug(config: ComponentConfig) -> str | None:
        return config.repository.slug if config.repository is not None else None

    def preflight(config: ComponentConfig, options: ReleaseOptions) -> PreflightReport:
        checker = PreflightChecker(
            root=root,
            config=config,
            options=options,
            branches=settings.release.branches,
            environ=environ,
        )
        return checker.run_checks()

    def git_ops(config: ComponentConfig, options: ReleaseOptions) -> GitOperationsProtocol:
        return GitOperations(
            Repository(config.path(root)),
            console=console,
            host_repo=slug(config),
            remote=settings.release.remote,
            dry_run=options.dry_run,
        )

    def changelog(config: ComponentConfig) -> ChangelogSource:
        url = config.repository.url if config.repository is not None else None
        return ChangelogGenerator(
            Repository(config.path(root)), repo_url=url, remote=settings.release.remote
        )

    def submodule(config: ComponentConfig, options: ReleaseOptions) -> ReferenceUpdater | None:
        # A submodule checkout has a .git *file* pointing into the parent.
        if not (config.path(root) / ".git").is_file():
            return None
        return SubmoduleUpdater(Repository(root), console=console, dry_run=options.dry_run)

    def host_check(config: ComponentConfig, tag: str) -> VerificationCheck:
        return host_release_check(cwd=config.path(root), repo=slug(config), tag=tag)

    def remote_dispatch(
        config: ComponentConfig, options: ReleaseOptions
    ) -> Result[WorkflowRun, ReleaseError]:
        return dispatch_release_workflow(
            cwd=root,
            repo_slug=slug(config) or "",
            workflow_file=settings.remote.workflow,
            ref=settings.remote.ref,
            version_bump=options.bump,
            dry_run=options.dry_run,
            console=console,
        )

    def remote_wait(
        run: WorkflowRun, config: ComponentConfig, options: ReleaseOptions
    ) -> Result[WorkflowRunState, ReleaseError]:
        policy = PollPolicy(
            interval=settings.remote.poll_interval,
            max_interval=settings.remote.max_poll_interval,
            timeout=options.timeout or settings.remote.timeout,
        )
        return wait_for_run(
            run,
            cwd=root,
            repo_slug=slug(config) or "",
            policy=policy,
            console=console,
            cancel=cancel,
        )

    return ReleaseServices(
        preflight=preflight,
        git_ops=git_ops,
        publishers=default_publishers,
        changelog=changelog,
        submodule=submodule,
        host_check=host_check,
        remote_dispatch=remote_dispatch,
        remote_wait=remote_wait,
    )


class ReleaseOrchestrator:
    """Drive releases and produce the step-by-step report.

    Attributes:
        root: Monorepo root
        settings: Workspace settings (release.toml)
        loader: Component config loader
        services: External collaborators
        console: Progress output
        clock: Wall-clock seconds, for step timings
    """

    def __init__(
        self,
        *,
        root: Path,
        settings: Settings,
        loader: ConfigLoader,
        services: ReleaseServices,
        console: ConsoleProtocol,
        clock: Callable[[], float] = time,
    ) -> None:
        self.root = root
        self.settings = settings
        self.loader = loader
        self.services = services
        self.console = console
        self.clock = clock

    def run(self, options: ReleaseOptions) -> ReleaseReport:
        reports: list[ComponentReport] = []
        for i, name in enumerate(options.components):
            report = self.release_component(name, options)
            reports.append(report)
            if not report.ok:
                rest = options.components[i + 1 :]
                if rest:
                    self.console.warning(f"{name} failed; not starting: {', '.join(rest)}")
                return ReleaseReport(components=tuple(reports), not_started=tuple(rest))
        return ReleaseReport(components=tuple(reports))

    def release_component(self, name: str, options: ReleaseOptions) -> ComponentReport:
        self.console.header(f"Releasing {name}")
        loaded = self.loader.load(name)
        if isinstance(loaded, Err):
            error = loaded.error.to_release_error()
            self.console.error(error.message)
            if error.hint:
                self.console.print(error.hint, Style.DIM)
            return ComponentReport(
                component=name,
                status="failed",
                mode=options.mode,
                dry_run=options.dry_run,
                error=error,
            )

        config = loaded.value
        if options.mode == "remote":
            return _RemoteRelease(self, config, options).execute()
        return _LocalRelease(self, config, options).execute()


class _Attempt:
    """Shared step bookkeeping for one component attempt."""

    def __init__(self, owner: ReleaseOrchestrator, state: ReleaseState) -> None:
        self.owner = owner
        self.console = owner.console
        self.state = state
        self.rollback_report: RollbackReport | None = None
        self.cleanup_report: RollbackReport | None = None

    def step(self, name: str, fn: Callable[[], StepResultValue]) -> bool:
        """Run one step; converts every failure into the step's result."""
        state = self.state
        state.begin(name, now=self.owner.clock())
        self.console.header(name)
        try:
            result = fn()
        except OSError as e:
            result = Err(ReleaseError(kind="io_failed", message=f"{name}: {e}"))

        match result:
            case Ok(output):
                state.succeed(name, now=self.owner.clock(), output=output)
                self.console.success(f"{name} ok")
                return True
            case Err(failure):
                if isinstance(failure, StepFailure):
                    error, output = failure.error, failure.output
                else:
                    error, output = failure, None
                state.fail(name, error, now=self.owner.clock(), output=output)
                self.console.error(f"{name}: {error.message}")
                if error.hint:
                    self.console.print(error.hint, Style.DIM)
                return False

    def skip(self, name: str, reason: str) -> None:
        self.state.skip(name, reason=reason)
        self.console.print(f"{name}: skipped ({reason})", Style.DIM)

    def report(self) -> ComponentReport:
        state = self.state
        fatal = [
            s for s in state.steps if s.status == "failed" and s.name not in _ADVISORY_STEPS
        ]
        failed_any = [s for s in state.steps if s.status == "failed"]
        proximate = fatal[0] if fatal else (failed_any[0] if failed_any else None)
        return ComponentReport(
            component=state.config.name,
            status="failed" if fatal else "success",
            mode=state.options.mode,
            version=state.version,
            dry_run=state.options.dry_run,
            steps=tuple(state.steps),
            error=proximate.error if proximate is not None else None,
            rollback=self.rollback_report,
            local_cleanup=self.cleanup_report,
            verification=state.verification,
            tag=state.tag,
        )


class _LocalRelease(_Attempt):
    def __init__(
        self,
        owner: ReleaseOrchestrator,
        config: ComponentConfig,
        options: ReleaseOptions,
    ) -> None:
        super().__init__(
            owner,
            ReleaseState(options=options, config=config, started_at=owner.clock()),
        )
        self.config = config
        self.options = options
        self.root = owner.root
        self.settings = owner.settings
        self.services = owner.services
        self.git = owner.services.git_ops(config, options)
        self.publishers = owner.services.publishers()
        self.branch: str | None = None
        self._changelog_text: str | None = None
        self._changelog_error: ReleaseError | None = None

    def execute(self) -> ComponentReport:
        state = self.state

        if not self.step(STEP_PREFLIGHT, self._preflight):
            state.skip_pending(reason="pre-flight failed")
            return self.report()

        for name, fn in (
            (STEP_VERSION_BUMP, self._version_bump),
            (STEP_VERSION_SYNC, self._version_sync),
            (STEP_BUILD, self._build),
        ):
            if not self.step(name, fn):
                # Nothing outside this checkout has changed yet.
                state.skip_pending(reason=f"{name} failed")
                return self.report()

        if not self.step(STEP_GIT_TAG_AND_RELEASE, self._git_tag_and_release):
            return self._abort()

        for kind in ARTIFACT_KINDS:
            name = f"publish:{kind}"
            reason = self._publish_skip_reason(kind)
            if reason is not None:
                self.skip(name, reason)
                continue
            if not self.step(name, partial(self._publish, kind)):
                return self._abort()

        if self.options.skip_verify:
            state.verification = VerificationResult(skipped=True)
            self.skip(STEP_VERIFY, "--skip-verify")
        else:
            self.step(STEP_VERIFY, self._verify)

        self.step(STEP_CHANGELOG, self._changelog)

        if self.options.skip_submodule_update:
            self.skip(STEP_SUBMODULE_UPDATE, "--skip-submodule-update")
        else:
            updater = self.services.submodule(self.config, self.options)
            if updater is None:
                self.skip(STEP_SUBMODULE_UPDATE, "component is not a submodule")
            else:
                self.step(STEP_SUBMODULE_UPDATE, partial(self._submodule_update, updater))

        self.step(STEP_MANIFEST_WRITE, partial(self._write_manifest, self._outcome()))
        return self.report()

    # -- failure handling -------------------------------------------------

    def _abort(self) -> ComponentReport:
        state = self.state
        rolled_back = False
        if needs_rollback(state):
            self.rollback_report = rollback(
                state,
                git_ops=self.git,
                publishers=self.publishers,
                ctx=self._ctx(),
                branch=self.branch or "HEAD",
                console=self.console,
            )
            rolled_back = True
        elif state.bump_commit is not None or state.tag_created:
            self.console.header(f"Discarding local release commit for {self.config.name}")
            self.cleanup_report = discard_local(
                state,
                git_ops=self.git,
                branch=self.branch or "HEAD",
                console=self.console,
            )

        for result in list(state.steps):
            if result.status == "pending" and result.name != STEP_MANIFEST_WRITE:
                state.skip(result.name, reason="release aborted")

        if not rolled_back:
            self.skip(STEP_MANIFEST_WRITE, "nothing was released")
            return self.report()

        report = self.rollback_report
        outcome: ReleaseOutcome = "rolled_back" if report is not None and report.ok else "failed"
        self.step(STEP_MANIFEST_WRITE, partial(self._write_manifest, outcome))
        return self.report()

    def _outcome(self) -> ReleaseOutcome:
        for result in self.state.steps:
            if result.status == "failed" and result.name not in _ADVISORY_STEPS:
                return "failed"
        if not self.state.verification.skipped and not self.state.verification.passed:
            return "unverified"
        return "success"

    # -- steps --------------------------------------------------------------

    def _preflight(self) -> StepResultValue:
        report = self.services.preflight(self.config, self.options)
        lines: list[str] = []
        for check in report.checks:
            mark = "✓" if check.ok else "✗"
            line = f"{mark} {check.name}: {check.message}"
            lines.append(line)
            self.console.print(line, Style.SUCCESS if check.ok else Style.ERROR)
            if not check.ok and check.hint:
                self.console.print(f"  {check.hint}", Style.DIM)

        output = "\n".join(lines)
        if report.passed:
            return Ok(output)

        failures = report.failures
        hints = [f"{c.name}: {c.hint}" for c in failures if c.hint]
        return Err(
            StepFailure(
                ReleaseError(
                    kind="preflight_failed",
                    message=f"pre-flight failed: {', '.join(c.name for c in failures)}",
                    hint="; ".join(hints) or None,
                ),
                output,
            )
        )

    def _version_bump(self) -> StepResultValue:
        engine = self._engine()
        manifest = self.config.path(self.root) / self.config.manifest_file
        bumped = engine.bump_version(
            manifest,
            self.options.bump,
            explicit=self.options.version,
            dry_run=self.options.dry_run,
        )
        if isinstance(bumped, Err):
            return bumped

        bump = bumped.value
        self.state.previous_version = bump.previous
        self.state.version = bump.version
        if bump.version != bump.previous and not self.options.dry_run:
            self.state.files_updated = (str(manifest.relative_to(self.root)),)
        change = f"{bump.previous} -> {bump.version}"
        if self.options.dry_run:
            self.console.print(f"(dry-run) {manifest.name}: {change}", Style.DIM)
        else:
            self.console.print(f"{manifest.name}: {change}", Style.INFO)
        return Ok(change)

    def _version_sync(self) -> StepResultValue:
        version = self._version()
        engine = self._engine()
        rules = self.config.sync_rules
        report = engine.sync_versions(rules, version, dry_run=self.options.dry_run)

        for path in report.files_updated:
            prefix = "(dry-run) would update" if self.options.dry_run else "updated"
            self.console.print(f"{prefix} {path}", Style.DIM)

        if report.errors:
            return Err(
                StepFailure(
                    ReleaseError(
                        kind="version_sync_failed",
                        message=f"{len(report.errors)} version sync rule(s) failed",
                        hint="; ".join(report.errors),
                    ),
                    "\n".join(report.errors),
                )
            )

        if not self.options.dry_run and not engine.verify_versions(rules, version):
            return Err(
                ReleaseError(
                    kind="version_sync_failed",
                    message=f"files do not carry {version} after sync",
                    hint="Check the filesToSync patterns for this component",
                )
            )

        merged = list(self.state.files_updated)
        merged.extend(p for p in report.files_updated if p not in merged)
        self.state.files_updated = tuple(merged)
        return Ok("\n".join(merged) or "already in sync")

    def _build(self) -> StepResultValue:
        outputs: list[str] = []
        if self.options.skip_build:
            self.console.print("build command skipped (--skip-build)", Style.DIM)
        else:
            command = self.config.build_command
            self.console.print(command, Style.DIM)
            built = run_shell(command, cwd=self.root, timeout=BUILD_TIMEOUT_SECONDS)
            if isinstance(built, Err):
                e = built.error
                why = "timed out" if e.timed_out else f"exit {e.returncode}"
                return Err(
                    StepFailure(
                        ReleaseError(kind="build_failed", message=f"{command} failed ({why})"),
                        _tail(e.output),
                    )
                )
            outputs.append(_tail(built.value.output))

        ctx = self._ctx()
        for kind in ARTIFACT_KINDS:
            if self._publish_skip_reason(kind) is not None:
                continue
            result = self.publishers[kind].build(ctx)
            if isinstance(result, Err):
                return result
            if result.value:
                outputs.append(_tail(result.value))
        return Ok("\n".join(o for o in outputs if o) or None)

    def _git_tag_and_release(self) -> StepResultValue:
        state = self.state
        version = self._version()
        dry_run = self.options.dry_run

        branch = self.git.current_branch()
        if isinstance(branch, Err):
            return branch
        self.branch = branch.value

        tag_format = self.settings.release.tag_format
        tag = format_tag(self.config.name, version, tag_format)
        state.tag = tag
        previous = self.git.previous_tag(self.config.name, tag_format)
        notes = self._release_notes(previous, tag)

        committed = self.git.commit_changes(f"chore(release): {self.config.name} v{version}")
        match committed:
            case Err(ReleaseError(kind="no_changes")):
                self.console.warning("nothing to commit; tagging the current HEAD")
            case Err(error):
                return Err(error)
            case Ok(sha):
                if not dry_run:
                    state.bump_commit = sha

        tagged = self.git.create_tag(tag, message=f"{self.config.display_name} v{version}")
        if isinstance(tagged, Err):
            return tagged
        state.tag_created = not dry_run

        pushed = self.git.push_to_remote(self.branch, tags=[tag])
        if isinstance(pushed, Err):
            return pushed
        state.tag_pushed = not dry_run

        parsed = parse_version(version)
        created = self.git.create_release(
            tag,
            title=f"{self.config.display_name} v{version}",
            notes=notes,
            prerelease=parsed is not None and parsed.is_prerelease,
        )
        if isinstance(created, Err):
            return created
        state.release_created = not dry_run
        state.artifacts = replace(state.artifacts, release_url=created.value)
        return Ok(f"{tag} {created.value}")

    def _publish(self, kind: ArtifactKind) -> StepResultValue:
        state = self.state
        ctx = self._ctx()
        published = self.publishers[kind].publish(ctx)
        if isinstance(published, Err):
            return published
        outcome = published.value

        if kind == "binaries":
            tag = state.tag or ""
            attached = self.git.attach_assets(tag, list(outcome.assets))
            if isinstance(attached, Err):
                return Err(
                    ReleaseError(
                        kind="publish_failed",
                        message=attached.error.message,
                        hint=attached.error.hint,
                    )
                )
            binaries = tuple(replace(b, published=not ctx.dry_run) for b in outcome.binaries)
            state.artifacts = replace(state.artifacts, binaries=binaries)
            return Ok("\n".join(f"{b.platform}: {b.checksum}" for b in binaries) or None)

        record = outcome.record
        if record is None:
            return Err(
                ReleaseError(kind="publish_failed", message=f"{kind} publisher reported nothing")
            )
        if ctx.dry_run:
            record = replace(record, published=False)
        state.artifacts = _with_record(state.artifacts, kind, record)
        return Ok(record.url)

    def _verify(self) -> StepResultValue:
        state = self.state
        ctx = self._ctx()
        checks: dict[str, CheckFn] = {}
        for kind in state.artifacts.published_kinds():
            checks[kind] = partial(self.publishers[kind].verify, ctx)
        if state.release_created and state.tag is not None:
            checks["release"] = partial(self.services.host_check, self.config, state.tag)

        result = run_checks(checks)
        state.verification = result

        lines: list[str] = []
        for check in result.checks:
            detail = check.url or check.message
            mark = "✓" if check.passed else "✗"
            line = f"{mark} {check.target}: {detail}" if detail else f"{mark} {check.target}"
            lines.append(line)
            self.console.print(line, Style.SUCCESS if check.passed else Style.WARNING)

        if result.passed:
            return Ok("\n".join(lines) or None)

        failed = [c.target for c in result.checks if not c.passed]
        return Err(
            StepFailure(
                ReleaseError(
                    kind="verification_failed",
                    message=f"verification failed: {', '.join(failed)}",
                    hint=(
                        "Artifacts stay published; registries can lag. "
                        "Re-check the listed targets before announcing the release."
                    ),
                ),
                "\n".join(lines),
            )
        )

    def _changelog(self) -> StepResultValue:
        if self._changelog_text is None:
            self._release_notes(None, self.state.tag or "")
        if self._changelog_error is not None:
            return Err(self._changelog_error)
        self.state.changelog = self._changelog_text or ""
        return Ok(self.state.changelog or None)

    def _submodule_update(self, updater: ReferenceUpdater) -> StepResultValue:
        version = self._version()
        head = self.git.head_sha()
        if isinstance(head, Err):
            return head

        path = self.config.package_dir
        committed = updater.update_reference(path, component=self.config.name, version=version)
        if isinstance(committed, Err):
            return committed
        self.state.reference_commit = committed.value

        if not self.options.dry_run and not updater.verify_reference(path, head.value):
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"monorepo reference for {path} does not point at {head.value[:8]}",
                    hint=f"Run: git add {path} && git commit",
                )
            )
        return Ok(committed.value or "reference already current")

    def _write_manifest(self, outcome: ReleaseOutcome) -> StepResultValue:
        state = self.state
        writer = ManifestWriter(self.root / self.settings.release.manifest)
        loaded = writer.load()
        if isinstance(loaded, Err):
            return loaded

        record = SubmoduleRelease(
            component=self.config.name,
            version=self._version(),
            timestamp=datetime.now(UTC).isoformat(),
            mode="local",
            status=outcome,
            artifacts=state.artifacts,
            verification=state.verification,
            changelog=state.changelog or self._changelog_text or "",
            commit=state.bump_commit,
        )
        added = writer.add_release(record)
        if isinstance(added, Err):
            return added

        if self.options.dry_run:
            self.console.print(
                f"(dry-run) would record {record.component} {record.version} ({outcome})",
                Style.DIM,
            )
            return Ok(None)

        saved = writer.save()
        if isinstance(saved, Err):
            return saved
        return Ok(f"{record.component} {record.version} {outcome}")

    # -- helpers ------------------------------------------------------------

    def _release_notes(self, previous_tag: str | None, tag: str) -> str:
        if self._changelog_text is None:
            source = self.services.changelog(self.config)
            generated = source.generate(previous_tag, "HEAD")
            if isinstance(generated, Err):
                self._changelog_error = generated.error
                self._changelog_text = ""
                self.console.warning(f"changelog unavailable: {generated.error.message}")
            else:
                self._changelog_text = source.format(generated.value)
        return render_release_notes(
            self.config.release_template,
            component=self.config.name,
            version=self._version(),
            tag=tag,
            changelog=self._changelog_text,
        )

    def _publish_skip_reason(self, kind: ArtifactKind) -> str | None:
        if not self.config.has_artifact(kind):
            return f"no {kind} configured"
        if kind == "container" and not self.options.include_container:
            return "container publishing not requested"
        return None

    def _engine(self) -> VersionSyncEngine:
        return VersionSyncEngine(root=self.root)

    def _version(self) -> str:
        version = self.state.version
        if version is None:
            raise AssertionError("version is resolved by versionBump")
        return version

    def _ctx(self) -> PublishContext:
        return PublishContext(
            root=self.root,
            config=self.config,
            version=self.state.version or "",
            console=self.console,
            dry_run=self.options.dry_run,
        )


class _RemoteRelease(_Attempt):
    """Delegate the release to the component's CI workflow and wait."""

    def __init__(
        self,
        owner: ReleaseOrchestrator,
        config: ComponentConfig,
        options: ReleaseOptions,
    ) -> None:
        super().__init__(
            owner,
            ReleaseState(
                options=options,
                config=config,
                started_at=owner.clock(),
                pipeline=REMOTE_PIPELINE,
            ),
        )
        self.config = config
        self.options = options
        self.services = owner.services
        self._run: WorkflowRun | None = None

    def execute(self) -> ComponentReport:
        valid = validate_mode(self.config, "remote")
        if isinstance(valid, Err):
            self.state.record_failure(STEP_DISPATCH, valid.error, now=self.owner.clock())
            self.state.skip_pending(reason="invalid release mode")
            return self.report()

        if not self.step(STEP_DISPATCH, self._dispatch):
            self.state.skip_pending(reason="dispatch failed")
            return self.report()
        self.step(STEP_MONITOR, self._monitor)
        return self.report()

    def _dispatch(self) -> StepResultValue:
        dispatched = self.services.remote_dispatch(self.config, self.options)
        if isinstance(dispatched, Err):
            return dispatched
        self._run = dispatched.value
        return Ok(dispatched.value.url)

    def _monitor(self) -> StepResultValue:
        run = self._run
        if run is None:
            raise AssertionError("monitor runs after dispatch")
        waited = self.services.remote_wait(run, self.config, self.options)
        if isinstance(waited, Err):
            return waited
        return Ok(waited.value.url or run.url)


def _with_record(
    artifacts: ReleaseArtifacts, kind: ArtifactKind, record: ArtifactRecord
) -> ReleaseArtifacts:
    match kind:
        case "package":
            return replace(artifacts, package=record)
        case "container":
            return replace(artifacts, container=record)
        case "extension":
            return replace(artifacts, extension=record)
        case "binaries":
            return artifacts
