from __future__ import annotations

from typing import NoReturn

import typer

from monorel.cli.context import CLIContext, build_context
from monorel.core.errors import ErrorCode
from monorel.core.result import Err
from monorel.git.repository import Repository
from monorel.output.console import Style
from monorel.services.release.changelog import ChangelogGenerator, update_changelog_file
from monorel.services.release.component_config import ConfigLoader
from monorel.services.release.errors import ConfigValidationError, ReleaseError, exit_code_for
from monorel.services.release.git_ops import format_tag, tag_glob, tag_regex
from monorel.services.release.manifest import ManifestWriter
from monorel.services.release.model import (
    ARTIFACT_KINDS,
    ComponentConfig,
    ReleaseBump,
    ReleaseMode,
    ReleaseOptions,
)
from monorel.services.release.orchestrator import ReleaseOrchestrator, default_services
from monorel.services.release.report import render_report
from monorel.services.release.semver import is_valid_version
from monorel.services.release.version_sync import VersionSyncEngine, read_manifest_version


release_app = typer.Typer(add_completion=False, no_args_is_help=True)


def _exit(err: str, *, code: ErrorCode) -> NoReturn:
    typer.echo(f"error: {err}", err=True)
    raise typer.Exit(code=int(code))


def _fail(ctx: CLIContext, error: ReleaseError) -> NoReturn:
    ctx.console.error(error.message)
    if error.hint:
        ctx.console.print(f"hint: {error.hint}", Style.DIM)
    raise typer.Exit(code=int(exit_code_for(error)))


def _loader(ctx: CLIContext) -> ConfigLoader:
    return ConfigLoader(root=ctx.workspace.root, settings=ctx.settings, overrides=ctx.environ)


def _load_config(ctx: CLIContext, component: str) -> ComponentConfig:
    loaded = _loader(ctx).load(component)
    if isinstance(loaded, Err):
        _fail(ctx, loaded.error.to_release_error())
    return loaded.value


@release_app.command("run")
def run_cmd(
    components: list[str] = typer.Argument(..., help="Components to release, in order"),
    bump: ReleaseBump = typer.Option("patch", "--bump", help="major/minor/patch"),
    version: str | None = typer.Option(None, "--version", help="Explicit version (skips bump)"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Simulate without external writes"),
    skip_tests: bool = typer.Option(False, "--skip-tests", help="Skip the pre-flight test run"),
    skip_build: bool = typer.Option(False, "--skip-build", help="Skip the build command"),
    skip_verify: bool = typer.Option(False, "--skip-verify", help="Skip post-publish checks"),
    include_container: bool = typer.Option(
        False, "--include-container", help="Build and push the container image"
    ),
    skip_submodule_update: bool = typer.Option(
        False, "--skip-submodule-update", help="Do not commit the monorepo reference"
    ),
    mode: ReleaseMode = typer.Option("local", "--mode", help="local or remote (CI workflow)"),
    timeout: float | None = typer.Option(
        None, "--timeout", help="Remote workflow wait limit in seconds"
    ),
) -> None:
    """Release one or more components (fail-fast, in order)."""
    ctx = build_context()
    options = ReleaseOptions(
        components=tuple(components),
        bump=bump,
        version=version,
        dry_run=dry_run,
        skip_tests=skip_tests,
        skip_build=skip_build,
        skip_verify=skip_verify,
        include_container=include_container,
        skip_submodule_update=skip_submodule_update,
        mode=mode,
        timeout=timeout,
    )

    root = ctx.workspace.root
    orchestrator = ReleaseOrchestrator(
        root=root,
        settings=ctx.settings,
        loader=_loader(ctx),
        services=default_services(
            root=root,
            settings=ctx.settings,
            console=ctx.console,
            environ=ctx.environ,
        ),
        console=ctx.console,
    )
    report = orchestrator.run(options)
    render_report(report, ctx.console)
    raise typer.Exit(code=int(report.exit_code()))


@release_app.command("configs")
def configs_cmd() -> None:
    """List components with an explicit release config."""
    ctx = build_context()
    loader = _loader(ctx)
    names = loader.list_available()
    if not names:
        ctx.console.print(f"no configs in {loader.config_dir}", Style.DIM)
        return

    failed = False
    for name in names:
        loaded = loader.load(name)
        if isinstance(loaded, Err):
            failed = True
            ctx.console.error(f"{name}: {loaded.error.to_release_error().message}")
            if isinstance(loaded.error, ConfigValidationError):
                for problem in loaded.error.problems:
                    ctx.console.print(f"  - {problem}", Style.DIM)
            continue
        config = loaded.value
        kinds = [k for k in ARTIFACT_KINDS if config.has_artifact(k)]
        ctx.console.print(f"{name}  {config.package_dir}  [{', '.join(kinds) or 'tag only'}]")
    if failed:
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))


@release_app.command("changelog")
def changelog_cmd(
    component: str = typer.Argument(..., help="Component name"),
    from_ref: str | None = typer.Option(
        None, "--from", help="Start ref (default: latest release tag)"
    ),
    to_ref: str = typer.Option("HEAD", "--to", help="End ref"),
    write: bool = typer.Option(False, "--write", help="Prepend to the component's CHANGELOG.md"),
) -> None:
    """Print the changelog since the last release."""
    ctx = build_context()
    config = _load_config(ctx, component)
    path = config.path(ctx.workspace.root)
    repo = Repository(path)
    if not repo.exists():
        _exit(f"not a git repository: {path}", code=ErrorCode.ENV_ERROR)

    tag_format = ctx.settings.release.tag_format
    start = from_ref or repo.latest_tag(
        tag_glob(component, tag_format), accept=tag_regex(component, tag_format)
    )
    url = config.repository.url if config.repository is not None else None
    generator = ChangelogGenerator(repo, repo_url=url, remote=ctx.settings.release.remote)
    generated = generator.generate(start, to_ref)
    if isinstance(generated, Err):
        _fail(ctx, generated.error)

    text = generator.format(generated.value)
    ctx.console.header(f"{component}: {start or '(first release)'}..{to_ref}")
    ctx.console.print(text or "no commits")

    if not write:
        return
    version = read_manifest_version(path / config.manifest_file)
    if isinstance(version, Err):
        _fail(ctx, version.error)
    written = update_changelog_file(path / "CHANGELOG.md", version=version.value, content=text)
    if isinstance(written, Err):
        _fail(ctx, written.error)
    ctx.console.success(f"updated {path / 'CHANGELOG.md'} ({version.value})")


@release_app.command("sync")
def sync_cmd(
    component: str = typer.Argument(..., help="Component name"),
    version: str = typer.Argument(..., help="Version to write"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Show what would change"),
) -> None:
    """Write VERSION into every file the component syncs."""
    if not is_valid_version(version):
        _exit(f"invalid version: {version}", code=ErrorCode.USER_ERROR)
    ctx = build_context()
    config = _load_config(ctx, component)
    engine = VersionSyncEngine(root=ctx.workspace.root)

    report = engine.sync_versions(config.sync_rules, version, dry_run=dry_run)
    for updated in report.files_updated:
        prefix = "(dry-run) would update" if dry_run else "updated"
        ctx.console.print(f"{prefix} {updated}", Style.DIM)
    for problem in report.errors:
        ctx.console.error(problem)
    if report.errors:
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    if not dry_run and not engine.verify_versions(config.sync_rules, version):
        _exit(f"files do not carry {version} after sync", code=ErrorCode.IO_ERROR)
    ctx.console.success(
        f"{component}: {len(report.files_updated)} file(s) at {version}"
        f" (tag {format_tag(component, version, ctx.settings.release.tag_format)})"
    )


@release_app.command("history")
def history_cmd(
    component: str | None = typer.Argument(None, help="Only this component"),
) -> None:
    """Show recorded releases from the manifest."""
    ctx = build_context()
    writer = ManifestWriter(ctx.workspace.manifest_path(ctx.settings))
    loaded = writer.load()
    if isinstance(loaded, Err):
        _fail(ctx, loaded.error)

    records = writer.history(component)
    if not records:
        ctx.console.print("no releases recorded", Style.DIM)
        return

    styles = {
        "success": Style.SUCCESS,
        "unverified": Style.WARNING,
        "failed": Style.ERROR,
        "rolled_back": Style.WARNING,
    }
    for r in records:
        published = ", ".join(r.artifacts.published_kinds()) or "-"
        ctx.console.print(
            f"{r.timestamp}  {r.component} {r.version}  {r.status}  ({r.mode}; {published})",
            styles[r.status],
        )
