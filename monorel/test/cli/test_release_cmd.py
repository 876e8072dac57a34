from __future__ import annotations

import json
from pathlib import Path

import pytest
import typer
from typer.testing import CliRunner

from monorel import __version__
from monorel.cli.app import app
from monorel.cli.context import CLIContext
from monorel.core.errors import ErrorCode
from monorel.core.settings import ReleaseSettings, Settings
from monorel.core.workspace import WORKSPACE_ENV, Workspace
from monorel.output.console import MockConsole
from monorel.services.release.errors import ReleaseError
from monorel.services.release.manifest import ManifestWriter
from monorel.services.release.model import (
    ArtifactRecord,
    ReleaseArtifacts,
    ReleaseOptions,
    SubmoduleRelease,
)
from monorel.services.release.report import ComponentReport, ReleaseReport

PKG = "packages/mcp-screenshot"


def _ctx(tmp_path: Path) -> CLIContext:
    return CLIContext(
        workspace=Workspace(root=tmp_path),
        settings=Settings(),
        console=MockConsole(),
        environ={},
    )


def _write_config(root: Path, name: str, body: str) -> None:
    cfg = root / "scripts" / "release-config" / f"{name}.json"
    cfg.parent.mkdir(parents=True, exist_ok=True)
    cfg.write_text(body, encoding="utf-8")


def _screenshot(root: Path) -> None:
    (root / PKG / "src").mkdir(parents=True)
    (root / PKG / "src" / "version.ts").write_text(
        "export const VERSION = '1.2.3';\n", encoding="utf-8"
    )
    _write_config(
        root,
        "screenshot",
        json.dumps(
            {
                "npmPackageName": "@acme/mcp-screenshot",
                "vscodeExtensionName": "acme.mcp-screenshot",
                "filesToSync": [
                    {
                        "path": f"{PKG}/src/version.ts",
                        "pattern": "VERSION = '[^']+'",
                        "replacement": "VERSION = '$VERSION'",
                    }
                ],
            }
        ),
    )


@pytest.fixture
def ctx(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> CLIContext:
    import monorel.cli.commands.release_cmd as release_cmd

    context = _ctx(tmp_path)
    monkeypatch.setattr(release_cmd, "build_context", lambda: context)
    return context


def _console(ctx: CLIContext) -> MockConsole:
    assert isinstance(ctx.console, MockConsole)
    return ctx.console


class TestConfigs:
    def test_lists_artifacts(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        _screenshot(ctx.workspace.root)
        release_cmd.configs_cmd()

        assert _console(ctx).find(f"screenshot  {PKG}  [package, extension]")

    def test_invalid_config_exits(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        _screenshot(ctx.workspace.root)
        _write_config(ctx.workspace.root, "broken", "{not json")

        with pytest.raises(typer.Exit) as exc:
            release_cmd.configs_cmd()

        assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
        assert _console(ctx).find("error: broken: invalid release configuration for broken")
        assert _console(ctx).find("screenshot  ")

    def test_no_configs(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        release_cmd.configs_cmd()
        assert _console(ctx).find("no configs in")


class TestSync:
    def test_writes_version(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        _screenshot(ctx.workspace.root)
        release_cmd.sync_cmd(component="screenshot", version="1.2.4", dry_run=False)

        text = (ctx.workspace.root / PKG / "src" / "version.ts").read_text(encoding="utf-8")
        assert "VERSION = '1.2.4'" in text
        assert _console(ctx).find("OK screenshot: 1 file(s) at 1.2.4 (tag screenshot-v1.2.4)")

    def test_dry_run(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        _screenshot(ctx.workspace.root)
        release_cmd.sync_cmd(component="screenshot", version="1.2.4", dry_run=True)

        text = (ctx.workspace.root / PKG / "src" / "version.ts").read_text(encoding="utf-8")
        assert "VERSION = '1.2.3'" in text
        assert _console(ctx).find(f"(dry-run) would update {PKG}/src/version.ts")

    def test_invalid_version(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        with pytest.raises(typer.Exit) as exc:
            release_cmd.sync_cmd(component="screenshot", version="v1", dry_run=False)
        assert exc.value.exit_code == int(ErrorCode.USER_ERROR)

    def test_unknown_component_without_synthesis(
        self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        context = CLIContext(
            workspace=Workspace(root=tmp_path),
            settings=Settings(release=ReleaseSettings(synthesize_defaults=False)),
            console=MockConsole(),
            environ={},
        )
        monkeypatch.setattr(release_cmd, "build_context", lambda: context)

        with pytest.raises(typer.Exit) as exc:
            release_cmd.sync_cmd(component="ghost", version="1.0.0", dry_run=False)

        assert exc.value.exit_code == int(ErrorCode.USER_ERROR)
        assert _console(context).find("error: no release configuration for ghost")


class TestHistory:
    def test_lists_records(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        writer = ManifestWriter(ctx.workspace.root / "release-manifest.json")
        writer.load()
        writer.add_release(
            SubmoduleRelease(
                component="screenshot",
                version="1.2.4",
                timestamp="2026-03-01T10:00:00+00:00",
                mode="local",
                status="success",
                artifacts=ReleaseArtifacts(package=ArtifactRecord("package", published=True)),
            )
        )
        writer.add_release(
            SubmoduleRelease(
                component="debugger",
                version="0.3.0",
                timestamp="2026-03-02T10:00:00+00:00",
                mode="local",
                status="rolled_back",
            )
        )
        writer.save()

        release_cmd.history_cmd(component="screenshot")

        console = _console(ctx)
        assert console.find("screenshot 1.2.4  success  (local; package)")
        assert not console.find("debugger")

    def test_empty(self, ctx: CLIContext) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        release_cmd.history_cmd(component=None)
        assert _console(ctx).find("no releases recorded")


class TestRun:
    def test_exit_code_follows_report(
        self, ctx: CLIContext, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        import monorel.cli.commands.release_cmd as release_cmd

        seen: list[ReleaseOptions] = []
        error = ReleaseError("publish_failed", "npm publish failed")

        class FakeOrchestrator:
            def __init__(self, **_: object) -> None:
                pass

            def run(self, options: ReleaseOptions) -> ReleaseReport:
                seen.append(options)
                failed = ComponentReport("screenshot", "failed", version="1.2.4", error=error)
                return ReleaseReport(components=(failed,), not_started=("debugger",))

        monkeypatch.setattr(release_cmd, "ReleaseOrchestrator", FakeOrchestrator)

        with pytest.raises(typer.Exit) as exc:
            release_cmd.run_cmd(
                components=["screenshot", "debugger"],
                bump="minor",
                version=None,
                dry_run=True,
                skip_tests=False,
                skip_build=False,
                skip_verify=False,
                include_container=True,
                skip_submodule_update=False,
                mode="local",
                timeout=None,
            )

        assert exc.value.exit_code == int(ErrorCode.NETWORK_ERROR)
        (options,) = seen
        assert options.components == ("screenshot", "debugger")
        assert options.bump == "minor"
        assert options.dry_run and options.include_container
        assert _console(ctx).find("not started: debugger")


def test_version_flag() -> None:
    result = CliRunner().invoke(app, ["--version"])
    assert result.exit_code == 0
    assert result.output.strip() == __version__


def test_workspace_must_be_a_directory(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv(WORKSPACE_ENV, raising=False)
    missing = tmp_path / "nope"
    result = CliRunner().invoke(app, ["--workspace", str(missing), "release", "configs"])
    assert result.exit_code == int(ErrorCode.ENV_ERROR)
