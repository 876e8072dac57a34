from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass

import typer

from monorel.core.errors import ErrorCode
from monorel.core.result import Err
from monorel.core.settings import Settings, load_settings_or_default
from monorel.core.workspace import Workspace, detect_workspace
from monorel.output.console import ConsoleProtocol, RichConsole


@dataclass(frozen=True, slots=True)
class CLIContext:
    workspace: Workspace
    settings: Settings
    console: ConsoleProtocol
    environ: Mapping[str, str]


def build_context() -> CLIContext:
    # The only place the process environment is read for configuration.
    environ = dict(os.environ)

    workspace_result = detect_workspace(environ=environ)
    if isinstance(workspace_result, Err):
        typer.echo(f"error: {workspace_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.ENV_ERROR))
    workspace = workspace_result.value

    settings_result = load_settings_or_default(workspace.settings_path)
    if isinstance(settings_result, Err):
        typer.echo(f"error: {settings_result.error.message}", err=True)
        raise typer.Exit(code=int(ErrorCode.USER_ERROR))

    return CLIContext(
        workspace=workspace,
        settings=settings_result.value,
        console=RichConsole(),
        environ=environ,
    )
