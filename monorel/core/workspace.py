"""Monorepo workspace detection.

The workspace is the monorepo root that hosts the component submodules.
It is identified by a `release.toml` file; repositories without one fall
back to the nearest directory containing `.git`.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

from .result import Err, Ok, Result
from .settings import Settings

__all__ = [
    "Workspace",
    "WorkspaceError",
    "detect_workspace",
    "WORKSPACE_ENV",
]

WORKSPACE_ENV = "MONOREL_WORKSPACE"
SETTINGS_FILE = "release.toml"


@dataclass(frozen=True)
class WorkspaceError:
    """Error when the workspace cannot be detected."""

    message: str
    searched_from: Path | None = None


@dataclass(frozen=True, slots=True)
class Workspace:
    """A detected monorepo root and its resolved release paths."""

    root: Path

    @property
    def settings_path(self) -> Path:
        return self.root / SETTINGS_FILE

    def config_dir(self, settings: Settings) -> Path:
        return self.root / settings.release.config_dir

    def manifest_path(self, settings: Settings) -> Path:
        return self.root / settings.release.manifest


def _find_upward(start: Path) -> Path | None:
    for candidate in (start, *start.parents):
        if (candidate / SETTINGS_FILE).is_file():
            return candidate
    for candidate in (start, *start.parents):
        if (candidate / ".git").exists():
            return candidate
    return None


def detect_workspace(
    start: Path | None = None,
    environ: dict[str, str] | None = None,
) -> Result[Workspace, WorkspaceError]:
    """Locate the monorepo root.

    Resolution order: MONOREL_WORKSPACE, then the nearest ancestor of
    ``start`` (default: cwd) with release.toml, then the nearest with .git.
    """
    env = os.environ if environ is None else environ
    override = env.get(WORKSPACE_ENV)
    if override:
        root = Path(override).expanduser()
        if not root.is_dir():
            return Err(WorkspaceError(f"{WORKSPACE_ENV} is not a directory: {root}"))
        return Ok(Workspace(root=root.resolve()))

    origin = (start or Path.cwd()).resolve()
    found = _find_upward(origin)
    if found is None:
        return Err(
            WorkspaceError(
                "not inside a monorepo (no release.toml or .git found)",
                searched_from=origin,
            )
        )
    return Ok(Workspace(root=found))
