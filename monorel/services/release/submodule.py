from __future__ import annotations

from monorel.core.result import Err, Ok, Result
from monorel.git.repository import Repository
from monorel.output.console import ConsoleProtocol, Style
from monorel.services.release.errors import ReleaseError


def reference_commit_message(component: str, version: str) -> str:
    return f"chore(release): {component} v{version}"


class SubmoduleUpdater:
    """Record a released component's commit in the monorepo.

    Attributes:
        monorepo: Repository that holds the component as a submodule
    """

    def __init__(self, monorepo: Repository, *, console: ConsoleProtocol, dry_run: bool = False):
        self.monorepo = monorepo
        self.console = console
        self.dry_run = dry_run

    def update_reference(
        self,
        path: str,
        *,
        component: str,
        version: str,
    ) -> Result[str | None, ReleaseError]:
        """Commit the gitlink at ``path``; Ok(None) if it was already current."""
        message = reference_commit_message(component, version)
        if self.dry_run:
            self.console.print(f"(dry-run) git commit {path} -m {message!r}", Style.DIM)
            return Ok(None)

        result = self.monorepo.commit_paths([path], message)
        if isinstance(result, Err):
            e = result.error
            if e.kind == "no_changes":
                self.console.print(f"{path}: reference already current", Style.DIM)
                return Ok(None)
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to update submodule reference {path}",
                    hint=e.message,
                )
            )
        return Ok(result.value)

    def verify_reference(self, path: str, expected_sha: str) -> bool:
        return self.monorepo.gitlink_sha(path) == expected_sha
