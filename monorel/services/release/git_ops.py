"""Release-level git and host primitives.

Wraps ``Repository`` and the gh helpers as fail-loud operations that keep
git's distinguishable failure kinds (``no_changes``, ``tag_exists``,
``push_rejected``). Every write branches on ``dry_run`` internally and
only echoes what it would do.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Protocol

from monorel.core.result import Err, Ok, Result
from monorel.core.settings import DEFAULT_TAG_FORMAT
from monorel.git.repository import GitError, Repository
from monorel.output.console import ConsoleProtocol, Style
from monorel.services.release import gh
from monorel.services.release.errors import ReleaseError, ReleaseErrorKind
from monorel.services.release.semver import SEMVER_PATTERN

DRY_RUN_SHA = "dry-run"


def format_tag(component: str, version: str, tag_format: str = DEFAULT_TAG_FORMAT) -> str:
    """Canonical release tag, e.g. ``screenshot-v1.2.4``."""
    return tag_format.format(component=component, version=version)


def tag_glob(component: str, tag_format: str = DEFAULT_TAG_FORMAT) -> str:
    return tag_format.format(component=component, version="*")


def tag_regex(component: str, tag_format: str = DEFAULT_TAG_FORMAT) -> re.Pattern[str]:
    """Exact tags of one component.

    The glob ``screenshot-v*`` also matches ``screenshot-viewer-v1.0.0``.
    """
    pattern = re.escape(tag_format)
    pattern = pattern.replace(re.escape("{component}"), re.escape(component))
    pattern = pattern.replace(re.escape("{version}"), SEMVER_PATTERN)
    return re.compile(pattern)


def _release_error(e: GitError, message: str) -> ReleaseError:
    kind: ReleaseErrorKind
    match e.kind:
        case "no_changes":
            kind = "no_changes"
        case "tag_exists":
            kind = "tag_exists"
        case "push_rejected":
            kind = "push_rejected"
        case _:
            kind = "release_failed"
    return ReleaseError(kind=kind, message=message, hint=e.message)


class GitOperationsProtocol(Protocol):
    def current_branch(self) -> Result[str, ReleaseError]: ...

    def head_sha(self) -> Result[str, ReleaseError]: ...

    def previous_tag(self, component: str, tag_format: str) -> str | None: ...

    def commit_changes(self, message: str) -> Result[str, ReleaseError]: ...

    def create_tag(self, tag: str, *, message: str) -> Result[None, ReleaseError]: ...

    def push_to_remote(self, branch: str, *, tags: list[str]) -> Result[None, ReleaseError]: ...

    def create_release(
        self, tag: str, *, title: str, notes: str, prerelease: bool
    ) -> Result[str, ReleaseError]: ...

    def attach_assets(self, tag: str, paths: list[Path]) -> Result[None, ReleaseError]: ...

    def delete_release(self, tag: str) -> Result[None, ReleaseError]: ...

    def delete_tag(self, tag: str) -> Result[list[str], ReleaseError]: ...

    def delete_local_tag(self, tag: str) -> Result[bool, ReleaseError]: ...

    def revert_commit(
        self, sha: str, *, branch: str, push: bool = True
    ) -> Result[str, ReleaseError]: ...


class GitOperations:
    """Git/host primitives for one component repository.

    Attributes:
        repo: Component repository
        host_repo: ``owner/name`` slug for gh, or None to use the checkout's default
        remote: Git remote to push to
    """

    def __init__(
        self,
        repo: Repository,
        *,
        console: ConsoleProtocol,
        host_repo: str | None = None,
        remote: str = "origin",
        dry_run: bool = False,
    ) -> None:
        self.repo = repo
        self.console = console
        self.host_repo = host_repo
        self.remote = remote
        self.dry_run = dry_run

    def current_branch(self) -> Result[str, ReleaseError]:
        result = self.repo.current_branch()
        if isinstance(result, Err):
            return Err(_release_error(result.error, "cannot determine current branch"))
        return Ok(result.value)

    def head_sha(self) -> Result[str, ReleaseError]:
        result = self.repo.head_sha()
        if isinstance(result, Err):
            return Err(_release_error(result.error, "cannot resolve HEAD"))
        return Ok(result.value)

    def previous_tag(self, component: str, tag_format: str) -> str | None:
        return self.repo.latest_tag(
            tag_glob(component, tag_format), accept=tag_regex(component, tag_format)
        )

    def commit_changes(self, message: str) -> Result[str, ReleaseError]:
        if self._simulate(f"git commit -am {message!r}"):
            return Ok(DRY_RUN_SHA)
        result = self.repo.commit_all(message)
        if isinstance(result, Err):
            e = result.error
            text = "no changes to commit" if e.kind == "no_changes" else "commit failed"
            return Err(_release_error(e, text))
        self.console.print(f"committed {result.value[:8]}", Style.DIM)
        return Ok(result.value)

    def create_tag(self, tag: str, *, message: str) -> Result[None, ReleaseError]:
        if self.repo.tag_exists(tag):
            return Err(
                ReleaseError(
                    kind="tag_exists",
                    message=f"tag {tag} already exists",
                    hint=f"Delete it or choose another version: git tag -d {tag}",
                )
            )
        if self._simulate(f"git tag -a {tag}"):
            return Ok(None)
        result = self.repo.create_tag(tag, message=message)
        if isinstance(result, Err):
            return Err(_release_error(result.error, f"failed to create tag {tag}"))
        self.console.print(f"tagged {tag}", Style.DIM)
        return Ok(None)

    def push_to_remote(self, branch: str, *, tags: list[str]) -> Result[None, ReleaseError]:
        refs = [branch, *(f"refs/tags/{t}" for t in tags)]
        if self._simulate(f"git push {self.remote} {' '.join(refs)}"):
            return Ok(None)
        result = self.repo.push(remote=self.remote, refs=refs, atomic=True)
        if isinstance(result, Err):
            e = result.error
            text = "push rejected" if e.kind == "push_rejected" else f"push to {self.remote} failed"
            return Err(_release_error(e, text))
        return Ok(None)

    def create_release(
        self,
        tag: str,
        *,
        title: str,
        notes: str,
        prerelease: bool,
    ) -> Result[str, ReleaseError]:
        if self._simulate(f"gh release create {tag} --title {title!r}"):
            return Ok(f"(dry-run) {tag}")
        return gh.create_release(
            cwd=self.repo.path,
            repo=self.host_repo,
            tag=tag,
            title=title,
            notes=notes,
            prerelease=prerelease,
        )

    def attach_assets(self, tag: str, paths: list[Path]) -> Result[None, ReleaseError]:
        names = " ".join(p.name for p in paths)
        if self._simulate(f"gh release upload {tag} {names}"):
            return Ok(None)
        return gh.upload_assets(cwd=self.repo.path, repo=self.host_repo, tag=tag, paths=paths)

    def delete_release(self, tag: str) -> Result[None, ReleaseError]:
        if self._simulate(f"gh release delete {tag} --yes"):
            return Ok(None)
        return gh.delete_release(cwd=self.repo.path, repo=self.host_repo, tag=tag)

    def delete_tag(self, tag: str) -> Result[list[str], ReleaseError]:
        """Delete a tag locally and on the remote; returns the deletions done."""
        if self._simulate(f"git tag -d {tag} && git push {self.remote} :refs/tags/{tag}"):
            return Ok([])

        done: list[str] = []
        local = self.repo.delete_local_tag(tag)
        if isinstance(local, Err):
            return Err(
                ReleaseError(
                    kind="rollback_failed",
                    message=f"failed to delete local tag {tag}",
                    hint=f"Run: git tag -d {tag}",
                )
            )
        if local.value:
            done.append(f"deleted local tag {tag}")

        remote = self.repo.delete_remote_tag(tag, remote=self.remote)
        if isinstance(remote, Err):
            return Err(
                ReleaseError(
                    kind="rollback_failed",
                    message=f"failed to delete remote tag {tag}",
                    hint=f"Run: git push {self.remote} :refs/tags/{tag}",
                )
            )
        if remote.value:
            done.append(f"deleted remote tag {tag}")
        return Ok(done)

    def delete_local_tag(self, tag: str) -> Result[bool, ReleaseError]:
        if self._simulate(f"git tag -d {tag}"):
            return Ok(False)
        result = self.repo.delete_local_tag(tag)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="rollback_failed",
                    message=f"failed to delete local tag {tag}",
                    hint=f"Run: git tag -d {tag}",
                )
            )
        return Ok(result.value)

    def revert_commit(
        self, sha: str, *, branch: str, push: bool = True
    ) -> Result[str, ReleaseError]:
        """Undo a commit with a new revert commit, pushed unless the original never was."""
        if self._simulate(f"git revert --no-edit {sha[:8]} && git push {self.remote} {branch}"):
            return Ok(DRY_RUN_SHA)
        reverted = self.repo.revert(sha)
        if isinstance(reverted, Err):
            return Err(
                ReleaseError(
                    kind="rollback_failed",
                    message=f"failed to revert {sha[:8]}",
                    hint=f"Run: git revert {sha} && git push {self.remote} {branch}",
                )
            )
        if not push:
            return Ok(reverted.value)
        pushed = self.repo.push(remote=self.remote, refs=[branch])
        if isinstance(pushed, Err):
            return Err(
                ReleaseError(
                    kind="rollback_failed",
                    message=f"reverted {sha[:8]} locally but push failed",
                    hint=f"Run: git push {self.remote} {branch}",
                )
            )
        return Ok(reverted.value)

    def _simulate(self, description: str) -> bool:
        if self.dry_run:
            self.console.print(f"(dry-run) {description}", Style.DIM)
        return self.dry_run
