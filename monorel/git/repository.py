"""Git repository abstraction.

This module provides the Repository class for the single-repo git
operations a release needs. Every method that can fail returns a Result;
the error ``kind`` tells callers *which* failure occurred (nothing to
commit, tag already present, push rejected) because rollback and retry
decisions depend on it.

Usage:
    repo = Repository(Path("packages/mcp-screenshot"))

    match repo.create_tag("screenshot-v1.2.4", message="screenshot v1.2.4"):
        case Ok(_):
            print("tagged")
        case Err(GitError(kind="tag_exists")):
            print("already released")
        case Err(e):
            print(f"tag failed: {e.message}")
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

from monorel.core.result import Err, Ok, Result
from monorel.platform.process import ProcessError
from monorel.platform.process import run as run_process

_GIT_TIMEOUT_SECONDS = 30.0
_GIT_NETWORK_TIMEOUT_SECONDS = 3 * 60.0

# Unit separator; cannot appear in a one-line subject.
LOG_FIELD_SEP = "\x1f"
LOG_FORMAT = LOG_FIELD_SEP.join(["%H", "%an", "%aI", "%s"])

__all__ = [
    "GitError",
    "GitErrorKind",
    "GitStatus",
    "Repository",
    "StatusEntry",
    "LOG_FIELD_SEP",
]

GitErrorKind = Literal["failed", "no_changes", "tag_exists", "push_rejected", "not_found"]

_REJECT_MARKERS = ("[rejected]", "rejected", "non-fast-forward", "protected branch", "denied")


@dataclass(frozen=True, slots=True)
class GitError:
    """Error from a git operation.

    Attributes:
        command: The git subcommand that failed
        message: Error message
        kind: Which failure occurred
        returncode: Process return code
    """

    command: str
    message: str
    kind: GitErrorKind = "failed"
    returncode: int = 1


@dataclass(frozen=True, slots=True)
class StatusEntry:
    """A single entry in git status (``XY path``)."""

    xy: str
    path: str

    @property
    def is_untracked(self) -> bool:
        return self.xy == "??"


@dataclass(frozen=True, slots=True)
class GitStatus:
    """Parsed ``git status --porcelain=v1 -b`` output."""

    branch: str
    upstream: str | None = None
    ahead: int = 0
    behind: int = 0
    entries: tuple[StatusEntry, ...] = field(default_factory=tuple)

    @property
    def is_clean(self) -> bool:
        return len(self.entries) == 0


class Repository:
    """Git repository abstraction.

    Attributes:
        path: Path to the repository root (a component submodule or the
            monorepo itself)
    """

    def __init__(self, path: Path) -> None:
        self.path = path

    def exists(self) -> bool:
        """Check if this is a git work tree (``.git`` dir or submodule file)."""
        return (self.path / ".git").exists()

    def status(self) -> Result[GitStatus, GitError]:
        result = self._run(["status", "--porcelain=v1", "-b"])
        match result:
            case Err(e):
                return Err(self._error("status", e, "git status failed"))
            case Ok(stdout):
                return Ok(self._parse_status(stdout))

    def current_branch(self) -> Result[str, GitError]:
        """Get the checked-out branch; detached HEAD is an error."""
        result = self._run(["rev-parse", "--abbrev-ref", "HEAD"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse", e, "cannot determine branch"))
            case Ok(stdout):
                branch = stdout.strip()
                if branch == "HEAD":
                    return Err(GitError(command="rev-parse", message="detached HEAD"))
                return Ok(branch)

    def head_sha(self) -> Result[str, GitError]:
        result = self._run(["rev-parse", "HEAD"])
        match result:
            case Err(e):
                return Err(self._error("rev-parse", e, "cannot resolve HEAD"))
            case Ok(stdout):
                return Ok(stdout.strip())

    def remote_url(self, remote: str = "origin") -> str | None:
        """Get the configured URL of a remote, or None if unset."""
        result = self._run(["config", "--get", f"remote.{remote}.url"])
        match result:
            case Ok(stdout):
                return stdout.strip() or None
            case Err(_):
                return None

    def commit_all(self, message: str) -> Result[str, GitError]:
        """Stage everything and commit; returns the new commit sha."""
        staged = self._run(["add", "-A"])
        if isinstance(staged, Err):
            return Err(self._error("add", staged.error, "git add failed"))
        return self._commit_staged(message)

    def commit_paths(self, paths: list[str], message: str) -> Result[str, GitError]:
        """Stage only ``paths`` and commit them."""
        staged = self._run(["add", "--", *paths])
        if isinstance(staged, Err):
            return Err(self._error("add", staged.error, "git add failed"))
        return self._commit_staged(message)

    def tag_exists(self, tag: str) -> bool:
        result = self._run(["rev-parse", "-q", "--verify", f"refs/tags/{tag}"])
        return isinstance(result, Ok)

    def create_tag(self, tag: str, *, message: str | None = None) -> Result[None, GitError]:
        if self.tag_exists(tag):
            return Err(
                GitError(command="tag", message=f"tag {tag} already exists", kind="tag_exists")
            )

        args = ["tag", "-a", tag, "-m", message] if message else ["tag", tag]
        result = self._run(args)
        if isinstance(result, Err):
            return Err(self._error("tag", result.error, f"failed to create tag {tag}"))
        return Ok(None)

    def push(
        self,
        *,
        remote: str,
        refs: list[str],
        atomic: bool = False,
    ) -> Result[None, GitError]:
        """Push refspecs (branch names, ``refs/tags/<tag>``, deletions).

        With ``atomic`` the remote accepts every ref or none of them.
        """
        flags = ["--atomic"] if atomic else []
        result = self._run(["push", *flags, remote, *refs])
        if isinstance(result, Err):
            e = result.error
            text = f"{e.stderr}\n{e.stdout}".lower()
            kind: GitErrorKind = (
                "push_rejected" if any(m in text for m in _REJECT_MARKERS) else "failed"
            )
            return Err(
                GitError(
                    command="push",
                    message=e.stderr.strip() or f"push to {remote} failed",
                    kind=kind,
                    returncode=e.returncode,
                )
            )
        return Ok(None)

    def delete_local_tag(self, tag: str) -> Result[bool, GitError]:
        """Delete a local tag. Ok(False) if it did not exist."""
        if not self.tag_exists(tag):
            return Ok(False)
        result = self._run(["tag", "-d", tag])
        if isinstance(result, Err):
            return Err(self._error("tag -d", result.error, f"failed to delete tag {tag}"))
        return Ok(True)

    def delete_remote_tag(self, tag: str, *, remote: str) -> Result[bool, GitError]:
        """Delete a tag on the remote. Ok(False) if the remote never had it."""
        result = self._run(["push", remote, f":refs/tags/{tag}"])
        if isinstance(result, Err):
            text = result.error.stderr.lower()
            if "remote ref does not exist" in text or "unable to delete" in text:
                return Ok(False)
            return Err(self._error("push", result.error, f"failed to delete remote tag {tag}"))
        return Ok(True)

    def revert(self, sha: str) -> Result[str, GitError]:
        """Create a revert commit for ``sha``; history is never rewritten."""
        result = self._run(["revert", "--no-edit", sha])
        if isinstance(result, Err):
            return Err(self._error("revert", result.error, f"failed to revert {sha}"))
        return self.head_sha()

    def latest_tag(self, pattern: str, *, accept: re.Pattern[str] | None = None) -> str | None:
        """Highest version-sorted tag matching a glob, e.g. ``screenshot-v*``.

        ``accept`` further filters the listed tags by full regex match.
        """
        result = self._run(["tag", "--list", pattern, "--sort=-v:refname"])
        match result:
            case Ok(stdout):
                for line in stdout.splitlines():
                    tag = line.strip()
                    if tag and (accept is None or accept.fullmatch(tag)):
                        return tag
                return None
            case Err(_):
                return None

    def log(self, rev_range: str) -> Result[list[list[str]], GitError]:
        """Read ``hash, author, iso-date, subject`` records, newest first."""
        result = self._run(["log", rev_range, f"--pretty=format:{LOG_FORMAT}"])
        if isinstance(result, Err):
            return Err(self._error("log", result.error, f"git log {rev_range} failed"))

        records: list[list[str]] = []
        for line in result.value.splitlines():
            if not line.strip():
                continue
            parts = line.split(LOG_FIELD_SEP, 3)
            if len(parts) < 4:
                continue
            records.append([p.strip() for p in parts])
        return Ok(records)

    def gitlink_sha(self, path: str) -> str | None:
        """Commit recorded for a submodule path in HEAD, if any."""
        result = self._run(["ls-tree", "HEAD", "--", path])
        match result:
            case Ok(stdout):
                # "160000 commit <sha>\t<path>"
                fields = stdout.split()
                if len(fields) >= 3 and fields[1] == "commit":
                    return fields[2]
                return None
            case Err(_):
                return None

    def _commit_staged(self, message: str) -> Result[str, GitError]:
        # --quiet exits 0 when nothing is staged
        diff = self._run(["diff", "--cached", "--quiet"])
        if isinstance(diff, Ok):
            return Err(
                GitError(command="commit", message="no changes to commit", kind="no_changes")
            )

        result = self._run(["commit", "-m", message])
        if isinstance(result, Err):
            return Err(self._error("commit", result.error, "git commit failed"))
        return self.head_sha()

    def _error(self, command: str, e: ProcessError, fallback: str) -> GitError:
        return GitError(
            command=command,
            message=e.stderr.strip() or e.stdout.strip() or fallback,
            returncode=e.returncode,
        )

    def _run(self, args: list[str]) -> Result[str, ProcessError]:
        """Run a git command in this repository."""
        command = args[0] if args else ""
        timeout = (
            _GIT_NETWORK_TIMEOUT_SECONDS
            if command in {"fetch", "pull", "push", "clone"}
            else _GIT_TIMEOUT_SECONDS
        )
        return run_process(["git", "-C", str(self.path), *args], cwd=self.path, timeout=timeout)

    def _parse_status(self, output: str) -> GitStatus:
        lines = [ln for ln in output.splitlines() if ln.strip()]
        if not lines:
            return GitStatus(branch="")

        # First line is branch info: ## branch...upstream [ahead N, behind M]
        branch_line = lines[0]
        branch, upstream = self._parse_branch_line(branch_line)
        ahead, behind = self._parse_ahead_behind(branch_line)

        entries: list[StatusEntry] = []
        for line in lines[1:]:
            if len(line) < 4:
                continue
            entries.append(StatusEntry(xy=line[:2], path=line[3:]))

        return GitStatus(
            branch=branch,
            upstream=upstream,
            ahead=ahead,
            behind=behind,
            entries=tuple(entries),
        )

    def _parse_branch_line(self, line: str) -> tuple[str, str | None]:
        s = line.strip()
        if s.startswith("##"):
            s = s[2:].lstrip()
        s = s.split(" [", 1)[0].strip()
        if "..." in s:
            left, right = s.split("...", 1)
            return (left.strip(), right.strip())
        return (s, None)

    def _parse_ahead_behind(self, line: str) -> tuple[int, int]:
        match = re.search(r"\[([^\]]+)\]", line)
        if not match:
            return (0, 0)
        inside = match.group(1)
        ahead_match = re.search(r"ahead\s+(\d+)", inside)
        behind_match = re.search(r"behind\s+(\d+)", inside)
        ahead = int(ahead_match.group(1)) if ahead_match else 0
        behind = int(behind_match.group(1)) if behind_match else 0
        return (ahead, behind)
