"""Changelog derivation from commit history.

Commits between two refs are partitioned into breaking / feature / fix /
other by the first matching rule, then rendered as Markdown sections in
that fixed order. Links are derived from the repository remote; without
one the renderer degrades to ``[abc1234]`` / ``#12`` placeholders.
"""

from __future__ import annotations

import re
from datetime import date as Date
from pathlib import Path
from typing import Literal

from monorel.core.result import Err, Ok, Result
from monorel.git.repository import Repository
from monorel.platform.files import atomic_write_text
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import Changelog, CommitInfo

Category = Literal["breaking", "feature", "fix", "other"]

CHANGELOG_HEADER = "# Changelog"
NEW_CHANGELOG_PREAMBLE = (
    "# Changelog\n\nAll notable changes to this project will be documented in this file.\n\n"
)

_SECTION_TITLES: tuple[tuple[Category, str], ...] = (
    ("breaking", "### ⚠️ Breaking Changes"),
    ("feature", "### ✨ Features"),
    ("fix", "### 🐛 Bug Fixes"),
    ("other", "### 📝 Other Changes"),
)

_BANG_RE = re.compile(r"^[a-z]+(\([^)]*\))?!:")
_PR_RE = re.compile(r"#(\d+)")


def categorize(message: str) -> Category:
    """First matching rule wins: breaking > feature > fix > other."""
    m = message.lower()
    if "breaking change" in m or "breaking:" in m or _BANG_RE.match(m):
        return "breaking"
    if m.startswith(("feat:", "feature:")) or "add " in m or "implement " in m:
        return "feature"
    if m.startswith(("fix:", "bugfix:")) or "fix " in m or "resolve " in m:
        return "fix"
    return "other"


def categorize_commits(commits: list[CommitInfo]) -> Changelog:
    buckets: dict[Category, list[CommitInfo]] = {
        "breaking": [],
        "feature": [],
        "fix": [],
        "other": [],
    }
    for commit in commits:
        buckets[categorize(commit.message)].append(commit)
    return Changelog(
        breaking=tuple(buckets["breaking"]),
        features=tuple(buckets["feature"]),
        fixes=tuple(buckets["fix"]),
        other=tuple(buckets["other"]),
    )


def parse_pr_number(message: str) -> int | None:
    m = _PR_RE.search(message)
    if m is None:
        return None
    n = int(m.group(1))
    return n if n > 0 else None


def normalize_remote_url(url: str) -> str:
    """Turn a git remote into a browsable https URL."""
    out = url.strip().rstrip("/")
    if out.endswith(".git"):
        out = out[: -len(".git")]
    if out.startswith("git@github.com:"):
        out = "https://github.com/" + out[len("git@github.com:") :]
    elif out.startswith("ssh://git@github.com/"):
        out = "https://github.com/" + out[len("ssh://git@github.com/") :]
    return out


def commit_url(commit: CommitInfo, repo_url: str | None) -> str:
    if not repo_url:
        return f"[{commit.short_hash}]"
    return f"{normalize_remote_url(repo_url)}/commit/{commit.hash}"


def pr_url(pr_number: int, repo_url: str | None) -> str:
    if not repo_url:
        return f"#{pr_number}"
    return f"{normalize_remote_url(repo_url)}/pull/{pr_number}"


def format_commit(commit: CommitInfo, repo_url: str | None) -> str:
    line = f"- {commit.message}"
    if commit.pr_number is not None:
        line += f" ([#{commit.pr_number}]({pr_url(commit.pr_number, repo_url)}))"
    line += f" ([{commit.short_hash}]({commit_url(commit, repo_url)}))"
    return line


def format_changelog(changelog: Changelog, repo_url: str | None) -> str:
    lists: dict[Category, tuple[CommitInfo, ...]] = {
        "breaking": changelog.breaking,
        "feature": changelog.features,
        "fix": changelog.fixes,
        "other": changelog.other,
    }
    sections: list[str] = []
    for category, title in _SECTION_TITLES:
        commits = lists[category]
        if not commits:
            continue
        sections.append(title + "\n")
        sections.extend(format_commit(c, repo_url) for c in commits)
        sections.append("")
    return "\n".join(sections).strip()


def update_changelog_file(
    path: Path,
    *,
    version: str,
    content: str,
    date: Date | None = None,
) -> Result[None, ReleaseError]:
    """Insert a ``## [version] - date`` section below the changelog header."""
    if not version.strip():
        return Err(ReleaseError(kind="invalid_version", message="version must not be empty"))
    if not content.strip():
        return Err(ReleaseError(kind="io_failed", message="changelog content is empty"))

    day = (date or Date.today()).isoformat()
    section = f"## [{version}] - {day}\n\n{content}\n\n"

    try:
        existing = path.read_text(encoding="utf-8") if path.exists() else NEW_CHANGELOG_PREAMBLE
    except (OSError, UnicodeDecodeError) as e:
        return Err(ReleaseError(kind="io_failed", message=f"cannot read {path}: {e}"))

    if CHANGELOG_HEADER in existing:
        lines = existing.split("\n")
        insert_at = len(lines)
        for i, line in enumerate(lines):
            if line.startswith(CHANGELOG_HEADER):
                insert_at = i + 1
                # Skip the preamble up to the first release section.
                while insert_at < len(lines) and not lines[insert_at].startswith("##"):
                    insert_at += 1
                break
        before = "\n".join(lines[:insert_at])
        after = "\n".join(lines[insert_at:])
        updated = f"{before}\n{section}{after}"
    else:
        updated = f"{CHANGELOG_HEADER}\n\n{section}{existing}"

    try:
        atomic_write_text(path, updated)
    except OSError as e:
        return Err(ReleaseError(kind="io_failed", message=f"cannot write {path}: {e}"))
    return Ok(None)


class ChangelogGenerator:
    """Derive a changelog from one repository's history.

    Attributes:
        repo: Repository whose history is read
        repo_url: Explicit browse URL; defaults to the remote's URL
        remote: Remote consulted when ``repo_url`` is not given
    """

    def __init__(self, repo: Repository, *, repo_url: str | None = None, remote: str = "origin"):
        self.repo = repo
        self.repo_url = repo_url
        self.remote = remote

    def resolve_repo_url(self) -> str | None:
        if self.repo_url:
            return normalize_remote_url(self.repo_url)
        remote = self.repo.remote_url(self.remote)
        return normalize_remote_url(remote) if remote else None

    def extract_commits(
        self,
        from_ref: str | None,
        to_ref: str = "HEAD",
    ) -> Result[list[CommitInfo], ReleaseError]:
        """Commits after ``from_ref`` up to ``to_ref``; all history if no from_ref."""
        rev_range = f"{from_ref}..{to_ref}" if from_ref else to_ref
        result = self.repo.log(rev_range)
        if isinstance(result, Err):
            return Err(
                ReleaseError(
                    kind="io_failed",
                    message=f"failed to read commits {rev_range}",
                    hint=result.error.message,
                )
            )

        commits = [
            CommitInfo(
                hash=sha,
                author=author,
                date=when,
                message=subject,
                pr_number=parse_pr_number(subject),
            )
            for sha, author, when, subject in result.value
        ]
        return Ok(commits)

    def generate(
        self,
        from_ref: str | None,
        to_ref: str = "HEAD",
    ) -> Result[Changelog, ReleaseError]:
        commits = self.extract_commits(from_ref, to_ref)
        if isinstance(commits, Err):
            return commits
        return Ok(categorize_commits(commits.value))

    def format(self, changelog: Changelog) -> str:
        return format_changelog(changelog, self.resolve_repo_url())
