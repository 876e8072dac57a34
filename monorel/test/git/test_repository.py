"""Tests for git/repository.py."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path
from unittest.mock import patch

import pytest

from monorel.core.result import Err, Ok
from monorel.git.repository import GitStatus, Repository, StatusEntry
from monorel.platform.process import ProcessError
from monorel.services.release.git_ops import tag_regex

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")


def _git(path: Path, *args: str) -> str:
    proc = subprocess.run(
        ["git", "-C", str(path), *args],
        capture_output=True,
        text=True,
        check=True,
    )
    return proc.stdout.strip()


@pytest.fixture
def git_repo(tmp_path: Path) -> Path:
    repo = tmp_path / "mcp-screenshot"
    repo.mkdir()
    _git(repo, "init", "-q")
    _git(repo, "symbolic-ref", "HEAD", "refs/heads/main")
    _git(repo, "config", "user.email", "release@example.com")
    _git(repo, "config", "user.name", "Release Bot")
    _git(repo, "config", "commit.gpgsign", "false")
    _git(repo, "config", "tag.gpgsign", "false")
    (repo / "package.json").write_text('{"version": "1.2.3"}\n', encoding="utf-8")
    _git(repo, "add", "-A")
    _git(repo, "commit", "-q", "-m", "feat: initial import")
    return repo


# =============================================================================
# Status parsing
# =============================================================================


class TestStatusParsing:
    def _status(self, stdout: str) -> GitStatus:
        repo = Repository(Path("."))
        with patch("monorel.git.repository.run_process", return_value=Ok(stdout)):
            result = repo.status()
        assert isinstance(result, Ok)
        return result.value

    def test_clean_tracking_branch(self) -> None:
        status = self._status("## main...origin/main\n")
        assert status.branch == "main"
        assert status.upstream == "origin/main"
        assert status.is_clean

    def test_ahead_behind_and_entries(self) -> None:
        status = self._status("## main...origin/main [ahead 2, behind 1]\n M package.json\n?? x\n")
        assert (status.ahead, status.behind) == (2, 1)
        assert status.entries == (
            StatusEntry(xy=" M", path="package.json"),
            StatusEntry(xy="??", path="x"),
        )
        assert not status.is_clean
        assert status.entries[1].is_untracked

    def test_status_failure_is_err(self) -> None:
        repo = Repository(Path("."))
        error = ProcessError(("git",), 128, "", "fatal: not a git repository")
        with patch("monorel.git.repository.run_process", return_value=Err(error)):
            result = repo.status()
        assert isinstance(result, Err)
        assert "not a git repository" in result.error.message


class TestPushClassification:
    def test_rejected_push(self) -> None:
        repo = Repository(Path("."))
        error = ProcessError(("git",), 1, "", " ! [rejected] main -> main (non-fast-forward)")
        with patch("monorel.git.repository.run_process", return_value=Err(error)):
            result = repo.push(remote="origin", refs=["main"])
        assert isinstance(result, Err)
        assert result.error.kind == "push_rejected"

    def test_network_failure_is_generic(self) -> None:
        repo = Repository(Path("."))
        error = ProcessError(("git",), 128, "", "fatal: unable to access remote")
        with patch("monorel.git.repository.run_process", return_value=Err(error)):
            result = repo.push(remote="origin", refs=["main"])
        assert isinstance(result, Err)
        assert result.error.kind == "failed"

    def test_push_uses_network_timeout(self) -> None:
        repo = Repository(Path("/repo"))
        with patch("monorel.git.repository.run_process", return_value=Ok("")) as run:
            repo.push(remote="origin", refs=["main", "refs/tags/x-v1.0.0"])
        cmd = run.call_args.args[0]
        assert cmd == ["git", "-C", "/repo", "push", "origin", "main", "refs/tags/x-v1.0.0"]
        assert run.call_args.kwargs["timeout"] == 180.0

    def test_atomic_push(self) -> None:
        repo = Repository(Path("/repo"))
        with patch("monorel.git.repository.run_process", return_value=Ok("")) as run:
            repo.push(remote="origin", refs=["main", "refs/tags/x-v1.0.0"], atomic=True)
        cmd = run.call_args.args[0]
        assert cmd[3:6] == ["push", "--atomic", "origin"]

    def test_missing_remote_tag_is_not_an_error(self) -> None:
        repo = Repository(Path("."))
        stderr = "error: unable to delete 'x': remote ref does not exist"
        error = ProcessError(("git",), 1, "", stderr)
        with patch("monorel.git.repository.run_process", return_value=Err(error)):
            result = repo.delete_remote_tag("x", remote="origin")
        assert result == Ok(False)


# =============================================================================
# Real repository
# =============================================================================


@requires_git
class TestRepositoryIntegration:
    def test_branch_and_head(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        assert repo.exists()
        assert repo.current_branch() == Ok("main")
        head = repo.head_sha()
        assert isinstance(head, Ok)
        assert len(head.value) == 40

    def test_detached_head_is_error(self, git_repo: Path) -> None:
        _git(git_repo, "checkout", "-q", "--detach")
        result = Repository(git_repo).current_branch()
        assert isinstance(result, Err)
        assert "detached" in result.error.message

    def test_commit_all_and_no_changes(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        (git_repo / "package.json").write_text('{"version": "1.2.4"}\n', encoding="utf-8")

        committed = repo.commit_all("chore(release): screenshot v1.2.4")
        assert isinstance(committed, Ok)
        assert committed.value == _git(git_repo, "rev-parse", "HEAD")

        again = repo.commit_all("nothing")
        assert isinstance(again, Err)
        assert again.error.kind == "no_changes"

    def test_tags(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        assert repo.create_tag("screenshot-v1.2.3", message="screenshot v1.2.3") == Ok(None)
        assert repo.tag_exists("screenshot-v1.2.3")

        dup = repo.create_tag("screenshot-v1.2.3", message="again")
        assert isinstance(dup, Err)
        assert dup.error.kind == "tag_exists"

        assert repo.delete_local_tag("screenshot-v1.2.3") == Ok(True)
        assert repo.delete_local_tag("screenshot-v1.2.3") == Ok(False)
        assert not repo.tag_exists("screenshot-v1.2.3")

    def test_latest_tag_is_version_sorted(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        for tag in ("screenshot-v1.2.3", "screenshot-v1.10.0", "other-v9.0.0"):
            assert repo.create_tag(tag) == Ok(None)

        assert repo.latest_tag("screenshot-v*") == "screenshot-v1.10.0"
        assert repo.latest_tag("missing-v*") is None

    def test_latest_tag_ignores_prefix_sharing_components(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        for tag in ("screenshot-v1.2.3", "screenshot-viewer-v2.0.0"):
            assert repo.create_tag(tag) == Ok(None)

        accept = tag_regex("screenshot")
        assert repo.latest_tag("screenshot-v*", accept=accept) == "screenshot-v1.2.3"

    def test_log_records(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        (git_repo / "a.txt").write_text("a", encoding="utf-8")
        assert isinstance(repo.commit_all("fix: handle | pipes (#12)"), Ok)

        result = repo.log("HEAD")
        assert isinstance(result, Ok)
        subjects = [r[3] for r in result.value]
        assert subjects == ["fix: handle | pipes (#12)", "feat: initial import"]
        assert result.value[0][1] == "Release Bot"

    def test_revert_creates_new_commit(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        (git_repo / "package.json").write_text('{"version": "1.2.4"}\n', encoding="utf-8")
        bump = repo.commit_all("chore(release): bump")
        assert isinstance(bump, Ok)

        reverted = repo.revert(bump.value)
        assert isinstance(reverted, Ok)
        assert reverted.value != bump.value
        assert '"1.2.3"' in (git_repo / "package.json").read_text(encoding="utf-8")
        assert _git(git_repo, "rev-list", "--count", "HEAD") == "3"

    def test_remote_url(self, git_repo: Path) -> None:
        repo = Repository(git_repo)
        assert repo.remote_url() is None
        _git(git_repo, "remote", "add", "origin", "git@github.com:acme/mcp-screenshot.git")
        assert repo.remote_url() == "git@github.com:acme/mcp-screenshot.git"
