from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import pytest

from monorel.core.result import Err, Ok, Result
from monorel.git.repository import GitError
from monorel.output.console import MockConsole
from monorel.services.release import gh as gh_mod
from monorel.services.release.git_ops import (
    DRY_RUN_SHA,
    GitOperations,
    format_tag,
    tag_glob,
    tag_regex,
)


@dataclass
class FakeRepository:
    path: Path = Path("/repo/mcp-screenshot")
    tags: set[str] = field(default_factory=set)
    calls: list[str] = field(default_factory=list)
    commit_result: Result[str, GitError] = field(default_factory=lambda: Ok("f" * 40))
    push_result: Result[None, GitError] = field(default_factory=lambda: Ok(None))
    remote_tag_result: Result[bool, GitError] = field(default_factory=lambda: Ok(True))
    revert_result: Result[str, GitError] = field(default_factory=lambda: Ok("e" * 40))

    def tag_exists(self, tag: str) -> bool:
        return tag in self.tags

    def commit_all(self, message: str) -> Result[str, GitError]:
        self.calls.append(f"commit {message}")
        return self.commit_result

    def create_tag(self, tag: str, *, message: str | None = None) -> Result[None, GitError]:
        self.calls.append(f"tag {tag}")
        self.tags.add(tag)
        return Ok(None)

    def push(
        self, *, remote: str, refs: list[str], atomic: bool = False
    ) -> Result[None, GitError]:
        flag = "--atomic " if atomic else ""
        self.calls.append(f"push {flag}{remote} {' '.join(refs)}")
        return self.push_result

    def delete_local_tag(self, tag: str) -> Result[bool, GitError]:
        self.calls.append(f"tag -d {tag}")
        existed = tag in self.tags
        self.tags.discard(tag)
        return Ok(existed)

    def delete_remote_tag(self, tag: str, *, remote: str) -> Result[bool, GitError]:
        self.calls.append(f"push {remote} :refs/tags/{tag}")
        return self.remote_tag_result

    def revert(self, sha: str) -> Result[str, GitError]:
        self.calls.append(f"revert {sha}")
        return self.revert_result


def _ops(repo: FakeRepository, *, dry_run: bool = False) -> tuple[GitOperations, MockConsole]:
    console = MockConsole()
    ops = GitOperations(
        repo,  # type: ignore[arg-type]
        console=console,
        host_repo="acme/mcp-screenshot",
        dry_run=dry_run,
    )
    return ops, console


class TestTagFormat:
    def test_default_format(self) -> None:
        assert format_tag("screenshot", "1.2.4") == "screenshot-v1.2.4"
        assert tag_glob("screenshot") == "screenshot-v*"

    def test_monorepo_format(self) -> None:
        assert format_tag("screenshot", "1.2.4", "v{version}") == "v1.2.4"

    def test_pure(self) -> None:
        assert format_tag("a", "1.0.0") == format_tag("a", "1.0.0")

    def test_regex_matches_only_this_component(self) -> None:
        accept = tag_regex("screenshot")
        assert accept.fullmatch("screenshot-v1.2.4")
        assert accept.fullmatch("screenshot-v2.0.0-rc.1")
        assert not accept.fullmatch("screenshot-viewer-v1.0.0")
        assert not accept.fullmatch("screenshot-vnext")

    def test_regex_escapes_literal_text(self) -> None:
        accept = tag_regex("a.b", "release/{component}@{version}")
        assert accept.fullmatch("release/a.b@1.0.0")
        assert not accept.fullmatch("release/axb@1.0.0")


class TestDryRun:
    def test_writes_are_simulated(self) -> None:
        repo = FakeRepository()
        ops, console = _ops(repo, dry_run=True)

        assert ops.commit_changes("chore(release): screenshot v1.2.4") == Ok(DRY_RUN_SHA)
        assert ops.create_tag("screenshot-v1.2.4", message="x") == Ok(None)
        assert ops.push_to_remote("main", tags=["screenshot-v1.2.4"]) == Ok(None)
        assert ops.create_release(
            "screenshot-v1.2.4", title="t", notes="n", prerelease=False
        ) == Ok("(dry-run) screenshot-v1.2.4")
        assert ops.delete_tag("screenshot-v1.2.4") == Ok([])

        assert repo.calls == []
        assert len(console.find("(dry-run)")) == 5
        assert console.find("(dry-run) git push origin main refs/tags/screenshot-v1.2.4")

    def test_existing_tag_still_detected(self) -> None:
        ops, _ = _ops(FakeRepository(tags={"screenshot-v1.2.4"}), dry_run=True)
        result = ops.create_tag("screenshot-v1.2.4", message="x")
        assert isinstance(result, Err)
        assert result.error.kind == "tag_exists"


class TestErrors:
    def test_no_changes_kind_is_kept(self) -> None:
        repo = FakeRepository(
            commit_result=Err(GitError("commit", "no changes to commit", kind="no_changes"))
        )
        ops, _ = _ops(repo)
        result = ops.commit_changes("msg")
        assert isinstance(result, Err)
        assert result.error.kind == "no_changes"

    def test_push_rejected(self) -> None:
        repo = FakeRepository(
            push_result=Err(GitError("push", "! [rejected] main", kind="push_rejected"))
        )
        ops, _ = _ops(repo)
        result = ops.push_to_remote("main", tags=["screenshot-v1.2.4"])
        assert isinstance(result, Err)
        assert result.error.kind == "push_rejected"
        assert result.error.hint == "! [rejected] main"

    def test_other_push_failure(self) -> None:
        repo = FakeRepository(push_result=Err(GitError("push", "could not resolve host")))
        ops, _ = _ops(repo)
        result = ops.push_to_remote("main", tags=[])
        assert isinstance(result, Err)
        assert result.error.kind == "release_failed"

    def test_release_push_is_atomic(self) -> None:
        repo = FakeRepository()
        ops, _ = _ops(repo)
        assert ops.push_to_remote("main", tags=["screenshot-v1.2.4"]) == Ok(None)
        assert repo.calls == ["push --atomic origin main refs/tags/screenshot-v1.2.4"]


class TestUndo:
    def test_delete_tag_reports_what_was_done(self) -> None:
        repo = FakeRepository(tags={"screenshot-v1.2.4"})
        ops, _ = _ops(repo)
        assert ops.delete_tag("screenshot-v1.2.4") == Ok(
            ["deleted local tag screenshot-v1.2.4", "deleted remote tag screenshot-v1.2.4"]
        )

    def test_delete_remote_tag_failure_has_manual_hint(self) -> None:
        repo = FakeRepository(remote_tag_result=Err(GitError("push", "denied")))
        ops, _ = _ops(repo)
        result = ops.delete_tag("screenshot-v1.2.4")
        assert isinstance(result, Err)
        assert result.error.kind == "rollback_failed"
        assert result.error.hint == "Run: git push origin :refs/tags/screenshot-v1.2.4"

    def test_delete_local_tag_leaves_remote_alone(self) -> None:
        repo = FakeRepository(tags={"screenshot-v1.2.4"})
        ops, _ = _ops(repo)
        assert ops.delete_local_tag("screenshot-v1.2.4") == Ok(True)
        assert ops.delete_local_tag("screenshot-v1.2.4") == Ok(False)
        assert repo.calls == ["tag -d screenshot-v1.2.4", "tag -d screenshot-v1.2.4"]

    def test_revert_without_push(self) -> None:
        repo = FakeRepository()
        ops, _ = _ops(repo)
        assert ops.revert_commit("a" * 40, branch="main", push=False) == Ok("e" * 40)
        assert repo.calls == [f"revert {'a' * 40}"]

    def test_revert_pushes_branch(self) -> None:
        repo = FakeRepository()
        ops, _ = _ops(repo)
        ops.revert_commit("a" * 40, branch="main")
        assert repo.calls[-1] == "push origin main"


def test_create_release_delegates_to_gh(monkeypatch: pytest.MonkeyPatch) -> None:
    seen: dict[str, object] = {}

    def fake_create_release(**kwargs: object) -> Result[str, object]:
        seen.update(kwargs)
        return Ok("https://github.com/acme/mcp-screenshot/releases/tag/screenshot-v1.2.4")

    monkeypatch.setattr(gh_mod, "create_release", fake_create_release)
    ops, _ = _ops(FakeRepository())

    result = ops.create_release("screenshot-v1.2.4", title="T", notes="N", prerelease=True)
    assert isinstance(result, Ok)
    assert seen["repo"] == "acme/mcp-screenshot"
    assert seen["tag"] == "screenshot-v1.2.4"
    assert seen["prerelease"] is True
