from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from pathlib import Path

import pytest

from monorel.core.result import Err, Ok, Result
from monorel.git.repository import GitError
from monorel.services.release.changelog import (
    ChangelogGenerator,
    categorize,
    categorize_commits,
    format_changelog,
    format_commit,
    normalize_remote_url,
    parse_pr_number,
    update_changelog_file,
)
from monorel.services.release.model import CommitInfo

REPO = "https://github.com/acme/mcp-screenshot"


def _commit(message: str, sha: str = "abc1234def5678", pr: int | None = None) -> CommitInfo:
    return CommitInfo(hash=sha, author="dev", date="2026-01-02", message=message, pr_number=pr)


@dataclass
class FakeRepo:
    records: list[list[str]] = field(default_factory=list)
    remote: str | None = None
    fail: bool = False
    ranges: list[str] = field(default_factory=list)

    def log(self, rev_range: str) -> Result[list[list[str]], GitError]:
        self.ranges.append(rev_range)
        if self.fail:
            return Err(GitError(command="log", message="bad revision"))
        return Ok(self.records)

    def remote_url(self, remote: str = "origin") -> str | None:
        return self.remote


class TestCategorize:
    def test_partition_example(self) -> None:
        messages = ["feat: add X", "fix: correct Y", "chore: bump deps", "feat!: remove Z"]
        changelog = categorize_commits([_commit(m) for m in messages])

        assert [c.message for c in changelog.breaking] == ["feat!: remove Z"]
        assert [c.message for c in changelog.features] == ["feat: add X"]
        assert [c.message for c in changelog.fixes] == ["fix: correct Y"]
        assert [c.message for c in changelog.other] == ["chore: bump deps"]
        assert changelog.total == 4

    @pytest.mark.parametrize(
        ("message", "expected"),
        [
            ("refactor(core)!: drop node 16", "breaking"),
            ("docs: BREAKING CHANGE in config", "breaking"),
            ("Implement retry policy", "feature"),
            ("feature: screenshots of regions", "feature"),
            ("Resolve crash on empty input", "fix"),
            ("bugfix: off by one", "fix"),
            ("fix: add missing import", "feature"),
            ("ci: tweak workflow", "other"),
        ],
    )
    def test_first_matching_rule_wins(self, message: str, expected: str) -> None:
        assert categorize(message) == expected

    def test_empty(self) -> None:
        changelog = categorize_commits([])
        assert changelog.is_empty
        assert format_changelog(changelog, REPO) == ""


class TestFormat:
    def test_pr_number(self) -> None:
        assert parse_pr_number("fix: handle null (#42)") == 42
        assert parse_pr_number("fix: #0 is not a PR") is None
        assert parse_pr_number("chore: nothing") is None

    @pytest.mark.parametrize(
        "remote",
        [
            "git@github.com:acme/mcp-screenshot.git",
            "ssh://git@github.com/acme/mcp-screenshot.git",
            "https://github.com/acme/mcp-screenshot/",
            "https://github.com/acme/mcp-screenshot.git",
        ],
    )
    def test_normalize_remote(self, remote: str) -> None:
        assert normalize_remote_url(remote) == REPO

    def test_commit_line_with_links(self) -> None:
        line = format_commit(_commit("feat: add X (#12)", pr=12), REPO)
        assert line == (
            f"- feat: add X (#12) ([#12]({REPO}/pull/12)) "
            f"([abc1234]({REPO}/commit/abc1234def5678))"
        )

    def test_commit_line_without_remote(self) -> None:
        line = format_commit(_commit("fix: y", pr=3), None)
        assert line == "- fix: y ([#3](#3)) ([abc1234]([abc1234]))"

    def test_sections_in_fixed_order(self) -> None:
        changelog = categorize_commits(
            [_commit("chore: deps"), _commit("fix: y"), _commit("feat!: z"), _commit("feat: x")]
        )
        text = format_changelog(changelog, REPO)

        headers = [line for line in text.splitlines() if line.startswith("###")]
        assert headers == [
            "### ⚠️ Breaking Changes",
            "### ✨ Features",
            "### 🐛 Bug Fixes",
            "### 📝 Other Changes",
        ]
        assert not text.endswith("\n")

    def test_empty_sections_omitted(self) -> None:
        text = format_changelog(categorize_commits([_commit("fix: y")]), REPO)
        assert text.startswith("### 🐛 Bug Fixes")
        assert "Features" not in text


class TestChangelogFile:
    def test_creates_file(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        result = update_changelog_file(
            path, version="1.2.4", content="### ✨ Features\n\n- x", date=date(2026, 3, 1)
        )
        assert result == Ok(None)
        text = path.read_text(encoding="utf-8")
        assert text.startswith("# Changelog\n")
        assert "## [1.2.4] - 2026-03-01\n\n### ✨ Features\n\n- x\n" in text

    def test_inserts_newest_first(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        path.write_text(
            "# Changelog\n\nAll notable changes.\n\n## [1.2.3] - 2026-01-01\n\n- old\n",
            encoding="utf-8",
        )
        update_changelog_file(path, version="1.2.4", content="- new", date=date(2026, 3, 1))

        text = path.read_text(encoding="utf-8")
        assert text.index("## [1.2.4]") < text.index("## [1.2.3]")
        assert text.index("All notable changes.") < text.index("## [1.2.4]")

    def test_file_without_header(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        path.write_text("legacy notes\n", encoding="utf-8")
        update_changelog_file(path, version="0.1.0", content="- a", date=date(2026, 3, 1))
        text = path.read_text(encoding="utf-8")
        assert text.startswith("# Changelog\n\n## [0.1.0] - 2026-03-01")
        assert text.endswith("legacy notes\n")

    def test_rejects_empty_input(self, tmp_path: Path) -> None:
        path = tmp_path / "CHANGELOG.md"
        bad_version = update_changelog_file(path, version=" ", content="- a")
        assert isinstance(bad_version, Err)
        assert bad_version.error.kind == "invalid_version"

        bad_content = update_changelog_file(path, version="1.0.0", content="\n")
        assert isinstance(bad_content, Err)
        assert not path.exists()


class TestGenerator:
    def test_generate_range(self) -> None:
        repo = FakeRepo(
            records=[
                ["a" * 40, "dev", "2026-01-02T00:00:00Z", "feat: add X (#7)"],
                ["b" * 40, "dev", "2026-01-01T00:00:00Z", "fix: correct Y"],
            ],
            remote="git@github.com:acme/mcp-screenshot.git",
        )
        generator = ChangelogGenerator(repo)  # type: ignore[arg-type]

        result = generator.generate("screenshot-v1.2.3")
        assert isinstance(result, Ok)
        assert repo.ranges == ["screenshot-v1.2.3..HEAD"]
        assert result.value.features[0].pr_number == 7
        assert len(result.value.fixes) == 1

        text = generator.format(result.value)
        assert f"{REPO}/pull/7" in text

    def test_first_release_reads_all_history(self) -> None:
        repo = FakeRepo()
        generator = ChangelogGenerator(repo)  # type: ignore[arg-type]
        assert generator.generate(None) == Ok(categorize_commits([]))
        assert repo.ranges == ["HEAD"]

    def test_explicit_repo_url_wins(self) -> None:
        repo = FakeRepo(remote="git@github.com:someone/else.git")
        generator = ChangelogGenerator(repo, repo_url=REPO + ".git")  # type: ignore[arg-type]
        assert generator.resolve_repo_url() == REPO

    def test_log_failure(self) -> None:
        generator = ChangelogGenerator(FakeRepo(fail=True))  # type: ignore[arg-type]
        result = generator.generate("v1", "v2")
        assert isinstance(result, Err)
        assert result.error.kind == "io_failed"
        assert result.error.hint == "bad revision"
