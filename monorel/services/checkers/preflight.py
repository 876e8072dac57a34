# SPDX-License-Identifier: MIT
"""Pre-flight go/no-go battery.

Always runs:
- Git Status (clean working tree)
- Branch Check (release branch)

Unless skipped by options:
- Tests / Build (configured commands at the monorepo root)

Unless dry run (credentials are only needed for real writes):
- NPM Authentication (components that publish a package)
- VSCode Marketplace Token (components that publish an extension)
- GitHub Token (always; tags and releases need it)
- GitHub CLI (installed and authenticated; releases go through gh)
- Docker Authentication (when container publishing is part of this run)

Checks never short-circuit: every applicable check runs so a user sees
every problem at once.
"""

from __future__ import annotations

import shutil
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from monorel.core.result import Err
from monorel.git.repository import Repository
from monorel.platform.process import run as run_process
from monorel.platform.process import run_shell
from monorel.services.checkers.base import CheckResult
from monorel.services.release.model import ComponentConfig, ReleaseOptions
from monorel.services.release.timeouts import BUILD_TIMEOUT_SECONDS, GH_TIMEOUT_SECONDS

_MARKETPLACE_TOKEN_VARS = ("VSCE_PAT", "VSCODE_MARKETPLACE_TOKEN")
_GITHUB_TOKEN_VARS = ("GITHUB_TOKEN", "GH_TOKEN")
_OUTPUT_TAIL_LINES = 40


def _tail(text: str) -> str:
    lines = text.strip().splitlines()
    return "\n".join(lines[-_OUTPUT_TAIL_LINES:])


@dataclass(frozen=True, slots=True)
class PreflightReport:
    checks: tuple[CheckResult, ...]

    @property
    def passed(self) -> bool:
        return all(c.ok for c in self.checks)

    @property
    def failures(self) -> tuple[CheckResult, ...]:
        return tuple(c for c in self.checks if not c.ok)


@dataclass(frozen=True, slots=True)
class PreflightChecker:
    """Run the pre-flight battery for one component.

    Attributes:
        root: Monorepo root (build/test commands run here)
        config: Component being released
        options: Release switches
        branches: Branch names a release may be cut from
        environ: Snapshot of the environment for credential lookups
    """

    root: Path
    config: ComponentConfig
    options: ReleaseOptions
    branches: tuple[str, ...] = ("main", "master")
    environ: Mapping[str, str] | None = None

    def run_checks(self) -> PreflightReport:
        checks: list[CheckResult] = [self.check_git_status(), self.check_branch()]

        if not self.options.skip_tests:
            checks.append(self.check_command("Tests", self.config.test_command))
        if not self.options.skip_build:
            checks.append(self.check_command("Build", self.config.build_command))

        if not self.options.dry_run:
            if self.config.has_package:
                checks.append(self.check_npm_auth())
            if self.config.has_extension:
                checks.append(self.check_marketplace_token())
            checks.append(self.check_github_token())
            checks.append(self.check_github_cli())
            if self.options.include_container and self.config.has_container:
                checks.append(self.check_docker_auth())

        return PreflightReport(checks=tuple(checks))

    def check_git_status(self) -> CheckResult:
        """Working tree of the component must be clean."""
        repo = Repository(self.config.path(self.root))
        result = repo.status()
        if isinstance(result, Err):
            return CheckResult.error("Git Status", f"cannot read status: {result.error.message}")

        status = result.value
        if status.is_clean:
            return CheckResult.success("Git Status", "working tree clean")
        return CheckResult.error(
            "Git Status",
            f"uncommitted changes ({len(status.entries)} files)",
            hint="Commit or stash changes before releasing",
            output="\n".join(f"{e.xy} {e.path}" for e in status.entries),
        )

    def check_branch(self) -> CheckResult:
        repo = Repository(self.config.path(self.root))
        result = repo.current_branch()
        if isinstance(result, Err):
            return CheckResult.error(
                "Branch Check", f"cannot determine branch: {result.error.message}"
            )

        branch = result.value
        if branch in self.branches:
            return CheckResult.success("Branch Check", f"on {branch}")
        return CheckResult.error(
            "Branch Check",
            f"on {branch}, expected one of: {', '.join(self.branches)}",
            hint=f"git checkout {self.branches[0]}" if self.branches else None,
        )

    def check_command(self, name: str, command: str) -> CheckResult:
        """Run a configured command; only the exit status is interpreted."""
        result = run_shell(command, cwd=self.root, timeout=BUILD_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            e = result.error
            detail = "timed out" if e.timed_out else f"exit {e.returncode}"
            return CheckResult.error(
                name,
                f"{command} failed ({detail})",
                output=_tail(e.output),
            )
        return CheckResult.success(name, f"{command} passed", output=_tail(result.value.output))

    def check_npm_auth(self) -> CheckResult:
        result = run_process(["npm", "whoami"], cwd=self.root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return CheckResult.error(
                "NPM Authentication",
                "not logged in to the package registry",
                hint="Run: npm login (or set NPM_TOKEN)",
            )
        return CheckResult.success("NPM Authentication", f"logged in as {result.value.strip()}")

    def check_marketplace_token(self) -> CheckResult:
        if self._any_env(_MARKETPLACE_TOKEN_VARS):
            return CheckResult.success("VSCode Marketplace Token", "present")
        return CheckResult.error(
            "VSCode Marketplace Token",
            "missing",
            hint=f"Set {' or '.join(_MARKETPLACE_TOKEN_VARS)}",
        )

    def check_github_token(self) -> CheckResult:
        if self._any_env(_GITHUB_TOKEN_VARS):
            return CheckResult.success("GitHub Token", "present")
        return CheckResult.error(
            "GitHub Token",
            "missing",
            hint=f"Set {' or '.join(_GITHUB_TOKEN_VARS)}",
        )

    def check_github_cli(self) -> CheckResult:
        if shutil.which("gh") is None:
            return CheckResult.error(
                "GitHub CLI", "gh: missing", hint="Install GitHub CLI: https://cli.github.com/"
            )
        result = run_process(["gh", "auth", "status"], cwd=self.root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return CheckResult.error("GitHub CLI", "gh auth required", hint="Run: gh auth login")
        return CheckResult.success("GitHub CLI", "authenticated")

    def check_docker_auth(self) -> CheckResult:
        result = run_process(["docker", "info"], cwd=self.root, timeout=GH_TIMEOUT_SECONDS)
        if isinstance(result, Err):
            return CheckResult.error(
                "Docker Authentication",
                "docker daemon not reachable",
                hint="Start Docker and run: docker login",
            )

        home = (self.environ or {}).get("HOME")
        base = Path(home) if home else Path.home()
        config = base / ".docker" / "config.json"
        if not config.is_file():
            return CheckResult.error(
                "Docker Authentication",
                "no registry credentials",
                hint="Run: docker login",
            )
        return CheckResult.success("Docker Authentication", "ok")

    def _any_env(self, names: tuple[str, ...]) -> bool:
        env = self.environ or {}
        return any(env.get(n, "").strip() for n in names)
