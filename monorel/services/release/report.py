"""Final release report and its console rendering."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Literal

from monorel.core.errors import ErrorCode
from monorel.output.console import ConsoleProtocol, Style
from monorel.services.release.errors import ReleaseError, exit_code_for
from monorel.services.release.model import ReleaseMode, StepResult, StepStatus, VerificationResult
from monorel.services.release.rollback import RollbackReport

ComponentStatus = Literal["success", "failed"]

_STATUS_MARK: dict[StepStatus, tuple[str, Style]] = {
    "success": ("✓", Style.SUCCESS),
    "failed": ("✗", Style.ERROR),
    "skipped": ("-", Style.DIM),
    "pending": ("·", Style.DIM),
    "running": ("…", Style.WARNING),
}


@dataclass(frozen=True, slots=True)
class ComponentReport:
    component: str
    status: ComponentStatus
    mode: ReleaseMode = "local"
    version: str | None = None
    dry_run: bool = False
    steps: tuple[StepResult, ...] = ()
    error: ReleaseError | None = None
    rollback: RollbackReport | None = None
    local_cleanup: RollbackReport | None = None
    verification: VerificationResult = field(default_factory=VerificationResult)
    tag: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    @property
    def rolled_back(self) -> bool:
        return self.rollback is not None and self.rollback.ran and self.rollback.ok

    def step(self, name: str) -> StepResult | None:
        for s in self.steps:
            if s.name == name:
                return s
        return None


@dataclass(frozen=True, slots=True)
class ReleaseReport:
    components: tuple[ComponentReport, ...] = ()
    not_started: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return all(c.ok for c in self.components) and not self.not_started

    @property
    def failed_component(self) -> ComponentReport | None:
        for c in self.components:
            if not c.ok:
                return c
        return None

    def exit_code(self) -> ErrorCode:
        failed = self.failed_component
        if failed is None:
            return ErrorCode.OK
        if failed.error is None:
            return ErrorCode.USER_ERROR
        return exit_code_for(failed.error)


def _format_duration(step: StepResult) -> str:
    d = step.duration
    if d is None:
        return ""
    return f"{d:.1f}s"


def render_report(report: ReleaseReport, console: ConsoleProtocol) -> None:
    console.newline()
    console.header("Release report")

    for comp in report.components:
        label = f"{comp.component} {comp.version or ''}".strip()
        if comp.dry_run:
            label += " (dry-run)"
        console.newline()
        if comp.ok:
            console.success(f"{label}: released")
            if not comp.verification.passed:
                console.warning(f"{label}: verification failed; artifacts stay published")
        elif comp.rolled_back:
            console.error(f"{label}: failed, rolled back")
        else:
            console.error(f"{label}: failed")

        if not comp.steps and comp.error is not None:
            console.print(f"    {comp.error.message}", Style.ERROR)
            if comp.error.hint:
                console.print(f"    {comp.error.hint}", Style.DIM)

        for step in comp.steps:
            mark, style = _STATUS_MARK[step.status]
            console.print(
                f"  {mark} {step.name:<20} {step.status:<8} {_format_duration(step)}".rstrip(),
                style,
            )
            if step.error is not None:
                console.print(f"      {step.error.message}", Style.ERROR)
                if step.error.hint:
                    console.print(f"      {step.error.hint}", Style.DIM)

        if comp.rollback is not None and comp.rollback.ran:
            console.print("  rollback:", Style.BOLD)
            for action in comp.rollback.actions:
                console.print(f"    ✓ {action}", Style.SUCCESS)
            for item in comp.rollback.manual_cleanup:
                console.print(f"    ! manual cleanup: {item}", Style.WARNING)

        if comp.local_cleanup is not None and comp.local_cleanup.ran:
            console.print("  local cleanup:", Style.BOLD)
            for action in comp.local_cleanup.actions:
                console.print(f"    ✓ {action}", Style.SUCCESS)
            for item in comp.local_cleanup.manual_cleanup:
                console.print(f"    ! manual cleanup: {item}", Style.WARNING)

    if report.not_started:
        console.newline()
        console.warning(f"not started: {', '.join(report.not_started)}")
