from __future__ import annotations

from monorel.core.errors import ErrorCode
from monorel.output.console import MockConsole, Style
from monorel.services.release.errors import ReleaseError
from monorel.services.release.model import StepResult, VerificationCheck, VerificationResult
from monorel.services.release.report import ComponentReport, ReleaseReport, render_report
from monorel.services.release.rollback import RollbackReport


def _failed() -> ComponentReport:
    error = ReleaseError(kind="publish_failed", message="npm publish failed", hint="E403")
    return ComponentReport(
        component="screenshot",
        status="failed",
        version="1.2.4",
        steps=(
            StepResult("build", "success", started_at=0.0, finished_at=1.5),
            StepResult("publish:package", "failed", error=error),
            StepResult("verify", "skipped"),
        ),
        error=error,
        rollback=RollbackReport(actions=("deleted local tag screenshot-v1.2.4",)),
    )


class TestExitCode:
    def test_success(self) -> None:
        report = ReleaseReport(components=(ComponentReport("a", "success"),))
        assert report.ok
        assert report.exit_code() == ErrorCode.OK

    def test_first_failure_decides(self) -> None:
        report = ReleaseReport(
            components=(ComponentReport("a", "success"), _failed()),
            not_started=("b",),
        )
        assert not report.ok
        assert report.failed_component is not None
        assert report.failed_component.component == "screenshot"
        assert report.exit_code() == ErrorCode.NETWORK_ERROR

    def test_not_started_alone_is_not_ok(self) -> None:
        assert not ReleaseReport(not_started=("a",)).ok


def test_rolled_back() -> None:
    assert _failed().rolled_back
    failed_undo = ComponentReport(
        "x",
        "failed",
        rollback=RollbackReport(errors=(ReleaseError("rollback_failed", "tag"),)),
    )
    assert not failed_undo.rolled_back


def test_render() -> None:
    console = MockConsole()
    render_report(
        ReleaseReport(components=(_failed(),), not_started=("debugger",)), console
    )

    assert console.find("screenshot 1.2.4: failed, rolled back")
    build = console.find("build")[0]
    assert build.message.startswith("  ✓ build")
    assert build.message.endswith("1.5s")
    assert console.find("E403")[0].style == Style.DIM
    assert console.find("✓ deleted local tag screenshot-v1.2.4")
    assert console.find("not started: debugger")


def test_render_unverified_success() -> None:
    console = MockConsole()
    comp = ComponentReport(
        "screenshot",
        "success",
        version="1.2.4",
        verification=VerificationResult(checks=(VerificationCheck("package", False),)),
    )
    render_report(ReleaseReport(components=(comp,)), console)
    assert console.find("OK screenshot 1.2.4: released")
    assert console.find("verification failed; artifacts stay published")


def test_render_local_cleanup() -> None:
    console = MockConsole()
    error = ReleaseError(kind="push_rejected", message="push rejected")
    comp = ComponentReport(
        "screenshot",
        "failed",
        version="1.2.4",
        error=error,
        local_cleanup=RollbackReport(actions=("reverted local version bump cccccccc",)),
    )
    render_report(ReleaseReport(components=(comp,)), console)

    assert not comp.rolled_back
    assert console.find("error: screenshot 1.2.4: failed")
    assert not console.find("rollback:")
    assert console.find("local cleanup:")
    assert console.find("✓ reverted local version bump cccccccc")
