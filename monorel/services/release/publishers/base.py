"""Shared publisher types.

Each artifact kind is a small wrapper around one external CLI. The
orchestrator only relies on the ``Publisher`` protocol: ``build``,
``publish`` (which honors ``dry_run`` internally), ``verify`` and a
best-effort ``unpublish`` used by rollback.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from monorel.core.result import Err, Ok, Result
from monorel.output.console import ConsoleProtocol, Style
from monorel.platform.process import ProcessError
from monorel.platform.process import run as run_process
from monorel.services.release.errors import ReleaseError, ReleaseErrorKind
from monorel.services.release.model import (
    ArtifactKind,
    ArtifactRecord,
    BinaryArtifact,
    ComponentConfig,
    VerificationCheck,
)


@dataclass(frozen=True, slots=True)
class PublishContext:
    root: Path
    config: ComponentConfig
    version: str
    console: ConsoleProtocol
    dry_run: bool = False

    @property
    def package_path(self) -> Path:
        return self.config.path(self.root)


@dataclass(frozen=True, slots=True)
class PublishOutcome:
    """What a publish did. ``record.published`` is never true in dry run."""

    record: ArtifactRecord | None = None
    binaries: tuple[BinaryArtifact, ...] = ()
    assets: tuple[Path, ...] = ()


class Publisher(Protocol):
    kind: ArtifactKind

    def build(self, ctx: PublishContext) -> Result[str, ReleaseError]: ...

    def publish(self, ctx: PublishContext) -> Result[PublishOutcome, ReleaseError]: ...

    def verify(self, ctx: PublishContext) -> VerificationCheck: ...

    def unpublish(self, ctx: PublishContext) -> Result[str, ReleaseError]: ...


def command_error(
    e: ProcessError,
    *,
    kind: ReleaseErrorKind,
    message: str,
) -> ReleaseError:
    detail = e.output.strip().splitlines()
    return ReleaseError(
        kind=kind,
        message=message,
        hint=detail[-1] if detail else str(e),
    )


def run_step(
    ctx: PublishContext,
    cmd: list[str],
    *,
    cwd: Path,
    timeout: float,
    kind: ReleaseErrorKind,
    message: str,
) -> Result[str, ReleaseError]:
    """Echo and run one publisher command."""
    ctx.console.print(" ".join(cmd[:3]) + (" ..." if len(cmd) > 3 else ""), Style.DIM)
    result = run_process(cmd, cwd=cwd, timeout=timeout)
    if isinstance(result, Err):
        return Err(command_error(result.error, kind=kind, message=message))
    return Ok(result.value)


def manual_cleanup(message: str, hint: str) -> Err[ReleaseError]:
    return Err(ReleaseError(kind="rollback_failed", message=message, hint=hint))
