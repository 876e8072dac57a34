"""Reverse-order undo of a failed attempt's external writes.

Writes happen in this order during a release: bump commit, tag, push,
host release, then artifact publishes. Rollback walks them backwards.
Artifact un-publishing is best-effort: when a registry cannot delete a
version the step becomes a manual-cleanup instruction. Failing to delete
the host release or the tag, or to revert the bump commit, is a rollback
failure and is reported as such.

Rollback only runs once something left this machine (a pushed tag, a
host release or a published artifact). A failure before that only
discards the local bump commit and tag.
"""

from __future__ import annotations

from dataclasses import dataclass

from monorel.core.result import Err
from monorel.output.console import ConsoleProtocol
from monorel.services.release.errors import ReleaseError
from monorel.services.release.git_ops import GitOperationsProtocol
from monorel.services.release.model import ArtifactKind
from monorel.services.release.publishers.base import PublishContext, Publisher
from monorel.services.release.state import ReleaseState


@dataclass(frozen=True, slots=True)
class RollbackReport:
    actions: tuple[str, ...] = ()
    manual_cleanup: tuple[str, ...] = ()
    errors: tuple[ReleaseError, ...] = ()

    @property
    def ran(self) -> bool:
        return bool(self.actions or self.manual_cleanup or self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors


def needs_rollback(state: ReleaseState) -> bool:
    return state.external_writes


def rollback(
    state: ReleaseState,
    *,
    git_ops: GitOperationsProtocol,
    publishers: dict[ArtifactKind, Publisher],
    ctx: PublishContext,
    branch: str,
    console: ConsoleProtocol,
) -> RollbackReport:
    actions: list[str] = []
    manual: list[str] = []
    errors: list[ReleaseError] = []

    def undo_failed(error: ReleaseError) -> None:
        errors.append(error)
        manual.append(error.hint or error.message)
        console.error(error.message)

    console.header(f"Rolling back {state.config.name}")

    for kind in reversed(state.artifacts.published_kinds()):
        if kind == "binaries":
            # Assets live on the host release and go away with it.
            continue
        publisher = publishers.get(kind)
        if publisher is None:
            continue
        result = publisher.unpublish(ctx)
        if isinstance(result, Err):
            manual.append(result.error.hint or result.error.message)
            console.warning(result.error.message)
        else:
            actions.append(result.value)
            console.success(result.value)

    if state.release_created and state.tag is not None:
        deleted = git_ops.delete_release(state.tag)
        if isinstance(deleted, Err):
            undo_failed(deleted.error)
        else:
            actions.append(f"deleted release {state.tag}")
            console.success(f"deleted release {state.tag}")

    if state.tag_created and state.tag is not None:
        tag_deleted = git_ops.delete_tag(state.tag)
        if isinstance(tag_deleted, Err):
            undo_failed(tag_deleted.error)
        else:
            done = tag_deleted.value or [f"deleted tag {state.tag}"]
            actions.extend(done)
            for line in done:
                console.success(line)

    if state.bump_commit is not None:
        reverted = git_ops.revert_commit(state.bump_commit, branch=branch, push=state.tag_pushed)
        if isinstance(reverted, Err):
            undo_failed(reverted.error)
        else:
            actions.append(f"reverted version bump {state.bump_commit[:8]}")
            console.success(f"reverted version bump {state.bump_commit[:8]}")

    return RollbackReport(
        actions=tuple(actions),
        manual_cleanup=tuple(manual),
        errors=tuple(errors),
    )


def discard_local(
    state: ReleaseState,
    *,
    git_ops: GitOperationsProtocol,
    branch: str,
    console: ConsoleProtocol,
) -> RollbackReport:
    """Undo a local bump commit and tag when nothing reached the remote."""
    actions: list[str] = []
    manual: list[str] = []
    errors: list[ReleaseError] = []

    def undo_failed(error: ReleaseError) -> None:
        errors.append(error)
        manual.append(error.hint or error.message)
        console.error(error.message)

    if state.tag_created and state.tag is not None:
        deleted = git_ops.delete_local_tag(state.tag)
        if isinstance(deleted, Err):
            undo_failed(deleted.error)
        elif deleted.value:
            actions.append(f"deleted local tag {state.tag}")
            console.success(f"deleted local tag {state.tag}")

    if state.bump_commit is not None:
        reverted = git_ops.revert_commit(state.bump_commit, branch=branch, push=False)
        if isinstance(reverted, Err):
            undo_failed(reverted.error)
        else:
            actions.append(f"reverted local version bump {state.bump_commit[:8]}")
            console.success(f"reverted local version bump {state.bump_commit[:8]}")

    return RollbackReport(
        actions=tuple(actions),
        manual_cleanup=tuple(manual),
        errors=tuple(errors),
    )
