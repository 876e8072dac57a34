"""Remote release mode: dispatch a CI workflow and wait for it.

The dispatched run is identified by a ``request_id`` that the workflow
must echo in its run title. Waiting is an explicit bounded loop (poll,
check terminal state, back off, re-check the deadline). Timing out or
cancelling stops *this process's* wait; the remote run keeps going.
"""

from __future__ import annotations

import json
import threading
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path
from time import monotonic, sleep
from typing import Literal
from uuid import uuid4

from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_obj_list, as_str_dict, get_int, get_str
from monorel.output.console import ConsoleProtocol, Style
from monorel.platform.process import run as run_process
from monorel.services.release.errors import ReleaseError
from monorel.services.release.gh import run_gh_read
from monorel.services.release.model import ComponentConfig, ReleaseBump, ReleaseMode
from monorel.services.release.timeouts import GH_TIMEOUT_SECONDS, WORKFLOW_TIMEOUT_SECONDS

RunStatus = Literal["queued", "in_progress", "completed"]

_RUN_LOOKUP_MAX_ATTEMPTS = 6
_RUN_LOOKUP_DELAY_SECONDS = 1.0


@dataclass(frozen=True, slots=True)
class WorkflowRun:
    id: int
    url: str
    request_id: str


@dataclass(frozen=True, slots=True)
class WorkflowRunState:
    status: RunStatus
    conclusion: str | None = None
    url: str | None = None


@dataclass(frozen=True, slots=True)
class PollPolicy:
    interval: float = 10.0
    max_interval: float = 60.0
    timeout: float = WORKFLOW_TIMEOUT_SECONDS


class CancelToken:
    """Thread-safe flag that stops a wait loop at its next check."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def validate_mode(config: ComponentConfig, mode: ReleaseMode) -> Result[None, ReleaseError]:
    if mode == "remote" and config.repository is None:
        return Err(
            ReleaseError(
                kind="config_invalid",
                message=f"{config.name} has no repository; remote mode needs one",
                hint="Set repository.owner and repository.name, or use --mode local",
            )
        )
    return Ok(None)


def dispatch_release_workflow(
    *,
    cwd: Path,
    repo_slug: str,
    workflow_file: str,
    ref: str,
    version_bump: ReleaseBump,
    dry_run: bool,
    console: ConsoleProtocol,
) -> Result[WorkflowRun, ReleaseError]:
    """Trigger the component's release workflow.

    ``dry_run`` is forwarded as a workflow input; the remote run then
    performs the simulation.
    """
    request_id = f"monorel-{uuid4().hex[:12]}"
    cmd = [
        "gh",
        "workflow",
        "run",
        workflow_file,
        "--repo",
        repo_slug,
        "--ref",
        ref,
        "-f",
        f"version_bump={version_bump}",
        "-f",
        f"dry_run={'true' if dry_run else 'false'}",
        "-f",
        f"request_id={request_id}",
    ]

    console.print(" ".join(cmd[:4]) + " ...", Style.DIM)
    console.print(f"dispatch request_id: {request_id}", Style.DIM)

    result = run_process(cmd, cwd=cwd, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        e = result.error
        return Err(
            ReleaseError(
                kind="workflow_failed",
                message="failed to dispatch workflow",
                hint=e.stderr.strip() or None,
            )
        )

    return _resolve_dispatched_run(
        cwd=cwd,
        repo_slug=repo_slug,
        workflow_file=workflow_file,
        ref=ref,
        request_id=request_id,
    )


def _resolve_dispatched_run(
    *,
    cwd: Path,
    repo_slug: str,
    workflow_file: str,
    ref: str,
    request_id: str,
) -> Result[WorkflowRun, ReleaseError]:
    list_cmd = [
        "gh",
        "run",
        "list",
        "--repo",
        repo_slug,
        "--workflow",
        workflow_file,
        "--limit",
        "20",
        "--json",
        "databaseId,url,event,headBranch,displayTitle",
    ]

    for attempt in range(_RUN_LOOKUP_MAX_ATTEMPTS):
        listed = run_gh_read(
            cwd=cwd,
            cmd=list_cmd,
            kind="workflow_failed",
            message="failed to query workflow runs",
        )
        if isinstance(listed, Err):
            return listed

        parsed = _find_dispatched_run(payload=listed.value, ref=ref, request_id=request_id)
        if isinstance(parsed, Err):
            return parsed
        if parsed.value is not None:
            return Ok(parsed.value)
        if attempt < _RUN_LOOKUP_MAX_ATTEMPTS - 1:
            sleep(_RUN_LOOKUP_DELAY_SECONDS)

    return Err(
        ReleaseError(
            kind="workflow_failed",
            message="could not identify the dispatched workflow run",
            hint=(
                f"Run list did not expose request_id={request_id}; check Actions in {repo_slug} "
                "and ensure the workflow run title includes the dispatch request_id."
            ),
        )
    )


def _find_dispatched_run(
    *,
    payload: str,
    ref: str,
    request_id: str,
) -> Result[WorkflowRun | None, ReleaseError]:
    try:
        obj: object = json.loads(payload)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="workflow_failed",
                message=f"invalid JSON from gh run list: {e}",
            )
        )

    raw = as_obj_list(obj)
    if raw is None:
        return Err(ReleaseError(kind="workflow_failed", message="unexpected gh run list payload"))

    for item in raw:
        d = as_str_dict(item)
        if d is None:
            continue

        url = get_str(d, "url")
        run_id = get_int(d, "databaseId")
        title = get_str(d, "displayTitle")
        if get_str(d, "event") != "workflow_dispatch":
            continue
        if get_str(d, "headBranch") != ref:
            continue
        if url is None or run_id is None:
            continue
        if title is None or request_id not in title:
            continue
        return Ok(WorkflowRun(id=run_id, url=url, request_id=request_id))

    return Ok(None)


def get_run_state(
    *,
    cwd: Path,
    repo_slug: str,
    run_id: int,
) -> Result[WorkflowRunState, ReleaseError]:
    cmd = ["gh", "run", "view", str(run_id), "--repo", repo_slug, "--json", "status,conclusion,url"]
    result = run_gh_read(
        cwd=cwd,
        cmd=cmd,
        kind="workflow_failed",
        message=f"failed to query workflow run {run_id}",
    )
    if isinstance(result, Err):
        return result

    try:
        obj: object = json.loads(result.value)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(kind="workflow_failed", message=f"invalid JSON from gh run view: {e}")
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(ReleaseError(kind="workflow_failed", message="unexpected gh run view payload"))

    status: RunStatus
    match get_str(data, "status"):
        case "completed":
            status = "completed"
        case "in_progress":
            status = "in_progress"
        case _:
            # queued, waiting, requested, pending
            status = "queued"

    return Ok(
        WorkflowRunState(
            status=status,
            conclusion=get_str(data, "conclusion"),
            url=get_str(data, "url"),
        )
    )


def wait_for_run(
    run: WorkflowRun,
    *,
    cwd: Path,
    repo_slug: str,
    policy: PollPolicy,
    console: ConsoleProtocol,
    cancel: CancelToken | None = None,
    sleep_fn: Callable[[float], None] = sleep,
    clock: Callable[[], float] = monotonic,
) -> Result[WorkflowRunState, ReleaseError]:
    """Poll until the run completes, the deadline passes or ``cancel`` fires."""
    deadline = clock() + policy.timeout
    interval = max(policy.interval, 0.0)
    last_status: RunStatus | None = None

    while True:
        if cancel is not None and cancel.cancelled:
            return Err(
                ReleaseError(
                    kind="workflow_cancelled",
                    message="stopped waiting for the release workflow",
                    hint=f"The remote run continues: {run.url}",
                )
            )

        state = get_run_state(cwd=cwd, repo_slug=repo_slug, run_id=run.id)
        if isinstance(state, Err):
            return state

        current = state.value
        if current.status != last_status:
            console.print(f"workflow run {run.id}: {current.status}", Style.DIM)
            last_status = current.status

        if current.status == "completed":
            match current.conclusion:
                case "success":
                    return Ok(current)
                case "cancelled":
                    return Err(
                        ReleaseError(
                            kind="workflow_cancelled",
                            message="release workflow was cancelled",
                            hint=run.url,
                        )
                    )
                case _:
                    conclusion = current.conclusion or "unknown"
                    return Err(
                        ReleaseError(
                            kind="workflow_failed",
                            message=f"release workflow concluded: {conclusion}",
                            hint=run.url,
                        )
                    )

        remaining = deadline - clock()
        if remaining <= 0:
            return Err(
                ReleaseError(
                    kind="workflow_timeout",
                    message=f"release workflow still {current.status} after {policy.timeout:.0f}s",
                    hint=f"The remote run continues: {run.url}",
                )
            )

        sleep_fn(min(interval, remaining))
        interval = min(interval * 2, policy.max_interval)
