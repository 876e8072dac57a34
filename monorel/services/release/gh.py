from __future__ import annotations

import json
import re
import tempfile
from dataclasses import dataclass
from pathlib import Path
from time import sleep

from monorel.core.result import Err, Ok, Result
from monorel.core.structured import as_str_dict, get_bool, get_str
from monorel.platform.process import ProcessError
from monorel.platform.process import run as run_process
from monorel.services.release.errors import ReleaseError, ReleaseErrorKind
from monorel.services.release.timeouts import (
    GH_READ_RETRY_ATTEMPTS,
    GH_READ_RETRY_DELAY_SECONDS,
    GH_TIMEOUT_SECONDS,
    GH_UPLOAD_TIMEOUT_SECONDS,
)

_RELEASE_URL_RE = re.compile(r"https://\S+/releases/tag/\S+")


def _is_transient_gh_error(error: ProcessError) -> bool:
    text = f"{error.stderr}\n{error.stdout}".lower()
    markers = (
        "timed out",
        "timeout",
        "connection reset",
        "connection refused",
        "temporarily unavailable",
        "service unavailable",
        "bad gateway",
        "gateway timeout",
        "tls handshake timeout",
        "network is unreachable",
        "http 429",
        "http 500",
        "http 502",
        "http 503",
        "http 504",
    )
    if error.returncode == -1 and "timed out" in text:
        return True
    return any(marker in text for marker in markers)


def _gh_error(
    error: ProcessError, *, kind: ReleaseErrorKind, message: str, hint: str | None = None
) -> ReleaseError:
    # returncode -1 without a timeout means gh could not be started at all
    if error.returncode == -1 and not error.timed_out:
        return ReleaseError(
            kind="gh_missing",
            message="gh: missing",
            hint="Install GitHub CLI: https://cli.github.com/",
        )
    if "gh auth login" in error.stderr.lower():
        return ReleaseError(
            kind="gh_auth_required", message="gh auth required", hint="Run: gh auth login"
        )
    return ReleaseError(kind=kind, message=message, hint=error.stderr.strip() or hint)


def run_gh_read(
    *,
    cwd: Path,
    cmd: list[str],
    kind: ReleaseErrorKind,
    message: str,
    hint: str | None = None,
    timeout: float = GH_TIMEOUT_SECONDS,
    retry_attempts: int = GH_READ_RETRY_ATTEMPTS,
) -> Result[str, ReleaseError]:
    """Run an idempotent gh read, retrying transient host failures."""
    attempts = max(1, retry_attempts)
    for attempt in range(attempts):
        result = run_process(cmd, cwd=cwd, timeout=timeout)
        if isinstance(result, Ok):
            return result

        error = result.error
        if attempt < attempts - 1 and _is_transient_gh_error(error):
            sleep(GH_READ_RETRY_DELAY_SECONDS * (attempt + 1))
            continue

        return Err(_gh_error(error, kind=kind, message=message, hint=hint))

    return Err(ReleaseError(kind=kind, message=message, hint=hint))


@dataclass(frozen=True, slots=True)
class HostRelease:
    tag: str
    url: str
    draft: bool
    prerelease: bool


def create_release(
    *,
    cwd: Path,
    repo: str | None,
    tag: str,
    title: str,
    notes: str,
    draft: bool = False,
    prerelease: bool = False,
) -> Result[str, ReleaseError]:
    """Create a host release for an existing pushed tag; returns its URL."""
    with tempfile.TemporaryDirectory(prefix="monorel-notes-") as tmp:
        notes_file = Path(tmp) / "notes.md"
        notes_file.write_text(notes, encoding="utf-8")

        cmd = ["gh", "release", "create", tag, "--title", title, "--notes-file", str(notes_file)]
        if repo:
            cmd.extend(["--repo", repo])
        if draft:
            cmd.append("--draft")
        if prerelease:
            cmd.append("--prerelease")

        result = run_process(cmd, cwd=cwd, timeout=GH_TIMEOUT_SECONDS)

    if isinstance(result, Err):
        return Err(
            _gh_error(
                result.error, kind="release_failed", message=f"failed to create release {tag}"
            )
        )

    m = _RELEASE_URL_RE.search(result.value)
    if m is not None:
        return Ok(m.group(0))
    lines = [ln.strip() for ln in result.value.splitlines() if ln.strip()]
    return Ok(lines[-1] if lines else tag)


def upload_assets(
    *,
    cwd: Path,
    repo: str | None,
    tag: str,
    paths: list[Path],
) -> Result[None, ReleaseError]:
    if not paths:
        return Ok(None)
    cmd = ["gh", "release", "upload", tag, *[str(p) for p in paths], "--clobber"]
    if repo:
        cmd.extend(["--repo", repo])
    result = run_process(cmd, cwd=cwd, timeout=GH_UPLOAD_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        return Err(
            _gh_error(
                result.error, kind="release_failed", message=f"failed to attach assets to {tag}"
            )
        )
    return Ok(None)


def delete_release(*, cwd: Path, repo: str | None, tag: str) -> Result[None, ReleaseError]:
    cmd = ["gh", "release", "delete", tag, "--yes"]
    if repo:
        cmd.extend(["--repo", repo])
    result = run_process(cmd, cwd=cwd, timeout=GH_TIMEOUT_SECONDS)
    if isinstance(result, Err):
        if "release not found" in result.error.stderr.lower():
            return Ok(None)
        return Err(
            ReleaseError(
                kind="rollback_failed",
                message=f"failed to delete release {tag}",
                hint=f"Delete it manually: gh release delete {tag} --yes",
            )
        )
    return Ok(None)


def view_release(*, cwd: Path, repo: str | None, tag: str) -> Result[HostRelease, ReleaseError]:
    cmd = ["gh", "release", "view", tag, "--json", "tagName,url,isDraft,isPrerelease"]
    if repo:
        cmd.extend(["--repo", repo])
    result = run_gh_read(
        cwd=cwd,
        cmd=cmd,
        kind="verification_failed",
        message=f"release {tag} not found",
        hint=repo,
    )
    if isinstance(result, Err):
        return result

    try:
        obj: object = json.loads(result.value)
    except json.JSONDecodeError as e:
        return Err(
            ReleaseError(
                kind="verification_failed",
                message=f"invalid JSON from gh release view: {e}",
            )
        )

    data = as_str_dict(obj)
    if data is None:
        return Err(
            ReleaseError(kind="verification_failed", message="unexpected gh release view payload")
        )

    url = get_str(data, "url")
    if url is None:
        return Err(ReleaseError(kind="verification_failed", message=f"release {tag} has no url"))
    return Ok(
        HostRelease(
            tag=get_str(data, "tagName") or tag,
            url=url,
            draft=get_bool(data, "isDraft") or False,
            prerelease=get_bool(data, "isPrerelease") or False,
        )
    )
