"""Post-publish verification.

Checks against independent read-only services run concurrently and are
joined before the step completes. Each check is retried a bounded number
of times because registries take a while to expose a fresh version.
"""

from __future__ import annotations

from collections.abc import Callable
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from time import sleep

from monorel.core.result import Err
from monorel.services.release import gh
from monorel.services.release.model import VerificationCheck, VerificationResult
from monorel.services.release.timeouts import VERIFY_RETRY_ATTEMPTS, VERIFY_RETRY_DELAY_SECONDS

type CheckFn = Callable[[], VerificationCheck]

_MAX_WORKERS = 4


def _with_retries(
    check: CheckFn,
    *,
    attempts: int,
    delay: float,
) -> VerificationCheck:
    tries = max(1, attempts)
    result = check()
    for attempt in range(1, tries):
        if result.passed:
            break
        sleep(delay * attempt)
        result = check()
    return result


def run_checks(
    checks: dict[str, CheckFn],
    *,
    attempts: int = VERIFY_RETRY_ATTEMPTS,
    delay: float = VERIFY_RETRY_DELAY_SECONDS,
) -> VerificationResult:
    """Run independent checks concurrently; results keep the input order."""
    if not checks:
        return VerificationResult()

    results: dict[str, VerificationCheck] = {}
    with ThreadPoolExecutor(max_workers=min(_MAX_WORKERS, len(checks))) as pool:
        futures = {
            pool.submit(_with_retries, fn, attempts=attempts, delay=delay): target
            for target, fn in checks.items()
        }
        for future in as_completed(futures):
            target = futures[future]
            try:
                results[target] = future.result()
            except Exception as e:  # a crashing check is a failed check
                results[target] = VerificationCheck(target=target, passed=False, message=str(e))

    return VerificationResult(checks=tuple(results[t] for t in checks))


def host_release_check(*, cwd: Path, repo: str | None, tag: str) -> VerificationCheck:
    result = gh.view_release(cwd=cwd, repo=repo, tag=tag)
    if isinstance(result, Err):
        return VerificationCheck(target="release", passed=False, message=result.error.message)
    release = result.value
    if release.draft:
        return VerificationCheck(
            target="release", passed=False, url=release.url, message=f"{tag} is still a draft"
        )
    return VerificationCheck(target="release", passed=True, url=release.url)
