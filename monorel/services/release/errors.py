from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Literal

from monorel.core.errors import ErrorCode

ReleaseErrorKind = Literal[
    "config_not_found",
    "config_invalid",
    "preflight_failed",
    "test_failed",
    "build_failed",
    "publish_failed",
    "verification_failed",
    "rollback_failed",
    "no_changes",
    "tag_exists",
    "push_rejected",
    "gh_missing",
    "gh_auth_required",
    "release_failed",
    "invalid_version",
    "version_sync_failed",
    "manifest_invalid",
    "io_failed",
    "workflow_failed",
    "workflow_timeout",
    "workflow_cancelled",
]

ResolutionAction = Literal["retry", "abort", "manual"]


@dataclass(frozen=True, slots=True)
class ReleaseError:
    kind: ReleaseErrorKind
    message: str
    hint: str | None = None


@dataclass(frozen=True, slots=True)
class ConfigNotFound:
    component: str
    path: Path

    def to_release_error(self) -> ReleaseError:
        return ReleaseError(
            kind="config_not_found",
            message=f"no release configuration for {self.component}",
            hint=f"Create {self.path}",
        )


@dataclass(frozen=True, slots=True)
class ConfigValidationError:
    """Every problem found in one component config, collected in one pass."""

    component: str
    problems: tuple[str, ...]

    def to_release_error(self) -> ReleaseError:
        return ReleaseError(
            kind="config_invalid",
            message=f"invalid release configuration for {self.component}",
            hint="; ".join(self.problems),
        )


type ConfigError = ConfigNotFound | ConfigValidationError


@dataclass(frozen=True, slots=True)
class ErrorResolution:
    action: ResolutionAction
    description: str
    manual_steps: tuple[str, ...] = ()


_RETRYABLE: frozenset[ReleaseErrorKind] = frozenset(
    {"push_rejected", "workflow_timeout", "verification_failed"}
)

_MANUAL: frozenset[ReleaseErrorKind] = frozenset({"rollback_failed", "tag_exists"})


def resolution_for(error: ReleaseError) -> ErrorResolution:
    """Suggest what a user should do next about a failed step."""
    if error.kind in _RETRYABLE:
        return ErrorResolution(action="retry", description=f"{error.message}; retry the release")
    if error.kind in _MANUAL:
        steps = (error.hint,) if error.hint else ()
        return ErrorResolution(action="manual", description=error.message, manual_steps=steps)
    return ErrorResolution(action="abort", description=error.message)


_EXIT_CODES: dict[ReleaseErrorKind, ErrorCode] = {
    "config_not_found": ErrorCode.USER_ERROR,
    "config_invalid": ErrorCode.USER_ERROR,
    "invalid_version": ErrorCode.USER_ERROR,
    "no_changes": ErrorCode.USER_ERROR,
    "tag_exists": ErrorCode.USER_ERROR,
    "preflight_failed": ErrorCode.ENV_ERROR,
    "gh_missing": ErrorCode.ENV_ERROR,
    "gh_auth_required": ErrorCode.ENV_ERROR,
    "test_failed": ErrorCode.BUILD_ERROR,
    "build_failed": ErrorCode.BUILD_ERROR,
    "publish_failed": ErrorCode.NETWORK_ERROR,
    "verification_failed": ErrorCode.NETWORK_ERROR,
    "push_rejected": ErrorCode.NETWORK_ERROR,
    "release_failed": ErrorCode.NETWORK_ERROR,
    "workflow_failed": ErrorCode.NETWORK_ERROR,
    "workflow_timeout": ErrorCode.NETWORK_ERROR,
    "workflow_cancelled": ErrorCode.NETWORK_ERROR,
    "rollback_failed": ErrorCode.NETWORK_ERROR,
    "version_sync_failed": ErrorCode.IO_ERROR,
    "manifest_invalid": ErrorCode.IO_ERROR,
    "io_failed": ErrorCode.IO_ERROR,
}


def exit_code_for(error: ReleaseError) -> ErrorCode:
    return _EXIT_CODES.get(error.kind, ErrorCode.USER_ERROR)
