# SPDX-License-Identifier: MIT
"""Go/no-go checks run before any release side effect."""

from monorel.services.checkers.base import CheckResult, CheckStatus
from monorel.services.checkers.preflight import PreflightChecker, PreflightReport

__all__ = [
    "CheckResult",
    "CheckStatus",
    "PreflightChecker",
    "PreflightReport",
]
