# SPDX-License-Identifier: MIT
"""Base types for checkers."""

from dataclasses import dataclass
from enum import Enum, auto


class CheckStatus(Enum):
    """Status of a check result."""

    OK = auto()
    """Check passed."""

    ERROR = auto()
    """Check failed; blocks the release."""


@dataclass(frozen=True, slots=True)
class CheckResult:
    """Result of a single go/no-go check.

    Attributes:
        name: Check label shown in the report (e.g., "Git Status")
        status: Whether the check passed or failed
        message: Human-readable result message
        hint: Optional fix command or explanation
        output: Captured command output, for command-backed checks
    """

    name: str
    status: CheckStatus
    message: str
    hint: str | None = None
    output: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == CheckStatus.OK

    @classmethod
    def success(cls, name: str, message: str, output: str | None = None) -> "CheckResult":
        """Create a passing check result."""
        return cls(name=name, status=CheckStatus.OK, message=message, output=output)

    @classmethod
    def error(
        cls,
        name: str,
        message: str,
        hint: str | None = None,
        output: str | None = None,
    ) -> "CheckResult":
        """Create a failed check result."""
        return cls(name=name, status=CheckStatus.ERROR, message=message, hint=hint, output=output)
