"""Process exit codes.

These values are returned by the CLI and should remain stable so CI jobs
can branch on them:
- 0: release completed
- 1: user error (bad component name, invalid version, invalid config)
- 2: environment error (pre-flight failed, missing credentials or tools)
- 3: build error (tests or build failed, nothing was published)
- 4: network error (publish, host release or remote workflow failed)
- 5: I/O error (manifest or version files could not be read/written)
"""

from enum import IntEnum

__all__ = ["ErrorCode"]


class ErrorCode(IntEnum):
    """Exit codes for CLI commands."""

    OK = 0
    USER_ERROR = 1
    ENV_ERROR = 2
    BUILD_ERROR = 3
    NETWORK_ERROR = 4
    IO_ERROR = 5

    def __str__(self) -> str:
        return self.name.lower().replace("_", " ")
