"""Subprocess execution with Result-based error handling.

Every collaborator (git, gh, npm, docker, vsce, configured build/test
commands) goes through these two functions, so each one shares the same
timeout handling and error type and can be faked in tests by patching the
module-level name it imports.

Usage:
    result = run(["git", "status", "--porcelain"], cwd=repo, timeout=30)
    match result:
        case Ok(stdout):
            print(stdout)
        case Err(error):
            print(f"Failed: {error.stderr}")
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path

from monorel.core.result import Err, Ok, Result

__all__ = ["ProcessError", "ShellOutput", "run", "run_shell"]


@dataclass(frozen=True, slots=True)
class ProcessError:
    """Error from a failed subprocess execution.

    Attributes:
        command: The command that was executed.
        returncode: Exit code of the process (-1 if it never ran or timed out).
        stdout: Standard output (may be empty).
        stderr: Standard error (contains error details).
    """

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str

    @property
    def timed_out(self) -> bool:
        return self.returncode == -1 and "timed out" in self.stderr

    @property
    def output(self) -> str:
        """Combined stdout and stderr, for reports."""
        return "\n".join(part for part in (self.stdout.strip(), self.stderr.strip()) if part)

    def __str__(self) -> str:
        cmd_str = " ".join(self.command[:3])
        if len(self.command) > 3:
            cmd_str += " ..."
        return f"{cmd_str} failed (exit {self.returncode})"


@dataclass(frozen=True, slots=True)
class ShellOutput:
    """Captured combined output of a configured shell command."""

    command: str
    output: str


def _decode(data: str | bytes | None) -> str:
    if data is None:
        return ""
    if isinstance(data, bytes):
        return data.decode("utf-8", errors="replace")
    return data


def run(
    cmd: list[str],
    cwd: Path,
    env: dict[str, str] | None = None,
    *,
    timeout: float | None = None,
) -> Result[str, ProcessError]:
    """Execute a command and return stdout or error.

    Args:
        cmd: Command and arguments to execute.
        cwd: Working directory for the command.
        env: Environment variables (uses current env if None).
        timeout: Maximum seconds to wait (None for no limit).

    Returns:
        Ok(stdout) on success, Err(ProcessError) on failure.
    """
    try:
        proc = subprocess.run(
            cmd,
            cwd=str(cwd),
            env=env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout=_decode(e.stdout),
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=-1,
                stdout="",
                stderr=str(e),
            )
        )

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=tuple(cmd),
                returncode=proc.returncode,
                stdout=proc.stdout,
                stderr=proc.stderr,
            )
        )

    return Ok(proc.stdout)


def run_shell(
    command: str,
    cwd: Path,
    *,
    timeout: float,
    env: dict[str, str] | None = None,
) -> Result[ShellOutput, ProcessError]:
    """Run a configured command string (e.g. ``nx test mcp-screenshot``).

    Build and test commands come from component configs as shell strings,
    so they run through the platform shell. Only the exit status is
    interpreted; stdout and stderr are captured together.
    """
    try:
        proc = subprocess.run(
            command,
            cwd=str(cwd),
            env=env,
            shell=True,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            timeout=timeout,
            check=False,
        )
    except subprocess.TimeoutExpired as e:
        return Err(
            ProcessError(
                command=(command,),
                returncode=-1,
                stdout=_decode(e.stdout),
                stderr=f"Command timed out after {timeout}s",
            )
        )
    except OSError as e:
        return Err(ProcessError(command=(command,), returncode=-1, stdout="", stderr=str(e)))

    if proc.returncode != 0:
        return Err(
            ProcessError(
                command=(command,),
                returncode=proc.returncode,
                stdout=proc.stdout or "",
                stderr="",
            )
        )
    return Ok(ShellOutput(command=command, output=proc.stdout or ""))
