"""Platform abstraction layer."""

from .files import atomic_write_text, sha256_file
from .process import ProcessError, ShellOutput, run, run_shell

__all__ = [
    # files
    "atomic_write_text",
    "sha256_file",
    # process
    "ProcessError",
    "ShellOutput",
    "run",
    "run_shell",
]
