"""Git operations."""

from .repository import GitError, GitErrorKind, GitStatus, Repository, StatusEntry

__all__ = [
    "GitError",
    "GitErrorKind",
    "GitStatus",
    "Repository",
    "StatusEntry",
]
