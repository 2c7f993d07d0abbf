"""Exception hierarchy for squadron collaborators."""

from __future__ import annotations


class SquadronError(Exception):
    """Base class for all squadron errors."""


class GitError(SquadronError):
    """A git command failed or returned unusable output."""

    def __init__(self, message: str, *, command: list[str] | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.command = command or []
        self.stderr = stderr


class TmuxError(SquadronError):
    """A tmux command failed."""


class PullRequestError(SquadronError):
    """The GitHub CLI could not provide pull request data."""


class InstanceError(SquadronError):
    """An instance operation was rejected before running (bad input or precondition)."""


class StorageError(SquadronError):
    """Instance storage could not be read or written."""
