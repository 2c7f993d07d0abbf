"""Events consumed by the dispatcher.

Raw input, timer ticks and the single result event of every async command
all travel through the same queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING, Union

if TYPE_CHECKING:
    from squadron.core.instance import Instance, InstanceState
    from squadron.core.pull_request import PullRequest
    from squadron.tui.navigation import NavigationView


class TimerId(str, Enum):
    HIDE_ERROR = "hide_error"
    HIDE_MESSAGE = "hide_message"
    KEYUP = "keyup"
    POLL = "poll"


# Raw input


@dataclass(frozen=True)
class KeyEvent:
    key: str


@dataclass(frozen=True)
class MouseEvent:
    x: int
    y: int
    button: str  # "wheel_up" | "wheel_down" | "left"


@dataclass(frozen=True)
class ResizeEvent:
    width: int
    height: int


@dataclass(frozen=True)
class TickEvent:
    timer_id: TimerId
    generation: int = 0


@dataclass(frozen=True)
class ConfirmationResolved:
    """Posted by the confirmation gate; consumed by the pending-action short-circuit."""


# Generic results


@dataclass(frozen=True)
class ErrorEvent:
    message: str


@dataclass(frozen=True)
class MessageEvent:
    """Transient success text."""

    text: str


@dataclass(frozen=True)
class InstanceChanged:
    """An instance was changed by a worker.

    ``state`` is applied to the record on the loop thread. ``error`` is set when
    the change failed but still produced a state to apply (a failed restore).
    """

    title: str = ""
    state: InstanceState | None = None
    message: str = ""
    error: str | None = None
    reloaded: bool = False


# Typed results


@dataclass(frozen=True)
class InstanceStarted:
    instance: Instance
    state: InstanceState | None = None
    error: str | None = None


@dataclass(frozen=True)
class InstanceKilled:
    title: str
    error: str | None = None


@dataclass(frozen=True)
class BranchesLoaded:
    request_id: int
    branches: tuple[str, ...]


@dataclass(frozen=True)
class PullRequestLoaded:
    request_id: int
    title: str
    pull_request: PullRequest


@dataclass(frozen=True)
class OpenPullRequestsLoaded:
    request_id: int
    pull_requests: tuple[PullRequest, ...]


@dataclass(frozen=True)
class PullRequestsMerged:
    """Result of merging several pull requests into one new branch."""

    branch: str
    merged: tuple[int, ...]
    failures: tuple[str, ...] = ()
    pr_number: int | None = None


@dataclass(frozen=True)
class RebaseProgress:
    title: str
    status: str = ""
    complete: bool = False
    error: str | None = None
    branch: str = ""
    original_sha: str = ""
    main_branch: str = ""


@dataclass(frozen=True)
class AttachFinished:
    title: str
    reload_requested: bool


@dataclass(frozen=True)
class GitStatusLoaded:
    title: str
    branch: str
    views: tuple[NavigationView, ...]


@dataclass(frozen=True)
class HistoryLoaded:
    title: str
    content: str


@dataclass(frozen=True)
class InstancePoll:
    title: str
    updated: bool
    preview: str = ""
    diff: str = ""
    terminal: str = ""


@dataclass(frozen=True)
class InstancesPolled:
    polls: tuple[InstancePoll, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class CommentsProcessed:
    title: str
    sent: int


@dataclass(frozen=True)
class DiffLoaded:
    """Diff of one commit, for the diff tab in commit mode."""

    title: str
    commit_index: int
    content: str


@dataclass(frozen=True)
class StateSaved:
    path: str


Event = Union[
    KeyEvent,
    MouseEvent,
    ResizeEvent,
    TickEvent,
    ConfirmationResolved,
    ErrorEvent,
    MessageEvent,
    InstanceChanged,
    InstanceStarted,
    InstanceKilled,
    BranchesLoaded,
    PullRequestLoaded,
    OpenPullRequestsLoaded,
    PullRequestsMerged,
    RebaseProgress,
    AttachFinished,
    GitStatusLoaded,
    HistoryLoaded,
    InstancesPolled,
    CommentsProcessed,
    DiffLoaded,
    StateSaved,
]
