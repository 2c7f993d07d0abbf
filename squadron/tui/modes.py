"""Application modes.

Exactly one mode is active. Every mode except ``DefaultMode`` owns a
non-null overlay.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import ClassVar, Union

from squadron.core.instance import Instance
from squadron.tui.help import Continuation
from squadron.tui.overlays import (
    BranchSelectorOverlay,
    CommentDetailOverlay,
    ConfirmationOverlay,
    GitStatusOverlay,
    HistoryOverlay,
    KeybindingEditorOverlay,
    PullRequestOverlay,
    PullRequestSelectorOverlay,
    TextInputOverlay,
    TextOverlay,
)


class ModeKind(str, Enum):
    DEFAULT = "default"
    NAMING = "naming"
    PROMPTING = "prompting"
    HELP = "help"
    CONFIRMING = "confirming"
    SELECTING_BRANCH = "selecting_branch"
    ERROR_LOG = "error_log"
    REVIEWING_PR = "reviewing_pr"
    BOOKMARKING = "bookmarking"
    HISTORY = "history"
    KEYBINDINGS = "keybindings"
    GIT_STATUS = "git_status"
    COMMENT_DETAIL = "comment_detail"
    SELECTING_PRS = "selecting_prs"


@dataclass
class DefaultMode:
    kind: ClassVar[ModeKind] = ModeKind.DEFAULT
    overlay: None = None


@dataclass
class NamingMode:
    """A new instance is being named; it is not started yet."""

    overlay: TextInputOverlay
    instance: Instance
    prompt_after: bool = False
    kind: ClassVar[ModeKind] = ModeKind.NAMING


@dataclass
class PromptingMode:
    overlay: TextInputOverlay
    instance: Instance
    kind: ClassVar[ModeKind] = ModeKind.PROMPTING


@dataclass
class HelpMode:
    overlay: TextOverlay
    on_dismiss: Continuation | None = None
    kind: ClassVar[ModeKind] = ModeKind.HELP


@dataclass
class ConfirmingMode:
    overlay: ConfirmationOverlay
    kind: ClassVar[ModeKind] = ModeKind.CONFIRMING


@dataclass
class SelectingBranchMode:
    overlay: BranchSelectorOverlay
    request_id: int
    kind: ClassVar[ModeKind] = ModeKind.SELECTING_BRANCH


@dataclass
class SelectingPRsMode:
    """Open PRs are being picked for a combined merge."""

    overlay: PullRequestSelectorOverlay
    request_id: int
    kind: ClassVar[ModeKind] = ModeKind.SELECTING_PRS


@dataclass
class ErrorLogMode:
    overlay: TextOverlay
    kind: ClassVar[ModeKind] = ModeKind.ERROR_LOG


@dataclass
class ReviewingPRMode:
    overlay: PullRequestOverlay
    title: str
    kind: ClassVar[ModeKind] = ModeKind.REVIEWING_PR


@dataclass
class BookmarkingMode:
    overlay: TextInputOverlay
    title: str
    kind: ClassVar[ModeKind] = ModeKind.BOOKMARKING


@dataclass
class HistoryMode:
    overlay: HistoryOverlay
    kind: ClassVar[ModeKind] = ModeKind.HISTORY


@dataclass
class KeybindingsMode:
    overlay: KeybindingEditorOverlay
    kind: ClassVar[ModeKind] = ModeKind.KEYBINDINGS


@dataclass
class GitStatusMode:
    overlay: GitStatusOverlay
    kind: ClassVar[ModeKind] = ModeKind.GIT_STATUS


@dataclass
class CommentDetailMode:
    overlay: CommentDetailOverlay
    return_to: ReviewingPRMode
    kind: ClassVar[ModeKind] = ModeKind.COMMENT_DETAIL


Mode = Union[
    DefaultMode,
    NamingMode,
    PromptingMode,
    HelpMode,
    ConfirmingMode,
    SelectingBranchMode,
    SelectingPRsMode,
    ErrorLogMode,
    ReviewingPRMode,
    BookmarkingMode,
    HistoryMode,
    KeybindingsMode,
    GitStatusMode,
    CommentDetailMode,
]
