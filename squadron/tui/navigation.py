"""Bookmark-based diff navigation.

Bookmarks arrive oldest to newest; views are produced most recent first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol, Sequence

from loguru import logger

from squadron.constants import BOOKMARK_PREFIX, UNKNOWN_BOOKMARK
from squadron.core.errors import GitError
from squadron.core.git_worktree import GitFileStatus


class ViewKind(str, Enum):
    CURRENT = "current"
    RECENT = "recent_commits"
    BOOKMARK = "bookmark"
    INITIAL = "initial"


@dataclass(frozen=True)
class NavigationView:
    kind: ViewKind
    title: str
    description: str
    from_commit: str  # empty = from branch creation
    to_commit: str
    files: tuple[GitFileStatus, ...] = field(default_factory=tuple)


class NavigationSource(Protocol):
    def get_changed_files_since(self, commit: str) -> list[GitFileStatus]: ...

    def get_changed_files_between(self, from_commit: str, to_commit: str) -> list[GitFileStatus]: ...

    def get_commit_message(self, sha: str) -> str: ...


def _bookmark_label(source: NavigationSource, sha: str) -> str:
    try:
        message = source.get_commit_message(sha)
    except GitError as e:
        logger.debug(f"Could not read bookmark message for {sha}: {e}")
        message = UNKNOWN_BOOKMARK
    return message.removeprefix(BOOKMARK_PREFIX)


def _between(source: NavigationSource, from_commit: str, to_commit: str) -> tuple[GitFileStatus, ...]:
    return tuple(source.get_changed_files_between(from_commit, to_commit))


def build_navigation_views(bookmarks: Sequence[str], source: NavigationSource) -> list[NavigationView]:
    """Build the ordered view list for a branch's bookmarks.

    Raises:
        GitError: if there are no bookmarks
    """
    if not bookmarks:
        raise GitError("no bookmarks found in this branch")

    total = len(bookmarks)
    newest = bookmarks[-1]
    views: list[NavigationView] = []

    try:
        current_files = source.get_changed_files_since(newest)
    except GitError as e:
        logger.debug(f"Skipping current changes view: {e}")
        current_files = []
    if current_files:
        views.append(
            NavigationView(
                kind=ViewKind.CURRENT,
                title="Current Changes",
                description="Uncommitted changes since last bookmark",
                from_commit=newest,
                to_commit="HEAD",
                files=tuple(current_files),
            )
        )

    if total >= 2:
        second_newest = bookmarks[-2]
        views.append(
            NavigationView(
                kind=ViewKind.RECENT,
                title="Recent Changes",
                description="Changes in most recent bookmark period",
                from_commit=second_newest,
                to_commit=newest,
                files=_between(source, second_newest, newest),
            )
        )

    for i in range(total - 2, 0, -1):
        older, newer = bookmarks[i - 1], bookmarks[i]
        views.append(
            NavigationView(
                kind=ViewKind.BOOKMARK,
                title=f"Bookmark {i + 1}/{total} - {_bookmark_label(source, newer)}",
                description="Changes since previous bookmark",
                from_commit=older,
                to_commit=newer,
                files=_between(source, older, newer),
            )
        )

    oldest = bookmarks[0]
    views.append(
        NavigationView(
            kind=ViewKind.INITIAL,
            title=f"Initial Bookmark - {_bookmark_label(source, oldest)}",
            description="Changes since branch creation",
            from_commit="",
            to_commit=oldest,
            files=_between(source, "", oldest),
        )
    )
    return views


class NavigationCursor:
    """Clamped index over a view list with a render cache.

    ``older`` moves toward the end of the list, ``newer`` toward index 0.
    """

    def __init__(self, views: Sequence[NavigationView]) -> None:
        if not views:
            raise ValueError("navigation requires at least one view")
        self._views = tuple(views)
        self._index = 0
        self.cached_content: str | None = None

    @property
    def views(self) -> tuple[NavigationView, ...]:
        return self._views

    @property
    def index(self) -> int:
        return self._index

    @property
    def current(self) -> NavigationView:
        return self._views[self._index]

    @property
    def can_navigate(self) -> bool:
        return len(self._views) > 1

    @property
    def can_go_older(self) -> bool:
        return self._index < len(self._views) - 1

    @property
    def can_go_newer(self) -> bool:
        return self._index > 0

    def older(self) -> bool:
        return self._move(1)

    def newer(self) -> bool:
        return self._move(-1)

    def _move(self, step: int) -> bool:
        target = self._index + step
        if target < 0 or target >= len(self._views):
            return False
        self._index = target
        self.cached_content = None
        return True
