"""Unit tests for bookmark navigation views and the cursor."""

import pytest

from squadron.core.errors import GitError
from squadron.core.git_worktree import GitFileStatus
from squadron.tui.navigation import NavigationCursor, ViewKind, build_navigation_views


class FakeSource:
    def __init__(self, messages=None, current=None, failing_messages=()):
        self.messages = messages or {}
        self.current = current or []
        self.failing_messages = set(failing_messages)
        self.between_calls = []

    def get_changed_files_since(self, commit):
        return list(self.current)

    def get_changed_files_between(self, from_commit, to_commit):
        self.between_calls.append((from_commit, to_commit))
        return [GitFileStatus("M", f"{to_commit}.py")]

    def get_commit_message(self, sha):
        if sha in self.failing_messages:
            raise GitError(f"bad object {sha}")
        return self.messages.get(sha, f"[BOOKMARK] {sha} label")


def test_three_bookmarks_without_current_changes() -> None:
    """Recent, one intermediate bookmark, then initial."""
    views = build_navigation_views(["b1", "b2", "b3"], FakeSource())

    assert [v.kind for v in views] == [ViewKind.RECENT, ViewKind.BOOKMARK, ViewKind.INITIAL]
    recent, middle, initial = views
    assert (recent.from_commit, recent.to_commit) == ("b2", "b3")
    assert middle.title == "Bookmark 2/3 - b2 label"
    assert (middle.from_commit, middle.to_commit) == ("b1", "b2")
    assert initial.title == "Initial Bookmark - b1 label"
    assert initial.from_commit == ""
    assert initial.to_commit == "b1"


def test_current_changes_come_first() -> None:
    source = FakeSource(current=[GitFileStatus("A", "new.py")])
    views = build_navigation_views(["b1", "b2"], source)

    assert [v.kind for v in views] == [ViewKind.CURRENT, ViewKind.RECENT, ViewKind.INITIAL]
    assert views[0].from_commit == "b2"
    assert views[0].to_commit == "HEAD"
    assert views[0].files == (GitFileStatus("A", "new.py"),)


def test_single_bookmark_disables_navigation() -> None:
    views = build_navigation_views(["only"], FakeSource())

    assert [v.kind for v in views] == [ViewKind.INITIAL]
    cursor = NavigationCursor(views)
    assert not cursor.can_navigate
    assert cursor.older() is False
    assert cursor.newer() is False


def test_no_bookmarks_is_an_error() -> None:
    with pytest.raises(GitError, match="no bookmarks"):
        build_navigation_views([], FakeSource())


def test_labels_strip_prefix_and_fall_back_on_errors() -> None:
    source = FakeSource(messages={"b1": "plain message"}, failing_messages={"b2"})
    views = build_navigation_views(["b1", "b2", "b3"], source)

    assert views[1].title == "Bookmark 2/3 - Unknown bookmark"
    assert views[2].title == "Initial Bookmark - plain message"


def test_file_lists_are_resolved_when_views_are_built() -> None:
    source = FakeSource()
    views = build_navigation_views(["b1", "b2"], source)

    assert source.between_calls == [("b1", "b2"), ("", "b1")]
    assert views[0].files == (GitFileStatus("M", "b2.py"),)


def test_cursor_moves_are_clamped_and_drop_cache() -> None:
    views = build_navigation_views(["b1", "b2", "b3"], FakeSource())
    cursor = NavigationCursor(views)
    cursor.cached_content = "cached"

    assert cursor.can_go_older and not cursor.can_go_newer
    assert cursor.older() is True
    assert cursor.cached_content is None
    assert cursor.older() is True
    assert cursor.current.kind is ViewKind.INITIAL
    assert cursor.older() is False
    assert cursor.index == 2
    assert cursor.newer() is True
    assert cursor.index == 1


def test_cursor_requires_views() -> None:
    with pytest.raises(ValueError):
        NavigationCursor([])
