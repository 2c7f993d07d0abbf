"""Unit tests for overlay key handling."""

from squadron.config.schema import KeyBindingsConfig
from squadron.core.git_worktree import GitFileStatus
from squadron.core.pull_request import CommentKind, PRComment, PullRequest
from squadron.tui.navigation import NavigationCursor, NavigationView, ViewKind
from squadron.tui.overlays import (
    BranchSelectorOverlay,
    EditorMode,
    GitStatusOverlay,
    HistoryOverlay,
    KeybindingEditorOverlay,
    OverlayAction,
    PullRequestOverlay,
    PullRequestSelectorOverlay,
    TextInputOverlay,
    TextOverlay,
)


def _pull_request():
    return PullRequest(
        number=3,
        title="t",
        state="OPEN",
        head_ref="h",
        base_ref="main",
        url="u",
        head_sha="sha",
        all_comments=[
            PRComment(id=1, kind=CommentKind.REVIEW, author="a", body="overall"),
            PRComment(id=2, kind=CommentKind.REVIEW_COMMENT, author="b", body="line", path="x.py", line=4),
            PRComment(id=3, kind=CommentKind.ISSUE_COMMENT, author="c", body="old", is_outdated=True),
        ],
    )


def test_text_overlay_scrolls_then_closes_on_other_key() -> None:
    overlay = TextOverlay("Help", "a\nb\nc")

    assert overlay.handle_key("j") is OverlayAction.NONE
    assert overlay.offset == 1
    assert overlay.handle_key("G") is OverlayAction.NONE
    assert overlay.offset == 2
    assert overlay.handle_key("j") is OverlayAction.NONE
    assert overlay.offset == 2
    assert overlay.handle_key("x") is OverlayAction.CLOSE


def test_non_scrollable_overlay_closes_on_any_key() -> None:
    assert TextOverlay("Errors", "a\nb", scrollable=False).handle_key("j") is OverlayAction.CLOSE


def test_history_overlay_only_closes_on_its_keys() -> None:
    overlay = HistoryOverlay("History", "one")

    assert overlay.handle_key("x") is OverlayAction.NONE
    assert overlay.handle_key("q") is OverlayAction.CLOSE


def test_text_input_editing_and_limit() -> None:
    overlay = TextInputOverlay("Name", max_length=3)
    for key in "abc":
        overlay.handle_key(key)

    assert overlay.handle_key("d") is OverlayAction.ERROR
    assert overlay.error == "title cannot be longer than 3 characters"
    assert overlay.value == "abc"
    assert overlay.handle_key("backspace") is OverlayAction.NONE
    assert overlay.error == ""
    assert overlay.value == "ab"
    assert overlay.handle_key("up") is OverlayAction.NONE
    assert overlay.value == "ab"
    assert overlay.handle_key("enter") is OverlayAction.SUBMIT
    assert overlay.handle_key("esc") is OverlayAction.CANCEL


def test_branch_selector_loading_and_filtering() -> None:
    overlay = BranchSelectorOverlay()

    assert overlay.handle_key("enter") is OverlayAction.NONE
    assert overlay.render(40, 10)[1] == "Loading branches…"
    assert overlay.handle_key("esc") is OverlayAction.CANCEL

    overlay.set_branches(["main", "feature/login", "feature/logout"])
    for key in "logo":
        overlay.handle_key(key)
    assert overlay.matches == ["feature/logout"]
    overlay.handle_key("backspace")
    overlay.handle_key("down")
    assert overlay.selected == "feature/logout"

    for key in "zz":
        overlay.handle_key(key)
    assert overlay.selected is None
    assert overlay.handle_key("enter") is OverlayAction.NONE


def test_pull_request_overlay_filters_and_accepts() -> None:
    overlay = PullRequestOverlay(_pull_request())

    assert [c.id for c in overlay.visible] == [1, 2]
    overlay.handle_key("f")
    assert [c.id for c in overlay.visible] == [1, 2, 3]
    overlay.handle_key("L")
    assert [c.id for c in overlay.visible] == [2]
    assert overlay.handle_key("o") is OverlayAction.NAVIGATE
    overlay.handle_key("a")
    assert [c.id for c in overlay.pull_request.accepted_comments()] == [2]

    overlay.handle_key("r")
    overlay.handle_key("c")
    overlay.handle_key("A")
    assert [c.id for c in overlay.pull_request.accepted_comments()] == [1, 2, 3]
    overlay.handle_key("D")
    assert overlay.pull_request.accepted_comments() == []


def test_pull_request_overlay_navigate_requires_path() -> None:
    overlay = PullRequestOverlay(_pull_request())

    assert overlay.selected.id == 1
    assert overlay.handle_key("o") is OverlayAction.NONE
    assert overlay.handle_key("e") is OverlayAction.OPEN_DETAIL
    assert overlay.handle_key("enter") is OverlayAction.COMPLETE
    assert overlay.handle_key("q") is OverlayAction.CANCEL


def test_keybinding_editor_works_on_a_copy() -> None:
    original = KeyBindingsConfig.defaults()
    overlay = KeybindingEditorOverlay(original)

    overlay.handle_key("enter")
    assert overlay.mode is EditorMode.EDIT
    overlay.handle_key("d")
    overlay.handle_key("a")
    overlay.handle_key("F")
    overlay.handle_key("enter")

    assert overlay.mode is EditorMode.LIST
    assert overlay.config.get_binding("up").keys == ["up", "F"]
    assert original.get_binding("up").keys == ["up", "k"]


def test_keybinding_editor_capture_ignores_duplicates_and_esc() -> None:
    overlay = KeybindingEditorOverlay(KeyBindingsConfig.defaults())
    overlay.handle_key("enter")
    overlay.handle_key("a")
    overlay.handle_key("k")
    overlay.handle_key("a")
    overlay.handle_key("esc")

    assert overlay.draft == ["up", "k"]
    assert overlay.mode is EditorMode.EDIT


def test_keybinding_editor_rejects_empty_bindings_on_save() -> None:
    overlay = KeybindingEditorOverlay(KeyBindingsConfig.defaults())
    overlay.handle_key("enter")
    overlay.handle_key("d")
    overlay.handle_key("d")
    overlay.handle_key("enter")
    overlay.handle_key("s")

    assert overlay.handle_key("y") is OverlayAction.ERROR
    assert "no keys for up" in overlay.error
    assert overlay.mode is EditorMode.LIST


def test_keybinding_editor_reset_restores_defaults() -> None:
    config = KeyBindingsConfig.defaults()
    config.set_binding("up", ["F"])
    overlay = KeybindingEditorOverlay(config)

    overlay.handle_key("r")
    assert overlay.config.get_binding("up").keys == ["up", "k"]
    assert overlay.handle_key("s") is OverlayAction.NONE
    assert overlay.handle_key("y") is OverlayAction.SAVE


def test_git_status_overlay_groups_files_and_caches() -> None:
    files = (GitFileStatus("M", "b.py"), GitFileStatus("A", "a.py"), GitFileStatus("X", "odd"))
    views = [
        NavigationView(ViewKind.RECENT, "Recent Changes", "desc", "1111111aaa", "2222222bbb", files),
        NavigationView(ViewKind.INITIAL, "Initial Bookmark - start", "desc", "", "1111111aaa"),
    ]
    overlay = GitStatusOverlay("squadron/alpha", NavigationCursor(views))

    content = overlay.content()
    assert content.index("Added:") < content.index("Modified:") < content.index("X:")
    assert "1111111 -> 2222222" in content
    assert content.endswith("<- older")
    assert overlay.cursor.cached_content == content

    assert overlay.handle_key("left") is OverlayAction.NONE
    older = overlay.content()
    assert "branch start -> 1111111" in older
    assert "No changes" in older
    assert older.endswith("newer ->")
    assert overlay.handle_key("q") is OverlayAction.CLOSE


def test_pull_request_selector_toggles_and_submits_checked() -> None:
    overlay = PullRequestSelectorOverlay()
    assert overlay.render(80, 10)[1] == "Fetching open PRs…"
    assert overlay.handle_key(" ") is OverlayAction.NONE

    overlay.set_pull_requests(
        [
            PullRequest(3, "Fix login", "OPEN", "fix/login", "main", "", ""),
            PullRequest(5, "Add docs", "OPEN", "docs", "main", "", ""),
        ]
    )
    assert overlay.handle_key("enter") is OverlayAction.NONE

    overlay.handle_key("j")
    overlay.handle_key(" ")
    overlay.handle_key("k")
    overlay.handle_key(" ")
    overlay.handle_key(" ")
    assert [pr.number for pr in overlay.chosen] == [5]
    lines = overlay.render(80, 10)
    assert lines[1] == "> [ ] #3: Fix login (fix/login -> main)"
    assert lines[2] == "  [x] #5: Add docs (docs -> main)"
    assert lines[-1].startswith("1 PR(s) selected")

    assert overlay.handle_key("enter") is OverlayAction.SUBMIT
    assert overlay.handle_key("q") is OverlayAction.CANCEL
