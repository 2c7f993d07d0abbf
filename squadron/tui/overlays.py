"""Overlays owned by the non-default modes.

Overlays hold their own view state, interpret keys into an ``OverlayAction``
and render themselves to plain lines. They never schedule work; the
dispatcher decides what an action means.
"""

from __future__ import annotations

from enum import Enum

from squadron.config.schema import KeyBindingsConfig
from squadron.constants import MAX_TITLE_LENGTH
from squadron.core.pull_request import CommentKind, PRComment, PullRequest
from squadron.tui.navigation import NavigationCursor


class OverlayAction(str, Enum):
    NONE = "none"
    CLOSE = "close"
    SUBMIT = "submit"
    CANCEL = "cancel"
    ERROR = "error"
    COMPLETE = "complete"
    OPEN_DETAIL = "open_detail"
    NAVIGATE = "navigate"
    SAVE = "save"


SCROLL_UP_KEYS = frozenset({"up", "k"})
SCROLL_DOWN_KEYS = frozenset({"down", "j"})
PAGE_UP_KEYS = frozenset({"pgup"})
PAGE_DOWN_KEYS = frozenset({"pgdown"})
TOP_KEYS = frozenset({"home", "g"})
BOTTOM_KEYS = frozenset({"end", "G"})
SCROLL_KEYS = SCROLL_UP_KEYS | SCROLL_DOWN_KEYS | PAGE_UP_KEYS | PAGE_DOWN_KEYS | TOP_KEYS | BOTTOM_KEYS
PAGE_SIZE = 10


def is_printable(key: str) -> bool:
    return len(key) == 1 and key.isprintable()


class TextOverlay:
    """Scrollable block of text.

    With ``close_keys`` unset, scroll keys scroll and any other key closes.
    With ``close_keys`` set, only those keys close. A non-scrollable overlay
    closes on any key.
    """

    def __init__(
        self,
        title: str,
        content: str,
        *,
        scrollable: bool = True,
        close_keys: frozenset[str] | None = None,
    ) -> None:
        self.title = title
        self.content = content
        self.scrollable = scrollable
        self.close_keys = close_keys
        self.offset = 0

    @property
    def lines(self) -> list[str]:
        return self.content.splitlines()

    def handle_key(self, key: str) -> OverlayAction:
        if not self.scrollable:
            return OverlayAction.CLOSE
        if self.close_keys is not None and key in self.close_keys:
            return OverlayAction.CLOSE
        if key in SCROLL_KEYS:
            self._scroll(key)
            return OverlayAction.NONE
        if self.close_keys is None:
            return OverlayAction.CLOSE
        return OverlayAction.NONE

    def _scroll(self, key: str) -> None:
        last = max(len(self.lines) - 1, 0)
        if key in SCROLL_UP_KEYS:
            self.offset -= 1
        elif key in SCROLL_DOWN_KEYS:
            self.offset += 1
        elif key in PAGE_UP_KEYS:
            self.offset -= PAGE_SIZE
        elif key in PAGE_DOWN_KEYS:
            self.offset += PAGE_SIZE
        elif key in TOP_KEYS:
            self.offset = 0
        elif key in BOTTOM_KEYS:
            self.offset = last
        self.offset = min(max(self.offset, 0), last)

    def render(self, width: int, height: int) -> list[str]:
        body = self.lines[self.offset : self.offset + max(height - 2, 1)]
        return [self.title, "-" * min(width, max(len(self.title), 1))] + [line[:width] for line in body]


class HistoryOverlay(TextOverlay):
    """Commit history; closes only on esc, q or ctrl+c."""

    def __init__(self, title: str, content: str) -> None:
        super().__init__(title, content, close_keys=frozenset({"esc", "q", "ctrl+c"}))


class TextInputOverlay:
    """Single text field used for naming, prompting and bookmark messages."""

    def __init__(self, title: str, *, max_length: int | None = None, value: str = "") -> None:
        self.title = title
        self.max_length = max_length
        self.value = value
        self.error = ""

    def handle_key(self, key: str) -> OverlayAction:
        self.error = ""
        if key in ("esc", "ctrl+c"):
            return OverlayAction.CANCEL
        if key == "enter":
            return OverlayAction.SUBMIT
        if key == "backspace":
            self.value = self.value[:-1]
            return OverlayAction.NONE
        if is_printable(key):
            if self.max_length is not None and len(self.value) >= self.max_length:
                self.error = f"title cannot be longer than {self.max_length} characters"
                return OverlayAction.ERROR
            self.value += key
        return OverlayAction.NONE

    def render(self, width: int, height: int) -> list[str]:
        lines = [self.title, f"> {self.value}_"[:width]]
        if self.error:
            lines.append(self.error[:width])
        return lines


def naming_overlay() -> TextInputOverlay:
    return TextInputOverlay("Enter a name for the instance", max_length=MAX_TITLE_LENGTH)


class ConfirmationOverlay:
    """Yes/no prompt; keys are interpreted by the confirmation gate."""

    def __init__(self, prompt: str) -> None:
        self.prompt = prompt

    def render(self, width: int, height: int) -> list[str]:
        return [self.prompt[:width], "", "Press y to confirm, n or esc to cancel"]


class BranchSelectorOverlay:
    """Filterable remote branch list; shows a loading line until branches arrive."""

    def __init__(self) -> None:
        self.loading = True
        self.branches: list[str] = []
        self.filter = ""
        self.cursor = 0

    def set_branches(self, branches: list[str]) -> None:
        self.branches = list(branches)
        self.loading = False
        self.cursor = 0

    @property
    def matches(self) -> list[str]:
        needle = self.filter.lower()
        return [b for b in self.branches if needle in b.lower()]

    @property
    def selected(self) -> str | None:
        matches = self.matches
        if not matches:
            return None
        return matches[min(self.cursor, len(matches) - 1)]

    def handle_key(self, key: str) -> OverlayAction:
        if key in ("esc", "ctrl+c"):
            return OverlayAction.CANCEL
        if self.loading:
            return OverlayAction.NONE
        if key == "enter":
            return OverlayAction.SUBMIT if self.selected is not None else OverlayAction.NONE
        if key == "up":
            self.cursor = max(self.cursor - 1, 0)
        elif key == "down":
            self.cursor = min(self.cursor + 1, max(len(self.matches) - 1, 0))
        elif key == "backspace":
            self.filter = self.filter[:-1]
            self.cursor = 0
        elif is_printable(key):
            self.filter += key
            self.cursor = 0
        return OverlayAction.NONE

    def render(self, width: int, height: int) -> list[str]:
        if self.loading:
            return ["Select a branch", "Loading branches…"]
        lines = ["Select a branch", f"Filter: {self.filter}"]
        for i, branch in enumerate(self.matches[: max(height - 2, 1)]):
            marker = ">" if i == self.cursor else " "
            lines.append(f"{marker} {branch}"[:width])
        return lines


class PullRequestSelectorOverlay:
    """Multi-select list of open pull requests to combine into one branch."""

    def __init__(self) -> None:
        self.loading = True
        self.pull_requests: list[PullRequest] = []
        self.checked: set[int] = set()
        self.cursor = 0

    def set_pull_requests(self, pull_requests: list[PullRequest]) -> None:
        self.pull_requests = list(pull_requests)
        self.loading = False
        self.cursor = 0

    @property
    def chosen(self) -> list[PullRequest]:
        """Checked PRs in list order."""
        return [pr for pr in self.pull_requests if pr.number in self.checked]

    def handle_key(self, key: str) -> OverlayAction:
        if key in ("esc", "q", "ctrl+c"):
            return OverlayAction.CANCEL
        if self.loading or not self.pull_requests:
            return OverlayAction.NONE
        if key == "enter":
            return OverlayAction.SUBMIT if self.checked else OverlayAction.NONE
        if key in SCROLL_UP_KEYS:
            self.cursor = max(self.cursor - 1, 0)
        elif key in SCROLL_DOWN_KEYS:
            self.cursor = min(self.cursor + 1, len(self.pull_requests) - 1)
        elif key == " ":
            number = self.pull_requests[self.cursor].number
            self.checked ^= {number}
        return OverlayAction.NONE

    def render(self, width: int, height: int) -> list[str]:
        lines = ["Select PRs to merge"]
        if self.loading:
            return [*lines, "Fetching open PRs…"]
        for i, pr in enumerate(self.pull_requests[: max(height - 4, 1)]):
            marker = ">" if i == self.cursor else " "
            box = "[x]" if pr.number in self.checked else "[ ]"
            lines.append(f"{marker} {box} #{pr.number}: {pr.title} ({pr.head_ref} -> {pr.base_ref})"[:width])
        lines.extend(["", f"{len(self.checked)} PR(s) selected | space toggle | enter merge | esc cancel"[:width]])
        return lines


class PullRequestOverlay:
    """Accept/decline PR comments before they are sent to the session."""

    def __init__(self, pull_request: PullRequest) -> None:
        self.pull_request = pull_request
        self.show_hidden = False
        self.show_reviews = True
        self.show_review_comments = True
        self.show_issue_comments = True
        self.cursor = 0

    def _kind_visible(self, comment: PRComment) -> bool:
        if comment.kind is CommentKind.REVIEW:
            return self.show_reviews
        if comment.kind is CommentKind.REVIEW_COMMENT:
            return self.show_review_comments
        return self.show_issue_comments

    @property
    def visible(self) -> list[PRComment]:
        source = self.pull_request.all_comments if self.show_hidden else self.pull_request.comments
        return [c for c in source if self._kind_visible(c)]

    @property
    def selected(self) -> PRComment | None:
        visible = self.visible
        if not visible:
            return None
        return visible[min(self.cursor, len(visible) - 1)]

    def _only(self, kind: CommentKind) -> None:
        self.show_reviews = kind is CommentKind.REVIEW
        self.show_review_comments = kind is CommentKind.REVIEW_COMMENT
        self.show_issue_comments = kind is CommentKind.ISSUE_COMMENT

    def _clamp(self) -> None:
        self.cursor = min(self.cursor, max(len(self.visible) - 1, 0))

    def handle_key(self, key: str) -> OverlayAction:
        if key in ("q", "esc"):
            return OverlayAction.CANCEL
        if key == "enter":
            return OverlayAction.COMPLETE
        if key == "e":
            return OverlayAction.OPEN_DETAIL if self.selected is not None else OverlayAction.NONE
        if key == "o":
            selected = self.selected
            return OverlayAction.NAVIGATE if selected is not None and selected.path else OverlayAction.NONE

        if key in ("j", "down"):
            self.cursor = min(self.cursor + 1, max(len(self.visible) - 1, 0))
        elif key in ("k", "up"):
            self.cursor = max(self.cursor - 1, 0)
        elif key in ("a", "d"):
            selected = self.selected
            if selected is not None:
                selected.accepted = key == "a"
        elif key in ("A", "D"):
            for comment in self.visible:
                comment.accepted = key == "A"
        elif key == "f":
            self.show_hidden = not self.show_hidden
        elif key == "c":
            self.show_issue_comments = not self.show_issue_comments
        elif key == "r":
            self.show_reviews = not self.show_reviews
        elif key == "l":
            self.show_review_comments = not self.show_review_comments
        elif key == "L":
            self._only(CommentKind.REVIEW_COMMENT)
        elif key == "R":
            self._only(CommentKind.REVIEW)
        elif key == "C":
            self._only(CommentKind.ISSUE_COMMENT)
        self._clamp()
        return OverlayAction.NONE

    def render(self, width: int, height: int) -> list[str]:
        pr = self.pull_request
        accepted = len(pr.accepted_comments())
        lines = [
            f"PR #{pr.number}: {pr.title}"[:width],
            f"{accepted} accepted | a/d accept/decline, A/D all, e detail, o open file, enter send"[:width],
        ]
        for i, comment in enumerate(self.visible[: max(height - 2, 1)]):
            marker = ">" if i == self.cursor else " "
            mark = "[x]" if comment.accepted else "[ ]"
            where = f" {comment.path}:{comment.line}" if comment.path else ""
            first = comment.body.splitlines()[0] if comment.body else ""
            lines.append(f"{marker} {mark} @{comment.author}{where} {first}"[:width])
        return lines


class CommentDetailOverlay(TextOverlay):
    """Full text of one PR comment; esc, e or q return to the review list."""

    def __init__(self, comment: PRComment) -> None:
        header = f"@{comment.author} ({comment.kind.value})"
        if comment.path:
            header += f" {comment.path}:{comment.line}"
        super().__init__(header, comment.body, close_keys=frozenset({"esc", "e", "q"}))
        self.comment = comment


class EditorMode(str, Enum):
    LIST = "list"
    EDIT = "edit"
    CONFIRM = "confirm"


class KeybindingEditorOverlay:
    """Edits a working copy of the key bindings."""

    def __init__(self, config: KeyBindingsConfig) -> None:
        self.config = config.model_copy(deep=True)
        self.mode = EditorMode.LIST
        self.cursor = 0
        self.capturing = False
        self.draft: list[str] = []
        self.error = ""

    @property
    def current_command(self) -> str:
        return self.config.bindings[self.cursor].command

    def handle_key(self, key: str) -> OverlayAction:
        if self.mode is EditorMode.EDIT:
            return self._handle_edit(key)
        if self.mode is EditorMode.CONFIRM:
            return self._handle_confirm(key)
        return self._handle_list(key)

    def _handle_list(self, key: str) -> OverlayAction:
        self.error = ""
        if key in ("q", "esc"):
            return OverlayAction.CLOSE
        if key == "up":
            self.cursor = max(self.cursor - 1, 0)
        elif key == "down":
            self.cursor = min(self.cursor + 1, max(len(self.config.bindings) - 1, 0))
        elif key in ("enter", "e") and self.config.bindings:
            self.draft = list(self.config.bindings[self.cursor].keys)
            self.capturing = False
            self.mode = EditorMode.EDIT
        elif key == "s":
            self.mode = EditorMode.CONFIRM
        elif key == "r":
            self.config = KeyBindingsConfig.defaults()
            self.cursor = 0
        return OverlayAction.NONE

    def _handle_edit(self, key: str) -> OverlayAction:
        if self.capturing:
            self.capturing = False
            if key != "esc" and key not in self.draft:
                self.draft.append(key)
            return OverlayAction.NONE
        if key == "a":
            self.capturing = True
        elif key == "d":
            self.draft = self.draft[:-1]
        elif key == "enter":
            self.config.set_binding(self.current_command, self.draft)
            self.mode = EditorMode.LIST
        elif key == "esc":
            self.mode = EditorMode.LIST
        return OverlayAction.NONE

    def _handle_confirm(self, key: str) -> OverlayAction:
        if key == "y":
            conflicts = self.config.validate_bindings()
            if conflicts:
                self.error = _describe_conflicts(conflicts)
                self.mode = EditorMode.LIST
                return OverlayAction.ERROR
            return OverlayAction.SAVE
        if key in ("n", "esc"):
            self.mode = EditorMode.LIST
        return OverlayAction.NONE

    def render(self, width: int, height: int) -> list[str]:
        if self.mode is EditorMode.CONFIRM:
            return ["Save key bindings? (y/n)"]
        if self.mode is EditorMode.EDIT:
            hint = "press a key…" if self.capturing else "a add, d drop last, enter apply, esc back"
            return [f"Editing {self.current_command}", f"Keys: {', '.join(self.draft) or '(none)'}", hint]
        lines = ["Key bindings (enter edit, s save, r reset, q close)"]
        for i, binding in enumerate(self.config.bindings[: max(height - 2, 1)]):
            marker = ">" if i == self.cursor else " "
            lines.append(f"{marker} {binding.command:<18} {', '.join(binding.keys)}"[:width])
        if self.error:
            lines.append(self.error[:width])
        return lines


def _describe_conflicts(conflicts: dict[str, list[str]]) -> str:
    parts = []
    for key, commands in sorted(conflicts.items()):
        if key:
            parts.append(f"'{key}' bound to {', '.join(commands)}")
        else:
            parts.append(f"no keys for {', '.join(commands)}")
    return "conflicting key bindings: " + "; ".join(parts)


STATUS_ORDER = ("A", "M", "D", "R", "C")
STATUS_LABELS = {"A": "Added", "M": "Modified", "D": "Deleted", "R": "Renamed", "C": "Copied"}


class GitStatusOverlay:
    """Bookmark navigation: left shows older views, right newer, anything else closes."""

    def __init__(self, branch: str, cursor: NavigationCursor) -> None:
        self.branch = branch
        self.cursor = cursor

    def handle_key(self, key: str) -> OverlayAction:
        if key == "left":
            self.cursor.older()
            return OverlayAction.NONE
        if key == "right":
            self.cursor.newer()
            return OverlayAction.NONE
        return OverlayAction.CLOSE

    def content(self) -> str:
        if self.cursor.cached_content is not None:
            return self.cursor.cached_content
        view = self.cursor.current
        lines = [
            f"Branch: {self.branch}",
            f"{view.title} ({self.cursor.index + 1}/{len(self.cursor.views)})",
            view.description,
            f"{view.from_commit[:7] or 'branch start'} -> {view.to_commit[:7]}",
            "",
        ]
        if not view.files:
            lines.append("No changes")
        groups: dict[str, list[str]] = {}
        for file_status in view.files:
            groups.setdefault(file_status.status[:1] or "?", []).append(file_status.path)
        ordered = [s for s in STATUS_ORDER if s in groups] + sorted(s for s in groups if s not in STATUS_ORDER)
        for status in ordered:
            lines.append(f"{STATUS_LABELS.get(status, status)}:")
            lines.extend(f"  {status} {path}" for path in groups[status])
        if self.cursor.can_navigate:
            older = "<- older" if self.cursor.can_go_older else ""
            newer = "newer ->" if self.cursor.can_go_newer else ""
            lines.extend(["", f"{older}  {newer}".strip()])
        self.cursor.cached_content = "\n".join(lines)
        return self.cursor.cached_content

    def render(self, width: int, height: int) -> list[str]:
        return [line[:width] for line in self.content().splitlines()[:height]]
