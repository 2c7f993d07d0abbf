"""Global key table.

Key strings use the names produced by ``squadron.tui.app.key_string``:
printable characters as-is, plus "up", "shift+up", "ctrl+h", "enter", "esc", and so on.
"""

from __future__ import annotations

from enum import Enum


class KeyName(str, Enum):
    """Commands reachable from the global key table.

    Values double as the ``command`` field in keybindings.json.
    """

    UP = "up"
    DOWN = "down"
    HOME = "home"
    END = "end"
    PAGE_UP = "page_up"
    PAGE_DOWN = "page_down"
    SCROLL_UP = "scroll_up"
    SCROLL_DOWN = "scroll_down"
    PREV_FILE = "prev_file"
    NEXT_FILE = "next_file"
    DIFF_ALL = "diff_all"
    DIFF_LAST_COMMIT = "diff_last_commit"
    PREV_COMMIT = "prev_commit"
    NEXT_COMMIT = "next_commit"
    SCROLL_LOCK = "scroll_lock"
    ENTER = "enter"
    NEW = "new"
    NEW_WITH_PROMPT = "new_with_prompt"
    EXISTING_BRANCH = "existing_branch"
    KILL = "kill"
    QUIT = "quit"
    TAB = "tab"
    CHECKOUT = "checkout"
    RESUME = "resume"
    PUSH = "push"
    HELP = "help"
    ERROR_LOG = "error_log"
    OPEN_IDE = "open_ide"
    OPEN_IN_IDE = "open_in_ide"
    REBASE = "rebase"
    BOOKMARK = "bookmark"
    PR_REVIEW = "pr_review"
    HISTORY = "history"
    EDIT_KEYBINDINGS = "edit_keybindings"
    TEST = "test"
    EXTERNAL_DIFF = "external_diff"
    GIT_STATUS = "git_status"
    MERGE_PRS = "merge_prs"
    CHECK_UPDATES = "check_updates"
    LOG_DISTINCT = "log_distinct"
    LOG_SORT = "log_sort"


# (command, keys, help) in display order
DEFAULT_BINDINGS: list[tuple[KeyName, list[str], str]] = [
    # Navigation
    (KeyName.UP, ["up", "k"], "up"),
    (KeyName.DOWN, ["down", "j"], "down"),
    (KeyName.HOME, ["home", "ctrl+a", "ctrl+home"], "scroll to top"),
    (KeyName.END, ["end", "ctrl+e", "ctrl+end"], "scroll to bottom"),
    (KeyName.PAGE_UP, ["pgup"], "page up"),
    (KeyName.PAGE_DOWN, ["pgdown"], "page down"),
    # Instance management
    (KeyName.NEW, ["n"], "new"),
    (KeyName.NEW_WITH_PROMPT, ["N"], "new with prompt"),
    (KeyName.EXISTING_BRANCH, ["e"], "existing branch"),
    (KeyName.KILL, ["D"], "kill"),
    (KeyName.CHECKOUT, ["c"], "checkout"),
    (KeyName.RESUME, ["r"], "resume"),
    (KeyName.PUSH, ["p"], "push branch"),
    (KeyName.REBASE, ["b"], "rebase"),
    (KeyName.BOOKMARK, ["B"], "bookmark"),
    (KeyName.PR_REVIEW, ["R"], "review PR comments"),
    (KeyName.MERGE_PRS, ["M"], "merge PRs"),
    # Diff view
    (KeyName.SCROLL_UP, ["shift+up"], "scroll"),
    (KeyName.SCROLL_DOWN, ["shift+down"], "scroll"),
    (KeyName.PREV_FILE, ["alt+up"], "prev file"),
    (KeyName.NEXT_FILE, ["alt+down"], "next file"),
    (KeyName.DIFF_ALL, ["a"], "all changes"),
    (KeyName.DIFF_LAST_COMMIT, ["d"], "last commit diff"),
    (KeyName.PREV_COMMIT, ["left"], "prev commit"),
    (KeyName.NEXT_COMMIT, ["right"], "next commit"),
    (KeyName.SCROLL_LOCK, ["s"], "toggle scroll lock"),
    # Command log
    (KeyName.LOG_DISTINCT, ["u"], "distinct commands"),
    (KeyName.LOG_SORT, ["S"], "sort by command"),
    # Actions
    (KeyName.ENTER, ["enter", "o"], "open"),
    (KeyName.TAB, ["tab"], "switch tab"),
    (KeyName.HELP, ["?"], "help"),
    (KeyName.QUIT, ["q"], "quit"),
    (KeyName.ERROR_LOG, ["l"], "error log"),
    (KeyName.OPEN_IDE, ["w"], "open IDE"),
    (KeyName.OPEN_IN_IDE, ["i"], "open in IDE"),
    (KeyName.HISTORY, ["ctrl+h"], "view history"),
    (KeyName.EDIT_KEYBINDINGS, ["K"], "edit keys"),
    (KeyName.TEST, ["t"], "run tests"),
    (KeyName.EXTERNAL_DIFF, ["x"], "external diff"),
    (KeyName.GIT_STATUS, ["g"], "git status"),
    (KeyName.CHECK_UPDATES, ["U"], "check for updates"),
]


def default_key_map() -> dict[str, KeyName]:
    """Key string -> command for the built-in bindings."""
    key_map: dict[str, KeyName] = {}
    for name, key_strings, _help in DEFAULT_BINDINGS:
        for key in key_strings:
            key_map[key] = name
    return key_map
