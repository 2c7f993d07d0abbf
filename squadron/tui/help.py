"""Help screens and the continuations attached to them."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from squadron.config.schema import KeyBindingsConfig


class HelpKind(Enum):
    """Help screens; the value is the bit in the persisted seen-mask."""

    GENERAL = 1
    INSTANCE_START = 1 << 1
    ATTACH = 1 << 2
    CHECKOUT = 1 << 3

    @property
    def mask(self) -> int:
        return self.value

    @property
    def always_shown(self) -> bool:
        return self is HelpKind.GENERAL


class ContinuationKind(str, Enum):
    ATTACH = "attach"
    PAUSE = "pause"


@dataclass(frozen=True)
class Continuation:
    """Deferred action to run when a help screen is dismissed (or skipped)."""

    kind: ContinuationKind
    title: str
    pane: int = 0


_SECTIONS: list[tuple[str, list[str]]] = [
    ("Managing Sessions", ["new", "new_with_prompt", "existing_branch", "kill", "up", "down", "enter"]),
    ("Git & Handoff", ["push", "checkout", "resume", "rebase", "bookmark", "git_status", "pr_review", "merge_prs"]),
    ("IDE & Tools", ["open_ide", "open_in_ide", "external_diff", "test"]),
    (
        "Navigation",
        ["tab", "scroll_up", "scroll_down", "scroll_lock", "home", "end", "page_up", "page_down",
         "prev_file", "next_file", "diff_all", "diff_last_commit", "prev_commit", "next_commit",
         "log_distinct", "log_sort"],
    ),
    ("Other", ["help", "error_log", "history", "edit_keybindings", "check_updates", "quit"]),
]


def general_help(bindings: KeyBindingsConfig) -> str:
    """General help built from the active key bindings."""
    lines = [
        "squadron",
        "",
        "Manage several AI coding sessions, each in its own git worktree and tmux session.",
    ]
    for header, commands in _SECTIONS:
        lines.extend(["", f"{header}:"])
        for command in commands:
            binding = bindings.get_binding(command)
            if binding is None or not binding.keys:
                continue
            keys = "/".join(binding.keys)
            lines.append(f"  {keys:<14} - {binding.help or command.replace('_', ' ')}")
    lines.extend(["", "Press any key to close"])
    return "\n".join(lines)


def instance_start_help(branch: str, program: str) -> str:
    return "\n".join(
        [
            "Instance Created",
            "",
            "New session created:",
            f"  * Git branch: {branch} (isolated worktree)",
            f"  * {program} running in background tmux session",
            "",
            "Managing:",
            "  enter/o - Attach to the session to interact with it directly",
            "  tab     - Switch between preview, diff and terminal tabs",
            "  D       - Kill (delete) the selected session",
            "",
            "Git & Handoff:",
            "  c - Checkout this instance's branch",
            "  p - Commit and push branch",
            "  b - Rebase with main branch",
            "  B - Create bookmark commit",
            "  g - Show git status",
        ]
    )


ATTACH_HELP = "\n".join(
    [
        "Attaching to Instance",
        "",
        "You are about to attach to the tmux session.",
        "",
        "Session Control:",
        "  prefix d      - Detach from session",
        "  prefix ctrl-r - Detach and reload the session",
        "",
        "When attached, you interact directly with the AI session.",
        "Detach to return to squadron.",
    ]
)

CHECKOUT_HELP = "\n".join(
    [
        "Checkout Instance",
        "",
        "Changes will be committed locally and the session paused.",
        "",
        "You can now check out the branch in your main repository to review or modify the changes.",
        "When resuming, the session will continue from where you left off.",
        "",
        "  r - Resume a paused session",
        "  p - Commit and push branch",
    ]
)
