"""Unit tests for the executed-command log."""

import subprocess
from datetime import datetime, timedelta

from squadron.core import git_worktree
from squadron.core.command_log import CommandLog


def _ticking_clock():
    now = [datetime(2024, 5, 17, 13, 14, 15)]

    def tick():
        now[0] += timedelta(seconds=1)
        return now[0]

    return tick


def _log():
    log = CommandLog(clock=_ticking_clock())
    log.record(["git", "status"], "/repo", source="git")
    log.record(["tmux", "ls"], source="tmux")
    log.record(["git", "status"], "/repo", source="git")
    return log


def test_empty_log_says_so() -> None:
    assert CommandLog().render() == "No commands executed yet"


def test_render_lists_newest_first_with_cwd() -> None:
    lines = _log().render().splitlines()
    assert lines == [
        "13:14:18 [git] git status",
        "      in /repo",
        "13:14:17 [tmux] tmux ls",
        "13:14:16 [git] git status",
        "      in /repo",
    ]


def test_distinct_collapses_repeats_with_count() -> None:
    lines = _log().render(distinct=True).splitlines()
    assert lines[0] == "[distinct]"
    assert lines[2] == "13:14:18 [git] git status (x2)"
    assert lines[4] == "13:14:17 [tmux] tmux ls"
    assert len(lines) == 5


def test_sort_groups_by_command() -> None:
    lines = _log().render(sort_by_command=True).splitlines()
    assert lines[0] == "[sorted]"
    commands = [line for line in lines[2:] if not line.startswith("      in")]
    assert commands == ["13:14:18 [git] git status", "13:14:16 [git] git status", "13:14:17 [tmux] tmux ls"]


def test_log_is_bounded() -> None:
    log = CommandLog(max_entries=2)
    for n in range(5):
        log.record(["git", f"c{n}"])
    assert [entry.args for entry in log.entries()] == [("c3",), ("c4",)]


def test_run_git_records_the_command(monkeypatch) -> None:
    log = CommandLog()
    monkeypatch.setattr(git_worktree, "COMMAND_LOG", log)
    monkeypatch.setattr(
        git_worktree.subprocess,
        "run",
        lambda cmd, **kwargs: subprocess.CompletedProcess(cmd, 0, stdout="main\n", stderr=""),
    )

    assert git_worktree.run_git(["branch", "--show-current"], "/repo") == "main"

    (entry,) = log.entries()
    assert (entry.command, entry.args, entry.cwd, entry.source) == ("git", ("branch", "--show-current"), "/repo", "git")
