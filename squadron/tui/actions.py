"""Functions run by async commands.

Each function runs on a worker thread, may block, and returns exactly one
event. Exceptions are converted to ErrorEvent by ``AsyncCommand.run``.
"""

from __future__ import annotations

import os
import shlex
import subprocess
import time
from dataclasses import replace
from pathlib import Path
from typing import Callable, Sequence

from loguru import logger

from squadron.config.app_state import AppState
from squadron.config.loader import save_keybindings
from squadron.config.schema import KeyBindingsConfig
from squadron.constants import HISTORY_COMMIT_COUNT, TERMINAL_PANE_INDEX
from squadron.core.errors import GitError, InstanceError, SquadronError
from squadron.core.git_worktree import GitWorktree, list_remote_branches
from squadron.core.instance import Instance, InstanceStatus, update_commit_message
from squadron.core.pull_request import (
    PRComment,
    PullRequest,
    create_pull_request,
    format_comment_as_prompt,
    get_current_pr,
    list_open_prs,
    merge_commit_message,
    merge_pr_body,
)
from squadron.core.storage import Storage
from squadron.core.update_checker import UpdateChecker
from squadron.paths import WORKTREES_DIR
from squadron.tui.events import (
    AttachFinished,
    BranchesLoaded,
    CommentsProcessed,
    DiffLoaded,
    GitStatusLoaded,
    HistoryLoaded,
    InstanceChanged,
    InstanceKilled,
    InstancePoll,
    InstancesPolled,
    InstanceStarted,
    MessageEvent,
    OpenPullRequestsLoaded,
    PullRequestLoaded,
    PullRequestsMerged,
    RebaseProgress,
    StateSaved,
)
from squadron.tui.navigation import build_navigation_views

PREPARE_REBASE = "prepare_rebase"

# Text shown by each program when it waits for a yes/no answer
_APPROVAL_PROMPTS = {
    "claude": "No, and tell Claude what to do differently",
    "aider": "(Y)es/(N)o/(D)on't ask again",
    "gemini": "Yes, allow once",
}


def _require_running(instance: Instance) -> None:
    if not instance.started:
        raise InstanceError(f"instance '{instance.title}' has not been started")
    if instance.paused:
        raise InstanceError(f"instance '{instance.title}' is paused")


def start_instance(instance: Instance, prompt: str | None, storage: Storage) -> InstanceStarted:
    """Create the worktree and tmux session, then send the optional first prompt.

    The record itself is left alone; the dispatcher applies the returned state.
    """
    try:
        state = instance.start(first_time=True)
        started = instance.with_state(state)
        if prompt:
            started.send_prompt(prompt)
    except SquadronError as e:
        logger.warning(f"Failed to start instance '{instance.title}': {e}")
        return InstanceStarted(instance=instance, error=str(e))
    storage.save_instance(started)
    return InstanceStarted(instance=instance, state=state)


def restore_instance(instance: Instance) -> InstanceChanged:
    """Re-attach a stored instance to its existing worktree, restarting tmux if needed."""
    try:
        state = instance.start(first_time=False)
    except SquadronError as e:
        logger.warning(f"Failed to restore '{instance.title}': {e}")
        return InstanceChanged(
            title=instance.title,
            state=replace(instance.state(), status=InstanceStatus.READY),
            error=f"failed to restore '{instance.title}': {e}",
        )
    return InstanceChanged(title=instance.title, state=state)


def kill_instance(instance: Instance, storage: Storage) -> InstanceKilled:
    """Remove from storage, then tear down; falls back to a forced teardown."""
    storage.delete_instance(instance.title)
    try:
        instance.kill()
    except SquadronError as e:
        logger.warning(f"Kill of '{instance.title}' failed ({e}); forcing cleanup")
        errors = instance.force_kill()
        if errors:
            return InstanceKilled(title=instance.title, error="; ".join(errors))
    return InstanceKilled(title=instance.title)


def push_instance(instance: Instance) -> MessageEvent:
    _require_running(instance)
    worktree = instance.get_worktree()
    worktree.push_changes(update_commit_message(instance.title), with_force=True)
    return MessageEvent(f"Pushed changes from '{instance.title}'")


def prepare_rebase(instance: Instance) -> RebaseProgress:
    """Resolve main and capture the branch and HEAD SHA before rebasing.

    Raises:
        GitError: if main cannot be resolved, the worktree is dirty, or HEAD
            is detached (nothing to restore on failure)
    """
    _require_running(instance)
    worktree = instance.get_worktree()
    main_branch = worktree.get_main_branch()
    if worktree.is_dirty():
        raise GitError("cannot rebase: the session has uncommitted changes")
    branch = worktree.get_current_branch()
    original_sha = worktree.get_current_commit_sha()
    if not branch or branch == "HEAD" or not original_sha:
        raise GitError(f"cannot rebase '{instance.title}': could not determine its branch and commit")
    return RebaseProgress(
        title=instance.title,
        status=f"Rebasing '{instance.title}' onto {main_branch}…",
        branch=branch,
        original_sha=original_sha,
        main_branch=main_branch,
    )


def run_rebase(instance: Instance, main_branch: str) -> RebaseProgress:
    instance.get_worktree().rebase_with_main(main_branch)
    return RebaseProgress(title=instance.title, status=f"Rebased '{instance.title}' onto {main_branch}", complete=True)


def list_branches(repo_path: str, request_id: int) -> BranchesLoaded:
    return BranchesLoaded(request_id=request_id, branches=tuple(list_remote_branches(repo_path)))


def list_open_pull_requests(repo_path: str, request_id: int) -> OpenPullRequestsLoaded:
    return OpenPullRequestsLoaded(request_id=request_id, pull_requests=tuple(list_open_prs(repo_path)))


def merge_pull_requests(repo_path: str, pull_requests: Sequence[PullRequest], branch: str) -> PullRequestsMerged:
    """Cherry-pick each PR onto a fresh branch, push it and open one PR for the lot.

    A PR that fails to apply is skipped and reported; the command only fails
    when none of them applied. The temporary worktree is always removed.

    Raises:
        GitError: if no PR could be applied or the branch cannot be pushed
        PullRequestError: if gh cannot create the combined PR
    """
    worktree = GitWorktree(Path(repo_path), WORKTREES_DIR / branch, branch)
    worktree.setup()
    merged: list[PullRequest] = []
    failures: list[str] = []
    try:
        for pr in pull_requests:
            try:
                worktree.fetch_branch(pr.head_ref)
                worktree.cherry_pick_branch(pr.head_ref)
            except GitError as e:
                logger.warning(f"Skipping PR #{pr.number}: {e}")
                failures.append(f"PR #{pr.number}: {e}")
                continue
            merged.append(pr)
        if not merged:
            raise GitError("no pull requests could be merged: " + "; ".join(failures))
        worktree.commit_merged_changes(merge_commit_message(merged))
        worktree.push_branch()
        title = "Merge PRs: " + ", ".join(str(pr.number) for pr in merged)
        pr_number = create_pull_request(str(worktree.worktree_path), title, merge_pr_body(merged), branch)
    finally:
        for error in worktree.force_cleanup():
            logger.warning(f"Cleanup of merge worktree {branch}: {error}")
    return PullRequestsMerged(
        branch=branch,
        merged=tuple(pr.number for pr in merged),
        failures=tuple(failures),
        pr_number=pr_number,
    )


def fetch_pull_request(instance: Instance, request_id: int) -> PullRequestLoaded:
    _require_running(instance)
    pull_request = get_current_pr(instance.worktree_path)
    pull_request.fetch_comments(instance.worktree_path)
    return PullRequestLoaded(request_id=request_id, title=instance.title, pull_request=pull_request)


def process_comments(
    instance: Instance,
    comments: Sequence[PRComment],
    delay_s: float,
    sleep: Callable[[float], None] = time.sleep,
) -> CommentsProcessed:
    """Send accepted comments to the AI pane one at a time."""
    _require_running(instance)
    total = len(comments)
    for index, comment in enumerate(comments, start=1):
        instance.send_prompt(format_comment_as_prompt(comment, index, total))
        if index < total:
            sleep(delay_s)
    logger.info(f"Sent {total} PR comments to '{instance.title}'")
    return CommentsProcessed(title=instance.title, sent=total)


def create_bookmark(instance: Instance, message: str) -> MessageEvent:
    _require_running(instance)
    sha = instance.get_worktree().create_bookmark_commit(message)
    return MessageEvent(f"Bookmark created at {sha[:7]}")


def load_git_status(instance: Instance) -> GitStatusLoaded:
    """Resolve bookmark views and their file lists."""
    _require_running(instance)
    worktree = instance.get_worktree()
    views = build_navigation_views(worktree.get_all_bookmark_commits(), worktree)
    return GitStatusLoaded(title=instance.title, branch=instance.branch, views=tuple(views))


def load_history(instance: Instance) -> HistoryLoaded:
    _require_running(instance)
    commits = instance.get_worktree().get_commit_history(HISTORY_COMMIT_COUNT)
    if not commits:
        return HistoryLoaded(title=instance.title, content="No commits yet.")
    lines = [f"{c.short_sha} {c.when:<16} {c.author:<20} {c.subject}" for c in commits]
    return HistoryLoaded(title=instance.title, content="\n".join(lines))


def load_commit_diff(instance: Instance, commit_index: int) -> DiffLoaded:
    """Diff of the commit ``commit_index`` steps back from HEAD."""
    _require_running(instance)
    worktree = instance.get_worktree()
    commits = worktree.get_commit_history(commit_index + 1)
    if len(commits) <= commit_index:
        raise GitError("no older commits")
    return DiffLoaded(
        title=instance.title,
        commit_index=commit_index,
        content=worktree.get_commit_diff(commits[commit_index].sha),
    )


def attach_instance(instance: Instance, pane: int) -> AttachFinished:
    """Runs with the terminal handed over; blocks until the user detaches."""
    _require_running(instance)
    logger.info(f"Attaching to '{instance.title}' pane {pane}")
    reload_requested = instance.attach_to_pane(pane)
    return AttachFinished(title=instance.title, reload_requested=reload_requested)


def reload_instance(instance: Instance) -> InstanceChanged:
    return InstanceChanged(title=instance.title, state=instance.reload(), message="Session reloaded", reloaded=True)


def pause_instance(instance: Instance, storage: Storage) -> InstanceChanged:
    state = instance.pause()
    storage.save_instance(instance.with_state(state))
    return InstanceChanged(title=instance.title, state=state)


def resume_instance(instance: Instance, storage: Storage) -> InstanceChanged:
    state = instance.resume()
    storage.save_instance(instance.with_state(state))
    return InstanceChanged(title=instance.title, state=state)


def _awaiting_approval(program: str, content: str) -> bool:
    name = Path(shlex.split(program)[0]).name if program.strip() else ""
    marker = _APPROVAL_PROMPTS.get(name)
    return marker is not None and marker in content


def poll_instances(instances: Sequence[Instance], with_diff: bool) -> InstancesPolled:
    """Capture pane output (and optionally diffs) for every running instance.

    Failures are logged and skipped; polling is best effort.
    """
    polls: list[InstancePoll] = []
    for instance in instances:
        if not instance.started or instance.paused or instance.status is InstanceStatus.LOADING:
            continue
        try:
            updated = instance.has_updated()
            preview = instance.preview()
            terminal = instance.preview(TERMINAL_PANE_INDEX)
            diff = instance.get_worktree().get_diff() if with_diff else ""
        except SquadronError as e:
            logger.debug(f"Poll of '{instance.title}' failed: {e}")
            continue
        if instance.auto_yes and _awaiting_approval(instance.program, preview):
            try:
                instance.tap_enter()
            except SquadronError as e:
                logger.warning(f"Auto-yes for '{instance.title}' failed: {e}")
        polls.append(InstancePoll(title=instance.title, updated=updated, preview=preview, diff=diff, terminal=terminal))
    return InstancesPolled(polls=tuple(polls))


def open_ide(ide_command: str, path: str) -> MessageEvent:
    """Launch the IDE detached from the terminal."""
    args = [*shlex.split(ide_command), path]
    try:
        subprocess.Popen(args, stdout=subprocess.DEVNULL, stderr=subprocess.DEVNULL, start_new_session=True)
    except OSError as e:
        raise InstanceError(f"failed to run {args[0]}: {e}") from e
    return MessageEvent(f"Opened {os.path.basename(path) or path} in {args[0]}")


def run_tests(instance: Instance, test_command: str) -> MessageEvent:
    instance.run_in_terminal_pane(test_command)
    return MessageEvent(f"Running '{test_command}' in '{instance.title}'")


def external_diff(instance: Instance, diff_tool: str | None) -> InstanceChanged:
    """Runs with the terminal handed over to git difftool."""
    _require_running(instance)
    args = ["git", "difftool", "-y"]
    if diff_tool:
        args.append(f"--tool={diff_tool}")
    if instance.base_commit_sha:
        args.append(instance.base_commit_sha)
    result = subprocess.run(args, cwd=instance.worktree_path, check=False)
    if result.returncode != 0:
        raise GitError(f"git difftool exited with {result.returncode}", command=args)
    return InstanceChanged(title=instance.title)


def save_keybindings_file(config: KeyBindingsConfig) -> MessageEvent:
    try:
        save_keybindings(config)
    except OSError as e:
        raise SquadronError(f"failed to save key bindings: {e}") from e
    return MessageEvent("Key bindings saved")


def save_app_state(state: AppState) -> StateSaved:
    state.save()
    return StateSaved(path=str(state.path))


def check_updates(checker: UpdateChecker) -> MessageEvent:
    previous = checker.snapshot().checked_at
    status = checker.check_now()
    if status.checked_at is None or status.checked_at == previous:
        raise SquadronError("could not check for updates, see the log")
    if status.available:
        return MessageEvent(f"Update available: {status.commits_behind} new commit(s) on origin")
    return MessageEvent("squadron is up to date")
