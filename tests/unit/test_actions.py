"""Unit tests for async command functions, using fake instances."""

import pytest

from squadron.core.errors import GitError, InstanceError, SquadronError, TmuxError
from squadron.core.git_worktree import CommitInfo
from squadron.core.instance import Instance, InstanceStatus
from squadron.core.pull_request import CommentKind, PRComment, PullRequest
from squadron.core.update_checker import UpdateStatus
from squadron.tui import actions
from squadron.tui.events import InstancePoll, RebaseProgress


class FakeWorktree:
    def __init__(self, dirty=False, commits=()):
        self.dirty = dirty
        self.branch = "squadron/alpha"
        self.sha = "abc123"
        self.commits = list(commits)
        self.diff = "diff --git a/x b/x"

    def get_main_branch(self):
        return "main"

    def is_dirty(self):
        return self.dirty

    def get_current_branch(self):
        return self.branch

    def get_current_commit_sha(self):
        return self.sha

    def get_diff(self):
        return self.diff

    def get_commit_history(self, n):
        return self.commits[:n]

    def get_commit_diff(self, sha):
        return f"show {sha}"


class FakeInstance:
    def __init__(self, title="alpha", program="claude", auto_yes=False, preview="", fail_poll=False):
        self.title = title
        self.program = program
        self.auto_yes = auto_yes
        self.branch = f"squadron/{title}"
        self.started = True
        self.status = InstanceStatus.RUNNING
        self.worktree = FakeWorktree()
        self._preview = preview
        self.fail_poll = fail_poll
        self.prompts = []
        self.taps = 0

    @property
    def paused(self):
        return self.status is InstanceStatus.PAUSED

    def get_worktree(self):
        return self.worktree

    def send_prompt(self, text):
        self.prompts.append(text)

    def has_updated(self):
        if self.fail_poll:
            raise TmuxError("session gone")
        return True

    def preview(self, pane=1):
        return self._preview if pane == 1 else "$ "

    def tap_enter(self):
        self.taps += 1


def _comments(n):
    return [PRComment(id=i, kind=CommentKind.ISSUE_COMMENT, author="ann", body=f"comment {i}") for i in range(n)]


def test_process_comments_sends_each_with_delay_between() -> None:
    instance = FakeInstance()
    sleeps = []

    event = actions.process_comments(instance, _comments(3), 2.0, sleep=sleeps.append)

    assert event.sent == 3
    assert len(instance.prompts) == 3
    assert instance.prompts[0].startswith("Processing PR comment 1 of 3 from @ann")
    assert sleeps == [2.0, 2.0]


def test_process_comments_refuses_paused_instance() -> None:
    instance = FakeInstance()
    instance.status = InstanceStatus.PAUSED
    with pytest.raises(InstanceError, match="paused"):
        actions.process_comments(instance, _comments(1), 0, sleep=lambda _s: None)


def test_prepare_rebase_captures_branch_and_sha() -> None:
    event = actions.prepare_rebase(FakeInstance())

    assert event == RebaseProgress(
        title="alpha",
        status="Rebasing 'alpha' onto main…",
        branch="squadron/alpha",
        original_sha="abc123",
        main_branch="main",
    )


def test_prepare_rebase_rejects_dirty_worktree() -> None:
    instance = FakeInstance()
    instance.worktree.dirty = True
    with pytest.raises(GitError, match="uncommitted"):
        actions.prepare_rebase(instance)


def test_prepare_rebase_rejects_detached_head() -> None:
    instance = FakeInstance()
    instance.worktree.branch = ""
    with pytest.raises(GitError, match="could not determine its branch and commit"):
        actions.prepare_rebase(instance)


def test_poll_skips_loading_paused_and_failing_instances() -> None:
    loading = FakeInstance("loading")
    loading.status = InstanceStatus.LOADING
    paused = FakeInstance("paused")
    paused.status = InstanceStatus.PAUSED
    broken = FakeInstance("broken", fail_poll=True)
    healthy = FakeInstance("healthy", preview="working")

    event = actions.poll_instances([loading, paused, broken, healthy], with_diff=True)

    assert event.polls == (
        InstancePoll(title="healthy", updated=True, preview="working", diff="diff --git a/x b/x", terminal="$ "),
    )


def test_poll_auto_yes_taps_enter_on_approval_prompt() -> None:
    waiting = FakeInstance(
        "waiting", program="/usr/local/bin/claude --verbose", auto_yes=True,
        preview="1. Yes\n2. No, and tell Claude what to do differently",
    )
    idle = FakeInstance("idle", auto_yes=True, preview="thinking")
    manual = FakeInstance("manual", preview="No, and tell Claude what to do differently")

    actions.poll_instances([waiting, idle, manual], with_diff=False)

    assert (waiting.taps, idle.taps, manual.taps) == (1, 0, 0)


def test_history_formats_commits() -> None:
    instance = FakeInstance()
    instance.worktree.commits = [CommitInfo("f" * 40, "fffffff", "Ada", "1 hour ago", "Add parser")]

    event = actions.load_history(instance)
    assert event.content.startswith("fffffff 1 hour ago")
    assert event.content.endswith("Add parser")


def test_history_without_commits() -> None:
    assert actions.load_history(FakeInstance()).content == "No commits yet."


def test_commit_diff_selects_commit_by_index() -> None:
    instance = FakeInstance()
    instance.worktree.commits = [CommitInfo("sha0", "s0", "a", "now", "x"), CommitInfo("sha1", "s1", "a", "then", "y")]

    event = actions.load_commit_diff(instance, 1)
    assert event.commit_index == 1
    assert event.content == "show sha1"
    with pytest.raises(GitError, match="no older commits"):
        actions.load_commit_diff(instance, 2)


# Lifecycle results carry state instead of mutating the record


class FakeBackendWorktree:
    base_commit_sha = "base123"

    def __init__(self):
        self.setups = 0
        self.removed = False

    def setup(self):
        self.setups += 1

    def setup_from_branch(self):
        self.setups += 1

    def commit_changes(self, message):
        return False

    def remove(self):
        self.removed = True

    def force_cleanup(self):
        return []


class FakeTmux:
    def __init__(self, fail_start=False):
        self.fail_start = fail_start
        self.started_in = []
        self.sent = []
        self.killed = 0

    def is_alive(self):
        return False

    def start(self, working_dir):
        if self.fail_start:
            raise TmuxError("no server running")
        self.started_in.append(working_dir)

    def kill(self):
        self.killed += 1

    def send_text_to_primary_pane(self, text):
        self.sent.append(text)


def _backed_instance(tmux=None, **fields):
    values = {
        "title": "alpha",
        "path": "/repo",
        "program": "claude",
        "branch": "squadron/alpha",
        "worktree_path": "/wt/alpha",
    }
    values.update(fields)
    return Instance(**values, worktree=FakeBackendWorktree(), tmux=tmux or FakeTmux())


def test_start_instance_returns_state_and_leaves_record_alone(storage) -> None:
    instance = _backed_instance()

    event = actions.start_instance(instance, "fix the bug", storage)

    assert event.error is None
    assert event.state.started is True
    assert event.state.status is InstanceStatus.RUNNING
    assert event.state.base_commit_sha == "base123"
    assert (instance.started, instance.status, instance.base_commit_sha) == (False, InstanceStatus.READY, "")
    assert instance.tmux.sent == ["fix the bug"]
    assert storage.records["alpha"]["base_commit_sha"] == "base123"


def test_restore_failure_returns_ready_state_with_error() -> None:
    instance = _backed_instance(FakeTmux(fail_start=True), status=InstanceStatus.LOADING, started=True)

    event = actions.restore_instance(instance)

    assert event.state.status is InstanceStatus.READY
    assert event.error == "failed to restore 'alpha': no server running"
    assert instance.status is InstanceStatus.LOADING


def test_pause_saves_paused_copy(storage) -> None:
    instance = _backed_instance(status=InstanceStatus.RUNNING, started=True)

    event = actions.pause_instance(instance, storage)

    assert event.state.status is InstanceStatus.PAUSED
    assert instance.status is InstanceStatus.RUNNING
    assert instance.worktree.removed is True
    assert storage.records["alpha"]["status"] == "paused"


def test_reload_reports_reloaded_state() -> None:
    instance = _backed_instance(status=InstanceStatus.RUNNING, started=True)

    event = actions.reload_instance(instance)

    assert event.reloaded is True
    assert event.message == "Session reloaded"
    assert event.state.status is InstanceStatus.RUNNING
    assert instance.tmux.started_in == ["/wt/alpha"]


# Update check


class FakeChecker:
    def __init__(self, before, after):
        self.before = before
        self.after = after

    def snapshot(self):
        return self.before

    def check_now(self):
        return self.after


def test_check_updates_reports_new_commits() -> None:
    checker = FakeChecker(UpdateStatus(), UpdateStatus(available=True, commits_behind=3, checked_at=10.0))
    assert actions.check_updates(checker).text == "Update available: 3 new commit(s) on origin"


def test_check_updates_reports_up_to_date() -> None:
    checker = FakeChecker(UpdateStatus(checked_at=5.0), UpdateStatus(checked_at=10.0))
    assert actions.check_updates(checker).text == "squadron is up to date"


def test_check_updates_failure_raises() -> None:
    stale = UpdateStatus(checked_at=5.0)
    with pytest.raises(SquadronError, match="could not check for updates"):
        actions.check_updates(FakeChecker(stale, stale))


# Multi-PR merge


class FakeMergeWorktree:
    def __init__(self, repo_path, worktree_path, branch_name, conflicts=()):
        self.worktree_path = worktree_path
        self.branch_name = branch_name
        self.conflicts = set(conflicts)
        self.calls = []
        self.message = None

    def setup(self):
        self.calls.append("setup")

    def fetch_branch(self, branch):
        self.calls.append(f"fetch {branch}")

    def cherry_pick_branch(self, branch):
        if branch in self.conflicts:
            raise GitError(f"merge conflict cherry-picking c0ffee0 from {branch}")
        self.calls.append(f"pick {branch}")
        return 1

    def commit_merged_changes(self, message):
        self.message = message
        return False

    def push_branch(self):
        self.calls.append("push")

    def force_cleanup(self):
        self.calls.append("cleanup")
        return []


@pytest.fixture
def merge_setup(monkeypatch):
    created = []
    opened = []

    def _install(conflicts=()):
        def factory(repo_path, worktree_path, branch_name):
            worktree = FakeMergeWorktree(repo_path, worktree_path, branch_name, conflicts)
            created.append(worktree)
            return worktree

        def create(working_dir, title, body, head):
            opened.append((title, body, head))
            return 42

        monkeypatch.setattr(actions, "GitWorktree", factory)
        monkeypatch.setattr(actions, "create_pull_request", create)
        return created, opened

    return _install


def _open_prs():
    return (
        PullRequest(1, "Fix login", "OPEN", "fix/login", "main", "https://example.invalid/pr/1", "s1"),
        PullRequest(2, "Add docs", "OPEN", "docs", "main", "https://example.invalid/pr/2", "s2"),
    )


def test_merge_skips_conflicting_pr_and_opens_combined_pr(merge_setup) -> None:
    created, opened = merge_setup(conflicts={"docs"})

    event = actions.merge_pull_requests("/repo", _open_prs(), "merge-prs-1-2-20240517-131415")

    assert event.merged == (1,)
    assert event.failures == ("PR #2: merge conflict cherry-picking c0ffee0 from docs",)
    assert event.pr_number == 42
    worktree = created[0]
    assert worktree.branch_name == "merge-prs-1-2-20240517-131415"
    assert worktree.calls == ["setup", "fetch fix/login", "pick fix/login", "fetch docs", "push", "cleanup"]
    assert worktree.message == "Merge 1 PRs\n\n- PR #1: Fix login"
    title, body, head = opened[0]
    assert title == "Merge PRs: 1"
    assert "- #1: Fix login" in body
    assert head == "merge-prs-1-2-20240517-131415"


def test_merge_with_nothing_applied_fails_and_cleans_up(merge_setup) -> None:
    created, opened = merge_setup(conflicts={"fix/login", "docs"})

    with pytest.raises(GitError, match="no pull requests could be merged"):
        actions.merge_pull_requests("/repo", _open_prs(), "merge-prs-1-2-20240517-131415")

    assert "push" not in created[0].calls
    assert created[0].calls[-1] == "cleanup"
    assert opened == []


def test_list_open_pull_requests_tags_request(monkeypatch) -> None:
    monkeypatch.setattr(actions, "list_open_prs", lambda repo_path: list(_open_prs()))

    event = actions.list_open_pull_requests("/repo", 7)

    assert event.request_id == 7
    assert [pr.number for pr in event.pull_requests] == [1, 2]
