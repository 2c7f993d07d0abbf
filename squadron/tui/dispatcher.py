"""Event dispatcher: the single writer of TUI state.

``handle`` processes one event to completion. Blocking work is described as
an AsyncCommand and handed to the executor; its result comes back later as
another event.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Sequence

from loguru import logger

from squadron.config.app_state import AppState
from squadron.config.schema import AppConfig, KeyBindingsConfig
from squadron.constants import (
    BOOKMARK_PREFIX,
    BRANCH_TITLE_TIME_FORMAT,
    COMMENT_SEND_DELAY_S,
    ERROR_PREFIX_TIME_FORMAT,
    GLOBAL_INSTANCE_LIMIT,
    KEYUP_DELAY_S,
    LIST_TOP_ROW,
    MAX_TITLE_LENGTH,
    MESSAGE_DURATION_S,
    PRIMARY_PANE_INDEX,
    TERMINAL_PANE_INDEX,
)
from squadron.core.command_log import COMMAND_LOG, CommandLog
from squadron.core.errors import InstanceError, StorageError
from squadron.core.instance import Instance, InstanceStatus
from squadron.core.pull_request import merge_branch_name
from squadron.core.storage import Storage
from squadron.core.update_checker import UpdateChecker, UpdateStatus
from squadron.keys import KeyName
from squadron.tui import actions
from squadron.tui.commands import AsyncCommand, CommandExecutor
from squadron.tui.confirmation import ConfirmationGate, GateOutcome
from squadron.tui.events import (
    AttachFinished,
    BranchesLoaded,
    CommentsProcessed,
    ConfirmationResolved,
    DiffLoaded,
    ErrorEvent,
    Event,
    GitStatusLoaded,
    HistoryLoaded,
    InstanceChanged,
    InstanceKilled,
    InstancesPolled,
    InstanceStarted,
    KeyEvent,
    MessageEvent,
    MouseEvent,
    OpenPullRequestsLoaded,
    PullRequestLoaded,
    PullRequestsMerged,
    RebaseProgress,
    ResizeEvent,
    StateSaved,
    TickEvent,
    TimerId,
)
from squadron.tui.help import (
    ATTACH_HELP,
    CHECKOUT_HELP,
    Continuation,
    ContinuationKind,
    HelpKind,
    general_help,
    instance_start_help,
)
from squadron.tui.modes import (
    BookmarkingMode,
    CommentDetailMode,
    ConfirmingMode,
    DefaultMode,
    ErrorLogMode,
    GitStatusMode,
    HelpMode,
    HistoryMode,
    KeybindingsMode,
    Mode,
    NamingMode,
    PromptingMode,
    ReviewingPRMode,
    SelectingBranchMode,
    SelectingPRsMode,
)
from squadron.tui.navigation import NavigationCursor
from squadron.tui.overlays import (
    BranchSelectorOverlay,
    CommentDetailOverlay,
    ConfirmationOverlay,
    GitStatusOverlay,
    HistoryOverlay,
    KeybindingEditorOverlay,
    OverlayAction,
    PullRequestOverlay,
    PullRequestSelectorOverlay,
    TextInputOverlay,
    TextOverlay,
    naming_overlay,
)
from squadron.tui.rebase import RebaseTracker, RebaseUpdate

DIFF_PAGE = 10


class Tab(str, Enum):
    PREVIEW = "preview"
    DIFF = "diff"
    TERMINAL = "terminal"
    LOG = "log"


TAB_ORDER = (Tab.PREVIEW, Tab.DIFF, Tab.TERMINAL, Tab.LOG)


@dataclass(frozen=True)
class Banner:
    text: str
    is_error: bool


def diff_files(diff: str) -> list[str]:
    """File paths in a unified diff, in order of appearance."""
    files: list[str] = []
    for line in diff.splitlines():
        if line.startswith("diff --git a/") and " b/" in line:
            files.append(line.rsplit(" b/", 1)[1])
    return files


class Dispatcher:
    """Owns the mode, instance list, banner and trackers; mutated only by ``handle``."""

    def __init__(
        self,
        executor: CommandExecutor,
        storage: Storage,
        update_checker: UpdateChecker,
        *,
        config: AppConfig,
        keybindings: KeyBindingsConfig,
        app_state: AppState,
        repo_path: str,
        instances: Sequence[Instance] = (),
        clock: Callable[[], datetime] = datetime.now,
        command_log: CommandLog = COMMAND_LOG,
    ) -> None:
        self.executor = executor
        self.storage = storage
        self.update_checker = update_checker
        self.config = config
        self.keybindings = keybindings
        self.key_map = keybindings.to_key_map()
        self.app_state = app_state
        self.repo_path = repo_path
        self.clock = clock
        self.command_log = command_log

        self.mode: Mode = DefaultMode()
        self.gate = ConfirmationGate()
        self.rebase = RebaseTracker()
        self.instances: list[Instance] = list(instances)
        self.selected_index = 0
        self.running = True

        self.error_log: list[str] = []
        self.banner: Banner | None = None
        self.highlighted_key: str | None = None
        self.update_status = UpdateStatus()
        self.width = 0
        self.height = 0

        self.active_tab = Tab.PREVIEW
        self.previews: dict[str, str] = {}
        self.terminals: dict[str, str] = {}
        self.diffs: dict[str, str] = {}
        self.commit_diff = ""
        self.diff_commit_index: int | None = None
        self.scroll = 0
        self.scroll_lock = False
        self.focus_path: str | None = None
        self.log_distinct = False
        self.log_sorted = False

        self._banner_generation = 0
        self._keyup_generation = 0
        self._request_id = 0
        self._pr_request_id: int | None = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Restore stored instances and arm the poll timer."""
        for instance in self.instances:
            instance.prepare()
            if instance.paused:
                continue
            instance.status = InstanceStatus.LOADING
            self._schedule("restore_instance", actions.restore_instance, instance)
        self._arm_poll()

    @property
    def selected(self) -> Instance | None:
        if not self.instances:
            return None
        return self.instances[min(self.selected_index, len(self.instances) - 1)]

    def _find(self, title: str) -> Instance | None:
        for instance in self.instances:
            if instance.title == title:
                return instance
        return None

    # ------------------------------------------------------------------
    # Event entry point
    # ------------------------------------------------------------------

    def handle(self, event: Event) -> None:
        """Process one event."""
        if self.gate.has_decision:
            self._run_pending_action(event)
            return

        self.update_status = self.update_checker.snapshot()

        if isinstance(event, KeyEvent):
            self._handle_key(event.key)
        elif isinstance(event, MouseEvent):
            self._handle_mouse(event)
        elif isinstance(event, ResizeEvent):
            self.width, self.height = event.width, event.height
        elif isinstance(event, TickEvent):
            self._handle_tick(event)
        elif isinstance(event, ErrorEvent):
            self._on_error(event.message)
        elif isinstance(event, MessageEvent):
            self._show_message(event.text)
        elif isinstance(event, InstanceStarted):
            self._on_instance_started(event)
        elif isinstance(event, InstanceKilled):
            self._on_instance_killed(event)
        elif isinstance(event, BranchesLoaded):
            self._on_branches_loaded(event)
        elif isinstance(event, PullRequestLoaded):
            self._on_pull_request_loaded(event)
        elif isinstance(event, RebaseProgress):
            self._on_rebase_progress(event)
        elif isinstance(event, AttachFinished):
            self._on_attach_finished(event)
        elif isinstance(event, GitStatusLoaded):
            self._on_git_status_loaded(event)
        elif isinstance(event, HistoryLoaded):
            self._on_history_loaded(event)
        elif isinstance(event, InstancesPolled):
            self._on_instances_polled(event)
        elif isinstance(event, CommentsProcessed):
            self._show_message(f"Sent {event.sent} comments to '{event.title}'")
        elif isinstance(event, DiffLoaded):
            self._on_diff_loaded(event)
        elif isinstance(event, InstanceChanged):
            self._on_instance_changed(event)
        elif isinstance(event, OpenPullRequestsLoaded):
            self._on_open_pull_requests_loaded(event)
        elif isinstance(event, PullRequestsMerged):
            self._on_pull_requests_merged(event)
        elif isinstance(event, StateSaved):
            logger.debug(f"State saved to {event.path}")
        elif isinstance(event, ConfirmationResolved):
            pass  # already consumed
        else:
            logger.warning(f"Unhandled event: {event!r}")

    def _run_pending_action(self, event: Event) -> None:
        pending = self.gate.take()
        if pending is None:
            return
        command = pending.continuation()
        logger.debug(f"Pending action {pending.prompt!r} resolved: {pending.decision}")
        if command is not None:
            if command.name == actions.PREPARE_REBASE:
                self.rebase.confirm(command.args[0].title)
            self.executor.schedule(command)
        if not isinstance(event, ConfirmationResolved):
            self.executor.post(event)

    # ------------------------------------------------------------------
    # Banner, error log and timers
    # ------------------------------------------------------------------

    def _report(self, message: str) -> None:
        """Log an error, append it to the error log and show the banner."""
        logger.error(message)
        self.error_log.append(f"[{self.clock().strftime(ERROR_PREFIX_TIME_FORMAT)}] {message}")
        self._set_banner(Banner(message, is_error=True), TimerId.HIDE_ERROR)

    def _on_error(self, message: str) -> None:
        self.rebase.reset()
        # a failed list command would otherwise leave its overlay loading forever
        if isinstance(self.mode, (SelectingBranchMode, SelectingPRsMode)) and self.mode.overlay.loading:
            self.mode = DefaultMode()
        self._report(message)

    def _show_message(self, text: str) -> None:
        self._set_banner(Banner(text, is_error=False), TimerId.HIDE_MESSAGE)

    def _set_banner(self, banner: Banner, timer_id: TimerId) -> None:
        self._banner_generation += 1
        self.banner = banner
        self.executor.schedule_timer(TickEvent(timer_id, self._banner_generation), MESSAGE_DURATION_S)

    def _highlight(self, key: str) -> None:
        self._keyup_generation += 1
        self.highlighted_key = key
        self.executor.schedule_timer(TickEvent(TimerId.KEYUP, self._keyup_generation), KEYUP_DELAY_S)

    def _arm_poll(self) -> None:
        self.executor.schedule_timer(TickEvent(TimerId.POLL), self.config.poll_interval_ms / 1000)

    def _handle_tick(self, event: TickEvent) -> None:
        if event.timer_id in (TimerId.HIDE_ERROR, TimerId.HIDE_MESSAGE):
            if event.generation == self._banner_generation:
                self.banner = None
        elif event.timer_id is TimerId.KEYUP:
            if event.generation == self._keyup_generation:
                self.highlighted_key = None
        elif event.timer_id is TimerId.POLL:
            if self.running:
                with_diff = self.active_tab is Tab.DIFF and self.diff_commit_index is None
                self._schedule("poll_instances", actions.poll_instances, tuple(self.instances), with_diff)

    # ------------------------------------------------------------------
    # Input
    # ------------------------------------------------------------------

    def _handle_key(self, key: str) -> None:
        mode = self.mode
        if isinstance(mode, ConfirmingMode):
            self._handle_confirming_key(key)
            return

        command = self.key_map.get(key)
        if command is not None:
            self._highlight(key)

        if isinstance(mode, DefaultMode):
            if key == "ctrl+c":
                self._quit()
            elif command is not None:
                self._handle_command(command)
            return
        self._handle_overlay_key(mode, key)

    def _handle_mouse(self, event: MouseEvent) -> None:
        if not isinstance(self.mode, DefaultMode):
            return
        if event.button == "wheel_up":
            self.scroll = max(self.scroll - 1, 0)
        elif event.button == "wheel_down":
            self.scroll += 1
        elif event.button == "left":
            row = event.y - LIST_TOP_ROW
            if 0 <= row < len(self.instances):
                self._select(row)

    def _handle_confirming_key(self, key: str) -> None:
        outcome = self.gate.handle_input(key)
        if outcome is GateOutcome.SWALLOWED:
            return
        self.mode = DefaultMode()
        self.executor.post(ConfirmationResolved())

    def _handle_command(self, command: KeyName) -> None:
        if command is KeyName.QUIT:
            self._quit()
        elif command is KeyName.UP:
            self._select(self.selected_index - 1)
        elif command is KeyName.DOWN:
            self._select(self.selected_index + 1)
        elif command is KeyName.NEW:
            self._new_instance(prompt_after=False)
        elif command is KeyName.NEW_WITH_PROMPT:
            self._new_instance(prompt_after=True)
        elif command is KeyName.EXISTING_BRANCH:
            self._select_existing_branch()
        elif command is KeyName.HELP:
            self._show_help(HelpKind.GENERAL, general_help(self.keybindings))
        elif command is KeyName.ERROR_LOG:
            self._show_error_log()
        elif command is KeyName.EDIT_KEYBINDINGS:
            self.mode = KeybindingsMode(KeybindingEditorOverlay(self.keybindings))
        elif command is KeyName.MERGE_PRS:
            self._select_pull_requests()
        elif command is KeyName.CHECK_UPDATES:
            self._schedule("check_updates", actions.check_updates, self.update_checker)
            self._show_message("Checking for updates…")
        elif command in (KeyName.LOG_DISTINCT, KeyName.LOG_SORT):
            self._toggle_log_view(command)
        elif command is KeyName.TAB:
            self.active_tab = TAB_ORDER[(TAB_ORDER.index(self.active_tab) + 1) % len(TAB_ORDER)]
            self.scroll = 0
        elif command in _DIFF_COMMANDS:
            self._handle_diff_command(command)
        else:
            self._handle_instance_command(command)

    def _handle_instance_command(self, command: KeyName) -> None:
        instance = self.selected
        if instance is None:
            self._report("no instance selected")
            return
        if not instance.started or instance.status is InstanceStatus.LOADING:
            self._report(f"instance '{instance.title}' is still starting")
            return

        if command is KeyName.KILL:
            self._confirm(
                f"[!] Kill session '{instance.title}'?",
                AsyncCommand("kill_instance", actions.kill_instance, (instance, self.storage)),
            )
            return
        if command is KeyName.RESUME:
            if not instance.paused:
                self._report(f"instance '{instance.title}' is not paused")
                return
            self._schedule("resume_instance", actions.resume_instance, instance, self.storage)
            return
        if command is KeyName.OPEN_IDE and instance.paused:
            self._schedule("open_ide", actions.open_ide, self.config.ide_command, instance.path)
            return
        if instance.paused:
            self._report(f"instance '{instance.title}' is paused; press r to resume it")
            return

        if command is KeyName.ENTER:
            pane = TERMINAL_PANE_INDEX if self.active_tab is Tab.TERMINAL else PRIMARY_PANE_INDEX
            self._show_help(HelpKind.ATTACH, ATTACH_HELP, Continuation(ContinuationKind.ATTACH, instance.title, pane))
        elif command is KeyName.CHECKOUT:
            self._show_help(HelpKind.CHECKOUT, CHECKOUT_HELP, Continuation(ContinuationKind.PAUSE, instance.title))
        elif command is KeyName.PUSH:
            self._confirm(
                f"[!] Push changes from session '{instance.title}'?",
                AsyncCommand("push_instance", actions.push_instance, (instance,)),
            )
        elif command is KeyName.REBASE:
            if self.rebase.active:
                self._report("a rebase is already in progress")
                return
            self._confirm(
                f"[!] Rebase session '{instance.title}' with main branch?",
                AsyncCommand(actions.PREPARE_REBASE, actions.prepare_rebase, (instance,)),
            )
        elif command is KeyName.BOOKMARK:
            self.mode = BookmarkingMode(TextInputOverlay("Bookmark message"), instance.title)
        elif command is KeyName.PR_REVIEW:
            self._request_id += 1
            self._pr_request_id = self._request_id
            self._schedule("fetch_pull_request", actions.fetch_pull_request, instance, self._request_id)
            self._show_message("Fetching pull request…")
        elif command is KeyName.HISTORY:
            self._schedule("load_history", actions.load_history, instance)
        elif command is KeyName.GIT_STATUS:
            self._schedule("load_git_status", actions.load_git_status, instance)
        elif command is KeyName.OPEN_IDE:
            self._schedule("open_ide", actions.open_ide, self.config.ide_command, instance.worktree_path)
        elif command is KeyName.OPEN_IN_IDE:
            if self.active_tab is not Tab.DIFF or not self.focus_path:
                self._report("no file selected in diff view")
                return
            path = f"{instance.worktree_path}/{self.focus_path}"
            self._schedule("open_ide", actions.open_ide, self.config.ide_command, path)
        elif command is KeyName.TEST:
            self._schedule("run_tests", actions.run_tests, instance, self.config.test_command)
        elif command is KeyName.EXTERNAL_DIFF:
            self.executor.schedule(
                AsyncCommand("external_diff", actions.external_diff, (instance, self.config.diff_tool), needs_terminal=True)
            )

    def _handle_diff_command(self, command: KeyName) -> None:
        if command is KeyName.SCROLL_UP:
            self.scroll = max(self.scroll - 1, 0)
        elif command is KeyName.SCROLL_DOWN:
            self.scroll += 1
        elif command is KeyName.PAGE_UP:
            self.scroll = max(self.scroll - DIFF_PAGE, 0)
        elif command is KeyName.PAGE_DOWN:
            self.scroll += DIFF_PAGE
        elif command is KeyName.HOME:
            self.scroll = 0
        elif command is KeyName.END:
            self.scroll = max(len(self.current_diff().splitlines()) - 1, 0)
        elif self.active_tab is not Tab.DIFF:
            return
        elif command is KeyName.SCROLL_LOCK:
            self.scroll_lock = not self.scroll_lock
        elif command in (KeyName.PREV_FILE, KeyName.NEXT_FILE):
            self._step_file(-1 if command is KeyName.PREV_FILE else 1)
        elif command is KeyName.DIFF_ALL:
            self.diff_commit_index = None
            self.scroll = 0
        elif command is KeyName.DIFF_LAST_COMMIT:
            self._load_commit_diff(0)
        elif command is KeyName.PREV_COMMIT and self.diff_commit_index is not None:
            self._load_commit_diff(self.diff_commit_index + 1)
        elif command is KeyName.NEXT_COMMIT and self.diff_commit_index is not None:
            self._load_commit_diff(max(self.diff_commit_index - 1, 0))

    def _load_commit_diff(self, index: int) -> None:
        instance = self.selected
        if instance is None or not instance.started or instance.paused:
            return
        self._schedule("load_commit_diff", actions.load_commit_diff, instance, index)

    def _step_file(self, step: int) -> None:
        files = diff_files(self.current_diff())
        if not files:
            self.focus_path = None
            return
        if self.focus_path in files:
            index = min(max(files.index(self.focus_path) + step, 0), len(files) - 1)
        else:
            index = 0
        self.focus_path = files[index]
        self._scroll_to_file(self.focus_path)

    def _scroll_to_file(self, path: str) -> None:
        for row, line in enumerate(self.current_diff().splitlines()):
            if line.startswith("diff --git a/") and line.endswith(f" b/{path}"):
                self.scroll = row
                return

    def current_diff(self) -> str:
        if self.diff_commit_index is not None:
            return self.commit_diff
        instance = self.selected
        return self.diffs.get(instance.title, "") if instance is not None else ""

    def _select(self, index: int) -> None:
        if not self.instances:
            self.selected_index = 0
            return
        clamped = min(max(index, 0), len(self.instances) - 1)
        if clamped != self.selected_index:
            self.selected_index = clamped
            self.scroll = 0
            self.focus_path = None
            self.diff_commit_index = None

    def _quit(self) -> None:
        try:
            self.storage.save_instances(self.instances)
        except StorageError as e:
            logger.error(f"Failed to save instances on quit: {e}")
        self.running = False
        logger.info("Quit requested")

    # ------------------------------------------------------------------
    # Flows started from default mode
    # ------------------------------------------------------------------

    def _schedule(self, name: str, fn: Callable[..., Event], *args: object) -> None:
        self.executor.schedule(AsyncCommand(name, fn, tuple(args)))

    def _confirm(self, prompt: str, on_accept: AsyncCommand, on_reject: AsyncCommand | None = None) -> None:
        self.gate.request(prompt, on_accept, on_reject)
        self.mode = ConfirmingMode(ConfirmationOverlay(prompt))

    def _check_limit(self) -> bool:
        if len(self.instances) >= GLOBAL_INSTANCE_LIMIT:
            self._report(f"you can't create more than {GLOBAL_INSTANCE_LIMIT} instances")
            return False
        return True

    def _new_instance_record(self, title: str = "", branch: str = "") -> Instance:
        return Instance(
            title=title,
            path=self.repo_path,
            program=self.config.default_program,
            branch=branch,
            auto_yes=self.config.auto_yes,
            branch_prefix=self.config.branch_prefix,
            existing_branch=bool(branch),
        )

    def _new_instance(self, prompt_after: bool) -> None:
        if not self._check_limit():
            return
        instance = self._new_instance_record()
        self.instances.append(instance)
        self._select(len(self.instances) - 1)
        self.mode = NamingMode(naming_overlay(), instance, prompt_after=prompt_after)

    def _select_existing_branch(self) -> None:
        if not self._check_limit():
            return
        self._request_id += 1
        self.mode = SelectingBranchMode(BranchSelectorOverlay(), request_id=self._request_id)
        self._schedule("list_branches", actions.list_branches, self.repo_path, self._request_id)

    def _select_pull_requests(self) -> None:
        self._request_id += 1
        self.mode = SelectingPRsMode(PullRequestSelectorOverlay(), request_id=self._request_id)
        self._schedule("list_open_pull_requests", actions.list_open_pull_requests, self.repo_path, self._request_id)

    def _toggle_log_view(self, command: KeyName) -> None:
        if self.active_tab is not Tab.LOG:
            return
        if command is KeyName.LOG_DISTINCT:
            self.log_distinct = not self.log_distinct
        else:
            self.log_sorted = not self.log_sorted
        self.scroll = 0

    def command_log_view(self) -> str:
        return self.command_log.render(distinct=self.log_distinct, sort_by_command=self.log_sorted)

    def _start_instance(self, instance: Instance, prompt: str | None) -> None:
        instance.prepare()
        instance.status = InstanceStatus.LOADING
        self._schedule("start_instance", actions.start_instance, instance, prompt, self.storage)

    def _discard_instance(self, instance: Instance) -> None:
        if instance in self.instances:
            self.instances.remove(instance)
        self._select(self.selected_index)

    def _show_help(self, kind: HelpKind, content: str, continuation: Continuation | None = None) -> None:
        if not kind.always_shown:
            if self.app_state.has_seen(kind.mask):
                if continuation is not None:
                    self._run_continuation(continuation)
                return
            self.app_state.mark_seen(kind.mask)
            self._schedule("save_app_state", actions.save_app_state, self.app_state)
        self.mode = HelpMode(TextOverlay("Help", content), on_dismiss=continuation)

    def _run_continuation(self, continuation: Continuation) -> None:
        instance = self._find(continuation.title)
        if instance is None:
            self._report(f"instance '{continuation.title}' no longer exists")
            return
        if continuation.kind is ContinuationKind.ATTACH:
            self.executor.schedule(
                AsyncCommand("attach_instance", actions.attach_instance, (instance, continuation.pane), needs_terminal=True)
            )
        elif continuation.kind is ContinuationKind.PAUSE:
            self._schedule("pause_instance", actions.pause_instance, instance, self.storage)

    def _show_error_log(self) -> None:
        if self.error_log:
            content = "Recent errors (newest first):\n\n" + "\n".join(reversed(self.error_log))
        else:
            content = "No errors have been logged."
        self.mode = ErrorLogMode(TextOverlay("Error log", content, scrollable=False))

    # ------------------------------------------------------------------
    # Overlay keys
    # ------------------------------------------------------------------

    def _handle_overlay_key(self, mode: Mode, key: str) -> None:
        if isinstance(mode, NamingMode):
            self._handle_naming_key(mode, key)
        elif isinstance(mode, PromptingMode):
            action = mode.overlay.handle_key(key)
            if action is OverlayAction.SUBMIT:
                self.mode = DefaultMode()
                self._start_instance(mode.instance, mode.overlay.value or None)
            elif action is OverlayAction.CANCEL:
                self.mode = DefaultMode()
                self._start_instance(mode.instance, None)
        elif isinstance(mode, HelpMode):
            if mode.overlay.handle_key(key) is OverlayAction.CLOSE:
                self.mode = DefaultMode()
                if mode.on_dismiss is not None:
                    self._run_continuation(mode.on_dismiss)
        elif isinstance(mode, SelectingBranchMode):
            self._handle_branch_key(mode, key)
        elif isinstance(mode, SelectingPRsMode):
            self._handle_pr_selection_key(mode, key)
        elif isinstance(mode, (ErrorLogMode, HistoryMode, GitStatusMode)):
            if mode.overlay.handle_key(key) is OverlayAction.CLOSE:
                self.mode = DefaultMode()
        elif isinstance(mode, ReviewingPRMode):
            self._handle_pr_key(mode, key)
        elif isinstance(mode, CommentDetailMode):
            if mode.overlay.handle_key(key) is OverlayAction.CLOSE:
                self.mode = mode.return_to
        elif isinstance(mode, BookmarkingMode):
            self._handle_bookmark_key(mode, key)
        elif isinstance(mode, KeybindingsMode):
            self._handle_keybindings_key(mode, key)

    def _handle_naming_key(self, mode: NamingMode, key: str) -> None:
        action = mode.overlay.handle_key(key)
        if action is OverlayAction.CANCEL:
            self._discard_instance(mode.instance)
            self.mode = DefaultMode()
        elif action is OverlayAction.ERROR:
            self._report(mode.overlay.error)
        elif action is OverlayAction.SUBMIT:
            title = mode.overlay.value
            if not title:
                self._report("title cannot be empty")
                return
            if any(other is not mode.instance and other.title == title for other in self.instances):
                self._report(f"an instance named '{title}' already exists")
                return
            try:
                mode.instance.set_title(title)
            except InstanceError as e:
                self._report(str(e))
                return
            if mode.prompt_after:
                self.mode = PromptingMode(TextInputOverlay("Enter prompt"), mode.instance)
                return
            self.mode = DefaultMode()
            self._start_instance(mode.instance, None)

    def _handle_branch_key(self, mode: SelectingBranchMode, key: str) -> None:
        action = mode.overlay.handle_key(key)
        if action is OverlayAction.CANCEL:
            self.mode = DefaultMode()
        elif action is OverlayAction.SUBMIT:
            branch = mode.overlay.selected
            self.mode = DefaultMode()
            if branch is None or not self._check_limit():
                return
            stamp = self.clock().strftime(BRANCH_TITLE_TIME_FORMAT)
            base = branch.replace("/", "-")[: MAX_TITLE_LENGTH - len(stamp) - 1]
            instance = self._new_instance_record(title=f"{base}-{stamp}", branch=branch)
            self.instances.append(instance)
            self._select(len(self.instances) - 1)
            self._start_instance(instance, None)

    def _handle_pr_selection_key(self, mode: SelectingPRsMode, key: str) -> None:
        action = mode.overlay.handle_key(key)
        if action is OverlayAction.CANCEL:
            self.mode = DefaultMode()
        elif action is OverlayAction.SUBMIT:
            chosen = mode.overlay.chosen
            self.mode = DefaultMode()
            branch = merge_branch_name([pr.number for pr in chosen], self.clock())
            self._schedule("merge_pull_requests", actions.merge_pull_requests, self.repo_path, tuple(chosen), branch)
            self._show_message(f"Merging {len(chosen)} PRs into {branch}…")

    def _handle_pr_key(self, mode: ReviewingPRMode, key: str) -> None:
        overlay = mode.overlay
        action = overlay.handle_key(key)
        if action is OverlayAction.CANCEL:
            self.mode = DefaultMode()
        elif action is OverlayAction.OPEN_DETAIL:
            comment = overlay.selected
            if comment is not None:
                self.mode = CommentDetailMode(CommentDetailOverlay(comment), return_to=mode)
        elif action is OverlayAction.NAVIGATE:
            comment = overlay.selected
            self.mode = DefaultMode()
            instance = self._find(mode.title)
            if instance is not None:
                self._select(self.instances.index(instance))
            self.active_tab = Tab.DIFF
            self.diff_commit_index = None
            if comment is not None:
                self.focus_path = comment.path
                self._scroll_to_file(comment.path)
        elif action is OverlayAction.COMPLETE:
            self.mode = DefaultMode()
            accepted = overlay.pull_request.accepted_comments()
            if not accepted:
                self._show_message("No comments accepted")
                return
            instance = self._find(mode.title)
            if instance is None:
                self._report(f"instance '{mode.title}' no longer exists")
                return
            self._schedule(
                "process_comments", actions.process_comments, instance, tuple(accepted), COMMENT_SEND_DELAY_S
            )
            self._show_message(f"Sending {len(accepted)} comments to '{instance.title}'…")

    def _handle_bookmark_key(self, mode: BookmarkingMode, key: str) -> None:
        action = mode.overlay.handle_key(key)
        if action is OverlayAction.CANCEL:
            self.mode = DefaultMode()
        elif action is OverlayAction.SUBMIT:
            message = mode.overlay.value.strip()
            if not message:
                self._report("bookmark message cannot be empty")
                return
            self.mode = DefaultMode()
            instance = self._find(mode.title)
            if instance is None:
                self._report(f"instance '{mode.title}' no longer exists")
                return
            self._schedule("create_bookmark", actions.create_bookmark, instance, BOOKMARK_PREFIX + message)

    def _handle_keybindings_key(self, mode: KeybindingsMode, key: str) -> None:
        action = mode.overlay.handle_key(key)
        if action is OverlayAction.CLOSE:
            self.mode = DefaultMode()
        elif action is OverlayAction.ERROR:
            self._report(mode.overlay.error)
        elif action is OverlayAction.SAVE:
            self.keybindings = mode.overlay.config
            self.key_map = self.keybindings.to_key_map()
            self.mode = DefaultMode()
            self._schedule("save_keybindings", actions.save_keybindings_file, self.keybindings)

    # ------------------------------------------------------------------
    # Command results
    # ------------------------------------------------------------------

    def _on_instance_started(self, event: InstanceStarted) -> None:
        instance = event.instance
        if event.error is not None:
            self._discard_instance(instance)
            self._report(f"failed to start '{instance.title}': {event.error}")
            return
        if event.state is not None:
            instance.apply_state(event.state)
        logger.info(f"Instance '{instance.title}' is running")
        if isinstance(self.mode, DefaultMode):
            self._show_help(HelpKind.INSTANCE_START, instance_start_help(instance.branch, instance.program))

    def _on_instance_changed(self, event: InstanceChanged) -> None:
        instance = self._find(event.title)
        if instance is None:
            logger.debug(f"Dropping state for unknown instance '{event.title}'")
        elif event.state is not None:
            instance.apply_state(event.state)
            if event.reloaded:
                instance.needs_reload = False
        if event.error is not None:
            self._report(event.error)
        elif event.message:
            self._show_message(event.message)

    def _on_instance_killed(self, event: InstanceKilled) -> None:
        instance = self._find(event.title)
        if instance is not None:
            self._discard_instance(instance)
        self.previews.pop(event.title, None)
        self.terminals.pop(event.title, None)
        self.diffs.pop(event.title, None)
        if event.error is not None:
            self._report(f"killed '{event.title}' with errors: {event.error}")
        else:
            logger.info(f"Instance '{event.title}' killed")

    def _on_branches_loaded(self, event: BranchesLoaded) -> None:
        mode = self.mode
        if not isinstance(mode, SelectingBranchMode) or mode.request_id != event.request_id:
            logger.debug(f"Discarding stale branch list (request {event.request_id})")
            return
        if not event.branches:
            self.mode = DefaultMode()
            self._report("no remote branches found")
            return
        mode.overlay.set_branches(list(event.branches))

    def _on_open_pull_requests_loaded(self, event: OpenPullRequestsLoaded) -> None:
        mode = self.mode
        if not isinstance(mode, SelectingPRsMode) or mode.request_id != event.request_id:
            logger.debug(f"Discarding stale PR list (request {event.request_id})")
            return
        if not event.pull_requests:
            self.mode = DefaultMode()
            self._report("no open pull requests found")
            return
        mode.overlay.set_pull_requests(list(event.pull_requests))

    def _on_pull_requests_merged(self, event: PullRequestsMerged) -> None:
        numbers = ", ".join(f"#{n}" for n in event.merged)
        created = f" as PR #{event.pr_number}" if event.pr_number is not None else ""
        if event.failures:
            self._report(f"merged {numbers} into {event.branch}{created}; skipped " + "; ".join(event.failures))
            return
        self._show_message(f"Merged {numbers} into {event.branch}{created}")

    def _on_pull_request_loaded(self, event: PullRequestLoaded) -> None:
        if not isinstance(self.mode, DefaultMode) or event.request_id != self._pr_request_id:
            logger.debug(f"Discarding stale pull request (request {event.request_id})")
            return
        self._pr_request_id = None
        pull_request = event.pull_request
        if not pull_request.all_comments:
            self._show_message(f"PR #{pull_request.number} has no comments")
            return
        self.mode = ReviewingPRMode(PullRequestOverlay(pull_request), title=event.title)

    def _on_rebase_progress(self, event: RebaseProgress) -> None:
        update = self.rebase.apply(event)
        if update is RebaseUpdate.STALE:
            return
        if update is RebaseUpdate.FAILED:
            self._report(event.error or f"rebase of '{event.title}' failed")
            return
        if update is RebaseUpdate.REJECTED:
            self._report(f"rebase of '{event.title}' aborted: could not capture its branch and commit")
            return
        if update is RebaseUpdate.PROCEED:
            instance = self._find(event.title)
            if instance is None:
                self.rebase.fail()
                self._report(f"instance '{event.title}' no longer exists")
                return
            self._schedule("run_rebase", actions.run_rebase, instance, event.main_branch)
        if event.status:
            self._show_message(event.status)

    def _on_attach_finished(self, event: AttachFinished) -> None:
        logger.info(f"Detached from '{event.title}'")
        if not event.reload_requested:
            return
        instance = self._find(event.title)
        if instance is None:
            return
        instance.needs_reload = True
        self._schedule("reload_instance", actions.reload_instance, instance)

    def _on_git_status_loaded(self, event: GitStatusLoaded) -> None:
        if not isinstance(self.mode, DefaultMode) or not event.views:
            logger.debug(f"Discarding git status for '{event.title}'")
            return
        self.mode = GitStatusMode(GitStatusOverlay(event.branch, NavigationCursor(event.views)))

    def _on_history_loaded(self, event: HistoryLoaded) -> None:
        if not isinstance(self.mode, DefaultMode):
            logger.debug(f"Discarding history for '{event.title}'")
            return
        self.mode = HistoryMode(HistoryOverlay(f"History: {event.title}", event.content))

    def _on_instances_polled(self, event: InstancesPolled) -> None:
        for poll in event.polls:
            instance = self._find(poll.title)
            if instance is None:
                continue
            if instance.started and not instance.paused and instance.status is not InstanceStatus.LOADING:
                instance.status = InstanceStatus.RUNNING if poll.updated else InstanceStatus.READY
            self.previews[poll.title] = poll.preview
            self.terminals[poll.title] = poll.terminal
            if poll.diff:
                self.diffs[poll.title] = poll.diff
        if self.running:
            self._arm_poll()

    def _on_diff_loaded(self, event: DiffLoaded) -> None:
        selected = self.selected
        if selected is None or selected.title != event.title:
            return
        self.diff_commit_index = event.commit_index
        self.commit_diff = event.content
        self.scroll = 0


_DIFF_COMMANDS = frozenset(
    {
        KeyName.SCROLL_UP,
        KeyName.SCROLL_DOWN,
        KeyName.PAGE_UP,
        KeyName.PAGE_DOWN,
        KeyName.HOME,
        KeyName.END,
        KeyName.SCROLL_LOCK,
        KeyName.PREV_FILE,
        KeyName.NEXT_FILE,
        KeyName.DIFF_ALL,
        KeyName.DIFF_LAST_COMMIT,
        KeyName.PREV_COMMIT,
        KeyName.NEXT_COMMIT,
    }
)
