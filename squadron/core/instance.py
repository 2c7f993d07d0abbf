"""Managed instance: one AI session bound to a git worktree and a tmux session."""

from __future__ import annotations

import re
import time
from dataclasses import asdict, dataclass, field, replace
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Any

from loguru import logger

from squadron.constants import COMMIT_MESSAGE_PREFIX, MAX_TITLE_LENGTH, PRIMARY_PANE_INDEX, TERMINAL_PANE_INDEX
from squadron.core.errors import InstanceError
from squadron.core.git_worktree import GitWorktree
from squadron.core.tmux_session import TmuxSession, tmux_session_name
from squadron.paths import WORKTREES_DIR


class InstanceStatus(str, Enum):
    """Lifecycle status shown next to each instance."""

    RUNNING = "running"
    READY = "ready"
    LOADING = "loading"
    PAUSED = "paused"


@dataclass(frozen=True)
class InstanceState:
    """Lifecycle fields computed off the loop thread and applied by the dispatcher."""

    status: InstanceStatus
    started: bool
    branch: str
    worktree_path: str
    base_commit_sha: str
    updated_at: float


def branch_name_for(title: str, prefix: str) -> str:
    """Derive a git branch name from an instance title."""
    slug = re.sub(r"[^a-z0-9._/-]+", "-", title.lower()).strip("-.")
    return f"{prefix}{slug or 'instance'}"


def update_commit_message(title: str, suffix: str = "") -> str:
    stamp = datetime.now().astimezone().strftime("%d %b %y %H:%M %Z")
    message = f"{COMMIT_MESSAGE_PREFIX} update from '{title}' on {stamp}"
    return f"{message} {suffix}" if suffix else message


@dataclass
class Instance:
    """Mutable instance record, owned by the dispatcher.

    ``prepare`` creates the backends (worktree, tmux) on the loop thread once
    the title is final. Lifecycle methods (``start``, ``pause``, ``resume``,
    ``reload``) run on worker threads: they drive the backends and return an
    ``InstanceState`` instead of writing to the record.
    """

    title: str
    path: str
    program: str
    branch: str = ""
    status: InstanceStatus = InstanceStatus.READY
    auto_yes: bool = False
    branch_prefix: str = "squadron/"
    existing_branch: bool = False
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)
    worktree_path: str = ""
    base_commit_sha: str = ""
    started: bool = False
    needs_reload: bool = False
    worktree: GitWorktree | None = field(default=None, repr=False, compare=False)
    tmux: TmuxSession | None = field(default=None, repr=False, compare=False)

    @property
    def paused(self) -> bool:
        return self.status is InstanceStatus.PAUSED

    def set_title(self, title: str) -> None:
        if self.started:
            raise InstanceError("cannot change the title of a started instance")
        if len(title) > MAX_TITLE_LENGTH:
            raise InstanceError(f"title cannot be longer than {MAX_TITLE_LENGTH} characters")
        self.title = title

    def prepare(self) -> None:
        """Fill in branch and worktree path and create the backends. No I/O."""
        if not self.branch:
            self.branch = branch_name_for(self.title, self.branch_prefix)
        if not self.worktree_path:
            stamp = format(int(self.created_at * 1000), "x")
            slug = re.sub(r"[^A-Za-z0-9_-]+", "_", self.title) or "instance"
            self.worktree_path = str(WORKTREES_DIR / f"{slug}_{stamp}")
        if self.worktree is None:
            self.worktree = GitWorktree(Path(self.path), Path(self.worktree_path), self.branch, self.base_commit_sha)
        if self.tmux is None:
            self.tmux = TmuxSession(tmux_session_name(self.title), self.program)

    def _require_worktree(self) -> GitWorktree:
        if self.worktree is None:
            raise InstanceError(f"instance '{self.title}' has no worktree yet")
        return self.worktree

    def _require_tmux(self) -> TmuxSession:
        if self.tmux is None:
            raise InstanceError(f"instance '{self.title}' has no tmux session yet")
        return self.tmux

    def get_worktree(self) -> GitWorktree:
        if not self.started:
            raise InstanceError(f"instance '{self.title}' has not been started")
        return self._require_worktree()

    # ------------------------------------------------------------------
    # State snapshots
    # ------------------------------------------------------------------

    def state(self) -> InstanceState:
        return InstanceState(
            status=self.status,
            started=self.started,
            branch=self.branch,
            worktree_path=self.worktree_path,
            base_commit_sha=self.base_commit_sha,
            updated_at=self.updated_at,
        )

    def apply_state(self, state: InstanceState) -> None:
        """Copy a worker-computed state onto the record. Loop thread only."""
        self.status = state.status
        self.started = state.started
        self.branch = state.branch
        self.worktree_path = state.worktree_path
        self.base_commit_sha = state.base_commit_sha
        self.updated_at = state.updated_at

    def with_state(self, state: InstanceState) -> "Instance":
        """A copy carrying ``state``; shares the backends with this record."""
        return replace(self, **asdict(state))

    def _next_state(self, status: InstanceStatus, **changes: Any) -> InstanceState:
        return replace(self.state(), status=status, updated_at=time.time(), **changes)

    # ------------------------------------------------------------------
    # Lifecycle (worker threads)
    # ------------------------------------------------------------------

    def start(self, first_time: bool = True) -> InstanceState:
        """Set up the worktree and tmux session.

        Args:
            first_time: False when restoring a stored instance whose worktree already exists

        Returns:
            The running state, for the dispatcher to apply

        Raises:
            InstanceError: if the title is empty or the backends are not prepared
            GitError: if the worktree cannot be created
            TmuxError: if the tmux session cannot be started
        """
        if not self.title:
            raise InstanceError("title cannot be empty")
        worktree = self._require_worktree()
        tmux = self._require_tmux()

        base_commit_sha = self.base_commit_sha
        if first_time:
            if self.existing_branch:
                worktree.setup_from_branch()
            else:
                worktree.setup()
            base_commit_sha = worktree.base_commit_sha

        if not tmux.is_alive():
            try:
                tmux.start(self.worktree_path)
            except Exception:
                if first_time:
                    worktree.force_cleanup()
                raise

        logger.info(f"Instance '{self.title}' started on {self.branch}")
        return self._next_state(InstanceStatus.RUNNING, started=True, base_commit_sha=base_commit_sha)

    def pause(self) -> InstanceState:
        """Commit work, stop tmux and remove the worktree; the branch is kept."""
        if self.paused:
            raise InstanceError(f"instance '{self.title}' is already paused")
        worktree = self.get_worktree()
        if worktree.commit_changes(update_commit_message(self.title, "(paused)")):
            logger.info(f"Committed pending changes of '{self.title}' before pausing")
        self._require_tmux().kill()
        worktree.remove()
        logger.info(f"Instance '{self.title}' paused")
        return self._next_state(InstanceStatus.PAUSED)

    def resume(self) -> InstanceState:
        if not self.paused:
            raise InstanceError(f"instance '{self.title}' is not paused")
        worktree = self._require_worktree()
        worktree.setup()
        self._require_tmux().start(self.worktree_path)
        logger.info(f"Instance '{self.title}' resumed")
        return self._next_state(InstanceStatus.RUNNING)

    def kill(self) -> None:
        if not self.started:
            return
        self._require_tmux().kill()
        if self.paused:
            self._require_worktree().force_cleanup()
        else:
            self._require_worktree().cleanup()
        logger.info(f"Instance '{self.title}' killed")

    def force_kill(self) -> list[str]:
        """Best-effort teardown; returns the errors encountered."""
        errors: list[str] = []
        try:
            self._require_tmux().kill()
        except Exception as e:  # noqa: BLE001
            errors.append(str(e))
        errors.extend(self._require_worktree().force_cleanup())
        return errors

    def reload(self) -> InstanceState:
        """Restart the tmux session in the existing worktree."""
        tmux = self._require_tmux()
        tmux.kill()
        tmux.start(self.worktree_path)
        logger.info(f"Instance '{self.title}' reloaded")
        return self._next_state(InstanceStatus.RUNNING)

    def is_alive(self) -> bool:
        return self.started and not self.paused and self._require_tmux().is_alive()

    def send_prompt(self, text: str) -> None:
        if not self.started or self.paused:
            raise InstanceError(f"instance '{self.title}' is not running")
        self._require_tmux().send_text_to_primary_pane(text)

    def attach_to_pane(self, pane: int) -> bool:
        """Block until the user detaches; returns whether a reload was requested."""
        return self._require_tmux().attach(pane)

    def run_in_terminal_pane(self, command: str) -> None:
        if not self.started or self.paused:
            raise InstanceError(f"instance '{self.title}' is not running")
        self._require_tmux().send_keys(command, pane=TERMINAL_PANE_INDEX)

    def preview(self, pane: int = PRIMARY_PANE_INDEX) -> str:
        if not self.started or self.paused:
            return ""
        return self._require_tmux().capture_pane(pane)

    def has_updated(self) -> bool:
        """Whether the AI pane changed since the last check."""
        if not self.started or self.paused:
            return False
        return self._require_tmux().has_updated()

    def tap_enter(self) -> None:
        self._require_tmux().tap_enter()

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "path": self.path,
            "program": self.program,
            "branch": self.branch,
            "status": self.status.value,
            "auto_yes": self.auto_yes,
            "branch_prefix": self.branch_prefix,
            "existing_branch": self.existing_branch,
            "created_at": self.created_at,
            "updated_at": self.updated_at,
            "worktree_path": self.worktree_path,
            "base_commit_sha": self.base_commit_sha,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Instance":
        instance = cls(
            title=str(data["title"]),
            path=str(data["path"]),
            program=str(data["program"]),
            branch=str(data.get("branch", "")),
            status=InstanceStatus(data.get("status", InstanceStatus.READY.value)),
            auto_yes=bool(data.get("auto_yes", False)),
            branch_prefix=str(data.get("branch_prefix", "squadron/")),
            existing_branch=bool(data.get("existing_branch", False)),
            created_at=float(data.get("created_at", time.time())),
            updated_at=float(data.get("updated_at", time.time())),
            worktree_path=str(data.get("worktree_path", "")),
            base_commit_sha=str(data.get("base_commit_sha", "")),
        )
        instance.started = True
        return instance
