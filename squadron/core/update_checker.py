"""Background check for new commits on the squadron checkout itself."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable

from loguru import logger

from squadron.core.errors import GitError
from squadron.core.git_worktree import run_git


@dataclass(frozen=True)
class UpdateStatus:
    available: bool = False
    commits_behind: int = 0
    checked_at: float | None = None


class UpdateChecker:
    """Owns an UpdateStatus written by a periodic thread and read by the dispatcher.

    Failures are logged at warning level and never surface in the UI.
    """

    def __init__(
        self,
        repo_path: Path,
        interval_s: float,
        git: Callable[[list[str], Path], str] = run_git,
    ) -> None:
        self._repo_path = repo_path
        self._interval_s = interval_s
        self._git = git
        self._lock = threading.Lock()
        self._status = UpdateStatus()
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def snapshot(self) -> UpdateStatus:
        with self._lock:
            return self._status

    def start(self) -> None:
        if self._thread is not None:
            return
        self._thread = threading.Thread(target=self._run, daemon=True, name="update-checker")
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
            self._thread = None

    def _run(self) -> None:
        self.check_now()
        while not self._stop.wait(self._interval_s):
            self.check_now()

    def check_now(self) -> UpdateStatus:
        """Fetch origin and count commits HEAD is behind the default branch."""
        try:
            self._git(["fetch", "origin", "--quiet"], self._repo_path)
            behind = 0
            for branch in ("main", "master"):
                try:
                    behind = int(self._git(["rev-list", "--count", f"HEAD..origin/{branch}"], self._repo_path))
                    break
                except GitError:
                    continue
        except (GitError, ValueError) as e:
            logger.warning(f"Update check failed: {e}")
            return self.snapshot()

        status = UpdateStatus(available=behind > 0, commits_behind=behind, checked_at=time.time())
        with self._lock:
            self._status = status
        logger.debug(f"Update check: {behind} commits behind")
        return status
