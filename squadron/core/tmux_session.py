"""tmux session wrapper.

Layout per session: pane 0 is a plain shell in the worktree, pane 1 runs the AI program.
"""

from __future__ import annotations

import hashlib
import re
import subprocess

from loguru import logger

from squadron.constants import PRIMARY_PANE_INDEX, RELOAD_OPTION, TMUX_SESSION_PREFIX
from squadron.core.command_log import COMMAND_LOG
from squadron.core.errors import TmuxError

_UNSAFE_NAME_CHARS = re.compile(r"[^A-Za-z0-9_-]")


def tmux_session_name(title: str) -> str:
    """Map an instance title to a tmux-safe session name."""
    return TMUX_SESSION_PREFIX + _UNSAFE_NAME_CHARS.sub("_", title)


def _tmux(args: list[str], *, check: bool = True) -> subprocess.CompletedProcess[str]:
    cmd = ["tmux", *args]
    COMMAND_LOG.record(cmd, source="tmux")
    try:
        result = subprocess.run(cmd, capture_output=True, text=True, check=False)
    except OSError as e:
        raise TmuxError(f"failed to run tmux: {e}") from e
    if check and result.returncode != 0:
        raise TmuxError(f"tmux {args[0]} failed: {result.stderr.strip() or result.returncode}")
    return result


class TmuxSession:
    """A detached tmux session hosting one instance."""

    def __init__(self, name: str, program: str) -> None:
        self.name = name
        self.program = program
        self._last_capture_hash = ""

    def _target(self, pane: int) -> str:
        return f"{self.name}:0.{pane}"

    def start(self, working_dir: str) -> None:
        """Create the session with a shell pane and the program pane.

        Args:
            working_dir: Worktree directory both panes start in

        Raises:
            TmuxError: if the session already exists or tmux fails
        """
        if self.is_alive():
            raise TmuxError(f"tmux session already exists: {self.name}")

        _tmux(["new-session", "-d", "-s", self.name, "-c", working_dir, "-x", "200", "-y", "50"])
        try:
            _tmux(["split-window", "-h", "-t", f"{self.name}:0", "-c", working_dir, self.program])
            # prefix + C-r inside an attached session asks squadron to restart it on detach
            _tmux(["bind-key", "C-r", "set-option", RELOAD_OPTION, "1", ";", "detach-client"])
        except TmuxError:
            self.kill()
            raise
        logger.info(f"Started tmux session {self.name} running {self.program!r}")

    def is_alive(self) -> bool:
        return _tmux(["has-session", "-t", f"={self.name}"], check=False).returncode == 0

    def kill(self) -> None:
        if not self.is_alive():
            return
        _tmux(["kill-session", "-t", f"={self.name}"])
        logger.info(f"Killed tmux session {self.name}")

    def send_keys(self, text: str, pane: int = PRIMARY_PANE_INDEX, *, enter: bool = True) -> None:
        _tmux(["send-keys", "-t", self._target(pane), "-l", text])
        if enter:
            _tmux(["send-keys", "-t", self._target(pane), "Enter"])

    def send_text_to_primary_pane(self, text: str) -> None:
        self.send_keys(text, PRIMARY_PANE_INDEX)

    def tap_enter(self) -> None:
        _tmux(["send-keys", "-t", self._target(PRIMARY_PANE_INDEX), "Enter"])

    def capture_pane(self, pane: int = PRIMARY_PANE_INDEX) -> str:
        return _tmux(["capture-pane", "-p", "-t", self._target(pane)]).stdout

    def has_updated(self) -> bool:
        """True when the program pane changed since the previous call."""
        digest = hashlib.sha1(self.capture_pane().encode("utf-8", "replace")).hexdigest()
        changed = digest != self._last_capture_hash
        self._last_capture_hash = digest
        return changed

    def attach(self, pane: int) -> bool:
        """Attach the controlling terminal to a pane and block until detach.

        Returns:
            True if a reload was requested from inside the session
        """
        _tmux(["select-pane", "-t", self._target(pane)])
        # Inherit stdio: tmux takes over the terminal until the user detaches.
        cmd = ["tmux", "attach-session", "-t", f"={self.name}"]
        COMMAND_LOG.record(cmd, source="tmux")
        result = subprocess.run(cmd, check=False)
        if result.returncode != 0:
            raise TmuxError(f"tmux attach-session exited with {result.returncode}")
        return self.consume_reload_request()

    def consume_reload_request(self) -> bool:
        result = _tmux(["show-options", "-v", "-q", "-t", self.name, RELOAD_OPTION], check=False)
        if result.stdout.strip() != "1":
            return False
        _tmux(["set-option", "-u", "-t", self.name, RELOAD_OPTION], check=False)
        return True
