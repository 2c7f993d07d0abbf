"""Persistent UI state (~/.squadron/state.json)."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from squadron.config.files import read_json, write_json_atomic
from squadron.paths import APP_STATE_PATH


@dataclass
class AppState:
    """State that survives restarts."""

    help_screens_seen: int = 0  # bitmask of HelpKind masks
    path: Path = field(default=APP_STATE_PATH, repr=False, compare=False)

    def has_seen(self, mask: int) -> bool:
        return bool(self.help_screens_seen & mask)

    def mark_seen(self, mask: int) -> bool:
        """Record a help screen as seen. Returns True if it was not seen before."""
        if self.has_seen(mask):
            return False
        self.help_screens_seen |= mask
        return True

    def save(self) -> None:
        """Persist atomically; write failures are logged only."""
        try:
            write_json_atomic(self.path, {"help_screens_seen": self.help_screens_seen})
        except OSError as e:
            logger.warning(f"Failed to save app state to {self.path}: {e}")


def load_app_state(path: Path | None = None) -> AppState:
    """Load app state, starting fresh when the file is missing or unreadable."""
    state_path = path or APP_STATE_PATH
    try:
        data = read_json(state_path)
    except (OSError, json.JSONDecodeError) as e:
        logger.warning(f"Failed to load app state from {state_path}: {e}")
        return AppState(path=state_path)

    if not isinstance(data, dict):
        return AppState(path=state_path)
    seen = data.get("help_screens_seen", 0)
    if not isinstance(seen, int):
        seen = 0
    return AppState(help_screens_seen=seen, path=state_path)
