from __future__ import annotations

from pathlib import Path

REPO_ROOT = Path(__file__).resolve().parents[1]
SQUADRON_HOME = (Path("~/.squadron")).expanduser()
CONFIG_PATH = SQUADRON_HOME / "config.yml"
KEYBINDINGS_PATH = SQUADRON_HOME / "keybindings.json"
APP_STATE_PATH = SQUADRON_HOME / "state.json"
INSTANCES_PATH = SQUADRON_HOME / "instances.json"
WORKTREES_DIR = SQUADRON_HOME / "worktrees"
LOG_PATH = SQUADRON_HOME / "logs" / "squadron.log"
