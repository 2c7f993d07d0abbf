"""Atomic JSON file helpers shared by state, keybindings and instance storage."""

from __future__ import annotations

import fcntl
import json
import os
from pathlib import Path

from loguru import logger


def read_json(path: Path) -> object | None:
    """Read a JSON document, returning None when the file does not exist."""
    if not path.exists():
        return None
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def write_json_atomic(path: Path, data: object) -> None:
    """Write JSON via tmp file + os.replace, serialized by an advisory lock file.

    Raises:
        OSError: if the directory or file cannot be written
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path = path.with_suffix(".lock")
    with open(lock_path, "w", encoding="utf-8") as lock_file:
        fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
        tmp_path = path.with_suffix(".tmp")
        with open(tmp_path, "w", encoding="utf-8") as f:
            json.dump(data, f, indent=2)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    logger.debug(f"Wrote {path}")
