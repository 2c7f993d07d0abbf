"""Record of every external command squadron runs (git, tmux, gh).

Commands are recorded from worker threads and read by the loop thread, so
the log guards its entries with a lock. The UI shows it on the log tab.
"""

from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Sequence

MAX_ENTRIES = 500


@dataclass(frozen=True)
class CommandRecord:
    command: str
    args: tuple[str, ...]
    cwd: str
    source: str
    timestamp: datetime = field(default_factory=datetime.now)

    @property
    def key(self) -> tuple[str, tuple[str, ...], str]:
        return (self.command, self.args, self.cwd)

    @property
    def line(self) -> str:
        return " ".join((self.command, *self.args))


class CommandLog:
    """Bounded, thread-safe list of executed commands."""

    def __init__(self, max_entries: int = MAX_ENTRIES, clock: Callable[[], datetime] = datetime.now) -> None:
        self._entries: deque[CommandRecord] = deque(maxlen=max_entries)
        self._lock = threading.Lock()
        self._clock = clock

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def record(self, cmd: Sequence[str], cwd: object = "", source: str = "") -> None:
        if not cmd:
            return
        entry = CommandRecord(
            command=str(cmd[0]),
            args=tuple(str(arg) for arg in cmd[1:]),
            cwd=str(cwd or ""),
            source=source,
            timestamp=self._clock(),
        )
        with self._lock:
            self._entries.append(entry)

    def entries(self) -> list[CommandRecord]:
        with self._lock:
            return list(self._entries)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def render(self, *, distinct: bool = False, sort_by_command: bool = False) -> str:
        """Newest first; optionally one line per distinct command (with a count) or sorted by command."""
        entries = self.entries()
        if not entries:
            return "No commands executed yet"

        counts: dict[tuple[str, tuple[str, ...], str], int] = {}
        for entry in entries:
            counts[entry.key] = counts.get(entry.key, 0) + 1

        rows = sorted(entries, key=lambda e: e.timestamp, reverse=True)
        if distinct:
            seen: set[tuple[str, tuple[str, ...], str]] = set()
            unique = []
            for entry in rows:
                if entry.key not in seen:
                    seen.add(entry.key)
                    unique.append(entry)
            rows = unique
        if sort_by_command:
            # stable sort keeps newest first within one command
            rows = sorted(rows, key=lambda e: (e.command, " ".join(e.args), e.cwd))

        modes = [name for name, on in (("distinct", distinct), ("sorted", sort_by_command)) if on]
        lines: list[str] = []
        if modes:
            lines.extend([f"[{', '.join(modes)}]", ""])
        for entry in rows:
            line = f"{entry.timestamp.strftime('%H:%M:%S')} [{entry.source}] {entry.line}"
            if distinct and counts[entry.key] > 1:
                line += f" (x{counts[entry.key]})"
            lines.append(line)
            if entry.cwd:
                lines.append(f"      in {entry.cwd}")
        return "\n".join(lines)


COMMAND_LOG = CommandLog()
