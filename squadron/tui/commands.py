"""Async command descriptors and the executor that runs them off the loop thread."""

from __future__ import annotations

import queue
import threading
from concurrent.futures import ThreadPoolExecutor
from contextlib import nullcontext
from dataclasses import dataclass, field
from typing import Any, Callable, ContextManager, Protocol

from loguru import logger

from squadron.constants import COMMAND_WORKERS
from squadron.core.errors import SquadronError
from squadron.tui.events import ErrorEvent, Event


@dataclass(frozen=True)
class AsyncCommand:
    """A described unit of blocking work.

    ``fn`` is a module-level function; ``args`` are plain values. Running the
    command yields exactly one event.
    """

    name: str
    fn: Callable[..., Event]
    args: tuple[Any, ...] = field(default_factory=tuple)
    needs_terminal: bool = False

    def run(self) -> Event:
        """Execute and convert any failure into an ErrorEvent."""
        try:
            return self.fn(*self.args)
        except SquadronError as e:
            logger.warning(f"Command {self.name} failed: {e}")
            return ErrorEvent(str(e))
        except Exception as e:  # noqa: BLE001
            logger.exception(f"Command {self.name} crashed")
            return ErrorEvent(f"{self.name} failed: {e}")


class CommandExecutor(Protocol):
    def schedule(self, command: AsyncCommand) -> None: ...

    def post(self, event: Event) -> None: ...

    def schedule_timer(self, event: Event, delay: float) -> None: ...


class TerminalLease:
    """Hands the controlling terminal from the curses loop to a blocking command.

    The command thread calls ``acquire`` (blocks until the loop has released
    curses) and ``release`` when it is done. The loop polls ``requested`` and
    answers with ``grant`` followed by ``wait_returned``.
    """

    def __init__(self) -> None:
        self._requested = threading.Event()
        self._granted = threading.Event()
        self._returned = threading.Event()

    @property
    def requested(self) -> bool:
        return self._requested.is_set()

    def acquire(self) -> None:
        self._returned.clear()
        self._requested.set()
        self._granted.wait()

    def release(self) -> None:
        self._requested.clear()
        self._granted.clear()
        self._returned.set()

    def grant(self) -> None:
        self._granted.set()

    def wait_returned(self) -> None:
        self._returned.wait()

    def __enter__(self) -> "TerminalLease":
        self.acquire()
        return self

    def __exit__(self, *_exc: object) -> None:
        self.release()


class ThreadedExecutor:
    """Runs commands on a thread pool and feeds their events into ``events``."""

    def __init__(self, events: "queue.Queue[Event]", terminal_lease: TerminalLease | None = None) -> None:
        self._events = events
        self._terminal_lease = terminal_lease
        self._terminal_lock = threading.Lock()
        self._pool = ThreadPoolExecutor(max_workers=COMMAND_WORKERS, thread_name_prefix="squadron-cmd")
        self._timers: list[threading.Timer] = []

    def schedule(self, command: AsyncCommand) -> None:
        logger.debug(f"Scheduling command {command.name}")
        self._pool.submit(self._execute, command)

    def _execute(self, command: AsyncCommand) -> None:
        guard: ContextManager[object] = nullcontext()
        if command.needs_terminal and self._terminal_lease is not None:
            guard = self._terminal_lease
        with self._terminal_lock if command.needs_terminal else nullcontext():
            with guard:
                event = command.run()
        self._events.put(event)

    def post(self, event: Event) -> None:
        self._events.put(event)

    def schedule_timer(self, event: Event, delay: float) -> None:
        timer = threading.Timer(delay, self._events.put, args=(event,))
        timer.daemon = True
        self._timers = [t for t in self._timers if t.is_alive()]
        self._timers.append(timer)
        timer.start()

    def shutdown(self) -> None:
        for timer in self._timers:
            timer.cancel()
        self._pool.shutdown(wait=False, cancel_futures=True)
