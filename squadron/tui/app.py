"""Curses host: reads input, drains the event queue into the dispatcher and renders."""

from __future__ import annotations

import curses
import queue

from loguru import logger

from squadron.constants import LIST_TOP_ROW
from squadron.core.instance import InstanceStatus
from squadron.keys import KeyName
from squadron.tui.commands import TerminalLease
from squadron.tui.dispatcher import Dispatcher, Tab
from squadron.tui.events import Event, KeyEvent, MouseEvent, ResizeEvent
from squadron.tui.modes import DefaultMode

LOOP_TIMEOUT_MS = 50
LIST_WIDTH_RATIO = 0.3

MOUSE_MASK = curses.BUTTON1_CLICKED | curses.BUTTON4_PRESSED | getattr(curses, "BUTTON5_PRESSED", 0x200000)

SPECIAL_KEYS = {
    curses.KEY_UP: "up",
    curses.KEY_DOWN: "down",
    curses.KEY_LEFT: "left",
    curses.KEY_RIGHT: "right",
    curses.KEY_HOME: "home",
    curses.KEY_END: "end",
    curses.KEY_PPAGE: "pgup",
    curses.KEY_NPAGE: "pgdown",
    curses.KEY_SR: "shift+up",
    curses.KEY_SF: "shift+down",
    curses.KEY_BACKSPACE: "backspace",
    curses.KEY_ENTER: "enter",
    curses.KEY_BTAB: "shift+tab",
    127: "backspace",
    10: "enter",
    13: "enter",
    9: "tab",
    27: "esc",
}

# Extended key names reported by curses.keyname for modified arrows
NAMED_KEYS = {
    b"kUP3": "alt+up",
    b"kDN3": "alt+down",
    b"kHOM5": "ctrl+home",
    b"kEND5": "ctrl+end",
}

STATUS_MARKERS = {
    InstanceStatus.RUNNING: "●",
    InstanceStatus.READY: "○",
    InstanceStatus.LOADING: "…",
    InstanceStatus.PAUSED: "⏸",
}

MENU_COMMANDS = (
    KeyName.NEW,
    KeyName.NEW_WITH_PROMPT,
    KeyName.KILL,
    KeyName.ENTER,
    KeyName.PUSH,
    KeyName.CHECKOUT,
    KeyName.RESUME,
    KeyName.TAB,
    KeyName.HELP,
    KeyName.QUIT,
)


def key_string(key: int, stdscr: curses.window | None = None) -> str | None:
    """Translate a curses key code into the key names used by the key table.

    Args:
        key: Value returned by ``getch``
        stdscr: Screen used to read the second byte of an alt sequence

    Returns:
        Key name, or None for keys with no name
    """
    if key == 27 and stdscr is not None:
        stdscr.nodelay(True)
        try:
            follow = stdscr.getch()
        finally:
            stdscr.nodelay(False)
            stdscr.timeout(LOOP_TIMEOUT_MS)
        if follow == -1:
            return "esc"
        inner = key_string(follow)
        return f"alt+{inner}" if inner else "esc"
    if key in SPECIAL_KEYS:
        return SPECIAL_KEYS[key]
    if 1 <= key <= 26:
        return f"ctrl+{chr(key + 96)}"
    if 32 <= key < 127:
        return chr(key)
    try:
        return NAMED_KEYS.get(curses.keyname(key))
    except ValueError:
        return None


def _addstr(stdscr: curses.window, y: int, x: int, text: str, attr: int = 0) -> None:
    height, width = stdscr.getmaxyx()
    if y < 0 or y >= height or x >= width:
        return
    try:
        stdscr.addstr(y, x, text[: max(width - x - 1, 0)], attr)
    except curses.error:
        pass  # writing the bottom-right cell raises


class SquadronApp:
    """Main loop. The loop thread is the only caller of ``dispatcher.handle``."""

    def __init__(self, dispatcher: Dispatcher, events: "queue.Queue[Event]", lease: TerminalLease) -> None:
        self.dispatcher = dispatcher
        self.events = events
        self.lease = lease

    def run(self, stdscr: curses.window) -> None:
        """Run until the dispatcher stops.

        Args:
            stdscr: Curses screen object
        """
        curses.curs_set(0)
        stdscr.keypad(True)
        curses.raw()  # ctrl+c arrives as a key, not SIGINT
        curses.mousemask(MOUSE_MASK)
        stdscr.timeout(LOOP_TIMEOUT_MS)

        height, width = stdscr.getmaxyx()
        self.events.put(ResizeEvent(width, height))
        self.dispatcher.start()

        while self.dispatcher.running:
            self._drain_events()
            if not self.dispatcher.running:
                break
            if self.lease.requested:
                self._hand_over_terminal(stdscr)
                continue
            self._render(stdscr)
            self._read_input(stdscr)

    def _drain_events(self) -> None:
        while self.dispatcher.running:
            try:
                event = self.events.get_nowait()
            except queue.Empty:
                return
            self.dispatcher.handle(event)

    def _read_input(self, stdscr: curses.window) -> None:
        key = stdscr.getch()
        if key == -1:
            return
        if key == curses.KEY_RESIZE:
            height, width = stdscr.getmaxyx()
            self.events.put(ResizeEvent(width, height))
            return
        if key == curses.KEY_MOUSE:
            try:
                _, mx, my, _, bstate = curses.getmouse()
            except curses.error:
                return
            if bstate & curses.BUTTON4_PRESSED:
                self.events.put(MouseEvent(mx, my, "wheel_up"))
            elif bstate & curses.BUTTON1_CLICKED:
                self.events.put(MouseEvent(mx, my, "left"))
            else:
                self.events.put(MouseEvent(mx, my, "wheel_down"))
            return
        name = key_string(key, stdscr)
        if name is None:
            logger.trace(f"Ignoring unnamed key {key}")
            return
        self.events.put(KeyEvent(name))

    def _hand_over_terminal(self, stdscr: curses.window) -> None:
        """Suspend curses while a command owns the terminal (tmux attach, difftool)."""
        logger.debug("Handing terminal to command")
        curses.def_prog_mode()
        curses.endwin()
        self.lease.grant()
        self.lease.wait_returned()
        curses.reset_prog_mode()
        stdscr.clear()
        stdscr.refresh()
        logger.debug("Terminal returned to squadron")

    # ------------------------------------------------------------------
    # Rendering
    # ------------------------------------------------------------------

    def _render(self, stdscr: curses.window) -> None:
        stdscr.erase()
        height, width = stdscr.getmaxyx()
        d = self.dispatcher

        header = "squadron"
        status = d.update_status
        if status.available:
            header += f"  (update available: {status.commits_behind} commits behind)"
        _addstr(stdscr, 0, 0, header, curses.A_BOLD)

        list_width = max(int(width * LIST_WIDTH_RATIO), 20)
        self._render_list(stdscr, list_width, height)
        self._render_tab(stdscr, list_width + 1, width - list_width - 1, height)
        self._render_menu(stdscr, height - 1)
        if d.banner is not None:
            attr = curses.A_BOLD if d.banner.is_error else curses.A_DIM
            prefix = "error: " if d.banner.is_error else ""
            _addstr(stdscr, height - 2, 0, prefix + d.banner.text, attr)

        overlay = d.mode.overlay
        if not isinstance(d.mode, DefaultMode) and overlay is not None:
            self._render_overlay(stdscr, overlay.render(max(width - 8, 10), max(height - 6, 3)), width, height)
        stdscr.refresh()

    def _render_list(self, stdscr: curses.window, list_width: int, height: int) -> None:
        d = self.dispatcher
        _addstr(stdscr, LIST_TOP_ROW - 1, 0, f"Instances ({len(d.instances)})", curses.A_UNDERLINE)
        for row, instance in enumerate(d.instances[: max(height - LIST_TOP_ROW - 2, 0)]):
            marker = STATUS_MARKERS.get(instance.status, " ")
            title = instance.title or "(naming…)"
            attr = curses.A_REVERSE if row == d.selected_index else 0
            _addstr(stdscr, LIST_TOP_ROW + row, 0, f"{marker} {title}"[:list_width].ljust(list_width), attr)

    def _render_tab(self, stdscr: curses.window, x: int, width: int, height: int) -> None:
        d = self.dispatcher
        tabs = "  ".join(f"[{tab.value}]" if tab is d.active_tab else tab.value for tab in Tab)
        _addstr(stdscr, LIST_TOP_ROW - 1, x, tabs)

        instance = d.selected
        if d.active_tab is Tab.LOG:
            content = d.command_log_view()
        elif instance is None:
            content = "No instances. Press n to create one."
        elif instance.paused:
            content = f"'{instance.title}' is paused. Press r to resume."
        elif d.active_tab is Tab.DIFF:
            content = d.current_diff() or "No changes"
        elif d.active_tab is Tab.TERMINAL:
            content = d.terminals.get(instance.title, "")
        else:
            content = d.previews.get(instance.title, "")

        lines = content.splitlines()
        body_height = max(height - LIST_TOP_ROW - 2, 0)
        if d.active_tab is Tab.PREVIEW and not d.scroll:
            visible = lines[-body_height:] if body_height else []
        else:
            visible = lines[d.scroll : d.scroll + body_height]
        for row, line in enumerate(visible):
            attr = curses.A_BOLD if d.active_tab is Tab.DIFF and line.startswith("diff --git") else 0
            _addstr(stdscr, LIST_TOP_ROW + row, x, line[:width], attr)

    def _render_menu(self, stdscr: curses.window, y: int) -> None:
        d = self.dispatcher
        x = 0
        for command in MENU_COMMANDS:
            binding = d.keybindings.get_binding(command.value)
            if binding is None or not binding.keys:
                continue
            key = binding.keys[0]
            label = f"{key} {binding.help}"
            attr = curses.A_REVERSE if d.highlighted_key in binding.keys else curses.A_DIM
            _addstr(stdscr, y, x, label, attr)
            x += len(label) + 3

    def _render_overlay(self, stdscr: curses.window, lines: list[str], width: int, height: int) -> None:
        box_width = min(max((len(line) for line in lines), default=10) + 4, width - 2)
        box_height = min(len(lines) + 2, height - 2)
        top = max((height - box_height) // 2, 0)
        left = max((width - box_width) // 2, 0)
        try:
            window = stdscr.derwin(box_height, box_width, top, left)
            window.erase()
            window.box()
        except curses.error:
            return
        for row, line in enumerate(lines[: box_height - 2]):
            _addstr(window, row + 1, 2, line[: box_width - 4])
        window.noutrefresh()
