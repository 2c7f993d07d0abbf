"""Command line entry point: ``squadron``."""

from __future__ import annotations

import argparse
import curses
import os
import queue
import shutil
import sys
from pathlib import Path

from loguru import logger
from pydantic import ValidationError

from squadron import __version__
from squadron.config import load_app_config, load_app_state, load_keybindings
from squadron.config.schema import AppConfig
from squadron.core.errors import GitError, SquadronError, StorageError
from squadron.core.git_worktree import find_repo_root
from squadron.core.storage import Storage
from squadron.core.update_checker import UpdateChecker
from squadron.logging_config import configure_logging
from squadron.paths import CONFIG_PATH, REPO_ROOT
from squadron.tui.app import SquadronApp
from squadron.tui.commands import TerminalLease, ThreadedExecutor
from squadron.tui.dispatcher import Dispatcher
from squadron.tui.events import Event


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="squadron", description="Supervise AI coding sessions in git worktrees.")
    parser.add_argument("-p", "--program", help="program to run in new sessions (overrides config)")
    parser.add_argument("-y", "--autoyes", action="store_true", help="auto-accept prompts from the AI program")
    parser.add_argument("--config", type=Path, default=None, help=f"config file (default: {CONFIG_PATH})")
    parser.add_argument("--debug", action="store_true", help="log at DEBUG level")

    sub = parser.add_subparsers(dest="command")
    sub.add_parser("reset", help="kill every stored instance and clear storage")
    sub.add_parser("version", help="print the version")
    return parser


def resolve_config(args: argparse.Namespace) -> AppConfig:
    """Load the config file and apply command line overrides."""
    config = load_app_config(args.config)
    overrides: dict[str, object] = {}
    if args.program:
        overrides["default_program"] = args.program
    if args.autoyes:
        overrides["auto_yes"] = True
    return config.model_copy(update=overrides) if overrides else config


def _reset(storage: Storage) -> None:
    instances = storage.load_instances()
    for instance in instances:
        instance.prepare()
        try:
            instance.kill()
        except SquadronError as e:
            logger.warning(f"Kill of '{instance.title}' failed ({e}); forcing cleanup")
            for error in instance.force_kill():
                logger.warning(f"Cleanup of '{instance.title}': {error}")
    storage.delete_all()
    print(f"Reset {len(instances)} instance(s)")


def _run_tui(config: AppConfig, storage: Storage, repo_path: Path) -> None:
    instances = storage.load_instances()
    events: "queue.Queue[Event]" = queue.Queue()
    lease = TerminalLease()
    executor = ThreadedExecutor(events, terminal_lease=lease)
    update_checker = UpdateChecker(REPO_ROOT, interval_s=config.update_check_interval_minutes * 60)
    if (REPO_ROOT / ".git").exists():
        update_checker.start()

    dispatcher = Dispatcher(
        executor,
        storage,
        update_checker,
        config=config,
        keybindings=load_keybindings(),
        app_state=load_app_state(),
        repo_path=str(repo_path),
        instances=instances,
    )
    app = SquadronApp(dispatcher, events, lease)
    try:
        curses.wrapper(app.run)
    finally:
        executor.shutdown()
        update_checker.stop()
    logger.info("squadron exited")


def _main_impl() -> None:
    args = build_parser().parse_args()

    if args.command == "version":
        print(f"squadron {__version__}")
        return

    configure_logging("DEBUG" if args.debug else None, to_stderr=args.command == "reset")
    try:
        config = resolve_config(args)
    except ValidationError as e:
        sys.stderr.write(f"squadron error: invalid config: {e}\n")
        sys.exit(1)
    storage = Storage()

    if args.command == "reset":
        try:
            _reset(storage)
        except StorageError as e:
            sys.stderr.write(f"squadron error: {e}\n")
            sys.exit(1)
        return

    if not shutil.which("tmux"):
        sys.stderr.write("squadron error: tmux is required\n")
        sys.exit(1)
    try:
        repo_path = find_repo_root(os.getcwd())
    except GitError:
        sys.stderr.write("squadron error: must be run from within a git repository\n")
        sys.exit(1)

    try:
        _run_tui(config, storage, repo_path)
    except StorageError as e:
        sys.stderr.write(f"squadron error: {e}\n")
        sys.exit(1)


def main() -> None:
    try:
        _main_impl()
    except KeyboardInterrupt:
        sys.exit(130)


if __name__ == "__main__":
    main()
