"""Shared fakes for dispatcher-level tests."""

from datetime import datetime

import pytest

from squadron.config.app_state import AppState
from squadron.config.schema import AppConfig, KeyBindingsConfig
from squadron.core.command_log import CommandLog
from squadron.core.instance import Instance, InstanceStatus
from squadron.core.update_checker import UpdateStatus
from squadron.tui.dispatcher import Dispatcher

FIXED_NOW = datetime(2024, 5, 17, 13, 14, 15)


class RecordingExecutor:
    """Records scheduled commands, posted events and timers without running anything."""

    def __init__(self):
        self.scheduled = []
        self.posted = []
        self.timers = []

    def schedule(self, command):
        self.scheduled.append(command)

    def post(self, event):
        self.posted.append(event)

    def schedule_timer(self, event, delay):
        self.timers.append((event, delay))

    @property
    def names(self):
        return [command.name for command in self.scheduled]


class MemoryStorage:
    def __init__(self):
        self.records = {}
        self.saved_all = None

    def load_instances(self):
        return [Instance.from_dict(record) for record in self.records.values()]

    def save_instances(self, instances):
        self.saved_all = [instance.title for instance in instances if instance.started]
        self.records = {instance.title: instance.to_dict() for instance in instances if instance.started}

    def save_instance(self, instance):
        self.records[instance.title] = instance.to_dict()

    def delete_instance(self, title):
        self.records.pop(title, None)

    def delete_all(self):
        self.records = {}


class StaticUpdateChecker:
    def __init__(self, status=None):
        self.status = status or UpdateStatus()

    def snapshot(self):
        return self.status


def running_instance(title: str, **overrides) -> Instance:
    fields = {
        "title": title,
        "path": "/repo",
        "program": "claude",
        "branch": f"squadron/{title}",
        "status": InstanceStatus.RUNNING,
        "started": True,
        "worktree_path": f"/worktrees/{title}",
    }
    fields.update(overrides)
    return Instance(**fields)


@pytest.fixture
def executor():
    return RecordingExecutor()


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def make_dispatcher(executor, storage, tmp_path):
    def _make(instances=(), update_status=None, app_state=None, config=None, command_log=None):
        return Dispatcher(
            executor,
            storage,
            StaticUpdateChecker(update_status),
            config=config or AppConfig(),
            keybindings=KeyBindingsConfig.defaults(),
            app_state=app_state or AppState(path=tmp_path / "state.json"),
            repo_path="/repo",
            instances=list(instances),
            clock=lambda: FIXED_NOW,
            command_log=command_log if command_log is not None else CommandLog(),
        )

    return _make


@pytest.fixture
def make_instance():
    return running_instance
