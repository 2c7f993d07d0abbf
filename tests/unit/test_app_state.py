"""Unit tests for persisted UI state."""

import json

from squadron.config.app_state import AppState, load_app_state


def test_mark_seen_reports_first_time_only(tmp_path) -> None:
    state = AppState(path=tmp_path / "state.json")

    assert state.mark_seen(4) is True
    assert state.mark_seen(4) is False
    assert state.has_seen(4)
    assert not state.has_seen(2)
    assert not (tmp_path / "state.json").exists()


def test_save_and_load(tmp_path) -> None:
    path = tmp_path / "state.json"
    state = AppState(path=path)
    state.mark_seen(1)
    state.mark_seen(8)
    state.save()

    assert json.loads(path.read_text()) == {"help_screens_seen": 9}
    assert load_app_state(path).help_screens_seen == 9


def test_unreadable_state_starts_fresh(tmp_path) -> None:
    path = tmp_path / "state.json"
    path.write_text("[broken")
    assert load_app_state(path).help_screens_seen == 0

    path.write_text(json.dumps({"help_screens_seen": "lots"}))
    assert load_app_state(path).help_screens_seen == 0


def test_save_failure_is_not_raised(tmp_path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("")
    state = AppState(path=blocker / "state.json")
    state.mark_seen(1)

    state.save()
