"""Unit tests for RebaseTracker."""

from squadron.tui.events import RebaseProgress
from squadron.tui.rebase import RebasePhase, RebaseTracker, RebaseUpdate


def test_full_lifecycle() -> None:
    tracker = RebaseTracker()
    assert tracker.phase is RebasePhase.IDLE
    assert not tracker.active

    tracker.confirm("alpha")
    assert tracker.active
    assert tracker.pending_title == "alpha"
    assert tracker.session is None

    capture = RebaseProgress(title="alpha", branch="squadron/alpha", original_sha="abc123")
    assert tracker.apply(capture) is RebaseUpdate.PROCEED
    assert tracker.phase is RebasePhase.IN_PROGRESS
    assert tracker.pending_title is None
    assert tracker.session.branch == "squadron/alpha"
    assert tracker.session.original_sha == "abc123"

    assert tracker.apply(RebaseProgress(title="alpha", complete=True)) is RebaseUpdate.COMPLETED
    assert tracker.phase is RebasePhase.COMPLETED
    assert tracker.session is None
    assert not tracker.active


def test_partial_capture_fails_without_session() -> None:
    """Branch without SHA never produces a half-filled session."""
    tracker = RebaseTracker()
    tracker.confirm("alpha")

    assert tracker.apply(RebaseProgress(title="alpha", branch="squadron/alpha")) is RebaseUpdate.REJECTED
    assert tracker.phase is RebasePhase.FAILED
    assert tracker.session is None
    assert tracker.pending_title is None


def test_status_only_progress_changes_nothing() -> None:
    tracker = RebaseTracker()
    tracker.confirm("alpha")

    assert tracker.apply(RebaseProgress(title="alpha", status="working")) is RebaseUpdate.STATUS
    assert tracker.phase is RebasePhase.CONFIRMED
    assert tracker.pending_title == "alpha"


def test_error_progress_fails() -> None:
    tracker = RebaseTracker()
    tracker.confirm("alpha")
    tracker.begin("alpha", "b", "sha")

    assert tracker.apply(RebaseProgress(title="alpha", error="conflict")) is RebaseUpdate.FAILED
    assert tracker.phase is RebasePhase.FAILED
    assert tracker.session is None


def test_reset_returns_to_idle() -> None:
    tracker = RebaseTracker()
    tracker.confirm("alpha")
    tracker.begin("alpha", "b", "sha")

    tracker.reset()
    assert tracker.phase is RebasePhase.IDLE
    assert tracker.session is None
    assert tracker.pending_title is None


def test_capture_after_reset_is_stale() -> None:
    tracker = RebaseTracker()
    tracker.confirm("alpha")
    tracker.reset()

    update = tracker.apply(RebaseProgress(title="alpha", branch="squadron/alpha", original_sha="abc123"))

    assert update is RebaseUpdate.STALE
    assert tracker.phase is RebasePhase.IDLE
    assert tracker.session is None


def test_capture_for_another_instance_is_stale() -> None:
    tracker = RebaseTracker()
    tracker.confirm("beta")

    update = tracker.apply(RebaseProgress(title="alpha", branch="squadron/alpha", original_sha="abc123"))

    assert update is RebaseUpdate.STALE
    assert tracker.phase is RebasePhase.CONFIRMED
    assert tracker.pending_title == "beta"


def test_second_capture_after_begin_is_stale() -> None:
    tracker = RebaseTracker()
    tracker.confirm("alpha")
    tracker.apply(RebaseProgress(title="alpha", branch="squadron/alpha", original_sha="abc123"))

    update = tracker.apply(RebaseProgress(title="alpha", branch="squadron/alpha", original_sha="def456"))

    assert update is RebaseUpdate.STALE
    assert tracker.session.original_sha == "abc123"
