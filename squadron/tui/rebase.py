"""Rebase progress tracker."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from squadron.tui.events import RebaseProgress


class RebasePhase(str, Enum):
    IDLE = "idle"
    CONFIRMED = "confirmed"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"


class RebaseUpdate(str, Enum):
    """How the dispatcher should treat a progress event after ``apply``."""

    STATUS = "status"  # informational; show it
    PROCEED = "proceed"  # capture accepted; run the rebase
    REJECTED = "rejected"  # capture incomplete; tracker failed
    STALE = "stale"  # capture for a rebase that is no longer pending; drop it
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass(frozen=True)
class RebaseSession:
    instance_title: str
    branch: str
    original_sha: str


class RebaseTracker:
    """Tracks at most one in-flight rebase.

    ``session`` is either fully populated or None; there is no partial state.
    """

    def __init__(self) -> None:
        self.phase = RebasePhase.IDLE
        self.pending_title: str | None = None
        self.session: RebaseSession | None = None

    @property
    def active(self) -> bool:
        return self.phase in (RebasePhase.CONFIRMED, RebasePhase.IN_PROGRESS)

    def confirm(self, title: str) -> None:
        self.phase = RebasePhase.CONFIRMED
        self.pending_title = title
        self.session = None

    def begin(self, title: str, branch: str, original_sha: str) -> bool:
        """Record the captured branch and SHA. Returns False (and fails) on partial capture."""
        if not title or not branch or not original_sha:
            logger.warning(f"Incomplete rebase capture for {title!r}: branch={branch!r} sha={original_sha!r}")
            self.fail()
            return False
        self.session = RebaseSession(instance_title=title, branch=branch, original_sha=original_sha)
        self.pending_title = None
        self.phase = RebasePhase.IN_PROGRESS
        return True

    def apply(self, progress: RebaseProgress) -> RebaseUpdate:
        """Fold a progress event into the tracker.

        A capture (branch, SHA or main branch set) is only accepted while the
        tracker is confirmed for the same instance. Anything else means the
        rebase was reset in the meantime and the capture is stale.
        """
        if progress.error is not None:
            self.fail()
            return RebaseUpdate.FAILED
        if progress.complete:
            if self.session is not None and self.session.instance_title == progress.title:
                self._clear(RebasePhase.COMPLETED)
            return RebaseUpdate.COMPLETED
        if progress.branch or progress.original_sha or progress.main_branch:
            if self.phase is not RebasePhase.CONFIRMED or progress.title != self.pending_title:
                logger.info(f"Dropping stale rebase capture for '{progress.title}' (tracker {self.phase.value})")
                return RebaseUpdate.STALE
            if self.begin(progress.title, progress.branch, progress.original_sha):
                return RebaseUpdate.PROCEED
            return RebaseUpdate.REJECTED
        return RebaseUpdate.STATUS

    def fail(self) -> None:
        self._clear(RebasePhase.FAILED)

    def reset(self) -> None:
        self._clear(RebasePhase.IDLE)

    def _clear(self, phase: RebasePhase) -> None:
        self.session = None
        self.pending_title = None
        self.phase = phase
