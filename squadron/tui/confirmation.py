"""Confirmation gate: one deferred action behind a yes/no prompt."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from loguru import logger

from squadron.tui.commands import AsyncCommand

ACCEPT_KEYS = frozenset({"y", "Y"})
REJECT_KEYS = frozenset({"n", "N", "esc"})


class Decision(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"


class GateOutcome(str, Enum):
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    SWALLOWED = "swallowed"


@dataclass
class PendingAction:
    prompt: str
    accept: AsyncCommand | None
    reject: AsyncCommand | None = None
    decision: Decision | None = None

    def continuation(self) -> AsyncCommand | None:
        """The command chosen by the decision, if any."""
        if self.decision is Decision.ACCEPTED:
            return self.accept
        if self.decision is Decision.REJECTED:
            return self.reject
        return None


class ConfirmationGate:
    """Holds at most one PendingAction.

    ``handle_input`` only records the decision; the dispatcher consumes the
    action with ``take`` on the following tick, so the prompt is gone before
    the command starts.
    """

    def __init__(self) -> None:
        self._pending: PendingAction | None = None

    @property
    def pending(self) -> PendingAction | None:
        return self._pending

    @property
    def has_decision(self) -> bool:
        return self._pending is not None and self._pending.decision is not None

    def request(self, prompt: str, on_accept: AsyncCommand | None, on_reject: AsyncCommand | None = None) -> None:
        if self._pending is not None:
            logger.warning(f"Replacing pending action {self._pending.prompt!r} with {prompt!r}")
        self._pending = PendingAction(prompt=prompt, accept=on_accept, reject=on_reject)

    def handle_input(self, key: str) -> GateOutcome:
        pending = self._pending
        if pending is None or pending.decision is not None:
            return GateOutcome.SWALLOWED
        if key in ACCEPT_KEYS:
            pending.decision = Decision.ACCEPTED
            return GateOutcome.ACCEPTED
        if key in REJECT_KEYS:
            pending.decision = Decision.REJECTED
            return GateOutcome.REJECTED
        return GateOutcome.SWALLOWED

    def take(self) -> PendingAction | None:
        """Consume the decided action exactly once."""
        if not self.has_decision:
            return None
        pending, self._pending = self._pending, None
        return pending

    def clear(self) -> None:
        self._pending = None
