"""Last-known-good output with time-based staleness."""
from __future__ import annotations

from dataclasses import dataclass

STALE_AFTER_SEC = 2.0
SNAPSHOT_AFTER_SEC = 5.0
SNAPSHOT_REWIND_SEC = 3.0


@dataclass
class PublishedState:
    accepted_at: float
    text: str = ""
    stale: bool = False


@dataclass(frozen=True)
class GateDecision:
    text: str
    stale: bool
    snapshot_due: bool = False


class OutputGate:
    """Holds the published value for one session.

    The visible text only ever advances to new non-blank values; a missed tick
    keeps the previous value and lets it age into the stale state.
    """

    def __init__(
        self,
        started_at: float,
        stale_after: float = STALE_AFTER_SEC,
        snapshot_after: float = SNAPSHOT_AFTER_SEC,
        snapshot_rewind: float = SNAPSHOT_REWIND_SEC,
    ) -> None:
        self.state = PublishedState(accepted_at=started_at)
        self.stale_after = stale_after
        self.snapshot_after = snapshot_after
        self.snapshot_rewind = snapshot_rewind

    @property
    def text(self) -> str:
        return self.state.text

    def age(self, now: float) -> float:
        return now - self.state.accepted_at

    def update(self, display: str, now: float) -> GateDecision:
        state = self.state
        if display and display.strip():
            state.text = display
            state.accepted_at = now

        elapsed = now - state.accepted_at
        state.stale = elapsed >= self.stale_after
        snapshot_due = elapsed >= self.snapshot_after
        if snapshot_due:
            # Keeps the value stale but delays the next snapshot.
            state.accepted_at = now - self.snapshot_rewind
        return GateDecision(text=state.text, stale=state.stale, snapshot_due=snapshot_due)
