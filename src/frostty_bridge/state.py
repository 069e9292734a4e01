"""state.py — Per-bridge mutable state.

One BridgeState per controller, passed by reference to the components
that touch it. Nothing here is persisted; a restart starts from scratch.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import pendulum

from .events import STATUS_IDLE


@dataclass
class BridgeState:
    """What the bridge knows right now.

    active_session_id: Agent session messages go to. None = none selected.
    latest_status: Human-readable phase (Idle, Thinking..., Running x...).
    cwd: Workspace the agent runs in.
    status_changed_at: When latest_status last changed.
    """

    cwd: str
    active_session_id: str | None = None
    latest_status: str = STATUS_IDLE
    status_changed_at: pendulum.DateTime = field(default_factory=pendulum.now)

    def set_status(self, status: str) -> None:
        if status != self.latest_status:
            self.latest_status = status
            self.status_changed_at = pendulum.now()

    def status_age(self) -> str:
        """Relative time since the last status change, e.g. '2 minutes ago'."""
        return self.status_changed_at.diff_for_humans()
