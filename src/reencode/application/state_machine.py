"""Run state machine — transition execution with bookkeeping updates."""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime
from typing import Any

from reencode.domain.errors import ValidationError
from reencode.domain.models import RunState
from reencode.domain.transitions import get_next_status, is_terminal, is_valid_transition


class RunStateMachine:
    """Applies FSM transitions to RunState, returning a new immutable instance."""

    def validate_transition(self, state: RunState, event: str) -> bool:
        """Check whether a transition is valid without applying it."""
        if is_terminal(state.status):
            return False
        return is_valid_transition(state.status, event)

    def apply_transition(self, state: RunState, event: str, **updates: Any) -> RunState:
        """Apply a transition event, merging ``updates`` into the new RunState.

        Raises ValidationError if the transition is not defined in the table.
        """
        if is_terminal(state.status):
            raise ValidationError(f"Cannot transition from terminal status {state.status.value}")

        next_status = get_next_status(state.status, event)
        if next_status is None:
            raise ValidationError(f"Invalid transition: ({state.status.value}, {event})")

        now = datetime.now(UTC).isoformat()

        if event == "start":
            return replace(state, status=next_status, started_at=now, updated_at=now, **updates)

        if event == "failed":
            if not updates.get("failure"):
                raise ValidationError("A failed transition requires a failure reason")
            return replace(state, status=next_status, updated_at=now, **updates)

        return replace(state, status=next_status, updated_at=now, **updates)
