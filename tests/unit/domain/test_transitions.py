"""Tests for the run FSM transition table."""

from __future__ import annotations

import pytest

from reencode.domain.enums import RunStatus
from reencode.domain.transitions import (
    TERMINAL_STATUSES,
    TRANSITIONS,
    get_next_status,
    is_terminal,
    is_valid_transition,
)

_ACTIVE = (RunStatus.RECORDING, RunStatus.MERGING, RunStatus.TRANSCODING)


class TestTransitionTable:
    def test_happy_path(self) -> None:
        status = RunStatus.IDLE
        for event in ("start", "recorded", "merged", "transcoded"):
            next_status = get_next_status(status, event)
            assert next_status is not None
            status = next_status
        assert status is RunStatus.DONE

    @pytest.mark.parametrize("status", _ACTIVE)
    def test_active_statuses_can_fail(self, status: RunStatus) -> None:
        assert get_next_status(status, "failed") is RunStatus.FAILED

    def test_idle_cannot_fail(self) -> None:
        assert not is_valid_transition(RunStatus.IDLE, "failed")

    def test_stages_cannot_be_skipped(self) -> None:
        assert not is_valid_transition(RunStatus.RECORDING, "merged")
        assert not is_valid_transition(RunStatus.IDLE, "recorded")

    def test_no_transitions_out_of_terminal_states(self) -> None:
        for current, _event in TRANSITIONS:
            assert current not in TERMINAL_STATUSES

    def test_table_is_read_only(self) -> None:
        with pytest.raises(TypeError):
            TRANSITIONS[(RunStatus.DONE, "start")] = RunStatus.RECORDING  # type: ignore[index]

    def test_unknown_event(self) -> None:
        assert get_next_status(RunStatus.RECORDING, "paused") is None


class TestIsTerminal:
    @pytest.mark.parametrize("status", [RunStatus.DONE, RunStatus.FAILED])
    def test_terminal(self, status: RunStatus) -> None:
        assert is_terminal(status)

    @pytest.mark.parametrize("status", [RunStatus.IDLE, *_ACTIVE])
    def test_not_terminal(self, status: RunStatus) -> None:
        assert not is_terminal(status)
