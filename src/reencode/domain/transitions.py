"""Run FSM transition table — pure data, no I/O."""

from types import MappingProxyType

from reencode.domain.enums import RunStatus

# Transition table: (current_status, event) -> next_status
# Events: start, recorded, merged, transcoded, failed
TRANSITIONS: MappingProxyType[tuple[RunStatus, str], RunStatus] = MappingProxyType(
    {
        # Forward progression
        (RunStatus.IDLE, "start"): RunStatus.RECORDING,
        (RunStatus.RECORDING, "recorded"): RunStatus.MERGING,
        (RunStatus.MERGING, "merged"): RunStatus.TRANSCODING,
        (RunStatus.TRANSCODING, "transcoded"): RunStatus.DONE,
        # Any active state may fail; no further stages are attempted
        (RunStatus.RECORDING, "failed"): RunStatus.FAILED,
        (RunStatus.MERGING, "failed"): RunStatus.FAILED,
        (RunStatus.TRANSCODING, "failed"): RunStatus.FAILED,
    }
)

# Terminal states — no transitions out
TERMINAL_STATUSES: frozenset[RunStatus] = frozenset({RunStatus.DONE, RunStatus.FAILED})


def is_valid_transition(current: RunStatus, event: str) -> bool:
    """Check whether a transition is defined in the table."""
    return (current, event) in TRANSITIONS


def get_next_status(current: RunStatus, event: str) -> RunStatus | None:
    """Look up the next status for a given (current, event) pair. Returns None if invalid."""
    return TRANSITIONS.get((current, event))


def is_terminal(status: RunStatus) -> bool:
    """Check whether a status is terminal."""
    return status in TERMINAL_STATUSES
