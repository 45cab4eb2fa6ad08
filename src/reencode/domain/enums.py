"""Domain enums — run status progression, stage phases and engine lifecycle."""

from enum import Enum, unique


@unique
class RunStatus(Enum):
    """Ordered run states from idle to a terminal outcome."""

    IDLE = "idle"
    RECORDING = "recording"
    MERGING = "merging"
    TRANSCODING = "transcoding"
    DONE = "done"
    FAILED = "failed"


@unique
class Phase(Enum):
    """Named engine stage within a run; the value is the wire ``phase`` string."""

    LOAD = "load"
    MERGE = "merge"
    TRANSCODE = "transcode"


@unique
class EngineState(Enum):
    """Engine gateway lifecycle."""

    UNINITIALIZED = "uninitialized"
    LOADING = "loading"
    READY = "ready"
    FAILED = "failed"
