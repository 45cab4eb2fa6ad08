"""Domain models — frozen dataclasses for run state, stage requests and results."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from reencode.domain.enums import Phase, RunStatus
from reencode.domain.types import ArtifactName, CorrelationKey, RunId

_NO_RUN = "no-run"
_NO_PHASE = "no-phase"


def _freeze_mapping(m: Mapping[str, Any]) -> MappingProxyType[str, Any]:
    """Wrap a mutable mapping in MappingProxyType for immutability."""
    if isinstance(m, MappingProxyType):
        return m
    return MappingProxyType(dict(m))


def correlation_key(run_id: str | None, phase: str | None) -> CorrelationKey:
    """Build the registry key for a (run id, phase) pair.

    Missing parts map to fixed placeholders so uncorrelated calls still
    get a stable key.
    """
    return CorrelationKey(f"{run_id or _NO_RUN}:{phase or _NO_PHASE}")


@dataclass(frozen=True)
class Segment:
    """One captured media segment, 0-indexed in capture order."""

    index: int
    data: bytes

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"index must be non-negative, got {self.index}")

    @property
    def size(self) -> int:
        """Payload length in bytes."""
        return len(self.data)

    @property
    def artifact_name(self) -> ArtifactName:
        """Deterministic engine artifact name for this segment."""
        return ArtifactName(f"seg{self.index}.webm")


@dataclass(frozen=True)
class MediaBlob:
    """Named binary object crossing the engine gateway boundary."""

    name: str
    data: bytes
    mime_type: str = "application/octet-stream"

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must not be empty")

    @property
    def size(self) -> int:
        """Payload length in bytes."""
        return len(self.data)


@dataclass(frozen=True)
class StageRequest:
    """A (run id, phase) pair naming one dispatch to the engine."""

    run_id: RunId | None = None
    phase: Phase | None = None

    @property
    def key(self) -> CorrelationKey:
        """Unique correlation registry key for this request."""
        return correlation_key(self.run_id, self.phase.value if self.phase else None)

    @property
    def phase_name(self) -> str | None:
        """Wire-level phase string, or None for uncorrelated calls."""
        return self.phase.value if self.phase else None


@dataclass(frozen=True)
class EngineProfile:
    """Resource profile the engine is loaded with.

    ``threads`` of 0 lets the engine pick its own thread count.
    """

    name: str
    threads: int = 0

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must not be empty")
        if self.threads < 0:
            raise ValueError(f"threads must be non-negative, got {self.threads}")


@dataclass(frozen=True)
class RunState:
    """Incrementally built state of one pipeline run."""

    run_id: RunId
    status: RunStatus = RunStatus.IDLE
    started_at: str = ""
    segment_sizes: tuple[int, ...] = field(default_factory=tuple)
    merged_bytes: int = 0
    mp4_bytes: int = 0
    t_record_ms: int = 0
    t_merge_ms: int = 0
    t_mp4_ms: int = 0
    t_total_ms: int = 0
    failure: str = ""
    updated_at: str = ""

    def __post_init__(self) -> None:
        if not self.run_id:
            raise ValueError("run_id must not be empty")


@dataclass(frozen=True)
class ResultRecord:
    """Immutable snapshot of a completed run, persisted as one JSON line."""

    timestamp: str
    run_id: RunId
    segment_count: int
    segment_duration_ms: int
    gap_ms: int
    segment_sizes_bytes: tuple[int, ...]
    merged_bytes: int
    mp4_bytes: int
    t_record_ms: int
    t_merge_ms: int
    t_mp4_ms: int
    t_total_ms: int

    def __post_init__(self) -> None:
        if not self.run_id:
            raise ValueError("run_id must not be empty")
        if self.segment_count != len(self.segment_sizes_bytes):
            raise ValueError(
                f"segment_count ({self.segment_count}) does not match "
                f"{len(self.segment_sizes_bytes)} segment sizes"
            )
        for name in ("t_record_ms", "t_merge_ms", "t_mp4_ms", "t_total_ms"):
            if getattr(self, name) < 0:
                raise ValueError(f"{name} must be non-negative")

    @property
    def size_reduction_pct(self) -> float:
        """Percentage saved by the MP4 re-encode relative to the merged file."""
        if self.merged_bytes == 0:
            return 0.0
        return (self.merged_bytes - self.mp4_bytes) / self.merged_bytes * 100

    def to_dict(self) -> dict[str, Any]:
        """Serialise to the persisted camelCase shape."""
        return {
            "timestamp": self.timestamp,
            "runId": self.run_id,
            "segmentCount": self.segment_count,
            "segmentDurationMs": self.segment_duration_ms,
            "gapMs": self.gap_ms,
            "segmentSizesBytes": list(self.segment_sizes_bytes),
            "mergedBytes": self.merged_bytes,
            "mp4Bytes": self.mp4_bytes,
            "tRecordMs": self.t_record_ms,
            "tMergeMs": self.t_merge_ms,
            "tMp4Ms": self.t_mp4_ms,
            "tTotalMs": self.t_total_ms,
        }


@dataclass(frozen=True)
class PipelineEvent:
    """Structured event emitted via EventBus for observability."""

    timestamp: str
    event_name: str
    phase: Phase | None = None
    data: Mapping[str, Any] = field(default_factory=lambda: MappingProxyType({}))

    def __post_init__(self) -> None:
        if not isinstance(self.data, MappingProxyType):
            object.__setattr__(self, "data", _freeze_mapping(self.data))
        if not self.event_name:
            raise ValueError("event_name must not be empty")
