"""PipelineRunner — drive one record → merge → transcode run end to end."""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from reencode.application.state_machine import RunStateMachine
from reencode.domain.enums import Phase, RunStatus
from reencode.domain.errors import CaptureError, PersistenceError, PipelineError
from reencode.domain.models import MediaBlob, PipelineEvent, ResultRecord, RunState, Segment
from reencode.domain.profiles import H264_CFR30, TranscodeProfile
from reencode.domain.types import RunId
from reencode.domain.units import format_bytes

if TYPE_CHECKING:
    from reencode.application.engine_gateway import EngineGateway
    from reencode.application.event_bus import EventBus
    from reencode.domain.ports import CapturePort, LogSinkPort, ResultSinkPort

logger = logging.getLogger(__name__)

_MERGED_NAME = "merged.webm"
_MERGED_MIME = "video/webm"
_TRANSCODED_STEM = "reencoded"

# Operator-facing label for the stage a run was in when it failed
_FAILURE_LABELS: dict[RunStatus, str] = {
    RunStatus.RECORDING: "Recording",
    RunStatus.MERGING: "Merge",
    RunStatus.TRANSCODING: "Transcode",
}

_PHASE_BY_STATUS: dict[RunStatus, Phase] = {
    RunStatus.MERGING: Phase.MERGE,
    RunStatus.TRANSCODING: Phase.TRANSCODE,
}


def _generate_run_id() -> RunId:
    """Generate a collision-resistant run ID with microseconds and random suffix."""
    ts = datetime.now(UTC).strftime("%Y%m%d-%H%M%S-%f")
    suffix = os.urandom(4).hex()
    return RunId(f"{ts}-{suffix}")


def _monotonic_ms() -> int:
    """Whole milliseconds from a monotonic clock."""
    return time.perf_counter_ns() // 1_000_000


@dataclass(frozen=True)
class RunConfig:
    """Capture parameters for an automated run."""

    segment_count: int = 4
    segment_duration_ms: int = 5000
    gap_ms: int = 250

    def __post_init__(self) -> None:
        if self.segment_count < 1:
            raise ValueError(f"segment_count must be >= 1, got {self.segment_count}")
        if self.segment_duration_ms <= 0:
            raise ValueError(f"segment_duration_ms must be positive, got {self.segment_duration_ms}")
        if self.gap_ms < 0:
            raise ValueError(f"gap_ms must be non-negative, got {self.gap_ms}")


class PipelineRunner:
    """Run the automated capture, merge and re-encode benchmark.

    One run at a time: a busy flag rejects overlapping calls. Stages execute
    strictly in sequence since each consumes the previous stage's output.
    Any stage failure ends the run as FAILED with no ResultRecord; journal
    append failures are logged and leave the run DONE.
    """

    def __init__(
        self,
        capture: CapturePort,
        gateway: EngineGateway,
        log_sink: LogSinkPort,
        result_sink: ResultSinkPort,
        event_bus: EventBus | None = None,
        config: RunConfig | None = None,
        profile: TranscodeProfile = H264_CFR30,
        clock: Callable[[], int] = _monotonic_ms,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._capture = capture
        self._gateway = gateway
        self._log_sink = log_sink
        self._result_sink = result_sink
        self._event_bus = event_bus
        self._config = config or RunConfig()
        self._profile = profile
        self._clock = clock
        self._sleep = sleep
        self._state_machine = RunStateMachine()
        self._busy = False
        self._state: RunState | None = None
        self._last_outputs: tuple[MediaBlob, ...] = ()

    @property
    def is_busy(self) -> bool:
        return self._busy

    @property
    def status(self) -> RunStatus:
        """Status of the current (or most recent) run; IDLE before the first."""
        return self._state.status if self._state is not None else RunStatus.IDLE

    @property
    def current_state(self) -> RunState | None:
        return self._state

    @property
    def last_outputs(self) -> tuple[MediaBlob, ...]:
        """Merged and transcoded blobs of the last successful run, else empty."""
        return self._last_outputs

    async def run(self) -> ResultRecord | None:
        """Execute one run. Returns its ResultRecord, or None if it failed or was rejected."""
        if self._busy:
            self._log_sink.narrate("[ERROR] A run is already in progress.")
            logger.warning("Run rejected: another run is in progress")
            return None

        self._busy = True
        try:
            return await self._run_once()
        finally:
            self._busy = False

    async def _run_once(self) -> ResultRecord | None:
        cfg = self._config
        run_id = _generate_run_id()
        self._state = RunState(run_id=run_id)
        self._last_outputs = ()
        t_start = self._clock()

        self._narrate(
            run_id,
            f"Starting automated test. segmentCount={cfg.segment_count}, "
            f"segmentDurationMs={cfg.segment_duration_ms}, gapMs={cfg.gap_ms}",
        )
        await self._publish("pipeline.run_started", run_id=run_id, **self._config_data())

        try:
            self._advance("start")
            segments, t_record_ms = await self._record_segments(run_id)
            self._advance("recorded", segment_sizes=tuple(s.size for s in segments), t_record_ms=t_record_ms)

            merged, t_merge_ms = await self._merge(run_id, segments)
            self._advance("merged", merged_bytes=merged.size, t_merge_ms=t_merge_ms)

            transcoded, t_mp4_ms = await self._transcode(run_id, merged)
            t_total_ms = self._clock() - t_start
            state = self._advance("transcoded", mp4_bytes=transcoded.size, t_mp4_ms=t_mp4_ms, t_total_ms=t_total_ms)
        except PipelineError as exc:
            await self._fail(exc.message)
            return None
        except Exception as exc:
            logger.exception("Unexpected error in run %s", run_id)
            await self._fail(str(exc) or type(exc).__name__)
            raise

        self._last_outputs = (merged, transcoded)
        record = self._build_record(state)
        self._narrate(run_id, f"Done. Total time: {record.t_total_ms}ms")
        await self._publish("pipeline.run_completed", **record.to_dict())
        await self._persist(record)
        return record

    # -- stages ------------------------------------------------------------

    async def _record_segments(self, run_id: RunId) -> tuple[list[Segment], int]:
        """Capture segments one after another, pausing between them."""
        cfg = self._config
        segments: list[Segment] = []
        started = self._clock()

        for index in range(cfg.segment_count):
            label = f"{index + 1}/{cfg.segment_count}"
            self._narrate(run_id, f"Recording segment {label} for {cfg.segment_duration_ms}ms...")
            try:
                data = await self._capture.record_segment(cfg.segment_duration_ms)
            except Exception as exc:
                raise CaptureError(f"Segment {label}: {exc}", run_id=run_id) from exc
            if not data:
                raise CaptureError(f"Segment {label} is empty", run_id=run_id)

            segment = Segment(index=index, data=bytes(data))
            segments.append(segment)
            self._narrate(run_id, f"Segment {index + 1} size: {segment.size} bytes ({format_bytes(segment.size)})")
            await self._publish("pipeline.segment_recorded", run_id=run_id, index=index, bytes=segment.size)

            if index < cfg.segment_count - 1:
                await self._sleep(cfg.gap_ms / 1000)

        return segments, self._clock() - started

    async def _merge(self, run_id: RunId, segments: list[Segment]) -> tuple[MediaBlob, int]:
        """Hand every segment payload to the engine and stream-copy them together."""
        blobs = [MediaBlob(name=s.artifact_name, data=s.data, mime_type=_MERGED_MIME) for s in segments]
        segments.clear()

        started = self._clock()
        merged = await self._gateway.concat(blobs, _MERGED_NAME, run_id=run_id, phase=Phase.MERGE)
        elapsed = self._clock() - started

        self._narrate(run_id, f"Merged size: {merged.size} bytes ({format_bytes(merged.size)}) in {elapsed}ms")
        await self._publish("pipeline.stage_completed", phase=Phase.MERGE, run_id=run_id, bytes=merged.size, ms=elapsed)
        return merged, elapsed

    async def _transcode(self, run_id: RunId, merged: MediaBlob) -> tuple[MediaBlob, int]:
        """Re-encode the merged output with the fixed profile."""
        output_name = f"{_TRANSCODED_STEM}{self._profile.output_suffix}"
        self._narrate(run_id, f"Re-encoding to {output_name} ({self._profile.name})...")

        started = self._clock()
        transcoded = await self._gateway.transcode(
            merged, output_name, self._profile, run_id=run_id, phase=Phase.TRANSCODE
        )
        elapsed = self._clock() - started

        self._narrate(
            run_id, f"Transcoded size: {transcoded.size} bytes ({format_bytes(transcoded.size)}) in {elapsed}ms"
        )
        await self._publish(
            "pipeline.stage_completed", phase=Phase.TRANSCODE, run_id=run_id, bytes=transcoded.size, ms=elapsed
        )
        return transcoded, elapsed

    # -- bookkeeping -------------------------------------------------------

    def _advance(self, event: str, **updates: Any) -> RunState:
        assert self._state is not None
        self._state = self._state_machine.apply_transition(self._state, event, **updates)
        return self._state

    async def _fail(self, reason: str) -> None:
        reason = reason or "Unknown error"
        state = self._state
        assert state is not None
        label = _FAILURE_LABELS.get(state.status, "Run")
        phase = _PHASE_BY_STATUS.get(state.status)

        if self._state_machine.validate_transition(state, "failed"):
            self._state = self._state_machine.apply_transition(state, "failed", failure=reason)

        self._narrate(state.run_id, f"{label} failed: {reason}")
        logger.error("Run %s failed during %s: %s", state.run_id, state.status.value, reason)
        await self._publish("pipeline.run_failed", phase=phase, run_id=state.run_id, error=reason)

    def _build_record(self, state: RunState) -> ResultRecord:
        cfg = self._config
        return ResultRecord(
            timestamp=datetime.now(UTC).isoformat(),
            run_id=state.run_id,
            segment_count=len(state.segment_sizes),
            segment_duration_ms=cfg.segment_duration_ms,
            gap_ms=cfg.gap_ms,
            segment_sizes_bytes=state.segment_sizes,
            merged_bytes=state.merged_bytes,
            mp4_bytes=state.mp4_bytes,
            t_record_ms=state.t_record_ms,
            t_merge_ms=state.t_merge_ms,
            t_mp4_ms=state.t_mp4_ms,
            t_total_ms=state.t_total_ms,
        )

    async def _persist(self, record: ResultRecord) -> None:
        """Append the record to the result journal; failures never undo the run."""
        try:
            written = await self._result_sink.append(record)
        except PersistenceError as exc:
            self._log_sink.narrate(f"[ERROR] Failed to append to log file: {exc.message}")
            logger.error("Result journal append failed for %s: %s", record.run_id, exc.message)
            return

        if written:
            self._narrate(record.run_id, "Appended results to log file.")
        else:
            self._narrate(record.run_id, "No log file selected; skipping file append.")

    def _config_data(self) -> dict[str, Any]:
        cfg = self._config
        return {
            "segment_count": cfg.segment_count,
            "segment_duration_ms": cfg.segment_duration_ms,
            "gap_ms": cfg.gap_ms,
        }

    def _narrate(self, run_id: RunId, line: str) -> None:
        text = f"[RUN {run_id}] {line}"
        self._log_sink.narrate(text)
        logger.info(text)

    async def _publish(self, event_name: str, phase: Phase | None = None, **data: Any) -> None:
        if self._event_bus is None:
            return
        await self._event_bus.publish(
            PipelineEvent(
                timestamp=datetime.now(UTC).isoformat(),
                event_name=event_name,
                phase=phase,
                data=data,
            )
        )
