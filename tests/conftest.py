"""Shared test fixtures for the re-encode bench test suite."""

from __future__ import annotations

from collections.abc import Sequence

import pytest

from reencode.domain.enums import Phase
from reencode.domain.errors import PipelineError
from reencode.domain.models import EngineProfile, PipelineEvent, ResultRecord
from reencode.domain.ports import LogHandler
from reencode.domain.types import RunId
from reencode.infrastructure.listeners.rolling_log import RollingLog

SEGMENT_SIZES: tuple[int, ...] = (100_000, 102_000, 98_000, 101_000)


class FakeMediaEngine:
    """In-memory MediaEnginePort.

    ``concat`` commands join the files listed in the manifest; any other
    command writes the first half of its ``-i`` input to the output name.
    """

    def __init__(
        self,
        failing_profiles: Sequence[str] = (),
        exec_error: Exception | None = None,
        failing_outputs: Sequence[str] = (),
        failing_deletes: Sequence[str] = (),
    ) -> None:
        self.files: dict[str, bytes] = {}
        self.load_attempts: list[str] = []
        self.exec_calls: list[list[str]] = []
        self.deleted: list[str] = []
        self.profile: EngineProfile | None = None
        self.exec_error = exec_error
        self.failing_profiles = set(failing_profiles)
        self.failing_outputs = set(failing_outputs)
        self.failing_deletes = set(failing_deletes)
        self._log_handler: LogHandler | None = None

    def set_log_handler(self, handler: LogHandler | None) -> None:
        self._log_handler = handler

    async def load(self, profile: EngineProfile) -> None:
        self.load_attempts.append(profile.name)
        if profile.name in self.failing_profiles:
            raise PipelineError(f"probe failed for {profile.name}")
        self.profile = profile

    async def write_file(self, name: str, data: bytes) -> None:
        self.files[name] = bytes(data)

    async def read_file(self, name: str) -> bytes:
        if name not in self.files:
            raise PipelineError(f"Artifact not found: {name}")
        return self.files[name]

    async def delete_file(self, name: str) -> None:
        if name in self.failing_deletes:
            raise PipelineError(f"Cannot delete {name}")
        self.deleted.append(name)
        self.files.pop(name, None)

    async def exec(self, args: Sequence[str]) -> None:
        args = list(args)
        self.exec_calls.append(args)
        self._log(f"exec {' '.join(args)}")
        if self.exec_error is not None:
            raise self.exec_error

        source = args[args.index("-i") + 1]
        output = args[-1]
        if output in self.failing_outputs:
            raise PipelineError(f"encode failed for {output}")
        if args[:2] == ["-f", "concat"]:
            manifest = self.files[source].decode()
            names = [line[len("file '") : -1] for line in manifest.splitlines()]
            self.files[output] = b"".join(self.files[n] for n in names)
        else:
            data = self.files[source]
            self.files[output] = data[: len(data) // 2]

    def _log(self, line: str) -> None:
        if self._log_handler is not None:
            self._log_handler(line)


class FakeCapture:
    """CapturePort returning payloads of pre-set sizes, optionally failing at one index."""

    def __init__(
        self,
        sizes: Sequence[int] = SEGMENT_SIZES,
        fail_at: int | None = None,
        error: Exception | None = None,
    ) -> None:
        self.sizes = tuple(sizes)
        self.fail_at = fail_at
        self.error = error or RuntimeError("camera unplugged")
        self.calls: list[int] = []

    async def record_segment(self, duration_ms: int) -> bytes:
        index = len(self.calls)
        self.calls.append(duration_ms)
        if index == self.fail_at:
            raise self.error
        return bytes([index % 256]) * self.sizes[index % len(self.sizes)]


class FakeClock:
    """Monotonic millisecond clock advancing a fixed step on every read."""

    def __init__(self, start: int = 1_000, step: int = 7) -> None:
        self.now = start
        self.step = step
        self.reads = 0

    def __call__(self) -> int:
        self.now += self.step
        self.reads += 1
        return self.now


@pytest.fixture
def fake_engine() -> FakeMediaEngine:
    return FakeMediaEngine()


@pytest.fixture
def fake_capture() -> FakeCapture:
    return FakeCapture()


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def rolling_log() -> RollingLog:
    """RollingLog with a frozen timestamp."""
    return RollingLog(max_lines=350, clock=lambda: "2026-02-10T14:00:00.000Z")


@pytest.fixture
def sample_result_record() -> ResultRecord:
    """Factory for a typical completed run record."""
    return ResultRecord(
        timestamp="2026-02-10T14:00:30+00:00",
        run_id=RunId("20260210-140000-000001-abcd1234"),
        segment_count=4,
        segment_duration_ms=5000,
        gap_ms=250,
        segment_sizes_bytes=SEGMENT_SIZES,
        merged_bytes=401_000,
        mp4_bytes=200_500,
        t_record_ms=20_800,
        t_merge_ms=120,
        t_mp4_ms=4_300,
        t_total_ms=25_250,
    )


@pytest.fixture
def sample_pipeline_event() -> PipelineEvent:
    """Factory for a typical pipeline event."""
    return PipelineEvent(
        timestamp="2026-02-10T14:00:00Z",
        event_name="pipeline.stage_completed",
        phase=Phase.MERGE,
        data={"bytes": 401_000, "ms": 120},
    )
