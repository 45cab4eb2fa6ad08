"""Bootstrap — composition root wiring all adapters to port protocols."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

from reencode.app.settings import BenchSettings
from reencode.application.correlation_registry import CorrelationRegistry
from reencode.application.engine_gateway import EngineGateway
from reencode.application.event_bus import EventBus
from reencode.application.pipeline_runner import PipelineRunner
from reencode.domain.errors import ConfigurationError
from reencode.domain.models import EngineProfile
from reencode.domain.ports import CapturePort, MediaEnginePort
from reencode.infrastructure.adapters.engine_worker import EngineWorker
from reencode.infrastructure.adapters.ffmpeg_capture import FFmpegCaptureAdapter
from reencode.infrastructure.adapters.ffmpeg_engine import FFmpegEngine
from reencode.infrastructure.adapters.result_journal import ResultJournal
from reencode.infrastructure.listeners.event_journal_writer import EventJournalWriter
from reencode.infrastructure.listeners.rolling_log import RollingLog

logger = logging.getLogger(__name__)


@dataclass
class Bench:
    """Container for all wired benchmark components.

    Not frozen; the gateway, worker and runner hold live state.
    """

    settings: BenchSettings
    rolling_log: RollingLog
    registry: CorrelationRegistry
    engine: MediaEnginePort
    worker: EngineWorker
    gateway: EngineGateway
    capture: CapturePort
    result_journal: ResultJournal
    event_bus: EventBus
    runner: PipelineRunner
    event_journal: EventJournalWriter | None = field(default=None)

    async def aclose(self) -> None:
        """Stop the engine worker, detach the event journal and drop engine scratch files."""
        await self.gateway.close()
        if self.event_journal is not None:
            self.event_bus.unsubscribe(self.event_journal)
        if isinstance(self.engine, FFmpegEngine):
            self.engine.close()


def engine_profiles(settings: BenchSettings) -> tuple[EngineProfile, ...]:
    """Load profiles in preference order: the configured one, then single-threaded."""
    primary = EngineProfile(name="multi-thread", threads=settings.ffmpeg_threads)
    if primary.threads == 1:
        return (primary,)
    return (primary, EngineProfile(name="single-thread", threads=1))


def create_bench(
    settings: BenchSettings | None = None,
    engine: MediaEnginePort | None = None,
    capture: CapturePort | None = None,
) -> Bench:
    """Wire all adapters and return a Bench ready to run.

    If no settings are provided, loads from environment/.env. ``engine`` and
    ``capture`` replace the FFmpeg adapters when given.
    """
    if settings is None:
        settings = BenchSettings()

    _validate_settings(settings)

    # Infrastructure adapters
    if engine is None:
        engine = FFmpegEngine(binary=settings.ffmpeg_binary, scratch_dir=settings.scratch_dir)
    if capture is None:
        capture = FFmpegCaptureAdapter(
            input_format=settings.capture_input_format,
            device=settings.capture_device,
            binary=settings.ffmpeg_binary,
        )
    rolling_log = RollingLog(max_lines=settings.rolling_log_max_lines)
    result_journal = ResultJournal(settings.results_log_path)
    worker = EngineWorker(engine, engine_profiles(settings))

    # Application components
    registry = CorrelationRegistry()
    gateway = EngineGateway(
        channel=worker,
        registry=registry,
        log_sink=rolling_log,
        stage_timeout_seconds=settings.stage_timeout_seconds,
    )
    event_bus = EventBus()

    event_journal: EventJournalWriter | None = None
    if settings.events_log_path is not None:
        event_journal = EventJournalWriter(log_path=settings.events_log_path)
        event_bus.subscribe(event_journal)

    runner = PipelineRunner(
        capture=capture,
        gateway=gateway,
        log_sink=rolling_log,
        result_sink=result_journal,
        event_bus=event_bus,
        config=settings.run_config(),
    )

    logger.info(
        "Bench created: segments=%d x %dms, gap=%dms, results=%s, event listeners=%d",
        settings.segment_count,
        settings.segment_duration_ms,
        settings.gap_ms,
        settings.results_log_path or "-",
        event_bus.listener_count,
    )

    return Bench(
        settings=settings,
        rolling_log=rolling_log,
        registry=registry,
        engine=engine,
        worker=worker,
        gateway=gateway,
        capture=capture,
        result_journal=result_journal,
        event_bus=event_bus,
        runner=runner,
        event_journal=event_journal,
    )


def _validate_settings(settings: BenchSettings) -> None:
    """Validate critical settings at boot time.

    Raises ConfigurationError if the environment is not viable.
    """
    for name in ("results_log_path", "events_log_path"):
        path = getattr(settings, name)
        if path is not None and path.is_dir():
            raise ConfigurationError(f"{name} points at a directory: {path}")

    for name in ("output_dir", "scratch_dir"):
        path = getattr(settings, name)
        if path is not None and path.exists() and not path.is_dir():
            raise ConfigurationError(f"{name} is not a directory: {path}")

    if not settings.capture_device.strip():
        raise ConfigurationError("capture_device must not be empty")
