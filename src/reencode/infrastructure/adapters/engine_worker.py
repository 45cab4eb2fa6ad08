"""EngineWorker — serial message loop between the gateway and the media engine."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from pathlib import PurePath
from typing import TYPE_CHECKING, Any

from reencode.domain.enums import Phase
from reencode.domain.errors import EngineUnavailableError, PipelineError
from reencode.domain.messages import (
    ConcatRequest,
    EngineEvent,
    EngineFailure,
    EngineLoaded,
    EngineProgress,
    EngineResult,
    LoadRequest,
    TranscodeRequest,
    parse_engine_request,
)

if TYPE_CHECKING:
    from reencode.domain.models import EngineProfile
    from reencode.domain.ports import MediaEnginePort, MessageListener

logger = logging.getLogger(__name__)

_MANIFEST_NAME = "list.txt"
_CONCAT_MIME = "video/webm"

_MIME_BY_SUFFIX: dict[str, str] = {
    ".mp4": "video/mp4",
    ".webm": "video/webm",
    ".mkv": "video/x-matroska",
    ".mov": "video/quicktime",
}


def mime_for(name: str) -> str:
    """Content type for an output artifact, inferred from its suffix."""
    return _MIME_BY_SUFFIX.get(PurePath(name).suffix.lower(), "application/octet-stream")


def _manifest_line(name: str) -> str:
    """Concat demuxer entry; single quotes escaped as '\\''."""
    escaped = name.replace("'", "'\\''")
    return f"file '{escaped}'"


class EngineWorker:
    """Process engine requests one at a time and post events back.

    Requests arrive as wire dicts through ``post`` and are handled strictly
    in order by a single task, so the engine never runs two operations at
    once. Every request produces exactly one terminal ``result`` or
    ``error`` event (``load`` produces ``loaded`` or ``error``); engine log
    lines are posted as ``progress`` events in between.

    Engine artifacts written for a request are deleted before its terminal
    event is posted, whatever the outcome.
    """

    def __init__(self, engine: MediaEnginePort, profiles: Sequence[EngineProfile]) -> None:
        if not profiles:
            raise ValueError("profiles must not be empty")
        self._engine = engine
        self._profiles = tuple(profiles)
        self._inbox: asyncio.Queue[Mapping[str, Any] | None] = asyncio.Queue()
        self._listener: MessageListener | None = None
        self._task: asyncio.Task[None] | None = None
        self._active_profile: EngineProfile | None = None

    @property
    def is_loaded(self) -> bool:
        return self._active_profile is not None

    @property
    def active_profile(self) -> EngineProfile | None:
        """Profile the engine loaded with; the first one that worked."""
        return self._active_profile

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    def connect(self, listener: MessageListener) -> None:
        """Route outbound events to ``listener``."""
        self._listener = listener

    def start(self) -> None:
        """Start the worker task on the running loop. Idempotent."""
        if self.is_running:
            return
        self._engine.set_log_handler(self._on_engine_log)
        self._task = asyncio.get_running_loop().create_task(self._run(), name="engine-worker")
        logger.info("Engine worker started")

    async def stop(self) -> None:
        """Finish queued requests, then stop the worker task."""
        if self._task is None:
            return
        self._inbox.put_nowait(None)
        await self._task
        self._task = None
        self._engine.set_log_handler(None)
        logger.info("Engine worker stopped")

    def post(self, message: Mapping[str, Any]) -> None:
        """Enqueue one wire-format request.

        Raises RuntimeError when the worker is not running.
        """
        if not self.is_running:
            raise RuntimeError("Engine worker is not running")
        self._inbox.put_nowait(message)

    async def _run(self) -> None:
        while True:
            message = await self._inbox.get()
            if message is None:
                return
            await self.handle(message)

    async def handle(self, raw: Mapping[str, Any]) -> None:
        """Execute one request and post its terminal event. Never raises."""
        is_load = raw.get("op") == "load"
        run_id = raw.get("runId")
        phase = Phase.LOAD.value if is_load else raw.get("phase")

        try:
            request = parse_engine_request(raw)
            loaded_now = await self._ensure_loaded()
            if isinstance(request, LoadRequest):
                # Repeated loads (after a gateway restart) still get an answer
                if not loaded_now:
                    self._emit(EngineLoaded())
                return
            if isinstance(request, ConcatRequest):
                self._emit(await self._concat(request))
            elif isinstance(request, TranscodeRequest):
                self._emit(await self._transcode(request))
        except Exception as exc:
            message = str(exc) or type(exc).__name__
            logger.warning("Engine request %s failed (run=%s, phase=%s): %s", raw.get("op"), run_id, phase, message)
            self._emit(EngineFailure(message=message, run_id=run_id, phase=phase))

    async def _ensure_loaded(self) -> bool:
        """Load the engine once, trying each profile in order.

        Returns True when this call performed the load and emitted ``loaded``.
        """
        if self._active_profile is not None:
            return False

        failures: list[str] = []
        for profile in self._profiles:
            try:
                await self._engine.load(profile)
            except (PipelineError, OSError) as exc:
                logger.warning("Engine load with profile %s failed: %s", profile.name, exc)
                failures.append(f"{profile.name}: {exc}")
                continue

            self._active_profile = profile
            if failures:
                logger.info("Engine loaded with fallback profile %s", profile.name)
            self._emit(EngineLoaded())
            return True

        raise EngineUnavailableError(f"Engine failed to load: {'; '.join(failures)}", phase=Phase.LOAD.value)

    async def _concat(self, request: ConcatRequest) -> EngineResult:
        artifacts = [s.name for s in request.segments] + [_MANIFEST_NAME, request.output_name]
        try:
            for segment in request.segments:
                await self._engine.write_file(segment.name, segment.data)

            manifest = "\n".join(_manifest_line(s.name) for s in request.segments)
            await self._engine.write_file(_MANIFEST_NAME, manifest.encode())

            # Stream copy: container-level splice only, codec data untouched
            await self._engine.exec(
                ["-f", "concat", "-safe", "0", "-i", _MANIFEST_NAME, "-c", "copy", request.output_name]
            )
            data = await self._engine.read_file(request.output_name)
        finally:
            await self._cleanup(artifacts)

        return EngineResult(
            output_name=request.output_name,
            mime_type=_CONCAT_MIME,
            data=data,
            run_id=request.run_id,
            phase=request.phase,
        )

    async def _transcode(self, request: TranscodeRequest) -> EngineResult:
        try:
            await self._engine.write_file(request.input_name, request.input_data)
            await self._engine.exec(["-i", request.input_name, *request.args, request.output_name])
            data = await self._engine.read_file(request.output_name)
        finally:
            await self._cleanup([request.input_name, request.output_name])

        return EngineResult(
            output_name=request.output_name,
            mime_type=mime_for(request.output_name),
            data=data,
            run_id=request.run_id,
            phase=request.phase,
        )

    async def _cleanup(self, names: Sequence[str]) -> None:
        """Best-effort artifact removal; failures are logged, never raised."""
        for name in dict.fromkeys(names):
            try:
                await self._engine.delete_file(name)
            except (PipelineError, OSError) as exc:
                logger.warning("Failed to delete engine artifact %s: %s", name, exc)

    def _on_engine_log(self, line: str) -> None:
        self._emit(EngineProgress(message=line))

    def _emit(self, event: EngineEvent) -> None:
        if self._listener is None:
            logger.debug("No listener connected; dropping %s", type(event).__name__)
            return
        self._listener(event.to_wire())
