"""EngineGateway — request/response facade over the single engine worker channel."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence
from typing import TYPE_CHECKING, Any

from reencode.domain.enums import EngineState, Phase
from reencode.domain.errors import EngineProtocolError, EngineUnavailableError, StageError
from reencode.domain.messages import (
    ConcatRequest,
    EngineFailure,
    EngineLoaded,
    EngineProgress,
    EngineResult,
    LoadRequest,
    TranscodeRequest,
    parse_engine_event,
)
from reencode.domain.models import MediaBlob, StageRequest
from reencode.domain.types import RunId

if TYPE_CHECKING:
    from reencode.application.correlation_registry import CorrelationRegistry
    from reencode.domain.ports import EngineChannelPort, LogSinkPort
    from reencode.domain.profiles import TranscodeProfile

logger = logging.getLogger(__name__)

_LOAD_REQUEST = StageRequest(phase=Phase.LOAD)
_BLANK_ERROR_MESSAGE = "Engine reported an error"


class EngineGateway:
    """Owns the engine connection and exposes stage operations as awaitables.

    Every operation waits for the engine to be ready, registers its
    (run id, phase) key with the CorrelationRegistry, posts the request and
    awaits the settlement delivered by ``handle_message``. Progress chatter
    goes to the log sink and never settles a request.
    """

    def __init__(
        self,
        channel: EngineChannelPort,
        registry: CorrelationRegistry,
        log_sink: LogSinkPort | None = None,
        stage_timeout_seconds: float | None = None,
    ) -> None:
        self._channel = channel
        self._registry = registry
        self._log_sink = log_sink
        self._stage_timeout = stage_timeout_seconds
        self._state = EngineState.UNINITIALIZED
        self._loading: asyncio.Future[None] | None = None
        self._failure: EngineUnavailableError | None = None
        self._started = False
        channel.connect(self.handle_message)

    @property
    def state(self) -> EngineState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    def start(self) -> None:
        """Start the worker channel. Idempotent."""
        if not self._started:
            self._channel.start()
            self._started = True

    async def close(self) -> None:
        """Reject every outstanding request and stop the worker channel."""
        loading = self._loading
        self._registry.reject_all(EngineUnavailableError("Engine gateway closed"))
        if loading is not None:
            # Let an interrupted load record its failure before the state resets
            await asyncio.gather(loading, return_exceptions=True)
        if self._started:
            await self._channel.stop()
            self._started = False
        self._failure = None
        self._state = EngineState.UNINITIALIZED
        logger.info("Engine gateway closed")

    # -- lifecycle ---------------------------------------------------------

    async def ensure_ready(self) -> None:
        """Load the engine once; concurrent callers share the same load.

        After a fatal load failure every call re-raises it until
        ``reinitialize`` is invoked.
        """
        if self._state is EngineState.READY:
            return
        if self._state is EngineState.FAILED and self._failure is not None:
            raise EngineUnavailableError(self._failure.message, phase=Phase.LOAD.value) from self._failure

        if self._loading is None:
            self._loading = asyncio.ensure_future(self._load())
        await asyncio.shield(self._loading)

    async def reinitialize(self) -> None:
        """Explicit recovery: forget a cached load failure and load again."""
        if self._state is EngineState.FAILED:
            logger.info("Re-initialising engine after failure: %s", self._failure)
            self._failure = None
            self._state = EngineState.UNINITIALIZED
        await self.ensure_ready()

    async def _load(self) -> None:
        self._state = EngineState.LOADING
        key = _LOAD_REQUEST.key
        try:
            self.start()
            future = self._registry.register(key)
            self._channel.post(LoadRequest().to_wire())
            await future
        except EngineUnavailableError as exc:
            self._fail_load(exc)
            raise
        except Exception as exc:
            reason = exc.message if isinstance(exc, StageError) else f"Engine failed to load: {exc}"
            failure = EngineUnavailableError(reason, phase=Phase.LOAD.value)
            self._fail_load(failure)
            raise failure from exc
        finally:
            self._loading = None

        self._state = EngineState.READY
        logger.info("Engine ready")

    def _fail_load(self, failure: EngineUnavailableError) -> None:
        self._registry.discard(_LOAD_REQUEST.key)
        self._failure = failure
        self._state = EngineState.FAILED
        logger.error("Engine unavailable: %s", failure.message)

    # -- stage operations --------------------------------------------------

    async def concat(
        self,
        segments: Sequence[MediaBlob],
        output_name: str,
        run_id: RunId | None = None,
        phase: Phase | None = None,
    ) -> MediaBlob:
        """Stream-copy concatenate ``segments`` in order into ``output_name``."""
        request = StageRequest(run_id=run_id, phase=phase)
        message = ConcatRequest(
            segments=tuple(segments),
            output_name=output_name,
            run_id=run_id,
            phase=request.phase_name,
        )
        return await self._dispatch(request, message)

    async def transcode(
        self,
        blob: MediaBlob,
        output_name: str,
        profile: TranscodeProfile,
        run_id: RunId | None = None,
        phase: Phase | None = None,
    ) -> MediaBlob:
        """Re-encode ``blob`` into ``output_name`` using a fixed argument profile."""
        request = StageRequest(run_id=run_id, phase=phase)
        message = TranscodeRequest(
            input_name=blob.name,
            input_data=blob.data,
            output_name=output_name,
            args=profile.args,
            run_id=run_id,
            phase=request.phase_name,
        )
        return await self._dispatch(request, message)

    async def _dispatch(self, request: StageRequest, message: ConcatRequest | TranscodeRequest) -> MediaBlob:
        await self.ensure_ready()

        key = request.key
        future = self._registry.register(key)
        try:
            self._channel.post(message.to_wire())
        except Exception as exc:
            error = StageError(f"Dispatch failed: {exc}", run_id=request.run_id, phase=request.phase_name)
            error.__cause__ = exc
            self._registry.settle(key, error)

        if self._stage_timeout is None:
            result: MediaBlob = await future
            return result

        try:
            result = await asyncio.wait_for(future, self._stage_timeout)
        except TimeoutError as exc:
            self._registry.discard(key)
            raise StageError(
                f"Engine did not complete within {self._stage_timeout:g}s",
                run_id=request.run_id,
                phase=request.phase_name,
            ) from exc
        return result

    # -- inbound -----------------------------------------------------------

    def handle_message(self, raw: Mapping[str, Any]) -> None:
        """Route one inbound engine event. Never raises."""
        try:
            event = parse_engine_event(raw)
        except EngineProtocolError as exc:
            logger.warning("Ignoring malformed engine message: %s", exc)
            return

        if isinstance(event, EngineProgress):
            if self._log_sink is not None:
                self._log_sink.append(event.message)
            return

        if isinstance(event, EngineLoaded):
            self._narrate("[Worker] Engine loaded.")
            self._registry.settle(_LOAD_REQUEST.key, None)
            return

        if isinstance(event, EngineFailure):
            message = event.message or _BLANK_ERROR_MESSAGE
            error = StageError(message, run_id=event.run_id, phase=event.phase)
            self._registry.settle(event.key, error)
            suffix = f" ({error.context})" if error.context else ""
            self._narrate(f"[ERROR]{suffix} {message}")
            return

        if isinstance(event, EngineResult) and not self._registry.settle(event.key, event.to_blob()):
            self._narrate(f"[WARN] Dropped orphan result '{event.output_name}' for {event.key}")

    def _narrate(self, line: str) -> None:
        if self._log_sink is not None:
            self._log_sink.narrate(line)
