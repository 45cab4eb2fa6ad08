"""Engine message contract — typed requests/events and their wire codec.

Wire shapes (plain dicts, ``runId``/``phase`` omitted when absent)::

    {"op": "load"}
    {"op": "concat", "segments": [{"name", "data"}], "outputName", "runId"?, "phase"?}
    {"op": "transcode", "inputName", "inputData", "outputName", "args": [...], "runId"?, "phase"?}

    {"event": "loaded"}
    {"event": "progress", "message"}
    {"event": "result", "outputName", "mimeType", "data", "runId"?, "phase"?}
    {"event": "error", "message", "runId"?, "phase"?}
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from reencode.domain.errors import EngineProtocolError
from reencode.domain.models import MediaBlob, correlation_key
from reencode.domain.types import CorrelationKey


def _with_correlation(payload: dict[str, Any], run_id: str | None, phase: str | None) -> dict[str, Any]:
    if run_id is not None:
        payload["runId"] = run_id
    if phase is not None:
        payload["phase"] = phase
    return payload


def _require(raw: Mapping[str, Any], name: str) -> Any:
    try:
        return raw[name]
    except KeyError:
        raise EngineProtocolError(f"Engine message missing field '{name}': {sorted(raw)}") from None


def _optional_str(raw: Mapping[str, Any], name: str) -> str | None:
    value = raw.get(name)
    return None if value is None else str(value)


# ---------------------------------------------------------------------------
# Outbound requests
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoadRequest:
    """Ask the engine to load its runtime resources."""

    def to_wire(self) -> dict[str, Any]:
        return {"op": "load"}


@dataclass(frozen=True)
class ConcatRequest:
    """Stream-copy concatenation of ordered segment artifacts."""

    segments: tuple[MediaBlob, ...]
    output_name: str
    run_id: str | None = None
    phase: str | None = None

    def __post_init__(self) -> None:
        if not self.segments:
            raise ValueError("segments must not be empty")
        if not self.output_name:
            raise ValueError("output_name must not be empty")

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "op": "concat",
            "segments": [{"name": s.name, "data": s.data} for s in self.segments],
            "outputName": self.output_name,
        }
        return _with_correlation(payload, self.run_id, self.phase)


@dataclass(frozen=True)
class TranscodeRequest:
    """Re-encode one input artifact with a fixed argument list."""

    input_name: str
    input_data: bytes
    output_name: str
    args: tuple[str, ...] = field(default_factory=tuple)
    run_id: str | None = None
    phase: str | None = None

    def __post_init__(self) -> None:
        if not self.input_name:
            raise ValueError("input_name must not be empty")
        if not self.output_name:
            raise ValueError("output_name must not be empty")

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "op": "transcode",
            "inputName": self.input_name,
            "inputData": self.input_data,
            "outputName": self.output_name,
            "args": list(self.args),
        }
        return _with_correlation(payload, self.run_id, self.phase)


EngineRequest = LoadRequest | ConcatRequest | TranscodeRequest


def parse_engine_request(raw: Mapping[str, Any]) -> EngineRequest:
    """Decode an outbound wire dict into a typed request.

    Raises EngineProtocolError on unknown ops or missing fields.
    """
    op = raw.get("op")
    if op == "load":
        return LoadRequest()
    if op == "concat":
        try:
            segments = tuple(
                MediaBlob(name=str(_require(s, "name")), data=bytes(_require(s, "data")))
                for s in _require(raw, "segments")
            )
            return ConcatRequest(
                segments=segments,
                output_name=str(_require(raw, "outputName")),
                run_id=_optional_str(raw, "runId"),
                phase=_optional_str(raw, "phase"),
            )
        except ValueError as exc:
            raise EngineProtocolError(f"Invalid concat request: {exc}") from exc
    if op == "transcode":
        try:
            return TranscodeRequest(
                input_name=str(_require(raw, "inputName")),
                input_data=bytes(_require(raw, "inputData")),
                output_name=str(_require(raw, "outputName")),
                args=tuple(str(a) for a in raw.get("args", ())),
                run_id=_optional_str(raw, "runId"),
                phase=_optional_str(raw, "phase"),
            )
        except ValueError as exc:
            raise EngineProtocolError(f"Invalid transcode request: {exc}") from exc
    raise EngineProtocolError(f"Unknown engine op: {op!r}")


# ---------------------------------------------------------------------------
# Inbound events
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineLoaded:
    """Engine finished loading; emitted once per successful load."""

    def to_wire(self) -> dict[str, Any]:
        return {"event": "loaded"}


@dataclass(frozen=True)
class EngineProgress:
    """Non-terminal engine chatter (log lines)."""

    message: str

    def to_wire(self) -> dict[str, Any]:
        return {"event": "progress", "message": self.message}


@dataclass(frozen=True)
class EngineResult:
    """Terminal success for one dispatched operation."""

    output_name: str
    mime_type: str
    data: bytes
    run_id: str | None = None
    phase: str | None = None

    @property
    def key(self) -> CorrelationKey:
        return correlation_key(self.run_id, self.phase)

    def to_blob(self) -> MediaBlob:
        return MediaBlob(name=self.output_name, data=self.data, mime_type=self.mime_type)

    def to_wire(self) -> dict[str, Any]:
        payload: dict[str, Any] = {
            "event": "result",
            "outputName": self.output_name,
            "mimeType": self.mime_type,
            "data": self.data,
        }
        return _with_correlation(payload, self.run_id, self.phase)


@dataclass(frozen=True)
class EngineFailure:
    """Terminal error for one dispatched operation."""

    message: str
    run_id: str | None = None
    phase: str | None = None

    @property
    def key(self) -> CorrelationKey:
        return correlation_key(self.run_id, self.phase)

    def to_wire(self) -> dict[str, Any]:
        return _with_correlation({"event": "error", "message": self.message}, self.run_id, self.phase)


EngineEvent = EngineLoaded | EngineProgress | EngineResult | EngineFailure


def parse_engine_event(raw: Mapping[str, Any]) -> EngineEvent:
    """Decode an inbound wire dict into a typed event.

    Raises EngineProtocolError on unknown events or missing fields.
    """
    event = raw.get("event")
    if event == "loaded":
        return EngineLoaded()
    if event == "progress":
        return EngineProgress(message=str(_require(raw, "message")))
    if event == "result":
        return EngineResult(
            output_name=str(_require(raw, "outputName")),
            mime_type=str(_require(raw, "mimeType")),
            data=bytes(_require(raw, "data")),
            run_id=_optional_str(raw, "runId"),
            phase=_optional_str(raw, "phase"),
        )
    if event == "error":
        return EngineFailure(
            message=str(_require(raw, "message")),
            run_id=_optional_str(raw, "runId"),
            phase=_optional_str(raw, "phase"),
        )
    raise EngineProtocolError(f"Unknown engine event: {event!r}")
