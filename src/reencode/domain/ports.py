"""Domain ports — Protocol interfaces for hexagonal architecture boundaries."""

from __future__ import annotations

from collections.abc import Callable, Mapping, Sequence
from typing import Any, Protocol, runtime_checkable

from reencode.domain.models import EngineProfile, ResultRecord

LogHandler = Callable[[str], None]
MessageListener = Callable[[Mapping[str, Any]], None]


@runtime_checkable
class CapturePort(Protocol):
    """Record one media segment of a fixed duration from the capture device."""

    async def record_segment(self, duration_ms: int) -> bytes: ...


@runtime_checkable
class MediaEnginePort(Protocol):
    """Media engine with a private named-artifact store and a command surface.

    Operations are not re-entrant; callers serialise access. Deleting an
    artifact that does not exist is a no-op.
    """

    def set_log_handler(self, handler: LogHandler | None) -> None: ...

    async def load(self, profile: EngineProfile) -> None: ...

    async def write_file(self, name: str, data: bytes) -> None: ...

    async def read_file(self, name: str) -> bytes: ...

    async def delete_file(self, name: str) -> None: ...

    async def exec(self, args: Sequence[str]) -> None: ...


@runtime_checkable
class EngineChannelPort(Protocol):
    """Bidirectional message channel to the engine worker.

    ``post`` enqueues a wire-format request; inbound wire-format events are
    delivered to the connected listener.
    """

    def connect(self, listener: MessageListener) -> None: ...

    def post(self, message: Mapping[str, Any]) -> None: ...

    def start(self) -> None: ...

    async def stop(self) -> None: ...


@runtime_checkable
class LogSinkPort(Protocol):
    """Operator-facing rolling text log."""

    def narrate(self, line: str) -> None: ...

    def append(self, text: str) -> None: ...


@runtime_checkable
class ResultSinkPort(Protocol):
    """Append-only persistence of completed run records."""

    async def append(self, record: ResultRecord) -> bool:
        """Persist one record.

        Returns:
            True when written, False when no destination is configured.

        Raises:
            PersistenceError: the destination could not be written.
        """
        ...
