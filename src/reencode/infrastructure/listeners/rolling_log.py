"""RollingLog — bounded in-memory operator log fed by narration and engine output."""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable
from datetime import UTC, datetime

logger = logging.getLogger(__name__)

_DEFAULT_MAX_LINES = 350


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class RollingLog:
    """Fixed-capacity FIFO of text lines; the oldest lines fall off first.

    ``narrate`` stamps a line with the current UTC time, ``append`` keeps
    engine output verbatim. Optional subscribers see every stored line; a
    failing subscriber is logged and never reaches the writer.
    """

    def __init__(self, max_lines: int = _DEFAULT_MAX_LINES, clock: Callable[[], str] = _now_iso) -> None:
        if max_lines < 1:
            raise ValueError(f"max_lines must be >= 1, got {max_lines}")
        self._lines: deque[str] = deque(maxlen=max_lines)
        self._clock = clock
        self._subscribers: list[Callable[[str], None]] = []

    @property
    def max_lines(self) -> int:
        return self._lines.maxlen or 0

    @property
    def lines(self) -> tuple[str, ...]:
        """Stored lines, oldest first."""
        return tuple(self._lines)

    def subscribe(self, callback: Callable[[str], None]) -> None:
        self._subscribers.append(callback)

    def narrate(self, line: str) -> None:
        """Store an orchestrator line prefixed with an ISO-8601 timestamp."""
        self._store(f"{self._clock()} {line}")

    def append(self, text: str) -> None:
        """Store raw engine text, one entry per line."""
        for line in text.splitlines() or [""]:
            self._store(line)

    def text(self) -> str:
        return "\n".join(self._lines)

    def clear(self) -> None:
        self._lines.clear()

    def __len__(self) -> int:
        return len(self._lines)

    def _store(self, line: str) -> None:
        self._lines.append(line)
        for callback in self._subscribers:
            try:
                callback(line)
            except Exception:
                logger.exception("Rolling log subscriber %r failed", callback)
