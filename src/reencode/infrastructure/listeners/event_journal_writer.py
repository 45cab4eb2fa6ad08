"""EventJournalWriter — append run telemetry events to events.log."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import aiofiles

from reencode.domain.models import PipelineEvent


def format_event(event: PipelineEvent) -> str:
    """Render one journal line: ``<ISO8601> | <event_name> | <phase> | <json_data>``."""
    phase = event.phase.value if event.phase is not None else "none"
    data = json.dumps(dict(event.data), separators=(",", ":"), sort_keys=True, default=str)
    return f"{event.timestamp} | {event.event_name} | {phase} | {data}\n"


class EventJournalWriter:
    """EventBus listener writing every event to a single append-only journal.

    Appends are serialised so lines from overlapping publishers never interleave.
    """

    def __init__(self, log_path: Path) -> None:
        self._log_path = log_path
        self._lock = asyncio.Lock()

    @property
    def log_path(self) -> Path:
        return self._log_path

    async def __call__(self, event: PipelineEvent) -> None:
        line = format_event(event)
        async with self._lock:
            self._log_path.parent.mkdir(parents=True, exist_ok=True)
            async with aiofiles.open(self._log_path, "a", encoding="utf-8") as f:
                await f.write(line)
