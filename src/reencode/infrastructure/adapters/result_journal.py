"""ResultJournal — append-only JSONL persistence of completed run records."""

from __future__ import annotations

import json
import logging
from pathlib import Path

import aiofiles

from reencode.domain.errors import PersistenceError
from reencode.domain.models import ResultRecord

logger = logging.getLogger(__name__)

_HEADER = "# Video re-encode test log (JSONL)\n# Each line is a JSON object\n"


class ResultJournal:
    """Append one JSON-serialised ResultRecord per line.

    With no path configured every append is a no-op. A new or empty file
    gets a two-line ``#`` comment header first; readers skip lines starting
    with ``#``.
    """

    def __init__(self, path: Path | None) -> None:
        self._path = path

    @property
    def path(self) -> Path | None:
        return self._path

    async def append(self, record: ResultRecord) -> bool:
        """Append ``record``. Returns False when no destination is configured.

        Raises PersistenceError if the file cannot be written.
        """
        if self._path is None:
            return False

        line = json.dumps(record.to_dict(), separators=(",", ":")) + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            needs_header = not self._path.exists() or self._path.stat().st_size == 0
            async with aiofiles.open(self._path, "a", encoding="utf-8") as f:
                if needs_header:
                    await f.write(_HEADER)
                await f.write(line)
        except OSError as exc:
            raise PersistenceError(f"Could not append to {self._path}: {exc}") from exc

        logger.info("Appended result for run %s to %s", record.run_id, self._path)
        return True

    async def read_records(self) -> list[dict[str, object]]:
        """Load every persisted record, skipping header and blank lines."""
        if self._path is None or not self._path.exists():
            return []

        records: list[dict[str, object]] = []
        async with aiofiles.open(self._path, encoding="utf-8") as f:
            async for raw in f:
                line = raw.strip()
                if not line or line.startswith("#"):
                    continue
                try:
                    records.append(json.loads(line))
                except json.JSONDecodeError as exc:
                    logger.warning("Skipping corrupted journal line in %s: %s", self._path, exc)
        return records
