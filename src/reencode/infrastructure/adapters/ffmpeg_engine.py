"""FFmpegEngine — MediaEnginePort implementation using an FFmpeg subprocess."""

from __future__ import annotations

import asyncio
import logging
import tempfile
from collections import deque
from collections.abc import Sequence
from pathlib import Path

import aiofiles

from reencode.domain.errors import PipelineError
from reencode.domain.models import EngineProfile
from reencode.domain.ports import LogHandler

logger = logging.getLogger(__name__)

# Tiny synthetic source used to prove the binary can encode with a profile
_PROBE_SOURCE = "color=c=black:s=16x16:d=0.1"

# Stderr lines kept for the failure message
_ERROR_TAIL_LINES = 8


class FFmpegError(PipelineError):
    """FFmpeg subprocess failed."""


class FFmpegEngine:
    """Media engine backed by the ``ffmpeg`` binary.

    Artifacts are plain files in a private scratch directory that doubles as
    the subprocess working directory, so commands refer to them by bare name.
    Every stderr line is forwarded to the log handler as it arrives.
    """

    def __init__(self, binary: str = "ffmpeg", scratch_dir: Path | None = None) -> None:
        self._binary = binary
        self._scratch_dir = scratch_dir
        self._tmp: tempfile.TemporaryDirectory[str] | None = None
        self._profile: EngineProfile | None = None
        self._log_handler: LogHandler | None = None

    @property
    def profile(self) -> EngineProfile | None:
        """Profile the engine was loaded with, or None before a successful load."""
        return self._profile

    def set_log_handler(self, handler: LogHandler | None) -> None:
        self._log_handler = handler

    async def load(self, profile: EngineProfile) -> None:
        """Run a probe encode with the profile's thread count.

        Raises FFmpegError when the binary is missing or the probe fails.
        """
        try:
            await self._run(
                "-hide_banner",
                "-nostdin",
                "-loglevel",
                "error",
                "-threads",
                str(profile.threads),
                "-f",
                "lavfi",
                "-i",
                _PROBE_SOURCE,
                "-f",
                "null",
                "-",
            )
        except FileNotFoundError as exc:
            raise FFmpegError(f"FFmpeg binary not found: {self._binary}") from exc

        self._profile = profile
        logger.info("FFmpeg loaded (profile=%s, threads=%d)", profile.name, profile.threads)

    async def write_file(self, name: str, data: bytes) -> None:
        async with aiofiles.open(self._resolve(name), "wb") as f:
            await f.write(data)

    async def read_file(self, name: str) -> bytes:
        path = self._resolve(name)
        try:
            async with aiofiles.open(path, "rb") as f:
                data: bytes = await f.read()
        except FileNotFoundError as exc:
            raise FFmpegError(f"Artifact not found: {name}") from exc
        return data

    async def delete_file(self, name: str) -> None:
        """Remove an artifact. Deleting a missing artifact is a no-op."""
        self._resolve(name).unlink(missing_ok=True)

    async def exec(self, args: Sequence[str]) -> None:
        """Run one FFmpeg command against the scratch directory."""
        if self._profile is None:
            raise FFmpegError("FFmpeg engine is not loaded")
        await self._run("-hide_banner", "-nostdin", "-y", "-threads", str(self._profile.threads), *args)

    def close(self) -> None:
        """Drop the scratch directory if the engine created it."""
        if self._tmp is not None:
            self._tmp.cleanup()
            self._tmp = None

    def _workdir(self) -> Path:
        if self._scratch_dir is not None:
            self._scratch_dir.mkdir(parents=True, exist_ok=True)
            return self._scratch_dir
        if self._tmp is None:
            self._tmp = tempfile.TemporaryDirectory(prefix="reencode-engine-")
        return Path(self._tmp.name)

    def _resolve(self, name: str) -> Path:
        """Map an artifact name to its scratch path. Rejects anything but a bare file name."""
        if not name or name in (".", "..") or Path(name).name != name:
            raise FFmpegError(f"Invalid artifact name: {name!r}")
        return self._workdir() / name

    async def _run(self, *args: str) -> None:
        """Run FFmpeg, streaming stderr lines to the log handler."""
        proc = await asyncio.create_subprocess_exec(
            self._binary,
            *args,
            cwd=str(self._workdir()),
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.PIPE,
        )
        tail: deque[str] = deque(maxlen=_ERROR_TAIL_LINES)
        if proc.stderr is not None:
            async for raw in proc.stderr:
                line = raw.decode(errors="replace").rstrip()
                if not line:
                    continue
                tail.append(line)
                if self._log_handler is not None:
                    self._log_handler(line)

        returncode = await proc.wait()
        if returncode != 0:
            raise FFmpegError(f"FFmpeg failed (exit {returncode}): {' | '.join(tail)}")
