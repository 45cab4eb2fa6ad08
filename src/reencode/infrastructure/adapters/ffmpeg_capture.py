"""FFmpegCaptureAdapter — CapturePort implementation recording WebM segments with FFmpeg."""

from __future__ import annotations

import asyncio
import logging

from reencode.domain.errors import CaptureError

logger = logging.getLogger(__name__)

# Capture encode settings; every segment must share them so stream-copy concat works
_CAPTURE_CODEC_ARGS: tuple[str, ...] = (
    "-c:v",
    "libvpx",
    "-deadline",
    "realtime",
    "-cpu-used",
    "8",
    "-b:v",
    "1M",
    "-an",
    "-f",
    "webm",
)


class FFmpegCaptureAdapter:
    """Record fixed-duration segments from an FFmpeg input device.

    ``input_format``/``device`` are passed straight to ``-f``/``-i``, e.g.
    ``v4l2`` + ``/dev/video0`` for a webcam or ``lavfi`` + ``testsrc2`` for a
    synthetic source. The segment is piped back on stdout, nothing touches disk.
    """

    def __init__(self, input_format: str, device: str, binary: str = "ffmpeg") -> None:
        if not device:
            raise ValueError("device must not be empty")
        self._input_format = input_format
        self._device = device
        self._binary = binary

    def build_command(self, duration_ms: int) -> list[str]:
        """Full argv for one recording of ``duration_ms``."""
        args = [self._binary, "-hide_banner", "-nostdin", "-loglevel", "error"]
        if self._input_format:
            args.extend(["-f", self._input_format])
        args.extend(["-i", self._device, "-t", f"{duration_ms / 1000:.3f}", *_CAPTURE_CODEC_ARGS, "pipe:1"])
        return args

    async def record_segment(self, duration_ms: int) -> bytes:
        """Record one segment and return its WebM bytes."""
        if duration_ms <= 0:
            raise CaptureError(f"duration_ms must be positive, got {duration_ms}")

        try:
            proc = await asyncio.create_subprocess_exec(
                *self.build_command(duration_ms),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except FileNotFoundError as exc:
            raise CaptureError(f"FFmpeg binary not found: {self._binary}") from exc

        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise CaptureError(f"Capture failed (exit {proc.returncode}): {stderr.decode(errors='replace').strip()}")

        logger.debug("Captured %d bytes from %s in %dms segment", len(stdout), self._device, duration_ms)
        return stdout
