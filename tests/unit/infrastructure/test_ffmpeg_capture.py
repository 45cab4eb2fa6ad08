"""Tests for FFmpegCaptureAdapter — fixed-duration WebM capture over a pipe."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from reencode.domain.errors import CaptureError
from reencode.domain.ports import CapturePort
from reencode.infrastructure.adapters.ffmpeg_capture import FFmpegCaptureAdapter

_MODULE = "reencode.infrastructure.adapters.ffmpeg_capture"


def _mock_process(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
    proc = MagicMock()
    proc.communicate = AsyncMock(return_value=(stdout, stderr))
    proc.returncode = returncode
    return proc


class TestBuildCommand:
    def test_synthetic_source(self) -> None:
        adapter = FFmpegCaptureAdapter(input_format="lavfi", device="testsrc2=size=640x480:rate=30")
        cmd = adapter.build_command(5000)

        assert cmd[:5] == ["ffmpeg", "-hide_banner", "-nostdin", "-loglevel", "error"]
        assert cmd[cmd.index("-f") + 1] == "lavfi"
        assert cmd[cmd.index("-i") + 1] == "testsrc2=size=640x480:rate=30"
        assert cmd[cmd.index("-t") + 1] == "5.000"
        assert cmd[-3:] == ["-f", "webm", "pipe:1"]
        assert "-an" in cmd

    def test_without_input_format(self) -> None:
        cmd = FFmpegCaptureAdapter(input_format="", device="/dev/video0").build_command(250)
        assert cmd.index("-i") < cmd.index("-f")
        assert cmd[cmd.index("-t") + 1] == "0.250"

    def test_rejects_empty_device(self) -> None:
        with pytest.raises(ValueError, match="device"):
            FFmpegCaptureAdapter(input_format="v4l2", device="")

    def test_satisfies_port(self) -> None:
        assert isinstance(FFmpegCaptureAdapter(input_format="lavfi", device="testsrc2"), CapturePort)


class TestRecordSegment:
    async def test_returns_stdout(self) -> None:
        adapter = FFmpegCaptureAdapter(input_format="lavfi", device="testsrc2", binary="/opt/ffmpeg")

        with patch(f"{_MODULE}.asyncio") as mock_aio:
            mock_aio.create_subprocess_exec = AsyncMock(return_value=_mock_process(stdout=b"\x1a\x45\xdf\xa3webm"))
            mock_aio.subprocess = __import__("asyncio").subprocess
            data = await adapter.record_segment(1000)

        assert data == b"\x1a\x45\xdf\xa3webm"
        assert mock_aio.create_subprocess_exec.call_args.args[0] == "/opt/ffmpeg"

    async def test_non_zero_exit(self) -> None:
        adapter = FFmpegCaptureAdapter(input_format="v4l2", device="/dev/video9")

        with patch(f"{_MODULE}.asyncio") as mock_aio:
            mock_aio.create_subprocess_exec = AsyncMock(
                return_value=_mock_process(returncode=1, stderr=b"/dev/video9: No such file or directory\n")
            )
            mock_aio.subprocess = __import__("asyncio").subprocess
            with pytest.raises(CaptureError, match="exit 1.*No such file"):
                await adapter.record_segment(1000)

    async def test_missing_binary(self) -> None:
        adapter = FFmpegCaptureAdapter(input_format="lavfi", device="testsrc2", binary="nope")

        with patch(f"{_MODULE}.asyncio") as mock_aio:
            mock_aio.create_subprocess_exec = AsyncMock(side_effect=FileNotFoundError("nope"))
            mock_aio.subprocess = __import__("asyncio").subprocess
            with pytest.raises(CaptureError, match="not found"):
                await adapter.record_segment(1000)

    async def test_rejects_non_positive_duration(self) -> None:
        adapter = FFmpegCaptureAdapter(input_format="lavfi", device="testsrc2")
        with pytest.raises(CaptureError, match="positive"):
            await adapter.record_segment(0)
