"""Fixed transcode argument profile — must be reproduced exactly."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class TranscodeProfile:
    """Named, immutable engine argument list placed between input and output."""

    name: str
    args: tuple[str, ...]
    output_suffix: str

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("name must not be empty")
        if not self.args:
            raise ValueError("args must not be empty")


# Generate timestamps, force constant 30 fps, H.264 at CRF 28, faststart, no audio.
H264_CFR30 = TranscodeProfile(
    name="h264-cfr30",
    args=(
        "-fflags",
        "+genpts",
        "-fps_mode",
        "cfr",
        "-r",
        "30",
        "-vf",
        "fps=30",
        "-c:v",
        "libx264",
        "-preset",
        "veryfast",
        "-crf",
        "28",
        "-pix_fmt",
        "yuv420p",
        "-movflags",
        "+faststart",
        "-an",
    ),
    output_suffix=".mp4",
)
