"""Bench settings — Pydantic BaseSettings from environment, .env and an optional YAML file."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import pydantic
import yaml
from pydantic import Field, PositiveFloat
from pydantic_settings import BaseSettings

from reencode.application.pipeline_runner import RunConfig
from reencode.domain.errors import ConfigurationError


class BenchSettings(BaseSettings):
    """Benchmark configuration.

    Environment variables use the ``REENCODE_`` prefix (``REENCODE_GAP_MS=500``).
    Values passed to the constructor, including those read from a YAML file by
    ``load_settings``, take precedence over the environment.
    """

    # Capture
    segment_count: int = Field(default=4, ge=1, description="Segments recorded per run")
    segment_duration_ms: int = Field(default=5000, gt=0, description="Length of each segment in milliseconds")
    gap_ms: int = Field(default=250, ge=0, description="Pause between consecutive segments")
    capture_input_format: str = Field(default="lavfi", description="FFmpeg -f for the capture source")
    capture_device: str = Field(default="testsrc2=size=640x480:rate=30", description="FFmpeg -i for capture")

    # Engine
    ffmpeg_binary: str = Field(default="ffmpeg", description="FFmpeg executable")
    ffmpeg_threads: int = Field(default=0, ge=0, description="Threads for the primary engine profile (0 = auto)")
    scratch_dir: Path | None = Field(default=None, description="Engine scratch directory; temp dir when unset")
    stage_timeout_seconds: PositiveFloat | None = Field(
        default=None, description="Give up on an engine stage after this long; unset waits forever"
    )

    # Outputs
    results_log_path: Path | None = Field(default=None, description="JSONL result journal; unset disables")
    events_log_path: Path | None = Field(default=None, description="Event journal; unset disables")
    output_dir: Path | None = Field(default=None, description="Directory for merged/transcoded outputs per run")
    rolling_log_max_lines: int = Field(default=350, ge=1, description="Lines kept in the operator log")

    model_config = {"env_prefix": "REENCODE_", "env_file": ".env", "env_file_encoding": "utf-8", "extra": "ignore"}

    def run_config(self) -> RunConfig:
        return RunConfig(
            segment_count=self.segment_count,
            segment_duration_ms=self.segment_duration_ms,
            gap_ms=self.gap_ms,
        )


def _read_yaml(config_path: Path) -> dict[str, Any]:
    try:
        raw = yaml.safe_load(config_path.read_text())
    except OSError as exc:
        raise ConfigurationError(f"Cannot read config file {config_path}: {exc}") from exc
    except yaml.YAMLError as exc:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {exc}") from exc

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping, got {type(raw).__name__}")
    return raw


def load_settings(config_path: Path | None = None, **overrides: Any) -> BenchSettings:
    """Build settings from the environment, an optional YAML file and explicit overrides.

    Precedence, highest first: non-None ``overrides``, YAML values, environment.

    Raises:
        ConfigurationError: the file is unreadable, not a mapping, or a value is invalid.
    """
    values: dict[str, Any] = _read_yaml(config_path) if config_path is not None else {}
    values.update({k: v for k, v in overrides.items() if v is not None})

    try:
        return BenchSettings(**values)
    except pydantic.ValidationError as exc:
        raise ConfigurationError(f"Invalid settings: {exc}") from exc
