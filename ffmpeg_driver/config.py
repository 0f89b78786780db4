"""
FFmpeg driver configuration.

The run configuration is an immutable settings object read from FFMPEG_*
environment variables. Callers derive modified copies with
``config.model_copy(update=...)`` instead of mutating shared state.
"""

from typing import List, Optional

from pydantic import ConfigDict, Field
from pydantic_settings import BaseSettings

# Arguments passed to ffprobe before the probed path
PROBE_ARGS = (
    "-hide_banner",
    "-show_format",
    "-show_streams",
    "-print_format",
    "json",
    "-loglevel",
    "quiet",
)


class FFmpegConfig(BaseSettings):
    """FFmpeg run configuration from environment variables."""

    # Binaries
    ffmpeg_binary: str = Field(
        default="ffmpeg",
        description="Path to FFmpeg binary",
    )

    ffprobe_binary: str = Field(
        default="ffprobe",
        description="Path to FFprobe binary",
    )

    # Working directory
    cwd: Optional[str] = Field(
        default=None,
        description="Working directory for FFmpeg (defaults to the current directory)",
    )

    # Options
    global_options: List[str] = Field(
        default_factory=lambda: ["-stats"],
        description="Options placed before all inputs",
    )

    input_options: List[str] = Field(
        default_factory=list,
        description="Options placed before the first input",
    )

    output_options: List[str] = Field(
        default_factory=list,
        description="Options placed before the first output",
    )

    # Flags
    overwrite_existing: bool = Field(
        default=False,
        description="Overwrite existing output files (-y)",
    )

    hide_banner: bool = Field(
        default=True,
        description="Suppress the FFmpeg banner (-hide_banner)",
    )

    tee: bool = Field(
        default=False,
        description="Use the tee muxer for multiple compatible outputs",
    )

    # Timeouts
    timeout_ms: Optional[float] = Field(
        default=None,
        description="Kill FFmpeg when no progress is reported for this many milliseconds",
        ge=0,
    )

    stream_open_timeout: float = Field(
        default=5.0,
        description="Seconds to wait for stream handles to open",
        gt=0.0,
        le=60.0,
    )

    process_timeout: float = Field(
        default=30.0,
        description="Seconds to wait for FFmpeg to exit after a stop signal before killing it",
        gt=0.0,
        le=300.0,
    )

    probe_timeout: float = Field(
        default=30.0,
        description="Seconds before an ffprobe call is abandoned",
        gt=0.0,
        le=300.0,
    )

    model_config = ConfigDict(
        env_prefix="FFMPEG_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        frozen=True,
    )


def get_config() -> FFmpegConfig:
    """
    Get a fresh FFmpeg configuration from environment variables.

    Every call returns a new instance; configurations are never shared
    between process managers.

    Returns:
        FFmpegConfig: Configuration instance
    """
    return FFmpegConfig()
