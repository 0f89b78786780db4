"""
Media inspection through ffprobe.

Every failure (missing binary, timeout, non-zero exit, malformed JSON)
collapses to ProbeError("Failed to probe").
"""

import asyncio
import json
import logging
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from ffmpeg_driver.config import PROBE_ARGS, FFmpegConfig, get_config
from ffmpeg_driver.errors import ProbeError

logger = logging.getLogger(__name__)


class ProbeFormat(BaseModel):
    """Container-level information."""

    model_config = ConfigDict(extra="allow")

    filename: Optional[str] = None
    nb_streams: Optional[int] = None
    nb_programs: Optional[int] = None
    format_name: Optional[str] = None
    format_long_name: Optional[str] = None
    start_time: Optional[str] = None
    duration: Optional[str] = None
    size: Optional[str] = None
    bit_rate: Optional[str] = None
    probe_score: Optional[int] = None
    tags: Dict[str, Any] = Field(default_factory=dict)

    @property
    def duration_seconds(self) -> Optional[float]:
        try:
            return float(self.duration) if self.duration is not None else None
        except ValueError:
            return None


class ProbeStream(BaseModel):
    """Per-stream information."""

    model_config = ConfigDict(extra="allow")

    index: int
    codec_name: Optional[str] = None
    codec_long_name: Optional[str] = None
    codec_type: Optional[str] = None
    profile: Optional[str] = None
    width: Optional[int] = None
    height: Optional[int] = None
    pix_fmt: Optional[str] = None
    r_frame_rate: Optional[str] = None
    avg_frame_rate: Optional[str] = None
    time_base: Optional[str] = None
    sample_fmt: Optional[str] = None
    sample_rate: Optional[str] = None
    channels: Optional[int] = None
    channel_layout: Optional[str] = None
    duration: Optional[str] = None
    bit_rate: Optional[str] = None
    disposition: Dict[str, int] = Field(default_factory=dict)
    tags: Dict[str, Any] = Field(default_factory=dict)


class ProbeResult(BaseModel):
    """Parsed ffprobe JSON output."""

    model_config = ConfigDict(extra="allow")

    streams: List[ProbeStream] = Field(default_factory=list)
    format: Optional[ProbeFormat] = None

    def streams_of_type(self, codec_type: str) -> List[ProbeStream]:
        return [s for s in self.streams if s.codec_type == codec_type]


async def probe(path: str, config: Optional[FFmpegConfig] = None) -> ProbeResult:
    """
    Inspect a media file with ffprobe.

    Args:
        path: File path or URL to inspect
        config: Optional configuration (binary path and timeout)

    Returns:
        ProbeResult

    Raises:
        ProbeError: On any failure
    """
    config = config or get_config()
    if not config.ffprobe_binary:
        logger.error("Missing path to ffprobe binary")
        raise ProbeError()

    args = [*PROBE_ARGS, path]
    logger.debug(f"Probing: {config.ffprobe_binary} {' '.join(args)}")

    try:
        process = await asyncio.create_subprocess_exec(
            config.ffprobe_binary,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.DEVNULL,
            cwd=config.cwd,
        )
    except OSError as e:
        logger.error(f"Failed to start ffprobe: {e}")
        raise ProbeError() from None

    try:
        stdout, _ = await asyncio.wait_for(process.communicate(), timeout=config.probe_timeout)
    except asyncio.TimeoutError:
        logger.error(f"ffprobe timed out after {config.probe_timeout}s: {path}")
        process.kill()
        await process.wait()
        raise ProbeError() from None

    if process.returncode != 0:
        logger.error(f"ffprobe exited with code {process.returncode}: {path}")
        raise ProbeError()

    try:
        return ProbeResult.model_validate(json.loads(stdout))
    except (ValueError, ValidationError) as e:
        logger.error(f"Failed to parse ffprobe output for {path}: {e}")
        raise ProbeError() from None
