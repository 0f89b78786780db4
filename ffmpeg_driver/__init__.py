"""
FFmpeg Driver

Builds FFmpeg command lines from input/output specifications, supervises the
FFmpeg subprocess and reports typed progress, writing and completion events.

Version: 1.0.0
"""

__version__ = "1.0.0"

from ffmpeg_driver.command_builder import FFmpegCommandBuilder, create_command_builder
from ffmpeg_driver.config import FFmpegConfig, get_config
from ffmpeg_driver.errors import (
    ConfigurationError,
    FFmpegDriverError,
    FFmpegProcessError,
    FFmpegTimeoutError,
    InputNotFoundError,
    ProbeError,
    StreamOpenError,
)
from ffmpeg_driver.events import EventBus, EventKind
from ffmpeg_driver.fanout import PassThrough
from ffmpeg_driver.models import (
    DoneResult,
    ExitStatus,
    FinalSizes,
    InputSpec,
    OutputSpec,
    ProgressEvent,
    ProgressSample,
    WritingInfo,
)
from ffmpeg_driver.parsers import FFmpegOutputParser
from ffmpeg_driver.probe import ProbeResult, probe
from ffmpeg_driver.process_manager import FFmpegProcessManager, ProcessState

__all__ = [
    "FFmpegCommandBuilder",
    "create_command_builder",
    "FFmpegConfig",
    "get_config",
    "ConfigurationError",
    "FFmpegDriverError",
    "FFmpegProcessError",
    "FFmpegTimeoutError",
    "InputNotFoundError",
    "ProbeError",
    "StreamOpenError",
    "EventBus",
    "EventKind",
    "PassThrough",
    "DoneResult",
    "ExitStatus",
    "FinalSizes",
    "InputSpec",
    "OutputSpec",
    "ProgressEvent",
    "ProgressSample",
    "WritingInfo",
    "FFmpegOutputParser",
    "ProbeResult",
    "probe",
    "FFmpegProcessManager",
    "ProcessState",
]
