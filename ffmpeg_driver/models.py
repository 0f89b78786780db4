"""
Input/output specifications and event payloads.

Sources and destinations are classified once into a closed set of kinds;
every consumer (command builder, fan-out, completion reporting) branches on
that kind instead of inspecting objects.
"""

import os
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Union

from ffmpeg_driver.errors import ConfigurationError

# Generated-source expressions FFmpeg understands without a file on disk
GENERATED_SOURCE_PREFIXES = (
    "nullsrc=",
    "testsrc=",
    "testsrc2=",
    "lavfi=",
    "color=",
    "sine=",
    "anullsrc=",
    "smptebars=",
)

STDIO_MARKER = "-"

# Numbered-sequence placeholder such as %d or %03d
SEQUENCE_PLACEHOLDER = re.compile(r"%\d*d")

_URL_SCHEME = re.compile(r"^[a-zA-Z][a-zA-Z0-9+.-]*://")


class SourceKind(str, Enum):
    """Kinds of input sources."""

    FILE = "file"
    GENERATED = "generated"
    URL = "url"
    STDIN = "stdin"
    HANDLE = "handle"


class DestinationKind(str, Enum):
    """Kinds of output destinations."""

    FILE = "file"
    STDOUT = "stdout"
    HANDLE = "handle"


def _is_path_like(value: Any) -> bool:
    return isinstance(value, (str, os.PathLike))


def classify_source(source: Any) -> SourceKind:
    """Classify an input source."""
    if _is_path_like(source):
        path = os.fspath(source)
        if path == STDIO_MARKER or path == "pipe:" or path == "pipe:0":
            return SourceKind.STDIN
        if path.startswith(GENERATED_SOURCE_PREFIXES):
            return SourceKind.GENERATED
        if _URL_SCHEME.match(path):
            return SourceKind.URL
        return SourceKind.FILE
    if hasattr(source, "read"):
        return SourceKind.HANDLE
    raise TypeError(f"Unsupported input source: {type(source).__name__}")


def classify_destination(destination: Any) -> DestinationKind:
    """Classify an output destination."""
    if _is_path_like(destination):
        path = os.fspath(destination)
        if path == STDIO_MARKER or path == "pipe:" or path == "pipe:1":
            return DestinationKind.STDOUT
        return DestinationKind.FILE
    if hasattr(destination, "write"):
        return DestinationKind.HANDLE
    raise TypeError(f"Unsupported output destination: {type(destination).__name__}")


@dataclass(frozen=True)
class InputSpec:
    """An FFmpeg input and the options placed before its ``-i``."""

    source: Any
    options: Sequence[str] = ()

    @property
    def kind(self) -> SourceKind:
        return classify_source(self.source)

    @property
    def path(self) -> Optional[str]:
        """Source as a string, or None for handles."""
        if self.kind is SourceKind.HANDLE:
            return None
        return os.fspath(self.source)

    @classmethod
    def coerce(cls, value: Any) -> "InputSpec":
        """Accept a path, a handle, a mapping or an InputSpec."""
        if isinstance(value, InputSpec):
            return value
        if isinstance(value, dict):
            return cls(source=value["source"], options=tuple(value.get("options") or ()))
        return cls(source=value)


@dataclass(frozen=True)
class OutputSpec:
    """An FFmpeg output and the options placed before it."""

    destination: Any
    options: Sequence[str] = ()

    @property
    def kind(self) -> DestinationKind:
        return classify_destination(self.destination)

    @property
    def path(self) -> Optional[str]:
        """Destination as a string, or None for handles."""
        if self.kind is DestinationKind.HANDLE:
            return None
        return os.fspath(self.destination)

    @property
    def file(self) -> Optional[str]:
        """Destination file path, or None when written to stdout or a handle."""
        if self.kind is DestinationKind.FILE:
            return os.fspath(self.destination)
        return None

    @classmethod
    def coerce(cls, value: Any) -> "OutputSpec":
        """Accept a path, a handle, a mapping or an OutputSpec."""
        if isinstance(value, OutputSpec):
            return value
        if isinstance(value, dict):
            return cls(
                destination=value["destination"],
                options=tuple(value.get("options") or ()),
            )
        return cls(destination=value)


InputLike = Union[str, os.PathLike, InputSpec, Dict[str, Any], Any]
OutputLike = Union[str, os.PathLike, OutputSpec, Dict[str, Any], Any]


def check_output_handles(outputs: Sequence[OutputSpec]) -> None:
    """
    Enforce the handle invariant: at most one handle-backed output, last.

    Raises:
        ConfigurationError: If the invariant is violated
    """
    handle_positions = [
        idx for idx, output in enumerate(outputs) if output.kind is DestinationKind.HANDLE
    ]
    if len(handle_positions) > 1:
        raise ConfigurationError(
            "Multiple stream handle outputs are not supported. "
            "Only one stream output is allowed (as the last output if using tee)."
        )
    if handle_positions and handle_positions[0] != len(outputs) - 1:
        raise ConfigurationError(
            "If using a stream handle with multiple outputs, it must be the last output."
        )


@dataclass
class MediaInfo:
    """Header information printed for an input."""

    duration: Optional[float]
    start: Optional[float]
    bitrate: Optional[float]  # kbit/s


@dataclass
class ProgressSample:
    """One progress snapshot from FFmpeg's status line."""

    frame: Optional[int] = None
    fps: Optional[float] = None
    q: Optional[float] = None
    size: Optional[int] = None  # bytes
    time: Optional[float] = None  # seconds
    bitrate: Optional[float] = None  # kbit/s
    duplicates: Optional[int] = None
    dropped: Optional[int] = None
    speed: Optional[float] = None


@dataclass
class ProgressEvent(ProgressSample):
    """Progress sample attributed to an output."""

    duration: Optional[float] = None
    percent: float = 0.0
    output_index: int = 0
    file: Optional[str] = None

    @classmethod
    def from_sample(cls, sample: ProgressSample, **extra: Any) -> "ProgressEvent":
        values = {f.name: getattr(sample, f.name) for f in fields(ProgressSample)}
        values.update(extra)
        return cls(**values)


@dataclass
class FinalSizes:
    """Closing per-stream-class size summary."""

    video: int = 0
    audio: int = 0
    subtitles: int = 0
    other_streams: int = 0
    global_headers: int = 0
    muxing_overhead: float = 0.0  # fraction, e.g. 0.0041


@dataclass
class WritingInfo:
    """FFmpeg started writing a file."""

    file: str
    output_index: int = 0


@dataclass
class DoneResult:
    """Completion result for one output."""

    file: Optional[str] = None
    sizes: Optional[FinalSizes] = None
    output_index: Optional[int] = None


@dataclass
class ExitStatus:
    """Exit code and captured error of a finished run."""

    code: Optional[int] = None
    error: Optional[BaseException] = None


@dataclass
class CommandPlan:
    """Argument vector and wiring requirements produced by the command builder."""

    args: List[str]
    tee: bool = False
    input_handles: List[Any] = field(default_factory=list)
    output_handles: List[Any] = field(default_factory=list)
    reads_stdin: bool = False
    writes_stdout: bool = False
    current_file: Optional[str] = None
