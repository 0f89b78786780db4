"""
FFmpeg stderr parser.

Extracts header info, progress samples, "now writing" notices and the final
size summary from FFmpeg's status output, and condenses a failed run's log
into a short error message.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union

from ffmpeg_driver.models import FinalSizes, MediaInfo, ProgressSample
from ffmpeg_driver.units import parse_bitrate, parse_size, timer_to_secs

logger = logging.getLogger(__name__)

INFO_PATTERN = re.compile(
    r"Duration: (?P<duration>[^,]+)"
    r"(?:, start: (?P<start>[^,]+))?"
    r", bitrate: (?P<bitrate>N/A|[\d.]+)"
    r"(?:\s*(?P<unit>[kKmM]?b/s))?"
)

PROGRESS_FIELD_PATTERN = re.compile(
    r"\b(?P<key>frame|fps|q|L?size|time|bitrate|dup|drop|speed)=\s*(?P<value>\S+)"
)

WRITING_PATTERN = re.compile(r"Opening '(?P<path>[^\n]+?)' for writing")

FINAL_SIZE_PATTERN = re.compile(
    r"(?P<key>video|audio|subtitles?|other streams|global headers):"
    r"\s*(?P<value>\d+(?:\.\d+)?)\s*(?P<unit>[kKmMgG]?i?B)"
)

MUXING_OVERHEAD_PATTERN = re.compile(r"muxing overhead:\s*(?P<value>[\d.]+)%")

_LINE_SPLIT = re.compile(r"[\r\n]+")
_TIMER = re.compile(r"^-?\d+:\d{2}:\d{2}(?:\.\d+)?$")
_NUMBER_WITH_UNIT = re.compile(r"^(?P<number>\d+(?:\.\d+)?)(?P<unit>[A-Za-z/]+)?$")
_SPEED = re.compile(r"^(?P<number>[\d.]+(?:e[+-]?\d+)?)x$")

_FINAL_SIZE_FIELDS = {
    "video": "video",
    "audio": "audio",
    "subtitle": "subtitles",
    "subtitles": "subtitles",
    "other streams": "other_streams",
    "global headers": "global_headers",
}

# Keywords that mark a line as the likely cause of a failure
ERROR_KEYWORDS = (
    "error",
    "invalid",
    "fail",
    "could not",
    "no such",
    "denied",
    "unsupported",
    "unable",
    "can't open",
    "conversion failed",
    "not found",
    "permission",
)


def parse_info(text: str) -> Optional[MediaInfo]:
    """
    Parse the ``Duration: ..., start: ..., bitrate: ...`` header line.

    Args:
        text: Raw FFmpeg output

    Returns:
        MediaInfo, or None if no header line is present
    """
    match = INFO_PATTERN.search(text)
    if not match:
        return None

    duration = None
    raw_duration = match.group("duration").strip()
    if raw_duration != "N/A":
        try:
            duration = timer_to_secs(raw_duration)
        except ValueError:
            logger.debug(f"Unparseable duration: {raw_duration}")

    start = None
    if match.group("start"):
        try:
            start = float(match.group("start"))
        except ValueError:
            logger.debug(f"Unparseable start time: {match.group('start')}")

    bitrate = None
    if match.group("bitrate") != "N/A":
        bitrate = parse_bitrate(float(match.group("bitrate")), match.group("unit") or "kb/s")

    return MediaInfo(duration=duration, start=start, bitrate=bitrate)


def _parse_number_with_unit(value: str) -> Optional[tuple]:
    match = _NUMBER_WITH_UNIT.match(value)
    if not match:
        return None
    return float(match.group("number")), match.group("unit")


def _parse_progress_line(line: str) -> Optional[ProgressSample]:
    values = {m.group("key"): m.group("value") for m in PROGRESS_FIELD_PATTERN.finditer(line)}
    raw_time = values.get("time")
    if raw_time is None or not _TIMER.match(raw_time):
        return None

    sample = ProgressSample(time=timer_to_secs(raw_time))

    try:
        if "frame" in values and values["frame"].isdigit():
            sample.frame = int(values["frame"])
        if "fps" in values and values["fps"] != "N/A":
            sample.fps = float(values["fps"])
        if "q" in values and values["q"] != "N/A":
            sample.q = float(values["q"])
        if "dup" in values and values["dup"].isdigit():
            sample.duplicates = int(values["dup"])
        if "drop" in values and values["drop"].isdigit():
            sample.dropped = int(values["drop"])
    except ValueError as e:
        logger.debug(f"Failed to parse progress field: {e}")

    raw_size = values.get("size", values.get("Lsize"))
    if raw_size and raw_size != "N/A":
        parsed = _parse_number_with_unit(raw_size)
        if parsed:
            number, unit = parsed
            try:
                sample.size = parse_size(number, unit or "B")
            except ValueError as e:
                logger.debug(f"Failed to parse size {raw_size}: {e}")

    raw_bitrate = values.get("bitrate")
    if raw_bitrate and raw_bitrate != "N/A":
        parsed = _parse_number_with_unit(raw_bitrate)
        if parsed and parsed[1]:
            try:
                sample.bitrate = parse_bitrate(*parsed)
            except ValueError as e:
                logger.debug(f"Failed to parse bitrate {raw_bitrate}: {e}")

    raw_speed = values.get("speed")
    if raw_speed:
        match = _SPEED.match(raw_speed)
        if match:
            sample.speed = float(match.group("number"))

    return sample


def iter_progress(text: str) -> Iterator[ProgressSample]:
    """Yield every progress sample in ``text``, in order."""
    for line in _LINE_SPLIT.split(text):
        if "time=" not in line:
            continue
        sample = _parse_progress_line(line)
        if sample is not None:
            yield sample


def parse_progress(text: str) -> Optional[ProgressSample]:
    """
    Parse the first progress line in ``text``.

    A line without a usable ``time=`` value is not a progress sample.
    """
    return next(iter_progress(text), None)


def iter_writing(text: str) -> Iterator[str]:
    """Yield every path from ``Opening '<path>' for writing`` notices."""
    for match in WRITING_PATTERN.finditer(text):
        yield match.group("path")


def parse_writing(text: str) -> Optional[str]:
    """Parse the first ``Opening '<path>' for writing`` notice."""
    return next(iter_writing(text), None)


def parse_final_sizes(text: str) -> Optional[FinalSizes]:
    """
    Parse the closing summary, e.g.
    ``video:1033kB audio:226kB subtitle:0kB ... muxing overhead: 0.414726%``.

    Returns:
        FinalSizes, or None if no summary fields are present
    """
    sizes = FinalSizes()
    found = False

    for match in FINAL_SIZE_PATTERN.finditer(text):
        attr = _FINAL_SIZE_FIELDS.get(match.group("key"))
        if attr is None:
            continue
        try:
            setattr(sizes, attr, parse_size(float(match.group("value")), match.group("unit")))
            found = True
        except ValueError as e:
            logger.debug(f"Failed to parse final size: {e}")

    overhead = MUXING_OVERHEAD_PATTERN.search(text)
    if overhead:
        sizes.muxing_overhead = float(overhead.group("value")) / 100
        found = True

    return sizes if found else None


def compute_percent(time: Optional[float], duration: Optional[float]) -> float:
    """
    Derive completion percent from a progress time and the input duration.

    Returns 0 whenever the duration is unknown or not positive.
    """
    if not duration or duration <= 0 or not time:
        return 0.0
    return min(100.0, max(0.0, round(time / duration * 100, 2)))


def _truncate(text: str, max_length: int) -> str:
    if len(text) > max_length:
        return text[:max_length] + "..."
    return text


def extract_concise_error(log: str, max_lines: int = 3, max_length: int = 250) -> str:
    """
    Pick the most meaningful diagnostic from the tail of an FFmpeg log.

    The last ``max_lines`` lines are scanned backwards for an error keyword;
    a hit is returned together with its preceding line for context.
    Otherwise the last non-empty line is used.

    Args:
        log: Accumulated FFmpeg stderr output
        max_lines: Number of trailing lines to scan for keywords
        max_length: Maximum message length before truncation

    Returns:
        Short error description
    """
    if not log:
        return "Unknown error (log is empty)"

    lines = log.strip().splitlines()
    if not lines:
        return "Unknown error (log has no content)"

    start = max(0, len(lines) - max_lines)
    for i in range(len(lines) - 1, start - 1, -1):
        line = lines[i].strip()
        if not line:
            continue
        lowered = line.lower()
        if any(keyword in lowered for keyword in ERROR_KEYWORDS):
            if i > 0 and lines[i - 1].strip():
                return _truncate(f"{lines[i - 1].strip()}\n{line}", max_length)
            return _truncate(line, max_length)

    for line in reversed(lines):
        if line.strip():
            return _truncate(line.strip(), max_length)

    return "Unknown error (no specific problem found)"


@dataclass
class ParserState:
    """Cross-chunk parser state threaded through a run."""

    duration: Optional[float] = None


@dataclass
class ParsedChunk:
    """
    Everything recognised in one chunk of output.

    ``events`` holds progress samples and written paths (str) in the order
    FFmpeg printed them.
    """

    info: Optional[MediaInfo] = None
    events: List[Union[ProgressSample, str]] = field(default_factory=list)
    final_sizes: Optional[FinalSizes] = None

    @property
    def samples(self) -> List[ProgressSample]:
        return [e for e in self.events if isinstance(e, ProgressSample)]

    @property
    def writing(self) -> List[str]:
        return [e for e in self.events if isinstance(e, str)]


class FFmpegOutputParser:
    """
    Incremental parser for FFmpeg's stderr.

    Chunks are reassembled into complete ``\\r``/``\\n`` terminated lines
    before parsing, so a status line split across reads is seen once.
    """

    def __init__(self):
        """Initialize output parser."""
        self.state = ParserState()
        self.log = ""
        self.info: Optional[MediaInfo] = None
        self.last_sample: Optional[ProgressSample] = None
        self.final_sizes: Optional[FinalSizes] = None
        self._pending = ""

    def feed(self, chunk: str) -> ParsedChunk:
        """
        Feed a chunk of stderr text.

        Args:
            chunk: Decoded stderr data

        Returns:
            ParsedChunk with whatever the completed lines contained
        """
        buffered = self._pending + chunk
        cut = max(buffered.rfind("\r"), buffered.rfind("\n"))
        if cut < 0:
            self._pending = buffered
            return ParsedChunk()

        self._pending = buffered[cut + 1:]
        return self._parse(buffered[:cut + 1])

    def flush(self) -> ParsedChunk:
        """Parse any trailing text that was not newline terminated."""
        remaining, self._pending = self._pending, ""
        if not remaining:
            return ParsedChunk()
        return self._parse(remaining)

    def _parse(self, text: str) -> ParsedChunk:
        self.log += text
        logger.debug(text.rstrip())

        result = ParsedChunk()

        if self.state.duration is None:
            info = parse_info(text)
            if info:
                logger.debug(f"Input info: {info}")
                self.info = info
                result.info = info
                if info.duration:
                    self.state.duration = info.duration

        for line in _LINE_SPLIT.split(text):
            if "time=" in line:
                sample = _parse_progress_line(line)
                if sample is not None:
                    self.last_sample = sample
                    result.events.append(sample)
            result.events.extend(iter_writing(line))

        final_sizes = parse_final_sizes(text)
        if final_sizes:
            logger.debug(f"Final sizes: {final_sizes}")
            self.final_sizes = final_sizes
            result.final_sizes = final_sizes

        return result

    def percent(self, sample: ProgressSample) -> float:
        """Completion percent of ``sample`` against the captured duration."""
        return compute_percent(sample.time, self.state.duration)

    def concise_error(self) -> str:
        """Short description of why the run failed."""
        return extract_concise_error(self.log)

    def reset(self) -> None:
        """Reset parser state (for a new FFmpeg process)."""
        self.state = ParserState()
        self.log = ""
        self.info = None
        self.last_sample = None
        self.final_sizes = None
        self._pending = ""
        logger.debug("Output parser state reset")
