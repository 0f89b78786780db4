"""
Unit conversion and option tokenising helpers.
"""

import re
from typing import Iterable, List

_SIZE_FACTORS = {
    "b": 1,
    "kb": 1024,
    "kib": 1024,
    "mb": 1024 ** 2,
    "mib": 1024 ** 2,
    "gb": 1024 ** 3,
    "gib": 1024 ** 3,
}

_BITRATE_FACTORS = {
    "b/s": 0.001,
    "bit/s": 0.001,
    "bits/s": 0.001,
    "kb/s": 1.0,
    "kbit/s": 1.0,
    "kbits/s": 1.0,
    "mb/s": 1000.0,
    "mbit/s": 1000.0,
    "mbits/s": 1000.0,
}

# Quoted segments stay together, everything else splits on whitespace
_OPTION_TOKEN = re.compile(r"\"[^\"]*\"|'[^']*'|\S+")


def parse_size(size: float, unit: str) -> int:
    """
    Convert a size with unit to bytes.

    Args:
        size: Numeric size value
        unit: Unit as printed by FFmpeg (B, kB, KiB, MB, MiB, GB, GiB)

    Returns:
        Size in bytes

    Raises:
        ValueError: If the unit is unknown
    """
    factor = _SIZE_FACTORS.get(unit.lower())
    if factor is None:
        raise ValueError(f"Unknown size unit: {unit}")
    return int(round(size * factor))


def parse_bitrate(bitrate: float, unit: str) -> float:
    """
    Convert a bitrate with unit to kbit/s.

    Raises:
        ValueError: If the unit is unknown
    """
    factor = _BITRATE_FACTORS.get(unit.lower())
    if factor is None:
        raise ValueError(f"Unknown bitrate unit: {unit}")
    return bitrate * factor


def timer_to_secs(timer: str) -> float:
    """
    Convert an ``HH:MM:SS.ms`` timer to seconds, rounded to two decimals.

    Raises:
        ValueError: If the timer is malformed
    """
    value = timer.strip()
    negative = value.startswith("-")
    parts = value.lstrip("-").split(":")
    if len(parts) != 3:
        raise ValueError(f"Invalid timer: {timer}")

    hours, minutes = int(parts[0]), int(parts[1])
    seconds = float(parts[2])
    total = round(hours * 3600 + minutes * 60 + seconds, 2)
    return -total if negative else total


def secs_to_timer(seconds: float) -> str:
    """Convert seconds to an ``HH:MM:SS.ms`` timer."""
    centis = int(round(seconds * 100))
    hours, centis = divmod(centis, 360000)
    minutes, centis = divmod(centis, 6000)
    secs, centis = divmod(centis, 100)
    return f"{hours:02d}:{minutes:02d}:{secs:02d}.{centis:02d}"


def parse_options(options: Iterable[str]) -> List[str]:
    """
    Split option strings into individual argv tokens.

    ``["-c copy", "-crf 23"]`` becomes ``["-c", "copy", "-crf", "23"]``.
    A token wrapped in matching quotes is unwrapped, since arguments are
    passed to FFmpeg without a shell.
    """
    tokens: List[str] = []
    for option in options:
        for token in _OPTION_TOKEN.findall(option):
            if len(token) >= 2 and token[0] == token[-1] and token[0] in "\"'":
                token = token[1:-1]
            tokens.append(token)
    return tokens
