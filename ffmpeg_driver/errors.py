"""
Exceptions raised by the FFmpeg driver.

Configuration and validation errors are raised synchronously before a
subprocess is spawned. Runtime errors are captured during a run, reported
through the ERROR event and re-raised from FFmpegProcessManager.done().
"""

from typing import Optional


class FFmpegDriverError(Exception):
    """Base class for all FFmpeg driver errors."""


class ConfigurationError(FFmpegDriverError, ValueError):
    """Invalid or incomplete run configuration."""


class InputNotFoundError(FFmpegDriverError, FileNotFoundError):
    """A file input does not exist on disk."""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"Input file does not exist: {path}")


class StreamOpenError(FFmpegDriverError):
    """A live stream handle did not become ready within the allowed time."""


class FFmpegProcessError(FFmpegDriverError):
    """FFmpeg exited with its failure code."""

    def __init__(self, returncode: Optional[int], detail: str):
        self.returncode = returncode
        self.detail = detail
        super().__init__(f"FFmpeg failed with exit code {returncode}: {detail}")


class FFmpegTimeoutError(FFmpegDriverError):
    """No progress was reported within the configured timeout."""

    def __init__(self, timeout_ms: float):
        self.timeout_ms = timeout_ms
        super().__init__(f"FFmpeg process timed out: no progress for {timeout_ms:g} ms")


class ProbeError(FFmpegDriverError):
    """Media inspection failed."""

    def __init__(self, message: str = "Failed to probe"):
        super().__init__(message)
