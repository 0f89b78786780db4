"""
Pytest configuration and fixtures for FFmpeg driver tests.
"""

import asyncio
import signal
import tempfile
from pathlib import Path
from typing import Generator, List

import pytest

from ffmpeg_driver.command_builder import FFmpegCommandBuilder
from ffmpeg_driver.config import FFmpegConfig
from ffmpeg_driver.parsers import FFmpegOutputParser


class FakeStdin:
    """Stand-in for the stdin StreamWriter of a subprocess."""

    def __init__(self, on_close=None):
        self.data = bytearray()
        self.closed = False
        self._on_close = on_close

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        await asyncio.sleep(0)

    def close(self) -> None:
        self.closed = True
        if self._on_close is not None:
            self._on_close()

    def is_closing(self) -> bool:
        return self.closed


class FakeProcess:
    """
    Stand-in for asyncio.subprocess.Process.

    Must be created inside a running event loop. Unless ``hang`` is set the
    process has already exited with ``returncode`` and its pipes are at EOF.
    With ``until_stdin_closed`` it exits once its stdin is closed, like
    FFmpeg reading an input from a pipe.
    """

    def __init__(
        self,
        stderr_data: bytes = b"",
        stdout_data: bytes = b"",
        returncode: int = 0,
        hang: bool = False,
        ignore_sigterm: bool = False,
        pid: int = 4242,
        until_stdin_closed: bool = False,
    ):
        self.pid = pid
        self.returncode = None
        self.stdin = FakeStdin(
            on_close=(lambda: self._exit(returncode)) if until_stdin_closed else None
        )
        self.stdout = asyncio.StreamReader()
        self.stderr = asyncio.StreamReader()
        self.signals: List[int] = []
        self.ignore_sigterm = ignore_sigterm
        self._exited = asyncio.Event()

        if stderr_data:
            self.stderr.feed_data(stderr_data)
        if stdout_data:
            self.stdout.feed_data(stdout_data)
        if not hang and not until_stdin_closed:
            self._exit(returncode)

    def _exit(self, code: int) -> None:
        if self.returncode is None:
            self.returncode = code
            self.stdout.feed_eof()
            self.stderr.feed_eof()
            self._exited.set()

    async def wait(self) -> int:
        await self._exited.wait()
        return self.returncode

    async def communicate(self, input=None):
        stdout = await self.stdout.read()
        await self.wait()
        return stdout, b""

    def send_signal(self, sig: int) -> None:
        self.signals.append(sig)
        if sig == signal.SIGKILL or not self.ignore_sigterm:
            self._exit(-int(sig))

    def terminate(self) -> None:
        self.send_signal(signal.SIGTERM)

    def kill(self) -> None:
        self.send_signal(signal.SIGKILL)


@pytest.fixture
def make_process():
    """Factory for fake FFmpeg processes (call inside the test coroutine)."""
    return FakeProcess


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def input_file(temp_dir: Path) -> Path:
    """Create an (empty) input media file."""
    path = temp_dir / "a.mp4"
    path.touch()
    return path


@pytest.fixture
def test_config(temp_dir: Path) -> FFmpegConfig:
    """Create a test configuration rooted in the temp directory."""
    return FFmpegConfig(
        ffmpeg_binary="ffmpeg",
        ffprobe_binary="ffprobe",
        cwd=str(temp_dir),
        stream_open_timeout=0.2,
        process_timeout=1.0,
        probe_timeout=1.0,
    )


@pytest.fixture
def command_builder(test_config: FFmpegConfig) -> FFmpegCommandBuilder:
    """Create a command builder for testing."""
    return FFmpegCommandBuilder(test_config)


@pytest.fixture
def output_parser() -> FFmpegOutputParser:
    """Create an output parser for testing."""
    return FFmpegOutputParser()


@pytest.fixture
def sample_ffmpeg_output() -> str:
    """Sample stderr of a successful 10 second transcode."""
    return (
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'a.mp4':\n"
        "  Duration: 00:00:10.00, start: 0.000000, bitrate: 1234 kb/s\n"
        "Output #0, matroska, to 'b.mkv':\n"
        "frame=  120 fps=0.0 q=-1.0 size=     512kB time=00:00:05.00 "
        "bitrate= 838.9kbits/s speed=10.0x\r"
        "frame=  240 fps=0.0 q=-1.0 Lsize=    1024kB time=00:00:10.00 "
        "bitrate= 838.9kbits/s speed=10.0x\n"
        "video:1033kB audio:226kB subtitle:0kB other streams:0kB "
        "global headers:0kB muxing overhead: 0.414726%\n"
    )


@pytest.fixture
def sample_failure_output() -> str:
    """Sample stderr of a run that fails on its output."""
    return (
        "Input #0, mov,mp4,m4a,3gp,3g2,mj2, from 'a.mp4':\n"
        "  Duration: 00:00:10.00, start: 0.000000, bitrate: 1234 kb/s\n"
        "[matroska @ 0x55d5c8] Unknown option 'bogus'\n"
        "b.mkv: Invalid argument\n"
    )
