"""
Stdout fan-out.

Copies FFmpeg's stdout into every attached sink. A sink that fails is
detached while the others keep receiving data.
"""

import asyncio
import logging
import re
from typing import Any, Callable, List, Optional

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024

# Bytes a PassThrough may hold before the fan-out stops reading stdout
DEFAULT_HIGH_WATER_MARK = 16 * CHUNK_SIZE

# Errors expected while a pipeline is torn down
CLEANUP_NOISE = re.compile(
    r"premature close|write after end|cannot pipe|closed file|broken pipe|"
    r"stream.*(?:destroyed|closed)",
    re.IGNORECASE,
)


def is_cleanup_noise(error: BaseException) -> bool:
    """Whether ``error`` is an expected teardown error."""
    if isinstance(error, (BrokenPipeError, ConnectionResetError)):
        return True
    return bool(CLEANUP_NOISE.search(str(error)))


class PassThrough:
    """
    In-memory byte pipe returned by ``FFmpegProcessManager.to_stream()``.

    The fan-out feeds it; the caller reads it with ``await read()`` or
    ``async for chunk in stream``. It may be created outside a running loop.

    Writers that await ``wait_writable()`` before ``feed()`` are held back
    while ``high_water_mark`` bytes or more are buffered, which in turn
    stops FFmpeg's stdout from being read until the caller catches up.
    """

    def __init__(self, high_water_mark: Optional[int] = DEFAULT_HIGH_WATER_MARK):
        """
        Initialize pass-through stream.

        Args:
            high_water_mark: Buffered byte count that blocks writers (None for unbounded)
        """
        self.high_water_mark = high_water_mark
        self._buffer = bytearray()
        self._eof = False
        self._ready = asyncio.Event()
        self._drained = asyncio.Event()
        self._drained.set()

    @property
    def closed(self) -> bool:
        return self._eof

    @property
    def buffered(self) -> int:
        """Bytes fed but not yet read."""
        return len(self._buffer)

    def at_eof(self) -> bool:
        """True once closed and fully drained."""
        return self._eof and not self._buffer

    def _is_full(self) -> bool:
        return (
            self.high_water_mark is not None
            and len(self._buffer) >= self.high_water_mark
            and not self._eof
        )

    async def wait_writable(self) -> None:
        """Wait until the buffer is below the high-water mark."""
        while self._is_full():
            self._drained.clear()
            await self._drained.wait()

    def release_backpressure(self) -> None:
        """Stop holding writers back; the buffer becomes unbounded."""
        self.high_water_mark = None
        self._drained.set()

    def feed(self, data: bytes) -> None:
        if self._eof:
            raise ValueError("write after end")
        if data:
            self._buffer.extend(data)
            self._ready.set()

    def close(self) -> None:
        self._eof = True
        self._ready.set()
        self._drained.set()

    def _take(self, n: int) -> bytes:
        data = bytes(self._buffer[:n])
        del self._buffer[:n]
        if not self._is_full():
            self._drained.set()
        return data

    async def read(self, n: int = -1) -> bytes:
        """
        Read up to ``n`` bytes, or everything until EOF when ``n`` is negative.

        Returns b"" at EOF.
        """
        if n < 0:
            data = bytearray()
            while True:
                data.extend(self._take(len(self._buffer)))
                if self._eof:
                    return bytes(data)
                await self._wait()

        while not self._buffer and not self._eof:
            await self._wait()
        return self._take(n)

    async def _wait(self) -> None:
        self._ready.clear()
        await self._ready.wait()

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        chunk = await self.read(CHUNK_SIZE)
        if not chunk:
            raise StopAsyncIteration
        return chunk


class StreamFanout:
    """
    Pumps a subprocess stdout reader into one or more sinks.

    Sinks are caller handles (objects with ``write``, or
    ``asyncio.StreamWriter``) and PassThrough instances. Caller handles are
    flushed at EOF but never closed; PassThrough sinks are closed.
    """

    def __init__(
        self,
        source: asyncio.StreamReader,
        sinks: List[Any],
        on_error: Optional[Callable[[BaseException], None]] = None,
        chunk_size: int = CHUNK_SIZE,
    ):
        """
        Initialize fan-out.

        Args:
            source: Subprocess stdout
            sinks: Destinations receiving every chunk
            on_error: Called for sink failures that are not teardown noise
            chunk_size: Maximum bytes per read
        """
        self.source = source
        self.sinks = list(sinks)
        self.on_error = on_error
        self.chunk_size = chunk_size
        self.bytes_written = 0
        self._released = False

    def release(self) -> None:
        """Stop waiting on slow PassThrough readers; the rest of stdout is buffered."""
        self._released = True
        for sink in self.sinks:
            if isinstance(sink, PassThrough):
                sink.release_backpressure()

    async def pump(self) -> None:
        """Copy until the source reaches EOF."""
        try:
            while True:
                chunk = await self.source.read(self.chunk_size)
                if not chunk:
                    break
                self.bytes_written += len(chunk)
                for sink in list(self.sinks):
                    await self._write(sink, chunk)
        finally:
            await self._finish()
        logger.debug(f"Fan-out finished after {self.bytes_written} bytes")

    async def _write(self, sink: Any, chunk: bytes) -> None:
        try:
            if isinstance(sink, PassThrough):
                if not self._released:
                    await sink.wait_writable()
                sink.feed(chunk)
            elif isinstance(sink, asyncio.StreamWriter):
                sink.write(chunk)
                await sink.drain()
            else:
                sink.write(chunk)
        except Exception as e:
            self._detach(sink, e)

    def _detach(self, sink: Any, error: BaseException) -> None:
        if sink in self.sinks:
            self.sinks.remove(sink)
        if is_cleanup_noise(error):
            logger.debug(f"Sink closed during fan-out (ignored): {error}")
            return
        logger.warning(f"Detached failing output sink: {error}")
        if self.on_error is not None:
            self.on_error(error)

    async def _finish(self) -> None:
        for sink in list(self.sinks):
            try:
                if isinstance(sink, PassThrough):
                    sink.close()
                elif isinstance(sink, asyncio.StreamWriter):
                    await sink.drain()
                elif hasattr(sink, "flush"):
                    sink.flush()
            except Exception as e:
                self._detach(sink, e)
