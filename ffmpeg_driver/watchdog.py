"""
Stall watchdog.

Fires when FFmpeg reports no progress for longer than the configured timeout.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

logger = logging.getLogger(__name__)

MIN_INTERVAL_MS = 250
MAX_INTERVAL_MS = 2000


def check_interval(timeout_ms: float) -> float:
    """Tick interval in milliseconds for a given timeout."""
    return max(MIN_INTERVAL_MS, min(timeout_ms / 2, MAX_INTERVAL_MS))


class StallWatchdog:
    """
    Periodic check of the time since the last progress sample.

    On expiry the watchdog stops itself and calls ``on_timeout`` once.
    """

    def __init__(self, timeout_ms: float, on_timeout: Callable[[], None]):
        """
        Initialize watchdog.

        Args:
            timeout_ms: Allowed silence in milliseconds
            on_timeout: Called when the timeout is exceeded
        """
        if timeout_ms <= 0:
            raise ValueError("timeout_ms must be positive")
        self.timeout_ms = timeout_ms
        self.on_timeout = on_timeout
        self.interval_ms = check_interval(timeout_ms)
        self.last_progress: Optional[float] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start ticking; the silence clock starts now."""
        if self.active:
            return
        self.last_progress = time.monotonic()
        self._task = asyncio.create_task(self._run())
        logger.debug(
            f"Watchdog started (timeout={self.timeout_ms}ms, interval={self.interval_ms}ms)"
        )

    def touch(self) -> None:
        """Record a progress sample."""
        self.last_progress = time.monotonic()

    def stop(self) -> None:
        """Stop ticking. Safe to call when not running."""
        if self._task is not None:
            if not self._task.done() and self._task is not asyncio.current_task():
                self._task.cancel()
            self._task = None
            logger.debug("Watchdog stopped")

    async def _run(self) -> None:
        interval = self.interval_ms / 1000
        while True:
            await asyncio.sleep(interval)
            elapsed_ms = (time.monotonic() - self.last_progress) * 1000
            if elapsed_ms > self.timeout_ms:
                logger.warning(
                    f"No progress for {elapsed_ms:.0f}ms (timeout {self.timeout_ms}ms)"
                )
                self._task = None
                self.on_timeout()
                return
