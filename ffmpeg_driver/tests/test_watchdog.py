"""
Tests for the stall watchdog.
"""

import asyncio

import pytest

from ffmpeg_driver.watchdog import StallWatchdog, check_interval


class TestCheckInterval:
    """Test tick interval derivation."""

    @pytest.mark.parametrize(
        "timeout_ms,expected",
        [
            (100, 250),
            (500, 250),
            (1000, 500),
            (3000, 1500),
            (10000, 2000),
        ],
    )
    def test_clamped_half_timeout(self, timeout_ms, expected):
        """Test half the timeout, clamped to the allowed range."""
        assert check_interval(timeout_ms) == expected


class TestStallWatchdog:
    """Test watchdog behavior."""

    def test_rejects_non_positive_timeout(self):
        """Test a zero timeout is invalid."""
        with pytest.raises(ValueError):
            StallWatchdog(0, lambda: None)

    @pytest.mark.asyncio
    async def test_fires_without_progress(self):
        """Test the callback fires once when progress stops."""
        fired = []
        watchdog = StallWatchdog(50, lambda: fired.append(True))

        watchdog.start()
        assert watchdog.active

        await asyncio.sleep(0.6)

        assert fired == [True]
        assert not watchdog.active

    @pytest.mark.asyncio
    async def test_touch_keeps_alive(self):
        """Test regular progress prevents the timeout."""
        fired = []
        watchdog = StallWatchdog(400, lambda: fired.append(True))

        watchdog.start()
        for _ in range(6):
            await asyncio.sleep(0.1)
            watchdog.touch()

        assert fired == []
        assert watchdog.active
        watchdog.stop()

    @pytest.mark.asyncio
    async def test_stop_cancels(self):
        """Test a stopped watchdog never fires."""
        fired = []
        watchdog = StallWatchdog(50, lambda: fired.append(True))

        watchdog.start()
        watchdog.stop()
        await asyncio.sleep(0.4)

        assert fired == []
        assert not watchdog.active

    def test_stop_when_idle(self):
        """Test stop is safe before start."""
        watchdog = StallWatchdog(100, lambda: None)

        watchdog.stop()

        assert not watchdog.active
