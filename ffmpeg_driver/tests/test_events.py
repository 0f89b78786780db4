"""
Tests for the lifecycle event bus.
"""

from ffmpeg_driver.events import EventBus, EventKind


class TestEventBus:
    """Test event subscription and dispatch."""

    def test_emit_delivers_payload(self):
        """Test handlers receive the payload."""
        bus = EventBus()
        received = []
        bus.subscribe(EventKind.START, received.append)

        bus.emit(EventKind.START, ["-i", "a.mp4"])

        assert received == [["-i", "a.mp4"]]

    def test_handlers_run_in_order(self):
        """Test subscription order is dispatch order."""
        bus = EventBus()
        calls = []
        bus.subscribe(EventKind.DONE, lambda _: calls.append("first"))
        bus.subscribe(EventKind.DONE, lambda _: calls.append("second"))

        bus.emit(EventKind.DONE)

        assert calls == ["first", "second"]

    def test_kinds_are_independent(self):
        """Test handlers only see their own kind."""
        bus = EventBus()
        received = []
        bus.subscribe(EventKind.EXIT, received.append)

        bus.emit(EventKind.PROGRESS, object())

        assert received == []

    def test_string_kinds(self):
        """Test plain strings are accepted for kinds."""
        bus = EventBus()
        received = []
        bus.subscribe("error", received.append)

        bus.emit(EventKind.ERROR, "boom")

        assert received == ["boom"]
        assert bus.listener_count("error") == 1

    def test_subscribe_returns_handler(self):
        """Test subscribe can be used as a decorator."""
        bus = EventBus()

        def handler(payload):
            pass

        assert bus.subscribe(EventKind.WRITING, handler) is handler

    def test_unsubscribe(self):
        """Test handler removal."""
        bus = EventBus()
        received = []
        bus.subscribe(EventKind.START, received.append)

        assert bus.unsubscribe(EventKind.START, received.append) is True
        assert bus.unsubscribe(EventKind.START, received.append) is False

        bus.emit(EventKind.START, [])
        assert received == []

    def test_listener_count(self):
        """Test listener counting."""
        bus = EventBus()
        assert bus.listener_count(EventKind.ERROR) == 0

        bus.subscribe(EventKind.ERROR, lambda _: None)

        assert bus.listener_count(EventKind.ERROR) == 1
        assert bus.listener_count(EventKind.EXIT) == 0

    def test_failing_handler_isolated(self):
        """Test a raising handler does not stop the others."""
        bus = EventBus()
        received = []

        def broken(payload):
            raise RuntimeError("handler failure")

        bus.subscribe(EventKind.PROGRESS, broken)
        bus.subscribe(EventKind.PROGRESS, received.append)

        bus.emit(EventKind.PROGRESS, 42)

        assert received == [42]

    def test_clear(self):
        """Test removing all handlers."""
        bus = EventBus()
        bus.subscribe(EventKind.START, lambda _: None)
        bus.subscribe(EventKind.EXIT, lambda _: None)

        bus.clear()

        assert all(bus.listener_count(kind) == 0 for kind in EventKind)
