"""
Typed publish/subscribe for process lifecycle events.
"""

import logging
from enum import Enum
from typing import Any, Callable, Dict, List

logger = logging.getLogger(__name__)

Handler = Callable[[Any], Any]


class EventKind(str, Enum):
    """Events emitted during a run, with their payload types."""

    START = "start"  # List[str] argument vector
    PROGRESS = "progress"  # ProgressEvent
    WRITING = "writing"  # WritingInfo or List[WritingInfo]
    DONE = "done"  # DoneResult or List[DoneResult]
    ERROR = "error"  # Exception
    EXIT = "exit"  # ExitStatus


class EventBus:
    """
    Synchronous event dispatcher.

    Handlers run in subscription order. A handler that raises is logged and
    skipped; the remaining handlers and the run itself continue.
    """

    def __init__(self):
        self._handlers: Dict[EventKind, List[Handler]] = {kind: [] for kind in EventKind}

    def subscribe(self, kind: EventKind, handler: Handler) -> Handler:
        """
        Register a handler for an event kind.

        Returns:
            The handler, so it can be used as a decorator
        """
        self._handlers[EventKind(kind)].append(handler)
        return handler

    def unsubscribe(self, kind: EventKind, handler: Handler) -> bool:
        """
        Remove a handler.

        Returns:
            True if the handler was registered
        """
        handlers = self._handlers[EventKind(kind)]
        if handler in handlers:
            handlers.remove(handler)
            return True
        return False

    def listener_count(self, kind: EventKind) -> int:
        """Number of handlers registered for ``kind``."""
        return len(self._handlers[EventKind(kind)])

    def emit(self, kind: EventKind, payload: Any = None) -> None:
        """Deliver ``payload`` to every handler of ``kind``."""
        for handler in list(self._handlers[EventKind(kind)]):
            try:
                handler(payload)
            except Exception as e:
                logger.error(f"Error in {kind.value} handler {handler!r}: {e}", exc_info=True)

    def clear(self) -> None:
        """Remove all handlers."""
        for handlers in self._handlers.values():
            handlers.clear()
