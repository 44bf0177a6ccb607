"""
Progress reporting for consolidation runs.

A run owns one ``ProgressLog``. The orchestrator installs it as the current
sink with ``progress_scope`` and components call ``emit`` without the sink
being threaded through their signatures. Tasks spawned inside the scope
inherit it through the context variable.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Iterator, List, Optional, Protocol, runtime_checkable


logger = logging.getLogger(__name__)


@runtime_checkable
class ProgressSink(Protocol):
    """Ordered, append-only consumer of human-readable progress messages."""

    def append(self, message: str) -> None:
        ...


@dataclass(frozen=True)
class ProgressEvent:
    message: str
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def format(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.message}"


ProgressListener = Callable[[ProgressEvent], None]


class ProgressLog:
    """Append-only, thread-safe progress log with optional listeners.

    Each ``append`` stores one whole event under a lock, so concurrent
    appenders never interleave partial lines. Listeners are called in
    append order while the lock is held. The lock is reentrant, so a
    listener may itself emit; its event is stored and dispatched before
    the outer append returns.
    """

    def __init__(self, listeners: Optional[List[ProgressListener]] = None) -> None:
        self._events: List[ProgressEvent] = []
        self._listeners: List[ProgressListener] = list(listeners or [])
        self._lock = threading.RLock()

    def append(self, message: str) -> None:
        event = ProgressEvent(message=message)
        with self._lock:
            self._events.append(event)
            for listener in list(self._listeners):
                try:
                    listener(event)
                except Exception:
                    logger.exception("Progress listener failed")

    def subscribe(self, listener: ProgressListener) -> None:
        with self._lock:
            self._listeners.append(listener)

    @property
    def events(self) -> List[ProgressEvent]:
        with self._lock:
            return list(self._events)

    def messages(self) -> List[str]:
        return [event.message for event in self.events]

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)


_current_sink: ContextVar[Optional[ProgressSink]] = ContextVar("coinbine_progress_sink", default=None)


@contextmanager
def progress_scope(sink: ProgressSink) -> Iterator[ProgressSink]:
    """Install ``sink`` as the current progress sink for the enclosed block."""
    token = _current_sink.set(sink)
    try:
        yield sink
    finally:
        _current_sink.reset(token)


def current_sink() -> Optional[ProgressSink]:
    return _current_sink.get()


def emit(message: str, *, level: int = logging.INFO) -> None:
    """Log ``message`` and append it to the current run's sink, if any."""
    logger.log(level, message)
    sink = _current_sink.get()
    if sink is not None:
        sink.append(message)
