"""File-change events and the in-process bus that carries them."""

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Callable, List

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter

EVENTS_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.watch.events"), {}
)


class ChangeKind(Enum):
    CONTENT_CHANGED = "content-changed"
    CREATED = "created"
    MOVED = "moved"
    RENAMED = "renamed"
    DELETED = "deleted"


@dataclass(frozen=True)
class FileChangeEvent:
    """A single change reported for an absolute file path."""

    path: Path
    kind: ChangeKind = ChangeKind.CONTENT_CHANGED

    @property
    def name(self) -> str:
        return self.path.name


FileEventListener = Callable[[FileChangeEvent], None]


class FileEventBus:
    """Synchronous publish/subscribe; a failing listener never affects the others."""

    def __init__(self) -> None:
        self._listeners: List[FileEventListener] = []
        self._lock = threading.Lock()

    def subscribe(self, listener: FileEventListener) -> Callable[[], None]:
        """Register listener and return a callable that unsubscribes it."""
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def listener_count(self) -> int:
        with self._lock:
            return len(self._listeners)

    def publish(self, event: FileChangeEvent) -> None:
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(event)
            except Exception:  # pylint: disable=broad-except
                EVENTS_LOGGER.error(
                    "File event listener failed",
                    extra={
                        "event": "file_listener_error",
                        "path": str(event.path),
                        "change_kind": event.kind.value,
                    },
                    exc_info=True,
                )
