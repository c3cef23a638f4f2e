"""OS-level directory watching on top of watchdog observers."""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.watch.events import ChangeKind, FileChangeEvent

WATCHER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.watch.watcher"), {}
)

OBSERVER_JOIN_SECONDS = 2.0

_EVENT_KINDS = {
    "modified": ChangeKind.CONTENT_CHANGED,
    "created": ChangeKind.CREATED,
    "moved": ChangeKind.MOVED,
    "deleted": ChangeKind.DELETED,
}


class WatcherFault(Exception):
    """Raised when a directory cannot be registered with the OS watcher."""


class _ChangeForwarder(FileSystemEventHandler):
    """Translates watchdog events into FileChangeEvent callbacks."""

    def __init__(self, callback: Callable[[FileChangeEvent], None]) -> None:
        super().__init__()
        self._callback = callback

    def on_any_event(self, event: FileSystemEvent) -> None:
        if event.is_directory:
            return
        kind = _EVENT_KINDS.get(event.event_type)
        if kind is None:
            return
        raw_path = event.src_path
        if kind is ChangeKind.MOVED and event.dest_path:
            raw_path = event.dest_path
        try:
            self._callback(FileChangeEvent(Path(os.fsdecode(raw_path)), kind))
        except Exception:  # pylint: disable=broad-except
            WATCHER_LOGGER.error(
                "File change callback failed",
                extra={
                    "event": "watcher_callback_error",
                    "path": os.fsdecode(raw_path),
                },
                exc_info=True,
            )


class DirectoryWatcher:
    """Recursively watches directories on a dedicated observer thread."""

    def __init__(
        self, callback: Callable[[FileChangeEvent], None], name: str = "watcher"
    ) -> None:
        self.name = name
        self._handler = _ChangeForwarder(callback)
        self._lock = threading.Lock()
        self._observer: Optional[Observer] = None
        self._paths: list = []
        self.disabled = False

    @property
    def watched_paths(self) -> list:
        with self._lock:
            return list(self._paths)

    def is_active(self) -> bool:
        return self._observer is not None

    def _register(self, path: Path) -> None:
        if not path.is_dir():
            raise WatcherFault(f"Not a directory: {path}")
        try:
            self._observer.schedule(self._handler, str(path), recursive=True)
        except (OSError, ValueError) as error:
            raise WatcherFault(f"Cannot watch {path}: {error}") from error
        self._paths.append(path)
        WATCHER_LOGGER.info(
            "Watching directory",
            extra={
                "event": "watch_path_added",
                "path": str(path),
                "component_name": self.name,
            },
        )

    def start(self, paths: Iterable[Path]) -> bool:
        """Start watching paths; on a registration fault the watcher disables itself."""
        with self._lock:
            if self.disabled:
                WATCHER_LOGGER.warning(
                    "Directory watcher disabled for this run",
                    extra={"event": "watcher_disabled", "component_name": self.name},
                )
                return False
            if self._observer is not None:
                return True
            self._observer = Observer()
            self._observer.daemon = True
            try:
                for path in paths:
                    self._register(Path(path))
                self._observer.start()
            except (WatcherFault, OSError) as error:
                self._disable(error)
                return False
        return True

    def add_watch_path(self, path: Path) -> bool:
        """Watch one more directory while running."""
        path = Path(path)
        with self._lock:
            if self._observer is None or self.disabled:
                WATCHER_LOGGER.warning(
                    "Directory watcher is not running",
                    extra={"event": "watch_path_rejected", "path": str(path)},
                )
                return False
            if path in self._paths:
                return True
            if not path.is_dir():
                WATCHER_LOGGER.warning(
                    "Watch path is not a directory",
                    extra={"event": "watch_path_rejected", "path": str(path)},
                )
                return False
            try:
                self._register(path)
            except WatcherFault as error:
                self._disable(error)
                return False
        return True

    def _disable(self, error: Exception) -> None:
        WATCHER_LOGGER.error(
            "Directory watcher failed and is disabled for this run",
            extra={
                "event": "watcher_fault",
                "error": str(error),
                "error_type": type(error).__name__,
                "component_name": self.name,
            },
        )
        self.disabled = True
        self._shutdown_observer()

    def _shutdown_observer(self) -> None:
        observer = self._observer
        self._observer = None
        self._paths = []
        if observer is None:
            return
        try:
            observer.stop()
            if observer.is_alive():
                observer.join(OBSERVER_JOIN_SECONDS)
        except RuntimeError:
            pass

    def stop(self) -> None:
        """Stop the observer thread; the disabled flag survives until reset()."""
        with self._lock:
            self._shutdown_observer()

    def reset(self) -> None:
        """Stop and allow the next start to try again."""
        with self._lock:
            self._shutdown_observer()
            self.disabled = False
