"""Coalesces bursts of change events into one delayed notification per file."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Optional

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.lifecycle.scheduler import (
    ScheduledTask,
    ScheduledTaskPool,
    SchedulerShutdown,
)

DEBOUNCE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.watch.debouncer"), {}
)

BUCKET_MILLIS = 100
RETAINED_BUCKETS = 20
MIN_DELAY_MS = 50


def _wall_clock_ms() -> float:
    return time.time() * 1000


class ChangeDebouncer:
    """Deduplicates events per (file, 100ms bucket) and schedules the notification."""

    def __init__(
        self,
        scheduler: ScheduledTaskPool,
        notify: Callable[[str], None],
        delay_ms: int,
        clock_ms: Callable[[], float] = _wall_clock_ms,
    ) -> None:
        self._scheduler = scheduler
        self._notify = notify
        self._clock_ms = clock_ms
        self._lock = threading.Lock()
        self._seen: set = set()
        self._pending: set = set()
        self.delay_ms = delay_ms

    @property
    def effective_delay_ms(self) -> int:
        return max(self.delay_ms, MIN_DELAY_MS)

    def update_delay(self, delay_ms: int) -> None:
        """Use delay_ms for notifications scheduled from now on."""
        self.delay_ms = delay_ms

    def cache_size(self) -> int:
        with self._lock:
            return len(self._seen)

    def pending_count(self) -> int:
        with self._lock:
            return len(self._pending)

    def _bucket(self) -> int:
        return int(self._clock_ms() // BUCKET_MILLIS)

    def submit(self, path: Path) -> Optional[ScheduledTask]:
        """Schedule a notification for path unless one was taken in this bucket."""
        key = (str(path), self._bucket())
        with self._lock:
            if key in self._seen:
                if DEBOUNCE_LOGGER.logger.isEnabledFor(logging.DEBUG):
                    DEBOUNCE_LOGGER.debug(
                        "Duplicate change suppressed",
                        extra={"event": "change_duplicate", "path": str(path)},
                    )
                return None
            self._seen.add(key)

        delay_ms = self.effective_delay_ms
        try:
            task = self._scheduler.schedule(
                delay_ms / 1000.0, self._fire, path, name=f"reload:{path.name}"
            )
        except SchedulerShutdown:
            DEBOUNCE_LOGGER.debug(
                "Scheduler is shut down, change dropped",
                extra={"event": "change_dropped", "path": str(path)},
            )
            with self._lock:
                self._seen.discard(key)
            return None

        with self._lock:
            self._pending.add(task)
        DEBOUNCE_LOGGER.debug(
            "Reload scheduled",
            extra={
                "event": "reload_scheduled",
                "file": path.name,
                "delay_ms": delay_ms,
            },
        )
        return task

    def _fire(self, path: Path) -> None:
        try:
            self._notify(path.name)
        finally:
            with self._lock:
                self._pending = {
                    task
                    for task in self._pending
                    if not (task.started or task.cancelled)
                }
            self.purge()

    def purge(self) -> int:
        """Drop keys more than RETAINED_BUCKETS older than now; return how many."""
        oldest = self._bucket() - RETAINED_BUCKETS
        with self._lock:
            stale = {key for key in self._seen if key[1] < oldest}
            self._seen -= stale
        return len(stale)

    def clear(self) -> None:
        """Cancel pending notifications and forget every key."""
        with self._lock:
            pending = list(self._pending)
            self._pending.clear()
            self._seen.clear()
        for task in pending:
            task.cancel()
