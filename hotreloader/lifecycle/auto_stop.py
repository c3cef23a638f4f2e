"""Stops the service after it has had no browser connections for a while."""

import logging
import threading
import time
from typing import Callable, Optional

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.lifecycle.scheduler import (
    ScheduledTask,
    ScheduledTaskPool,
    SchedulerShutdown,
)

AUTO_STOP_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.lifecycle.auto_stop"), {}
)


class AutoStopSupervisor:
    """Keeps at most one pending idle check; scheduling cancels the previous one."""

    # pylint: disable=too-many-arguments

    def __init__(
        self,
        scheduler: ScheduledTaskPool,
        connections_count: Callable[[], int],
        is_running: Callable[[], bool],
        on_idle: Callable[[], None],
        enabled: bool,
        delay_seconds: float,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._scheduler = scheduler
        self._connections_count = connections_count
        self._is_running = is_running
        self._on_idle = on_idle
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Optional[ScheduledTask] = None
        self.enabled = enabled
        self.delay_seconds = delay_seconds
        self.last_disconnect_timestamp: Optional[float] = None

    @property
    def pending(self) -> Optional[ScheduledTask]:
        return self._pending

    def has_pending_check(self) -> bool:
        task = self._pending
        return task is not None and not task.done()

    def on_connections_changed(self, count: int) -> None:
        """Drive the idle timer from the hub's connection count."""
        if count == 0:
            self.last_disconnect_timestamp = self._clock()
            if self.enabled:
                self.schedule()
        else:
            self.cancel()
            self.last_disconnect_timestamp = None

    def schedule(self) -> None:
        with self._lock:
            self._cancel_locked()
            try:
                self._pending = self._scheduler.schedule(
                    self.delay_seconds, self._check, name="auto-stop"
                )
            except SchedulerShutdown:
                self._pending = None
                return
        AUTO_STOP_LOGGER.info(
            "Auto-stop scheduled",
            extra={"event": "auto_stop_scheduled", "delay_seconds": self.delay_seconds},
        )

    def cancel(self) -> None:
        with self._lock:
            cancelled = self._cancel_locked()
        if cancelled:
            AUTO_STOP_LOGGER.info(
                "Auto-stop cancelled", extra={"event": "auto_stop_cancelled"}
            )

    def _cancel_locked(self) -> bool:
        task = self._pending
        self._pending = None
        return task is not None and task.cancel()

    def update(self, enabled: bool, delay_seconds: float) -> None:
        """Adopt new settings, rescheduling or cancelling the pending check."""
        self.enabled = enabled
        self.delay_seconds = delay_seconds
        if enabled and self._connections_count() == 0:
            if self.last_disconnect_timestamp is None:
                self.last_disconnect_timestamp = self._clock()
            self.schedule()
        else:
            self.cancel()

    def _check(self) -> None:
        connections = self._connections_count()
        if connections != 0 or not self._is_running():
            AUTO_STOP_LOGGER.debug(
                "Auto-stop check skipped",
                extra={"event": "auto_stop_skipped", "connections": connections},
            )
            return
        AUTO_STOP_LOGGER.info(
            "No connections, stopping service",
            extra={"event": "auto_stop_triggered", "delay_seconds": self.delay_seconds},
        )
        self._on_idle()
