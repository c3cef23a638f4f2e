"""Cancellable delayed tasks run on a shared, fixed-size worker pool."""

import heapq
import itertools
import logging
import threading
import time
from concurrent.futures import Future, ThreadPoolExecutor, wait
from typing import Any, Callable, Optional

from hotreloader.bootstrap.config import EXECUTOR_SHUTDOWN_GRACE_SECONDS
from hotreloader.domain.correlation_id import (
    CorrelationLoggerAdapter,
    correlation_scope,
)

SCHEDULER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.lifecycle.scheduler"), {}
)


class SchedulerShutdown(RuntimeError):
    """Raised when scheduling on a pool that has been shut down."""


class ScheduledTask:
    """Handle for one delayed call; cancellation only wins before it starts."""

    def __init__(
        self, deadline: float, function: Callable[..., Any], args: tuple, name: str
    ) -> None:
        self.deadline = deadline
        self.name = name
        self._function = function
        self._args = args
        self._lock = threading.Lock()
        self._state = "pending"
        self._finished = threading.Event()
        self.future: Optional[Future] = None

    @property
    def cancelled(self) -> bool:
        return self._state == "cancelled"

    @property
    def started(self) -> bool:
        return self._state in ("running", "done")

    def done(self) -> bool:
        """Return True once the task ran to completion or was cancelled."""
        return self._finished.is_set()

    def wait(self, timeout: Optional[float] = None) -> bool:
        return self._finished.wait(timeout)

    def cancel(self) -> bool:
        """Cancel if not yet running; never blocks."""
        with self._lock:
            if self._state != "pending":
                return False
            self._state = "cancelled"
        self._finished.set()
        return True

    def _claim(self) -> bool:
        with self._lock:
            if self._state != "pending":
                return False
            self._state = "running"
            return True

    def _abandon(self) -> None:
        with self._lock:
            self._state = "cancelled"
        self._finished.set()

    def _run(self) -> None:
        try:
            self._function(*self._args)
        except Exception:  # pylint: disable=broad-except
            SCHEDULER_LOGGER.error(
                "Scheduled task failed",
                extra={"event": "scheduled_task_failed", "task": self.name},
                exc_info=True,
            )
        finally:
            with self._lock:
                self._state = "done"
            self._finished.set()


class ScheduledTaskPool:
    """Priority queue of deadlines dispatched onto a ThreadPoolExecutor."""

    def __init__(
        self,
        workers: int,
        name: str = "hot-reloader-scheduler",
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.workers = max(1, workers)
        self.name = name
        self._clock = clock
        self._queue: list = []
        self._sequence = itertools.count()
        self._condition = threading.Condition()
        self._shutdown = False
        self._running: set = set()
        self._local = threading.local()
        self._executor = ThreadPoolExecutor(
            max_workers=self.workers, thread_name_prefix=name
        )
        self._dispatcher = threading.Thread(
            target=self._dispatch_loop, name=f"{name}-dispatch", daemon=True
        )
        self._dispatcher.start()

    @property
    def is_shutdown(self) -> bool:
        return self._shutdown

    def pending_count(self) -> int:
        with self._condition:
            return sum(1 for entry in self._queue if not entry[2].cancelled)

    def schedule(
        self,
        delay_seconds: float,
        function: Callable[..., Any],
        *args: Any,
        name: str = "",
    ) -> ScheduledTask:
        """Run function(*args) after delay_seconds on a pool worker."""
        with self._condition:
            if self._shutdown:
                raise SchedulerShutdown(f"{self.name} is shut down")
            deadline = self._clock() + max(0.0, delay_seconds)
            task = ScheduledTask(deadline, function, args, name or function.__name__)
            heapq.heappush(self._queue, (deadline, next(self._sequence), task))
            self._condition.notify()
        return task

    def _next_due(self) -> Optional[ScheduledTask]:
        """Block until a task is due; None means shutdown."""
        with self._condition:
            while True:
                if self._shutdown:
                    return None
                while self._queue and self._queue[0][2].cancelled:
                    heapq.heappop(self._queue)
                if not self._queue:
                    self._condition.wait()
                    continue
                remaining = self._queue[0][0] - self._clock()
                if remaining <= 0:
                    return heapq.heappop(self._queue)[2]
                self._condition.wait(remaining)

    def _dispatch_loop(self) -> None:
        while True:
            task = self._next_due()
            if task is None:
                return
            if not task._claim():  # pylint: disable=protected-access
                continue
            with self._condition:
                self._running.add(task)
            try:
                task.future = self._executor.submit(self._execute, task)
            except RuntimeError:
                with self._condition:
                    self._running.discard(task)
                task._abandon()  # pylint: disable=protected-access
                return

    def _execute(self, task: ScheduledTask) -> None:
        self._local.task = task
        try:
            with correlation_scope():
                task._run()  # pylint: disable=protected-access
        finally:
            self._local.task = None
            with self._condition:
                self._running.discard(task)

    def shutdown(self, timeout: float = EXECUTOR_SHUTDOWN_GRACE_SECONDS) -> bool:
        """Drop pending tasks, wait up to timeout for running ones, then force."""
        with self._condition:
            if self._shutdown:
                return True
            self._shutdown = True
            pending = [entry[2] for entry in self._queue]
            self._queue.clear()
            running = list(self._running)
            self._condition.notify_all()

        for task in pending:
            task.cancel()

        own_task = getattr(self._local, "task", None)
        futures = [
            task.future
            for task in running
            if task is not own_task and task.future is not None
        ]
        graceful = True
        if futures:
            _, not_done = wait(futures, timeout=timeout)
            graceful = not not_done
        if not graceful:
            SCHEDULER_LOGGER.warning(
                "Executor did not finish in time, forcing shutdown",
                extra={
                    "event": "executor_shutdown_timeout",
                    "pending_tasks": len(futures),
                    "delay_seconds": timeout,
                },
            )
        self._executor.shutdown(wait=False, cancel_futures=True)
        if threading.current_thread() is not self._dispatcher:
            self._dispatcher.join(timeout=1.0)
        SCHEDULER_LOGGER.debug(
            "Scheduler shut down",
            extra={"event": "scheduler_stopped", "pending_tasks": len(pending)},
        )
        return graceful
