"""Top-level live-reload state machine tying the hub, watchers and timers together."""

import logging
import threading
import time
from pathlib import Path
from typing import Callable, Iterable, List, Optional

from hotreloader.bootstrap.config import (
    EXECUTOR_SHUTDOWN_GRACE_SECONDS,
    ServerConfig,
    changed_fields,
    requires_restart,
)
from hotreloader.bootstrap.ports import PortUnavailable, resolve_port
from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.lifecycle.auto_stop import AutoStopSupervisor
from hotreloader.lifecycle.scheduler import ScheduledTaskPool
from hotreloader.lifecycle.state import ServerState
from hotreloader.watch.debouncer import ChangeDebouncer
from hotreloader.watch.directory_watcher import DirectoryWatcher
from hotreloader.watch.events import ChangeKind, FileChangeEvent, FileEventBus
from hotreloader.watch.project_filter import ProjectFilter
from hotreloader.websocket.hub import ReloadHub

ORCHESTRATOR_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.lifecycle.orchestrator"), {}
)

StateListener = Callable[[ServerState], None]
Notifier = Callable[[str, str], None]


def default_hub_factory(config: ServerConfig) -> ReloadHub:
    return ReloadHub(host=config.host, css_hot_swap=config.css_hot_swap)


NOTICE_LEVELS = {
    "info": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


def _log_notice(level: str, message: str) -> None:
    ORCHESTRATOR_LOGGER.log(
        NOTICE_LEVELS.get(level, logging.INFO), message, extra={"event": "user_notice"}
    )


class ReloadOrchestrator:
    """Owns the running/stopped lifecycle; start and stop are serialized by one lock."""

    # pylint: disable=too-many-instance-attributes,too-many-arguments

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        event_bus: Optional[FileEventBus] = None,
        open_project_roots: Optional[Callable[[], Iterable[Path]]] = None,
        hub_factory: Callable[[ServerConfig], ReloadHub] = default_hub_factory,
        notifier: Optional[Notifier] = None,
    ) -> None:
        self._config = config or ServerConfig()
        self.event_bus = event_bus or FileEventBus()
        self._open_project_roots = open_project_roots or (lambda: [])
        self._hub_factory = hub_factory
        self.notifier: Notifier = notifier or _log_notice
        self._lock = threading.RLock()
        self._state = ServerState.STOPPED
        self._project_root: Optional[Path] = None
        self._state_listeners: List[StateListener] = []
        self._filter = ProjectFilter(
            self._config.watched_extensions,
            self._config.excluded_folders,
            self._config.enabled,
        )
        self._extra_watch_paths: List[Path] = []
        self._last_disconnect_timestamp: Optional[float] = None
        self._hub: Optional[ReloadHub] = None
        self._scheduler: Optional[ScheduledTaskPool] = None
        self._debouncer: Optional[ChangeDebouncer] = None
        self._auto_stop: Optional[AutoStopSupervisor] = None
        self._watcher: Optional[DirectoryWatcher] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

    @property
    def state(self) -> ServerState:
        return self._state

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def project_root(self) -> Optional[Path]:
        return self._project_root

    @property
    def hub(self) -> Optional[ReloadHub]:
        return self._hub

    @property
    def debouncer(self) -> Optional[ChangeDebouncer]:
        return self._debouncer

    @property
    def auto_stop(self) -> Optional[AutoStopSupervisor]:
        return self._auto_stop

    @property
    def watcher(self) -> Optional[DirectoryWatcher]:
        return self._watcher

    def is_running(self) -> bool:
        return self._state is ServerState.RUNNING

    def get_active_connections_count(self) -> int:
        hub = self._hub
        return hub.active_connections_count() if hub is not None else 0

    def get_last_disconnect_timestamp(self) -> Optional[float]:
        """Wall-clock time of the last transition to zero connections, if any."""
        auto_stop = self._auto_stop
        if auto_stop is not None:
            return auto_stop.last_disconnect_timestamp
        return self._last_disconnect_timestamp

    def project_roots(self) -> List[Path]:
        """Roots an event must fall under: the bound project, else every open one."""
        if self._project_root is not None:
            return [self._project_root]
        return [Path(root) for root in self._open_project_roots()]

    def add_state_listener(self, listener: StateListener) -> Callable[[], None]:
        """Register a callback invoked with the state after every transition."""
        self._state_listeners.append(listener)

        def _remove() -> None:
            if listener in self._state_listeners:
                self._state_listeners.remove(listener)

        return _remove

    def _set_state(self, state: ServerState) -> None:
        self._state = state
        self._notify_state_listeners()

    def _notify_state_listeners(self) -> None:
        for listener in list(self._state_listeners):
            try:
                listener(self._state)
            except Exception:  # pylint: disable=broad-except
                ORCHESTRATOR_LOGGER.error(
                    "State listener failed",
                    extra={"event": "state_listener_error", "state": self._state.value},
                    exc_info=True,
                )

    def _notice(self, level: str, message: str) -> None:
        try:
            self.notifier(level, message)
        except Exception:  # pylint: disable=broad-except
            ORCHESTRATOR_LOGGER.error(
                "Notifier failed", extra={"event": "notifier_error"}, exc_info=True
            )

    def start_for_project(self, project_root: Path) -> bool:
        """Bind the service to project_root and start it."""
        with self._lock:
            root = Path(project_root).resolve()
            if self.is_running() and self._project_root != root:
                self.stop()
            self._project_root = root
            return self.start()

    def start(self) -> bool:
        """Start the hub, the task pool and event routing; False if already running."""
        with self._lock:
            if self._state is not ServerState.STOPPED:
                ORCHESTRATOR_LOGGER.warning(
                    "Service is already running",
                    extra={"event": "start_ignored", "state": self._state.value},
                )
                return False
            self._set_state(ServerState.STARTING)
            try:
                self._start_components()
            except PortUnavailable as error:
                self._teardown()
                self._set_state(ServerState.STOPPED)
                ORCHESTRATOR_LOGGER.error(
                    "Failed to start live reload",
                    extra={
                        "event": "start_failed",
                        "port": error.port,
                        "error": str(error),
                    },
                )
                self._notice("error", f"Failed to start hot reload: {error}")
                raise
            except Exception:
                self._teardown()
                self._set_state(ServerState.STOPPED)
                ORCHESTRATOR_LOGGER.error(
                    "Failed to start live reload",
                    extra={"event": "start_failed"},
                    exc_info=True,
                )
                raise
            self._set_state(ServerState.RUNNING)
            ORCHESTRATOR_LOGGER.info(
                "Live reload started",
                extra={
                    "event": "service_started",
                    "port": self._config.web_socket_port,
                    "directory": str(self._project_root or ""),
                },
            )
            return True

    def _start_components(self) -> None:
        config = self._config
        port = resolve_port(
            config.web_socket_port, config.search_free_port, config.host
        )
        if port != config.web_socket_port:
            config = config.with_changes(web_socket_port=port)
            self._config = config

        self._filter.update(
            config.watched_extensions, config.excluded_folders, config.enabled
        )
        self._scheduler = ScheduledTaskPool(config.thread_pool_size)
        self._hub = self._hub_factory(config)
        self._auto_stop = AutoStopSupervisor(
            self._scheduler,
            connections_count=self.get_active_connections_count,
            is_running=self.is_running,
            on_idle=self._stop_when_idle,
            enabled=config.auto_stop_enabled,
            delay_seconds=config.auto_stop_delay_seconds,
        )
        self._debouncer = ChangeDebouncer(
            self._scheduler, self.notify_file_changed, config.browser_refresh_delay_ms
        )
        self._hub.set_connections_listener(self._on_connections_changed)
        self._hub.start(port)
        self._unsubscribe = self.event_bus.subscribe(self.handle_file_event)
        if config.watch_external_changes or self._extra_watch_paths:
            self._start_watcher()

    def stop(self) -> bool:
        """Stop everything started by start(); False if already stopped."""
        with self._lock:
            if self._state is ServerState.STOPPED:
                ORCHESTRATOR_LOGGER.warning(
                    "Service is not running", extra={"event": "stop_ignored"}
                )
                return False
            self._teardown()
            self._set_state(ServerState.STOPPED)
            ORCHESTRATOR_LOGGER.info(
                "Live reload stopped", extra={"event": "service_stopped"}
            )
            return True

    def _teardown(self) -> None:
        if self._auto_stop is not None:
            self._auto_stop.cancel()
            self._last_disconnect_timestamp = self._auto_stop.last_disconnect_timestamp
        if self._unsubscribe is not None:
            self._unsubscribe()
        self._stop_watcher()
        if self._hub is not None:
            self._hub.set_connections_listener(None)
            self._hub.stop()
        if self._scheduler is not None:
            self._scheduler.shutdown(EXECUTOR_SHUTDOWN_GRACE_SECONDS)
        if self._debouncer is not None:
            self._debouncer.clear()
        self._unsubscribe = None
        self._hub = None
        self._scheduler = None
        self._debouncer = None
        self._auto_stop = None

    def _on_connections_changed(self, count: int) -> None:
        auto_stop = self._auto_stop
        if auto_stop is not None:
            auto_stop.on_connections_changed(count)
        if count == 0:
            self._last_disconnect_timestamp = time.time()
        self._notify_state_listeners()

    def _stop_when_idle(self) -> None:
        delay = self._config.auto_stop_delay_seconds
        if self.stop():
            self._notice(
                "info",
                f"Hot reload server stopped automatically after {delay} seconds "
                "without connections",
            )

    def notify_file_changed(self, file_name: str) -> int:
        """Broadcast a reload for file_name; returns the number of sessions reached."""
        hub = self._hub
        if not self.is_running() or hub is None:
            ORCHESTRATOR_LOGGER.warning(
                "Reload requested while service is stopped",
                extra={"event": "notify_ignored", "file": file_name},
            )
            return 0
        return hub.broadcast_reload(file_name)

    def handle_file_event(self, event: FileChangeEvent) -> None:
        """Route one external change through the filter and the debouncer."""
        roots = self.project_roots()
        if not self._filter.accepts(event.path, roots, self.is_running()):
            return
        if event.kind is ChangeKind.DELETED:
            ORCHESTRATOR_LOGGER.info(
                "Watched file deleted",
                extra={"event": "file_deleted", "path": str(event.path)},
            )
            return
        debouncer = self._debouncer
        if debouncer is not None:
            debouncer.submit(event.path)

    def _watch_targets(self) -> List[Path]:
        root = self._project_root
        targets: List[Path] = []
        for entry in sorted(self._config.external_watch_paths):
            path = Path(entry)
            if not path.is_absolute():
                if root is None:
                    continue
                path = root / path
            targets.append(path)
        if not targets and root is not None:
            targets.append(root)
        for path in self._extra_watch_paths:
            if path not in targets:
                targets.append(path)
        return targets

    def _start_watcher(self) -> None:
        targets = self._watch_targets()
        if not targets:
            ORCHESTRATOR_LOGGER.warning(
                "No directories to watch", extra={"event": "watcher_skipped"}
            )
            return
        self._watcher = DirectoryWatcher(self.event_bus.publish, name="external")
        self._watcher.start(targets)

    def _stop_watcher(self) -> None:
        if self._watcher is not None:
            self._watcher.stop()
            self._watcher = None

    def add_watch_path(self, path: Path) -> bool:
        """Watch an extra directory, starting the secondary watcher if needed."""
        path = Path(path).resolve()
        with self._lock:
            if path not in self._extra_watch_paths:
                self._extra_watch_paths.append(path)
            if not self.is_running():
                return True
            if self._watcher is None:
                self._start_watcher()
                return self._watcher is not None and self._watcher.is_active()
            return self._watcher.add_watch_path(path)

    def adopt_discovered_ports(self, **ports: int) -> None:
        """Record ports found by a free-port search without a restart."""
        with self._lock:
            self._config = self._config.with_changes(**ports)

    def apply_config(self, new_config: ServerConfig) -> str:
        """Move to new_config; returns "stored", "restarted" or "updated"."""
        with self._lock:
            old_config = self._config
            if not self.is_running():
                self._config = new_config
                self._filter.update(
                    new_config.watched_extensions,
                    new_config.excluded_folders,
                    new_config.enabled,
                )
                return "stored"

            changed = changed_fields(old_config, new_config)
            if requires_restart(old_config, new_config):
                ORCHESTRATOR_LOGGER.info(
                    "Critical settings changed, restarting",
                    extra={"event": "config_restart", "fields": sorted(changed)},
                )
                self.stop()
                self._config = new_config
                self.start()
                return "restarted"

            self._config = new_config
            self._apply_hot(old_config, new_config, changed)
            ORCHESTRATOR_LOGGER.info(
                "Settings applied",
                extra={"event": "config_updated", "fields": sorted(changed)},
            )
            self._notify_state_listeners()
            return "updated"

    def _apply_hot(self, old: ServerConfig, new: ServerConfig, changed: set) -> None:
        self._filter.update(new.watched_extensions, new.excluded_folders, new.enabled)
        if self._debouncer is not None:
            self._debouncer.update_delay(new.browser_refresh_delay_ms)
        if self._hub is not None:
            self._hub.css_hot_swap = new.css_hot_swap

        if {"watch_external_changes", "external_watch_paths"} & changed:
            self._stop_watcher()
            if new.watch_external_changes or self._extra_watch_paths:
                self._start_watcher()

        if self._auto_stop is not None and (
            old.auto_stop_enabled != new.auto_stop_enabled
            or old.auto_stop_delay_seconds != new.auto_stop_delay_seconds
        ):
            self._auto_stop.update(new.auto_stop_enabled, new.auto_stop_delay_seconds)
