"""Application context owning the reload orchestrator and the file server."""

import logging
import os
import threading
from pathlib import Path
from typing import Callable, Iterable, Optional
from urllib.parse import quote

from hotreloader.bootstrap.config import ServerConfig
from hotreloader.bootstrap.ports import resolve_port
from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.domain.injection import ClientScriptOptions
from hotreloader.lifecycle.orchestrator import (
    Notifier,
    ReloadOrchestrator,
    default_hub_factory,
)
from hotreloader.lifecycle.state import ServerState
from hotreloader.transport.content_server import ContentServer
from hotreloader.watch.events import FileEventBus

APP_LOGGER = CorrelationLoggerAdapter(logging.getLogger("hot_reloader.app"), {})


def file_url(
    base_url: str, project_root: Path, file_path: Optional[Path] = None
) -> str:
    """Return the URL serving file_path; files outside the root map to their name."""
    if file_path is None:
        return f"{base_url}/"
    target = Path(os.path.abspath(file_path))
    try:
        relative = target.relative_to(os.path.abspath(project_root)).as_posix()
    except ValueError:
        relative = target.name
    encoded = "/".join(quote(segment, safe="") for segment in relative.split("/"))
    return f"{base_url}/{encoded}"


class HotReloadApplication:
    """Single owner of the live-reload services for one process."""

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        event_bus: Optional[FileEventBus] = None,
        open_project_roots: Optional[Callable[[], Iterable[Path]]] = None,
        notifier: Optional[Notifier] = None,
        hub_factory=default_hub_factory,
    ) -> None:
        config = config or ServerConfig()
        self._lock = threading.RLock()
        self.orchestrator = ReloadOrchestrator(
            config,
            event_bus=event_bus,
            open_project_roots=open_project_roots,
            hub_factory=hub_factory,
            notifier=notifier,
        )
        self.content_server = ContentServer(
            host=config.host,
            client_options=ClientScriptOptions.from_config(config),
            serve_placeholder_pages=config.serve_placeholder_pages,
        )
        self.orchestrator.add_state_listener(self._on_state_changed)

    @property
    def config(self) -> ServerConfig:
        return self.orchestrator.config

    @property
    def event_bus(self) -> FileEventBus:
        return self.orchestrator.event_bus

    def _on_state_changed(self, state: ServerState) -> None:
        if state is ServerState.STOPPED and self.content_server.is_running():
            self.content_server.stop()

    def serve(self, project_root: Path, file_path: Optional[Path] = None) -> str:
        """Make sure everything runs for project_root and return the page URL."""
        root = Path(project_root).resolve()
        with self._lock:
            orchestrator = self.orchestrator
            if not orchestrator.is_running() or orchestrator.project_root != root:
                orchestrator.start_for_project(root)
            base_url = self._ensure_content_server(root)
        url = file_url(base_url, root, file_path)
        APP_LOGGER.info("Serving page", extra={"event": "page_served", "base_url": url})
        return url

    def _ensure_content_server(self, root: Path) -> str:
        config = self.orchestrator.config
        server = self.content_server
        if server.is_serving(config.http_port, root, config.web_socket_port):
            return server.base_url

        http_port = config.http_port
        if self.content_server.port != http_port:
            http_port = resolve_port(http_port, config.search_free_port, config.host)
        if http_port != config.http_port:
            self.orchestrator.adopt_discovered_ports(http_port=http_port)
            config = self.orchestrator.config

        self.content_server.update_client_options(
            ClientScriptOptions.from_config(config), config.serve_placeholder_pages
        )
        return self.content_server.start(http_port, root, config.web_socket_port)

    def apply_config(self, new_config: ServerConfig) -> str:
        """Apply settings to both services, restarting the file server when needed."""
        with self._lock:
            was_serving = self.content_server.is_running()
            root = self.orchestrator.project_root
            outcome = self.orchestrator.apply_config(new_config)
            config = self.orchestrator.config
            self.content_server.update_client_options(
                ClientScriptOptions.from_config(config), config.serve_placeholder_pages
            )
            if was_serving and root is not None and self.orchestrator.is_running():
                self._ensure_content_server(root)
            return outcome

    def add_watch_path(self, path: Path) -> bool:
        return self.orchestrator.add_watch_path(path)

    def shutdown(self) -> None:
        """Stop the file server and the reload service."""
        with self._lock:
            self.content_server.stop()
            if self.orchestrator.state is not ServerState.STOPPED:
                self.orchestrator.stop()
        APP_LOGGER.info("Application shut down", extra={"event": "app_shutdown"})
