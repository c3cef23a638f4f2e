"""HTTP file server exposing a project tree with live-reload script injection."""

import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from pathlib import Path
from typing import Optional

from hotreloader.bootstrap.config import HTTP_WORKER_COUNT
from hotreloader.bootstrap.ports import PortUnavailable
from hotreloader.bootstrap.socket_factory import create_server_socket
from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.domain.injection import ClientScriptOptions
from hotreloader.transport.accept_loop import run_accept_loop
from hotreloader.transport.context import ServeContext

SERVER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.transport.server"), {}
)

ACCEPT_POLL_SECONDS = 0.5


class ContentServer:
    """Serves project files over HTTP from a fixed-size worker pool."""

    def __init__(
        self,
        host: str = "localhost",
        workers: int = HTTP_WORKER_COUNT,
        client_options: Optional[ClientScriptOptions] = None,
        serve_placeholder_pages: bool = True,
    ) -> None:
        self._host = host
        self._workers = workers
        self._lock = threading.RLock()
        self._client_options = client_options
        self._serve_placeholder_pages = serve_placeholder_pages
        self._context: Optional[ServeContext] = None
        self._port: Optional[int] = None
        self._stop_event: Optional[threading.Event] = None
        self._executor: Optional[ThreadPoolExecutor] = None
        self._accept_thread: Optional[threading.Thread] = None
        self._server_socket: Optional[socket.socket] = None

    @property
    def port(self) -> Optional[int]:
        """Port of the running listener, or None when stopped."""
        return self._port

    @property
    def base_url(self) -> Optional[str]:
        """Base URL of the running server, or None when stopped."""
        return self._base_url(self._port) if self._port is not None else None

    @property
    def project_root(self) -> Optional[Path]:
        """Root currently being served."""
        context = self._context
        return context.project_root if context is not None else None

    def is_running(self) -> bool:
        """Return True while a listener is bound."""
        return self._accept_thread is not None

    def _base_url(self, port: int) -> str:
        return f"http://{self._host}:{port}"

    def _current_context(self) -> Optional[ServeContext]:
        return self._context

    def is_serving(self, port: int, project_root: Path, web_socket_port: int) -> bool:
        """Return True when already running with exactly these parameters."""
        with self._lock:
            context = self._context
            return (
                self.is_running()
                and context is not None
                and self._port == port
                and context.project_root == Path(project_root).resolve()
                and context.client_options.web_socket_port == web_socket_port
            )

    def start(self, port: int, project_root: Path, web_socket_port: int) -> str:
        """Start serving project_root on port; a no-op for identical parameters."""
        with self._lock:
            if self.is_serving(port, project_root, web_socket_port):
                base_url = self._base_url(port)
                SERVER_LOGGER.info(
                    "File server already running for this project",
                    extra={"event": "server_reused", "base_url": base_url},
                )
                return base_url

            self.stop()

            options = self._client_options or ClientScriptOptions(web_socket_port)
            options = replace(options, web_socket_port=web_socket_port)
            self._client_options = options
            context = ServeContext(
                project_root=Path(project_root).resolve(),
                client_options=options,
                serve_placeholder_pages=self._serve_placeholder_pages,
            )

            try:
                server_socket = create_server_socket(
                    self._host, port, accept_timeout=ACCEPT_POLL_SECONDS
                )
            except OSError as error:
                SERVER_LOGGER.error(
                    "File server could not bind",
                    extra={
                        "event": "server_bind_failed",
                        "port": port,
                        "error": str(error),
                    },
                )
                message = f"Cannot bind port {port}: {error}"
                raise PortUnavailable(port, message) from error
            stop_event = threading.Event()
            executor = ThreadPoolExecutor(
                max_workers=self._workers, thread_name_prefix="hot-reloader-http"
            )
            accept_thread = threading.Thread(
                target=run_accept_loop,
                args=(server_socket, executor, stop_event, self._current_context),
                name=f"hot-reloader-http-accept-{port}",
                daemon=True,
            )

            self._context = context
            self._port = port
            self._stop_event = stop_event
            self._executor = executor
            self._accept_thread = accept_thread
            self._server_socket = server_socket
            accept_thread.start()

            base_url = self._base_url(port)
            SERVER_LOGGER.info(
                "File server started",
                extra={
                    "event": "server_started",
                    "base_url": base_url,
                    "directory": context.project_root.as_posix(),
                    "workers": self._workers,
                },
            )
            return base_url

    def stop(self) -> None:
        """Release the listener immediately; in-flight responses may be cut off."""
        with self._lock:
            if self._accept_thread is None:
                return
            self._stop_event.set()
            try:
                self._server_socket.close()
            except OSError:
                pass
            self._executor.shutdown(wait=False, cancel_futures=True)
            self._accept_thread.join(timeout=ACCEPT_POLL_SECONDS * 2)

            port = self._port
            self._context = None
            self._port = None
            self._stop_event = None
            self._executor = None
            self._accept_thread = None
            self._server_socket = None
            SERVER_LOGGER.info(
                "File server stopped", extra={"event": "server_stopped", "port": port}
            )

    def update_client_options(
        self,
        options: ClientScriptOptions,
        serve_placeholder_pages: Optional[bool] = None,
    ) -> None:
        """Swap script options for subsequent responses without restarting."""
        with self._lock:
            if serve_placeholder_pages is not None:
                self._serve_placeholder_pages = serve_placeholder_pages
            context = self._context
            if context is not None:
                options = replace(
                    options, web_socket_port=context.client_options.web_socket_port
                )
                self._context = replace(
                    context,
                    client_options=options,
                    serve_placeholder_pages=self._serve_placeholder_pages,
                )
            self._client_options = options
