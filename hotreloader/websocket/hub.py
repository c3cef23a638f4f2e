"""WebSocket hub tracking browser sessions and fanning out reload messages."""

import json
import logging
import socket
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Callable, Optional

from websockets.exceptions import ConnectionClosed
from websockets.protocol import State
from websockets.sync.server import Server, ServerConnection, serve

from hotreloader.bootstrap.ports import PortUnavailable
from hotreloader.bootstrap.socket_factory import create_server_socket
from hotreloader.domain.correlation_id import (
    CorrelationLoggerAdapter,
    correlation_scope,
)
from hotreloader.domain.mime import file_extension

HUB_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.websocket.hub"), {}
)

DEFAULT_SEND_TIMEOUT_SECONDS = 2.0
CLOSE_TIMEOUT_SECONDS = 1.0

ConnectionsListener = Callable[[int], None]


def reload_message(file_name: str, css_hot_swap: bool = True) -> str:
    """Build the JSON text frame announcing a change to file_name."""
    kind = "reload"
    if css_hot_swap and file_extension(file_name) == "css":
        kind = "css-reload"
    return json.dumps({"type": kind, "file": file_name})


def is_open(connection) -> bool:
    """Return True when the session can still accept frames."""
    return connection.protocol.state is State.OPEN


class ReloadHub:
    """Owns the live session set; safe for concurrent use from transport threads."""

    def __init__(
        self,
        host: str = "localhost",
        send_timeout: float = DEFAULT_SEND_TIMEOUT_SECONDS,
        css_hot_swap: bool = True,
    ) -> None:
        self.host = host
        self.send_timeout = send_timeout
        self.css_hot_swap = css_hot_swap
        self._connections: set = set()
        self._connections_lock = threading.Lock()
        self._lifecycle_lock = threading.Lock()
        self._listener: Optional[ConnectionsListener] = None
        self._server: Optional[Server] = None
        self._serve_thread: Optional[threading.Thread] = None
        self._port: Optional[int] = None

    @property
    def port(self) -> Optional[int]:
        return self._port

    def is_running(self) -> bool:
        return self._server is not None

    def set_connections_listener(self, listener: Optional[ConnectionsListener]) -> None:
        """Register the callback receiving the session count after each change."""
        self._listener = listener

    def active_connections_count(self) -> int:
        with self._connections_lock:
            return len(self._connections)

    def start(self, port: int) -> None:
        """Bind the WebSocket listener on port and serve from a daemon thread."""
        with self._lifecycle_lock:
            if self._server is not None:
                HUB_LOGGER.warning(
                    "WebSocket server already running",
                    extra={"event": "ws_already_running", "port": self._port},
                )
                return
            try:
                listener_socket = create_server_socket(self.host, port)
            except OSError as error:
                message = f"Cannot bind port {port}: {error}"
                raise PortUnavailable(port, message) from error

            server = serve(
                self._handle_session,
                sock=listener_socket,
                close_timeout=CLOSE_TIMEOUT_SECONDS,
                logger=logging.getLogger("hot_reloader.websocket.transport"),
            )
            self._server = server
            self._port = port
            self._serve_thread = threading.Thread(
                target=server.serve_forever,
                name=f"hot-reloader-ws-{port}",
                daemon=True,
            )
            self._serve_thread.start()
            HUB_LOGGER.info(
                "WebSocket server started", extra={"event": "ws_started", "port": port}
            )

    def stop(self) -> None:
        """Close every session best-effort and release the listener."""
        with self._lifecycle_lock:
            server = self._server
            if server is None:
                return
            with self._connections_lock:
                sessions = list(self._connections)
                self._connections.clear()

            if sessions:
                pool = _session_pool(len(sessions), "hot-reloader-ws-close")
                closing = [pool.submit(self._close_quietly, conn) for conn in sessions]
                wait(closing, timeout=CLOSE_TIMEOUT_SECONDS * 2)
                pool.shutdown(wait=False, cancel_futures=True)
            server.shutdown()
            if self._serve_thread is not None:
                self._serve_thread.join(timeout=CLOSE_TIMEOUT_SECONDS * 2)

            port = self._port
            self._server = None
            self._serve_thread = None
            self._port = None
            HUB_LOGGER.info(
                "WebSocket server stopped",
                extra={
                    "event": "ws_stopped",
                    "port": port,
                    "connections": len(sessions),
                },
            )

    @staticmethod
    def _close_quietly(connection) -> None:
        try:
            connection.close(code=1001, reason="server stopping")
        except Exception as error:  # pylint: disable=broad-except
            HUB_LOGGER.debug(
                "Error closing session",
                extra={"event": "ws_close_failed", "error_type": type(error).__name__},
            )

    def _handle_session(self, connection: ServerConnection) -> None:
        """Per-session transport thread; client messages are read and ignored."""
        with correlation_scope():
            self.on_open(connection)
            try:
                for _ in connection:
                    pass
            except ConnectionClosed:
                pass
            except Exception as error:  # pylint: disable=broad-except
                self.on_error(connection, error)
                return
            self.on_close(connection)

    def on_open(self, connection) -> None:
        with self._connections_lock:
            self._connections.add(connection)
            count = len(self._connections)
        HUB_LOGGER.info(
            "WebSocket client connected",
            extra={
                "event": "ws_client_connected",
                "client": _remote(connection),
                "connections": count,
            },
        )
        self._notify_listener(count)

    def on_close(self, connection) -> None:
        self._remove(connection, "ws_client_disconnected")

    def on_error(self, connection, error: Exception) -> None:
        HUB_LOGGER.warning(
            "WebSocket session error",
            extra={
                "event": "ws_error",
                "client": _remote(connection),
                "error_type": type(error).__name__,
                "error": str(error),
            },
        )
        self._remove(connection, "ws_client_dropped")

    def _remove(self, connection, event: str) -> None:
        with self._connections_lock:
            if connection not in self._connections:
                return
            self._connections.discard(connection)
            count = len(self._connections)
        HUB_LOGGER.info(
            "WebSocket client removed",
            extra={"event": event, "client": _remote(connection), "connections": count},
        )
        self._notify_listener(count)

    def _notify_listener(self, count: int) -> None:
        listener = self._listener
        if listener is None:
            return
        try:
            listener(count)
        except Exception:  # pylint: disable=broad-except
            HUB_LOGGER.error(
                "Connections listener failed",
                extra={"event": "ws_listener_error", "connections": count},
                exc_info=True,
            )

    def broadcast_reload(self, file_name: str) -> int:
        """Send a reload frame to every open session; return how many received it."""
        message = reload_message(file_name, self.css_hot_swap)
        with self._connections_lock:
            sessions = list(self._connections)

        failed = [session for session in sessions if not is_open(session)]
        candidates = [session for session in sessions if is_open(session)]
        delivered = 0
        if candidates:
            pool = _session_pool(len(candidates), "hot-reloader-ws-send")
            futures = {
                pool.submit(session.send, message): session for session in candidates
            }
            done, not_done = wait(futures, timeout=self.send_timeout)
            pool.shutdown(wait=False)
            for future in done:
                session = futures[future]
                error = future.exception()
                if error is None:
                    delivered += 1
                    continue
                HUB_LOGGER.debug(
                    "Send failed, dropping session",
                    extra={
                        "event": "ws_send_failed",
                        "client": _remote(session),
                        "error_type": type(error).__name__,
                    },
                )
                failed.append(session)
            for future in not_done:
                session = futures[future]
                HUB_LOGGER.warning(
                    "Send timed out, dropping session",
                    extra={"event": "ws_send_timeout", "client": _remote(session)},
                )
                failed.append(session)
                _abort_transport(session)

        if failed:
            with self._connections_lock:
                removed = [s for s in failed if s in self._connections]
                self._connections.difference_update(removed)
                count = len(self._connections)
            if removed:
                self._notify_listener(count)

        HUB_LOGGER.info(
            "Reload broadcast",
            extra={
                "event": "reload_broadcast",
                "file": file_name,
                "payload": message,
                "delivered": delivered,
                "connections": len(sessions) - len(failed),
            },
        )
        return delivered


def _session_pool(count: int, prefix: str) -> ThreadPoolExecutor:
    """One worker per session so a stalled peer never queues another one."""
    return ThreadPoolExecutor(max_workers=max(1, count), thread_name_prefix=prefix)


def _abort_transport(connection) -> None:
    """Shut the socket down so a send blocked on a full buffer returns."""
    sock = getattr(connection, "socket", None)
    if sock is None:
        return
    try:
        sock.shutdown(socket.SHUT_RDWR)
    except OSError:
        pass


def _remote(connection) -> str:
    address = getattr(connection, "remote_address", None)
    if not address:
        return "unknown"
    return f"{address[0]}:{address[1]}"
