"""Connection acceptance loop feeding a bounded worker pool."""

import logging
import socket
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.transport.context import ServeContext
from hotreloader.transport.worker import handle_client

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.transport.accept"), {}
)


def _close_if_cancelled(client_socket: socket.socket) -> Callable[[Future], None]:
    def _callback(future: Future) -> None:
        if future.cancelled():
            try:
                client_socket.close()
            except OSError:
                pass

    return _callback


def run_accept_loop(
    server_socket: socket.socket,
    executor: ThreadPoolExecutor,
    stop_event: threading.Event,
    context_provider: Callable[[], Optional[ServeContext]],
) -> None:
    """Accept connections until stopped and hand each one to the pool."""
    try:
        while not stop_event.is_set():
            try:
                client_socket, client_address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError as error:
                if stop_event.is_set():
                    break
                ACCEPT_LOGGER.error(
                    "Socket accept failed",
                    extra={"event": "accept_error", "error_type": type(error).__name__},
                )
                continue

            if ACCEPT_LOGGER.logger.isEnabledFor(logging.DEBUG):
                ACCEPT_LOGGER.debug(
                    "Client connection accepted",
                    extra={
                        "event": "client_accepted",
                        "client": f"{client_address[0]}:{client_address[1]}",
                    },
                )
            try:
                future = executor.submit(
                    handle_client, client_socket, client_address, context_provider
                )
            except RuntimeError:
                # Pool already shut down by stop().
                client_socket.close()
                break
            future.add_done_callback(_close_if_cancelled(client_socket))
    finally:
        try:
            server_socket.close()
        except OSError:
            pass
        ACCEPT_LOGGER.info(
            "Accept loop finished", extra={"event": "accept_loop_stopped"}
        )
