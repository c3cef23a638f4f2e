"""Worker logic for handling a single client connection."""

import logging
import socket
from typing import Callable, Optional

from hotreloader.bootstrap.config import SOCKET_TIMEOUT_SECONDS
from hotreloader.domain.correlation_id import (
    CorrelationLoggerAdapter,
    correlation_scope,
)
from hotreloader.domain.response_builders import (
    bad_request_response,
    server_error_response,
)
from hotreloader.pipeline.io import (
    ClientDisconnected,
    ResponseWriter,
    is_disconnect_error,
    receive_request,
)
from hotreloader.pipeline.router import route_request
from hotreloader.transport.context import ServeContext

WORKER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.transport.worker"), {}
)


def _send_server_error(writer: ResponseWriter, error: Exception, client: str) -> None:
    """Attempt a 500 response when nothing has been written yet."""
    if writer.headers_sent:
        return
    try:
        writer.send(server_error_response(str(error)))
    except (ClientDisconnected, OSError) as send_error:
        WORKER_LOGGER.debug(
            "Could not send error response",
            extra={
                "event": "error_response_failed",
                "client": client,
                "error_type": type(send_error).__name__,
            },
        )


def _close_socket(client_socket: socket.socket, client: str) -> None:
    try:
        client_socket.shutdown(socket.SHUT_WR)
    except OSError:
        pass
    try:
        client_socket.close()
    except OSError as error:
        WORKER_LOGGER.debug(
            "Error closing client socket",
            extra={"event": "socket_close_failed", "error_type": type(error).__name__},
        )
    WORKER_LOGGER.debug(
        "Socket closed", extra={"event": "socket_closed", "client": client}
    )


def handle_client(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context_provider: Callable[[], Optional[ServeContext]],
) -> None:
    """Serve exactly one request on the socket, then close it."""
    with correlation_scope():
        _serve_one(client_socket, client_address, context_provider)


def _serve_one(
    client_socket: socket.socket,
    client_address: tuple[str, int],
    context_provider: Callable[[], Optional[ServeContext]],
) -> None:
    client = f"{client_address[0]}:{client_address[1]}"
    writer = ResponseWriter(client_socket)
    try:
        client_socket.settimeout(SOCKET_TIMEOUT_SECONDS)
        try:
            request = receive_request(client_socket)
        except ValueError:
            WORKER_LOGGER.warning(
                "Malformed request received",
                extra={"event": "malformed_request", "client": client},
            )
            writer.send(bad_request_response())
            return

        if request is None:
            WORKER_LOGGER.debug(
                "Client disconnected before sending a request",
                extra={"event": "client_disconnected", "client": client},
            )
            return

        context = context_provider()
        if context is None:
            raise RuntimeError("File server is not bound to a project")

        response = route_request(request, context)
        writer.send(response)
        WORKER_LOGGER.debug(
            "Request processing complete",
            extra={
                "event": "request_complete",
                "client": client,
                "method": request.method,
                "route": request.path,
                "status_code": response.status_code,
                "bytes_out": writer.bytes_out,
            },
        )
    except ClientDisconnected as error:
        WORKER_LOGGER.debug(
            "Client disconnected during response",
            extra={
                "event": "client_disconnected",
                "client": client,
                "error": str(error),
            },
        )
    except (TimeoutError, socket.timeout):
        WORKER_LOGGER.debug(
            "Client connection timed out",
            extra={"event": "client_timeout", "client": client},
        )
    except OSError as error:
        if is_disconnect_error(error):
            WORKER_LOGGER.debug(
                "Client disconnected",
                extra={"event": "client_disconnected", "client": client},
            )
        else:
            WORKER_LOGGER.warning(
                "I/O error serving request",
                extra={
                    "event": "io_error",
                    "client": client,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
            _send_server_error(writer, error, client)
    except Exception as error:  # pylint: disable=broad-except
        WORKER_LOGGER.error(
            "Unexpected error serving request",
            extra={
                "event": "worker_error",
                "client": client,
                "error_type": type(error).__name__,
                "error": str(error),
            },
            exc_info=True,
        )
        _send_server_error(writer, error, client)
    finally:
        _close_socket(client_socket, client)
