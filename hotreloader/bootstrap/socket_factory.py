"""Listening socket creation."""

import logging
import socket
from typing import Optional

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.socket"), {}
)


def create_server_socket(
    host: str, port: int, accept_timeout: Optional[float] = None
) -> socket.socket:
    """Bind a TCP listener, optionally with a timeout so accept loops can poll."""
    server_socket = socket.create_server((host, port))
    if accept_timeout is not None:
        server_socket.settimeout(accept_timeout)
    if SOCKET_LOGGER.logger.isEnabledFor(logging.DEBUG):
        SOCKET_LOGGER.debug(
            "Listener bound",
            extra={"event": "socket_bound", "host": host, "port": port},
        )
    return server_socket
