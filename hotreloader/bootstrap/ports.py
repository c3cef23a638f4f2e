"""TCP port availability probing and free-port search."""

import logging
import os
import socket

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter

PORT_LOGGER = CorrelationLoggerAdapter(logging.getLogger("hot_reloader.ports"), {})

MAX_PORT = 65535


class PortUnavailable(Exception):
    """Raised when a requested port is busy and no replacement can be used."""

    def __init__(self, port: int, message: str = "") -> None:
        super().__init__(message or f"Port {port} is busy")
        self.port = port


class PortExhausted(PortUnavailable):
    """Raised when scanning upward reached the last port without success."""

    def __init__(self, port: int) -> None:
        super().__init__(port, f"No free port found between {port} and {MAX_PORT}")


def is_port_available(port: int, host: str = "localhost") -> bool:
    """Return True when a listener can be bound on host:port right now."""
    if not 0 < port <= MAX_PORT:
        return False
    try:
        with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as probe:
            if os.name != "nt":
                # Match the listener sockets, which tolerate TIME_WAIT leftovers.
                probe.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            probe.bind((host, port))
            return probe.getsockname()[1] == port
    except OSError:
        PORT_LOGGER.debug(
            "Port is not available",
            extra={"event": "port_busy", "host": host, "port": port},
        )
        return False


def find_free_port(start: int, host: str = "localhost") -> int:
    """Scan linearly from start to the last port and return the first free one."""
    for port in range(max(start, 1), MAX_PORT + 1):
        if is_port_available(port, host):
            return port
    raise PortExhausted(start)


def resolve_port(port: int, search_free_port: bool, host: str = "localhost") -> int:
    """Return a usable port, searching upward when allowed."""
    if is_port_available(port, host):
        return port
    if not search_free_port:
        PORT_LOGGER.warning(
            "Configured port is busy",
            extra={"event": "port_unavailable", "host": host, "port": port},
        )
        raise PortUnavailable(port)

    PORT_LOGGER.info(
        "Searching for a free port",
        extra={"event": "port_search_started", "host": host, "requested_port": port},
    )
    found = find_free_port(port, host)
    PORT_LOGGER.info(
        "Found free port",
        extra={
            "event": "port_search_complete",
            "requested_port": port,
            "port": found,
        },
    )
    return found
