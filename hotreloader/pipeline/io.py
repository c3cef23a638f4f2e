"""HTTP input/output operations."""

import errno
import logging
import socket
import urllib.parse
from typing import Optional, Tuple

from hotreloader.bootstrap.config import (
    HEADER_DELIMITER,
    MAX_HEADER_BYTES,
    RESPONSE_CHUNK_SIZE,
)
from hotreloader.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
    set_correlation_id,
)
from hotreloader.domain.http_types import HttpRequest, HttpResponse

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("hot_reloader.io"), {})

DISCONNECT_ERRNOS = {
    errno.EPIPE,
    errno.ECONNRESET,
    errno.ECONNABORTED,
    errno.ESHUTDOWN,
}
DISCONNECT_MESSAGES = ("connection was aborted", "connection reset", "broken pipe")


class ClientDisconnected(Exception):
    """Raised when the client goes away while a response is being written."""


def is_disconnect_error(error: BaseException) -> bool:
    """Return True for I/O errors that mean the peer closed the connection."""
    if isinstance(
        error, (BrokenPipeError, ConnectionResetError, ConnectionAbortedError)
    ):
        return True
    if isinstance(error, OSError) and error.errno in DISCONNECT_ERRNOS:
        return True
    message = str(error).lower()
    return isinstance(error, OSError) and any(
        fragment in message for fragment in DISCONNECT_MESSAGES
    )


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        if ":" in line:
            name, value = line.split(":", 1)
            parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> Tuple[str, str]:
    """Parse the HTTP method and percent-decoded path from the request line."""
    try:
        method, target, _ = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path, errors="strict")
    if not path.startswith("/"):
        raise ValueError("Request target must be an absolute path")
    return method.upper(), path


def receive_request(client_socket: socket.socket) -> Optional[HttpRequest]:
    """Read bytes from the socket until a complete request head is available."""
    buffer = b""
    while HEADER_DELIMITER not in buffer:
        chunk = client_socket.recv(4096)
        if not chunk:
            return None
        buffer += chunk
        if len(buffer) > MAX_HEADER_BYTES:
            raise ValueError("Request head too large")

    header_block, _ = buffer.split(HEADER_DELIMITER, 1)
    header_lines = header_block.decode("iso-8859-1").split("\r\n")
    method, path = parse_request_line(header_lines[0])
    headers = parse_headers(header_lines[1:])

    incoming_correlation_id = headers.get("x-request-id")
    if incoming_correlation_id:
        set_correlation_id(incoming_correlation_id)

    IO_LOGGER.debug("Parsed request", extra={"method": method, "path": path})
    return HttpRequest(method, path, headers)


class ResponseWriter:
    """Writes one response to a client socket in bounded, flushed chunks."""

    def __init__(
        self, client_socket: socket.socket, chunk_size: int = RESPONSE_CHUNK_SIZE
    ) -> None:
        self._socket = client_socket
        self._chunk_size = chunk_size
        self.headers_sent = False
        self.bytes_out = 0

    def _send(self, data: bytes) -> None:
        try:
            self._socket.sendall(data)
        except OSError as error:
            if is_disconnect_error(error):
                raise ClientDisconnected(str(error)) from error
            raise
        self.bytes_out += len(data)

    def send(self, response: HttpResponse) -> None:
        """Serialize the head, then stream the body chunk by chunk."""
        headers = dict(response.headers)
        correlation_id = get_correlation_id()
        if correlation_id:
            headers["X-Request-ID"] = correlation_id
        headers["Content-Length"] = str(len(response.body))
        headers["Connection"] = "close"

        header_lines = [response.status_line]
        header_lines.extend(f"{name}: {value}" for name, value in headers.items())
        header_block = "\r\n".join(header_lines).encode("latin-1") + b"\r\n\r\n"

        self.headers_sent = True
        self._send(header_block)
        if response.send_body:
            body = memoryview(response.body)
            for offset in range(0, len(body), self._chunk_size):
                self._send(body[offset : offset + self._chunk_size])

        IO_LOGGER.debug(
            "Sent response",
            extra={"status_code": response.status_code, "bytes_out": self.bytes_out},
        )
