"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass, field


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    path: str
    headers: dict[str, str]
    body: bytes = b""


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_code: int
    reason: str
    headers: dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    send_body: bool = True

    @property
    def status_line(self) -> str:
        """Return the HTTP/1.1 status line for this response."""
        return f"HTTP/1.1 {self.status_code} {self.reason}"
