"""Permissive CORS headers for the local development file server."""

from hotreloader.bootstrap.config import ALLOWED_METHODS
from hotreloader.domain.http_types import HttpRequest, HttpResponse

ALLOW_ORIGIN = "*"
ALLOW_METHODS = ", ".join(sorted(ALLOWED_METHODS))
ALLOW_HEADERS = "Content-Type"
PREFLIGHT_MAX_AGE = 86400


def apply_cors_headers(headers: dict[str, str]) -> None:
    """Allow any origin to read served project files."""
    headers["Access-Control-Allow-Origin"] = ALLOW_ORIGIN
    headers["Access-Control-Allow-Methods"] = ALLOW_METHODS
    headers["Access-Control-Allow-Headers"] = ALLOW_HEADERS


def preflight_response(request: HttpRequest) -> HttpResponse:
    """Create a 204 response for CORS preflight and bare OPTIONS requests."""
    headers: dict[str, str] = {}
    apply_cors_headers(headers)
    requested_headers = request.headers.get("access-control-request-headers")
    if requested_headers:
        headers["Access-Control-Allow-Headers"] = requested_headers
    headers["Access-Control-Max-Age"] = str(PREFLIGHT_MAX_AGE)
    return HttpResponse(204, "No Content", headers, b"")
