"""Pure HTTP response builders."""

import html
from typing import Optional

from hotreloader.bootstrap.config import NO_CACHE_HEADERS
from hotreloader.domain.http_types import HttpRequest, HttpResponse
from hotreloader.security.cors import apply_cors_headers

PLAIN_TEXT = "text/plain; charset=utf-8"
HTML_TEXT = "text/html; charset=utf-8"

PLACEHOLDER_TEMPLATE = """<!DOCTYPE html>
<html>
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>Hot Reloader - File not found</title>
    <style>
        body {{ font-family: -apple-system, 'Segoe UI', system-ui, sans-serif;
               margin: 0; padding: 40px; background: #f5f5f5; color: #333; }}
        .container {{ max-width: 600px; margin: 0 auto; background: white;
                     padding: 40px; border-radius: 8px;
                     box-shadow: 0 2px 10px rgba(0,0,0,0.1); }}
        h1 {{ color: #e74c3c; margin-top: 0; }}
        .path {{ background: #f8f9fa; padding: 10px; border-radius: 4px;
                font-family: monospace; word-break: break-all; margin: 20px 0; }}
    </style>
</head>
<body>
    <div class="container">
        <h1>Hot Reloader Active</h1>
        <p><strong>File not found:</strong></p>
        <div class="path">{path}</div>
        <p>Live reload is watching for changes. Create the file and this page
        will refresh automatically.</p>
    </div>
</body>
</html>
"""


def _file_headers(content_type: str) -> dict[str, str]:
    headers = {"Content-Type": content_type, **NO_CACHE_HEADERS}
    apply_cors_headers(headers)
    return headers


def _is_head(request: Optional[HttpRequest]) -> bool:
    return request is not None and request.method == "HEAD"


def file_response(
    request: HttpRequest, content: bytes, content_type: str
) -> HttpResponse:
    """Return a 200 response for served file content with caching disabled."""
    return HttpResponse(
        200,
        "OK",
        _file_headers(content_type),
        content,
        send_body=not _is_head(request),
    )


def placeholder_page(requested_path: str) -> str:
    """Return the HTML shown in place of a missing navigational page."""
    return PLACEHOLDER_TEMPLATE.format(path=html.escape(requested_path))


def placeholder_response(request: HttpRequest, document: bytes) -> HttpResponse:
    """Return a 404 carrying an HTML page that still runs the reload client."""
    return HttpResponse(
        404,
        "Not Found",
        _file_headers(HTML_TEXT),
        document,
        send_body=not _is_head(request),
    )


def not_found_response(request: HttpRequest, requested_path: str) -> HttpResponse:
    """Return a plain-text 404 naming the requested path."""
    return HttpResponse(
        404,
        "Not Found",
        _file_headers(PLAIN_TEXT),
        f"File not found: {requested_path}".encode("utf-8"),
        send_body=not _is_head(request),
    )


def server_error_response(message: str) -> HttpResponse:
    """Return a 500 response with a plain-text error description."""
    return HttpResponse(
        500,
        "Internal Server Error",
        _file_headers(PLAIN_TEXT),
        f"Server error: {message}".encode("utf-8"),
    )


def bad_request_response() -> HttpResponse:
    """Produce a 400 response for unparseable requests."""
    headers = {"Content-Type": PLAIN_TEXT}
    return HttpResponse(400, "Bad Request", headers, b"Bad request")


def method_not_allowed_response(allowed_methods) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    headers = {"Allow": ", ".join(sorted(allowed_methods)), "Content-Type": PLAIN_TEXT}
    apply_cors_headers(headers)
    return HttpResponse(405, "Method Not Allowed", headers, b"Method not allowed")
