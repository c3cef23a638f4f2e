"""Project file serving with client script injection."""

import logging
from pathlib import Path

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.domain.http_types import HttpRequest, HttpResponse
from hotreloader.domain.injection import inject_into_document, render_client_script
from hotreloader.domain.mime import is_html, mime_type_for
from hotreloader.domain.response_builders import (
    file_response,
    not_found_response,
    placeholder_page,
    placeholder_response,
)
from hotreloader.domain.sandbox import PathTraversalRejected, resolve_project_path
from hotreloader.transport.context import ServeContext

FILE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.handlers.file"), {}
)


def is_navigation_request(requested_path: str) -> bool:
    """Return True for requests a browser makes when opening a page."""
    return requested_path == "/" or requested_path.lower().endswith(".html")


def _missing_file_response(
    request: HttpRequest, requested_path: str, context: ServeContext
) -> HttpResponse:
    if context.serve_placeholder_pages and is_navigation_request(requested_path):
        FILE_LOGGER.warning(
            "HTML file not found, serving placeholder page",
            extra={"event": "placeholder_served", "path": requested_path},
        )
        script = render_client_script(context.client_options)
        document = inject_into_document(
            placeholder_page(requested_path).encode("utf-8"), script
        )
        return placeholder_response(request, document)

    FILE_LOGGER.warning(
        "File not found",
        extra={"event": "file_not_found", "path": requested_path},
    )
    return not_found_response(request, requested_path)


def read_served_content(resolved_path: Path, context: ServeContext) -> bytes:
    """Read a project file, injecting the client script into HTML documents."""
    content = resolved_path.read_bytes()
    if is_html(resolved_path.name):
        script = render_client_script(context.client_options)
        content = inject_into_document(content, script)
    return content


def serve_project_file(
    request: HttpRequest, requested_path: str, context: ServeContext
) -> HttpResponse:
    """Serve a file from the project root, failing closed on suspicious paths."""
    try:
        resolved_path = resolve_project_path(context.project_root, requested_path)
    except PathTraversalRejected:
        FILE_LOGGER.warning(
            "Blocked suspicious path",
            extra={
                "event": "path_rejected",
                "path": requested_path,
                "method": request.method,
            },
        )
        return not_found_response(request, requested_path)

    if not resolved_path.is_file():
        return _missing_file_response(request, requested_path, context)

    if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
        FILE_LOGGER.debug(
            "Serving file",
            extra={"event": "file_read_started", "path": resolved_path.as_posix()},
        )
    content = read_served_content(resolved_path, context)
    FILE_LOGGER.info(
        "File served",
        extra={
            "event": "file_served",
            "path": requested_path,
            "method": request.method,
            "bytes_out": len(content),
        },
    )
    return file_response(request, content, mime_type_for(resolved_path.name))
