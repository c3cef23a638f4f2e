"""Request routing logic."""

import logging

from hotreloader.bootstrap.config import ALLOWED_METHODS
from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.domain.http_types import HttpRequest, HttpResponse
from hotreloader.handlers.file_handler import serve_project_file
from hotreloader.pipeline.validation import validate_request
from hotreloader.security.cors import preflight_response
from hotreloader.transport.context import ServeContext

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.pipeline.router"), {}
)

INDEX_DOCUMENT = "/index.html"


def route_request(request: HttpRequest, context: ServeContext) -> HttpResponse:
    """Route the request to the appropriate handler and return a response."""
    if request.method == "OPTIONS":
        if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
            ROUTER_LOGGER.debug(
                "Route matched", extra={"event": "route_matched", "route": "OPTIONS"}
            )
        return preflight_response(request)

    validation_response = validate_request(request, ALLOWED_METHODS)
    if validation_response is not None:
        ROUTER_LOGGER.info(
            "Unsupported method",
            extra={
                "event": "method_rejected",
                "method": request.method,
                "route": request.path,
            },
        )
        return validation_response

    requested_path = INDEX_DOCUMENT if request.path == "/" else request.path
    if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ROUTER_LOGGER.debug(
            "Route matched",
            extra={"event": "route_matched", "route": requested_path},
        )
    return serve_project_file(request, requested_path, context)
