"""Request validation utilities for the file server."""

from typing import Optional

from hotreloader.domain.http_types import HttpRequest, HttpResponse
from hotreloader.domain.response_builders import method_not_allowed_response


def enforce_allowed_method(
    request: HttpRequest, allowed_methods: set[str]
) -> Optional[HttpResponse]:
    """Ensure the HTTP method is part of the supported allowlist."""
    if request.method in allowed_methods:
        return None
    return method_not_allowed_response(allowed_methods)


def validate_request(
    request: HttpRequest, allowed_methods: set[str]
) -> Optional[HttpResponse]:
    """Return an error response when the request fails validation checks."""
    return enforce_allowed_method(request, allowed_methods)
