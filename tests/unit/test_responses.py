"""Unit tests for response builders and the MIME table."""

import pytest

from hotreloader.domain.http_types import HttpRequest
from hotreloader.domain.mime import DEFAULT_MIME_TYPE, is_html, mime_type_for
from hotreloader.domain.response_builders import (
    file_response,
    method_not_allowed_response,
    not_found_response,
    placeholder_page,
    server_error_response,
)


def _request(method: str = "GET") -> HttpRequest:
    return HttpRequest(method, "/index.html", {})


@pytest.mark.parametrize(
    "name, expected",
    [
        ("index.html", "text/html; charset=utf-8"),
        ("STYLE.CSS", "text/css; charset=utf-8"),
        ("app.js", "application/javascript; charset=utf-8"),
        ("data.json", "application/json; charset=utf-8"),
        ("logo.png", "image/png"),
        ("font.woff2", "font/woff2"),
        ("feed.xml", "application/xml"),
        ("readme.txt", "text/plain; charset=utf-8"),
        ("archive.bin", DEFAULT_MIME_TYPE),
        ("Makefile", DEFAULT_MIME_TYPE),
    ],
)
def test_mime_type_for(name, expected):
    """Extensions map case-insensitively with an octet-stream default."""
    assert mime_type_for(name) == expected


def test_is_html_only_matches_html_extension():
    """Only .html documents are injected."""
    assert is_html("page.HTML")
    assert not is_html("page.htm.txt")


def test_file_response_disables_caching_and_allows_any_origin():
    """Served files carry no-cache and permissive CORS headers."""
    response = file_response(_request(), b"body", "text/css; charset=utf-8")
    assert response.status_code == 200
    assert response.headers["Cache-Control"] == "no-cache, no-store, must-revalidate"
    assert response.headers["Pragma"] == "no-cache"
    assert response.headers["Expires"] == "0"
    assert response.headers["Access-Control-Allow-Origin"] == "*"
    assert response.send_body


def test_head_request_suppresses_body():
    """HEAD responses keep the length but send no body."""
    response = file_response(_request("HEAD"), b"12345", "text/plain")
    assert response.body == b"12345"
    assert not response.send_body


def test_not_found_names_requested_path():
    """Plain 404s echo the path in a text body."""
    response = not_found_response(_request(), "/missing.png")
    assert response.status_code == 404
    assert response.body == b"File not found: /missing.png"
    assert response.headers["Content-Type"].startswith("text/plain")


def test_server_error_body():
    """500 bodies follow the 'Server error: <message>' format."""
    response = server_error_response("boom")
    assert response.status_line == "HTTP/1.1 500 Internal Server Error"
    assert response.body == b"Server error: boom"


def test_placeholder_page_escapes_path():
    """The requested path is HTML-escaped in the placeholder."""
    page = placeholder_page("/<script>.html")
    assert "&lt;script&gt;.html" in page
    assert "</head>" in page


def test_method_not_allowed_lists_methods():
    """405 responses advertise the allowlist."""
    response = method_not_allowed_response({"GET", "HEAD", "OPTIONS"})
    assert response.status_code == 405
    assert response.headers["Allow"] == "GET, HEAD, OPTIONS"
