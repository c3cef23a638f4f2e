"""Static extension to MIME type table for served project files."""

from pathlib import PurePath

DEFAULT_MIME_TYPE = "application/octet-stream"

MIME_TYPES = {
    "html": "text/html; charset=utf-8",
    "htm": "text/html; charset=utf-8",
    "css": "text/css; charset=utf-8",
    "js": "application/javascript; charset=utf-8",
    "mjs": "application/javascript; charset=utf-8",
    "json": "application/json; charset=utf-8",
    "map": "application/json; charset=utf-8",
    "png": "image/png",
    "jpg": "image/jpeg",
    "jpeg": "image/jpeg",
    "gif": "image/gif",
    "svg": "image/svg+xml",
    "ico": "image/x-icon",
    "webp": "image/webp",
    "woff": "font/woff",
    "woff2": "font/woff2",
    "ttf": "font/ttf",
    "otf": "font/otf",
    "eot": "application/vnd.ms-fontobject",
    "xml": "application/xml",
    "txt": "text/plain; charset=utf-8",
}


def file_extension(name: str) -> str:
    """Return the lowercase extension of a file name without the dot."""
    suffix = PurePath(name).suffix
    return suffix[1:].lower() if suffix else ""


def mime_type_for(name: str) -> str:
    """Return the Content-Type for a file name."""
    return MIME_TYPES.get(file_extension(name), DEFAULT_MIME_TYPE)


def is_html(name: str) -> bool:
    """Return True when the file name has an .html extension."""
    return file_extension(name) == "html"
