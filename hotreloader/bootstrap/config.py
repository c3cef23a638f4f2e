"""Service configuration snapshot and CLI argument parsing."""

import argparse
import dataclasses
import os
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.lower() in {"1", "true", "yes", "on"}


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    return value if value is not None else default


DEFAULT_HOST = _env_str("HOT_RELOADER_HOST", "localhost")
DEFAULT_HTTP_PORT = _env_int("HOT_RELOADER_HTTP_PORT", 4080)
DEFAULT_WEB_SOCKET_PORT = _env_int("HOT_RELOADER_WS_PORT", 3000)
DEFAULT_SEARCH_FREE_PORT = _env_bool("HOT_RELOADER_SEARCH_FREE_PORT", True)
DEFAULT_WATCHED_EXTENSIONS = _env_str("HOT_RELOADER_EXTENSIONS", "html,css,js,less")
DEFAULT_EXCLUDED_FOLDERS = _env_str(
    "HOT_RELOADER_EXCLUDED_FOLDERS", ".idea,.git,node_modules"
)
DEFAULT_REFRESH_DELAY_MS = _env_int("HOT_RELOADER_REFRESH_DELAY_MS", 100)
DEFAULT_AUTO_STOP_ENABLED = _env_bool("HOT_RELOADER_AUTO_STOP", False)
DEFAULT_AUTO_STOP_DELAY_SECONDS = _env_int("HOT_RELOADER_AUTO_STOP_DELAY", 300)
DEFAULT_THREAD_POOL_SIZE = _env_int("HOT_RELOADER_THREAD_POOL_SIZE", 3)
DEFAULT_RECONNECT_ATTEMPTS = _env_int("HOT_RELOADER_RECONNECT_ATTEMPTS", 10)
DEFAULT_INDICATOR_POSITION = _env_str("HOT_RELOADER_INDICATOR_POSITION", "top_right")

HTTP_WORKER_COUNT = 8
RESPONSE_CHUNK_SIZE = 8192
HEADER_DELIMITER = b"\r\n\r\n"
MAX_HEADER_BYTES = 64 * 1024
SOCKET_TIMEOUT_SECONDS = 30
EXECUTOR_SHUTDOWN_GRACE_SECONDS = 5.0
ALLOWED_METHODS = {"GET", "HEAD", "OPTIONS"}

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}

# Fields whose change cannot be applied to a running service.
CRITICAL_FIELDS = (
    "host",
    "http_port",
    "web_socket_port",
    "thread_pool_size",
    "search_free_port",
)


class IndicatorPosition(Enum):
    """Corner of the page where the browser status indicator is drawn."""

    TOP_LEFT = "top_left"
    TOP_RIGHT = "top_right"
    BOTTOM_LEFT = "bottom_left"
    BOTTOM_RIGHT = "bottom_right"

    @classmethod
    def from_value(cls, value: str) -> "IndicatorPosition":
        """Parse a setting value, falling back to the top right corner."""
        normalized = (value or "").strip().lower().replace("-", "_")
        for position in cls:
            if position.value == normalized:
                return position
        return cls.TOP_RIGHT

    @property
    def css(self) -> str:
        """Return the CSS offsets that pin the indicator to this corner."""
        vertical, horizontal = self.value.split("_")
        return f"{vertical}: 10px; {horizontal}: 10px;"


def parse_csv_set(value: Optional[str]) -> frozenset[str]:
    """Split a comma-separated setting into a lowercase, trimmed set."""
    if not value:
        return frozenset()
    return frozenset(
        item.strip().lower() for item in value.split(",") if item.strip()
    )


def normalize_folders(folders: Iterable[str]) -> frozenset[str]:
    """Normalize folder names to slash-separated paths without edge slashes."""
    normalized = set()
    for folder in folders:
        cleaned = folder.replace("\\", "/").strip().strip("/").lower()
        if cleaned:
            normalized.add(cleaned)
    return frozenset(normalized)


def parse_path_list(value: Optional[str]) -> frozenset[str]:
    """Split a comma-separated list of paths, keeping their case."""
    if not value:
        return frozenset()
    paths = (item.strip().replace("\\", "/") for item in value.split(","))
    return frozenset(path.rstrip("/") or "/" for path in paths if path)


@dataclass(frozen=True)
class ServerConfig:
    """Immutable snapshot of the live-reload service settings."""

    # pylint: disable=too-many-instance-attributes

    http_port: int = DEFAULT_HTTP_PORT
    web_socket_port: int = DEFAULT_WEB_SOCKET_PORT
    search_free_port: bool = DEFAULT_SEARCH_FREE_PORT
    watched_extensions: frozenset[str] = parse_csv_set(DEFAULT_WATCHED_EXTENSIONS)
    excluded_folders: frozenset[str] = normalize_folders(
        parse_csv_set(DEFAULT_EXCLUDED_FOLDERS)
    )
    browser_refresh_delay_ms: int = DEFAULT_REFRESH_DELAY_MS
    auto_stop_enabled: bool = DEFAULT_AUTO_STOP_ENABLED
    auto_stop_delay_seconds: float = DEFAULT_AUTO_STOP_DELAY_SECONDS
    thread_pool_size: int = DEFAULT_THREAD_POOL_SIZE
    reconnect_attempts: int = DEFAULT_RECONNECT_ATTEMPTS
    indicator_position: IndicatorPosition = IndicatorPosition.from_value(
        DEFAULT_INDICATOR_POSITION
    )
    enabled: bool = True
    show_indicator: bool = True
    watch_external_changes: bool = False
    external_watch_paths: frozenset[str] = frozenset()
    serve_placeholder_pages: bool = True
    css_hot_swap: bool = True
    host: str = DEFAULT_HOST

    @classmethod
    def from_settings(
        cls,
        watched_extensions: str = DEFAULT_WATCHED_EXTENSIONS,
        excluded_folders: str = DEFAULT_EXCLUDED_FOLDERS,
        external_watch_paths: str = "",
        indicator_position: str = DEFAULT_INDICATOR_POSITION,
        **fields,
    ) -> "ServerConfig":
        """Build a snapshot from raw collaborator settings with CSV fields."""
        return cls(
            watched_extensions=parse_csv_set(watched_extensions),
            excluded_folders=normalize_folders(parse_csv_set(excluded_folders)),
            external_watch_paths=parse_path_list(external_watch_paths),
            indicator_position=IndicatorPosition.from_value(indicator_position),
            **fields,
        )

    def with_changes(self, **fields) -> "ServerConfig":
        """Return a copy of this snapshot with the given fields replaced."""
        return dataclasses.replace(self, **fields)


def changed_fields(old: ServerConfig, new: ServerConfig) -> set[str]:
    """Return the names of the fields that differ between two snapshots."""
    return {
        item.name
        for item in dataclasses.fields(ServerConfig)
        if getattr(old, item.name) != getattr(new, item.name)
    }


def requires_restart(old: ServerConfig, new: ServerConfig) -> bool:
    """Return True when the update touches a field a running service cannot adopt."""
    return any(name in CRITICAL_FIELDS for name in changed_fields(old, new))


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments for the standalone live-reload server."""
    parser = argparse.ArgumentParser(description="Live-reload development server")
    parser.add_argument("--directory", default=".")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--http-port", type=int, default=DEFAULT_HTTP_PORT)
    parser.add_argument("--ws-port", type=int, default=DEFAULT_WEB_SOCKET_PORT)
    parser.add_argument(
        "--search-free-port",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_SEARCH_FREE_PORT,
        help="Scan upward for a free port when the configured one is busy",
    )
    parser.add_argument(
        "--extensions",
        default=DEFAULT_WATCHED_EXTENSIONS,
        help="Comma-separated list of watched file extensions",
    )
    parser.add_argument(
        "--exclude",
        default=DEFAULT_EXCLUDED_FOLDERS,
        help="Comma-separated list of excluded folders",
    )
    parser.add_argument(
        "--watch-path",
        default="",
        help="Comma-separated extra directories to watch, relative to --directory",
    )
    parser.add_argument(
        "--refresh-delay-ms",
        type=int,
        default=DEFAULT_REFRESH_DELAY_MS,
        help="Delay between a file change and the browser reload",
    )
    parser.add_argument(
        "--auto-stop",
        action=argparse.BooleanOptionalAction,
        default=DEFAULT_AUTO_STOP_ENABLED,
        help="Stop the service after a period without browser connections",
    )
    parser.add_argument(
        "--auto-stop-delay",
        type=int,
        default=DEFAULT_AUTO_STOP_DELAY_SECONDS,
        help="Seconds without connections before auto-stop",
    )
    parser.add_argument(
        "--thread-pool-size",
        type=int,
        default=DEFAULT_THREAD_POOL_SIZE,
        help="Workers in the scheduled-task pool",
    )
    parser.add_argument(
        "--reconnect-attempts",
        type=int,
        default=DEFAULT_RECONNECT_ATTEMPTS,
        help="Browser reconnect attempts (0 for unlimited)",
    )
    parser.add_argument(
        "--indicator-position",
        default=DEFAULT_INDICATOR_POSITION,
        choices=[position.value for position in IndicatorPosition],
    )
    parser.add_argument(
        "--open-browser",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Open the served page in the default browser",
    )
    parser.add_argument(
        "--diagnose",
        action="store_true",
        help="Print a diagnostic report and exit",
    )
    default_log_level = os.getenv("HOT_RELOADER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("HOT_RELOADER_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    parser.add_argument(
        "--log-format",
        default=os.getenv("HOT_RELOADER_LOG_FORMAT", "json"),
        choices=["json", "text"],
    )
    return parser.parse_args(argv)


def config_from_args(args: argparse.Namespace) -> ServerConfig:
    """Translate parsed CLI arguments into a configuration snapshot."""
    return ServerConfig.from_settings(
        watched_extensions=args.extensions,
        excluded_folders=args.exclude,
        external_watch_paths=args.watch_path,
        indicator_position=args.indicator_position,
        host=args.host,
        http_port=args.http_port,
        web_socket_port=args.ws_port,
        search_free_port=args.search_free_port,
        browser_refresh_delay_ms=args.refresh_delay_ms,
        auto_stop_enabled=args.auto_stop,
        auto_stop_delay_seconds=args.auto_stop_delay,
        thread_pool_size=args.thread_pool_size,
        reconnect_attempts=args.reconnect_attempts,
        watch_external_changes=bool(args.watch_path),
    )
