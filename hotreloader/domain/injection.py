"""Rendering and injection of the live-reload client script into HTML."""

import logging
import random
import re
import time
from dataclasses import dataclass
from pathlib import Path

from hotreloader.bootstrap.config import IndicatorPosition, ServerConfig
from hotreloader.domain.correlation_id import CorrelationLoggerAdapter

INJECTION_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.injection"), {}
)

STATIC_DIR = Path(__file__).resolve().parent.parent / "static"
SCRIPT_TEMPLATE_PATH = STATIC_DIR / "hotreload.js"

FALLBACK_SCRIPT = (
    "console.log('Hot Reloader fallback script');\n"
    "console.error('Failed to load main hot reload script');"
)

_HEAD_CLOSE = re.compile(r"</head>", re.IGNORECASE)
_BODY_CLOSE = re.compile(r"</body>", re.IGNORECASE)

_template_cache: dict[Path, str] = {}


@dataclass(frozen=True)
class ClientScriptOptions:
    """Values substituted into the browser client template."""

    web_socket_port: int
    reconnect_attempts: int = 10
    indicator_position: IndicatorPosition = IndicatorPosition.TOP_RIGHT
    show_indicator: bool = True

    @classmethod
    def from_config(cls, config: ServerConfig) -> "ClientScriptOptions":
        """Derive client options from a service configuration snapshot."""
        return cls(
            web_socket_port=config.web_socket_port,
            reconnect_attempts=config.reconnect_attempts,
            indicator_position=config.indicator_position,
            show_indicator=config.show_indicator,
        )


def load_script_template(path: Path = SCRIPT_TEMPLATE_PATH) -> str:
    """Return the client template, falling back to a stub when it is unreadable."""
    cached = _template_cache.get(path)
    if cached is not None:
        return cached
    try:
        template = path.read_text(encoding="utf-8")
    except OSError as error:
        INJECTION_LOGGER.error(
            "Failed to load client script template",
            extra={
                "event": "script_template_missing",
                "path": path.as_posix(),
                "error_type": type(error).__name__,
            },
        )
        return FALLBACK_SCRIPT
    _template_cache[path] = template
    return template


def _file_id() -> str:
    return f"hr_{int(time.time() * 1000)}_{random.randint(0, 9999)}"


def render_client_script(
    options: ClientScriptOptions, template: str | None = None
) -> str:
    """Return the complete <script> block for the given options."""
    source = template if template is not None else load_script_template()
    replacements = {
        "{{webSocketPort}}": str(options.web_socket_port),
        "{{maxReconnectAttempts}}": str(max(0, options.reconnect_attempts)),
        "{{positionStyles}}": options.indicator_position.css,
        "{{showIndicator}}": "true" if options.show_indicator else "false",
        "{{fileId}}": _file_id(),
    }
    for placeholder, value in replacements.items():
        source = source.replace(placeholder, value)
    return f"<script>\n{source}\n</script>"


def inject_script(html: str, script_block: str) -> str:
    """Insert the script before </head>, else before </body>, else at the end."""
    for pattern in (_HEAD_CLOSE, _BODY_CLOSE):
        match = pattern.search(html)
        if match is not None:
            position = match.start()
            return f"{html[:position]}{script_block}\n{html[position:]}"
    return f"{html}\n{script_block}"


def inject_into_document(content: bytes, script_block: str) -> bytes:
    """Inject the script into raw UTF-8 HTML, preserving undecodable bytes."""
    html = content.decode("utf-8", errors="surrogateescape")
    return inject_script(html, script_block).encode("utf-8", errors="surrogateescape")
