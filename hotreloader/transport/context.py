"""Context object shared across worker threads."""

from dataclasses import dataclass
from pathlib import Path

from hotreloader.domain.injection import ClientScriptOptions


@dataclass(frozen=True)
class ServeContext:
    """Dependencies a request worker needs; replaced as a whole on reconfiguration."""

    project_root: Path
    client_options: ClientScriptOptions
    serve_placeholder_pages: bool = True
