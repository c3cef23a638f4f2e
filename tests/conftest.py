"""Shared pytest fixtures for integration and unit tests."""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Generator, TypedDict

import pytest

from hotreloader.bootstrap.config import ServerConfig
from tests.utils.http import reserve_port, wait_for_port

if TYPE_CHECKING:
    from _pytest.tmpdir import TempPathFactory

PROJECT_ROOT = Path(__file__).resolve().parent.parent
SERVER_ENTRYPOINT = PROJECT_ROOT / "main.py"

INDEX_HTML = """<!DOCTYPE html>
<html>
<head>
    <title>Fixture</title>
    <link rel="stylesheet" href="app.css">
</head>
<body>
    <h1>Hello</h1>
</body>
</html>
"""


class ServerProcessInfo(TypedDict):
    """Metadata describing a running server fixture instance."""

    base_url: str
    host: str
    port: int
    ws_port: int
    directory: Path
    process: subprocess.Popen[str]
    log_file: Path | None


def populate_project(directory: Path) -> Path:
    """Write a minimal static site into directory and return it."""
    (directory / "index.html").write_text(INDEX_HTML, encoding="utf-8")
    (directory / "app.css").write_text("h1 { color: red; }\n", encoding="utf-8")
    (directory / "app.js").write_text("console.log('hi');\n", encoding="utf-8")
    return directory


def _launch_server(
    host: str,
    port: int,
    ws_port: int,
    directory: Path,
    extra_args: list[str] | None = None,
    log_file: Path | None = None,
) -> Generator[ServerProcessInfo, None, None]:
    args = [
        sys.executable,
        str(SERVER_ENTRYPOINT),
        "--directory",
        str(directory),
        "--host",
        host,
        "--http-port",
        str(port),
        "--ws-port",
        str(ws_port),
        "--no-search-free-port",
    ]
    if log_file:
        args.extend(["--log-destination", str(log_file)])
    if extra_args:
        args.extend(extra_args)

    with subprocess.Popen(
        args,
        cwd=PROJECT_ROOT,
        stdout=subprocess.PIPE,
        stderr=subprocess.PIPE,
        text=True,
    ) as process:
        try:
            wait_for_port(host, port)
        except Exception:
            # If startup failed, print stdout/stderr to help debug
            process.terminate()
            stdout, stderr = process.communicate(timeout=5)
            print(f"\nServer stdout:\n{stdout}")
            print(f"\nServer stderr:\n{stderr}")
            raise

        yield {
            "base_url": f"http://{host}:{port}",
            "host": host,
            "port": port,
            "ws_port": ws_port,
            "directory": directory,
            "process": process,
            "log_file": log_file,
        }

        process.terminate()
        try:
            process.wait(timeout=10)
        except subprocess.TimeoutExpired:
            process.kill()


@pytest.fixture(scope="session")
def project_root() -> Path:
    """Expose the repository root path to tests."""

    return PROJECT_ROOT


@pytest.fixture(name="site_dir")
def _site_dir(tmp_path: Path) -> Path:
    """Provide a temporary project directory with a few static files."""

    return populate_project(tmp_path)


@pytest.fixture(name="server_process")
def _server_process(
    tmp_path_factory: "TempPathFactory",
) -> Generator[ServerProcessInfo, None, None]:
    """Launch the live-reload server in a background process."""

    host = "127.0.0.1"
    port = reserve_port(host)
    ws_port = reserve_port(host)
    directory = populate_project(tmp_path_factory.mktemp("site"))
    log_file = tmp_path_factory.mktemp("logs") / "server.log"
    yield from _launch_server(host, port, ws_port, directory, log_file=log_file)


@pytest.fixture(name="fast_config")
def _fast_config() -> ServerConfig:
    """Configuration on loopback with free ports and short timers."""

    host = "127.0.0.1"
    return ServerConfig(
        host=host,
        http_port=reserve_port(host),
        web_socket_port=reserve_port(host),
        search_free_port=True,
        browser_refresh_delay_ms=50,
        thread_pool_size=2,
    )
