"""End-to-end tests: file events reaching browsers over WebSocket."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Generator

import pytest
import requests
from websockets.exceptions import ConnectionClosed
from websockets.sync.client import ClientConnection, connect

from hotreloader.app import HotReloadApplication
from hotreloader.bootstrap.config import ServerConfig
from hotreloader.lifecycle.state import ServerState
from hotreloader.watch.events import ChangeKind, FileChangeEvent
from tests.utils.http import wait_until

pytestmark = pytest.mark.integration


@pytest.fixture(name="app")
def _app(fast_config: ServerConfig) -> Generator[HotReloadApplication, None, None]:
    """Application with the real WebSocket hub."""

    application = HotReloadApplication(fast_config)
    yield application
    application.shutdown()


def _connect(app: HotReloadApplication) -> ClientConnection:
    port = app.config.web_socket_port
    expected = 1 + _count(app)
    client = connect(f"ws://127.0.0.1:{port}", open_timeout=5)
    assert wait_until(lambda: _count(app) >= expected)
    return client


def _count(app: HotReloadApplication) -> int:
    return app.orchestrator.get_active_connections_count()


def _receive(client: ClientConnection, timeout: float = 5.0) -> dict:
    return json.loads(client.recv(timeout=timeout))


def _drain(client: ClientConnection, quiet: float = 0.5) -> list:
    frames = []
    while True:
        try:
            frames.append(_receive(client, timeout=quiet))
        except TimeoutError:
            return frames


def test_page_points_at_running_hub(app: HotReloadApplication, site_dir: Path) -> None:
    """The injected script targets the port the hub listens on."""

    url = app.serve(site_dir)
    page = requests.get(url, timeout=5).text
    assert f"ws://localhost:{app.config.web_socket_port}" in page
    assert app.orchestrator.hub.is_running()


def test_stylesheet_change_sends_css_reload(
    app: HotReloadApplication, site_dir: Path
) -> None:
    """A stylesheet change reaches every browser as a css-reload frame."""

    app.serve(site_dir)
    first = _connect(app)
    second = _connect(app)
    try:
        app.event_bus.publish(FileChangeEvent(site_dir / "app.css"))
        assert _receive(first) == {"type": "css-reload", "file": "app.css"}
        assert _receive(second) == {"type": "css-reload", "file": "app.css"}
    finally:
        first.close()
        second.close()


def test_burst_of_changes_is_coalesced(
    app: HotReloadApplication, site_dir: Path
) -> None:
    """Rapid repeated events for one file are coalesced."""

    app.serve(site_dir)
    client = _connect(app)
    try:
        for _ in range(10):
            app.event_bus.publish(FileChangeEvent(site_dir / "index.html"))
        expected = {"type": "reload", "file": "index.html"}
        assert _receive(client) == expected
        # Each 100ms bucket the burst spans may add one frame.
        extra = _drain(client)
        assert all(frame == expected for frame in extra)
        assert len(extra) < 9
    finally:
        client.close()


def test_excluded_and_deleted_files_do_not_reload(
    app: HotReloadApplication, site_dir: Path
) -> None:
    """Excluded folders and deletions never reach the browser."""

    app.serve(site_dir)
    client = _connect(app)
    try:
        excluded = site_dir / "node_modules" / "lib.js"
        app.event_bus.publish(FileChangeEvent(excluded))
        app.event_bus.publish(
            FileChangeEvent(site_dir / "app.js", ChangeKind.DELETED)
        )
        with pytest.raises(TimeoutError):
            client.recv(timeout=0.5)
    finally:
        client.close()


def test_disconnect_is_tracked(app: HotReloadApplication, site_dir: Path) -> None:
    """Closing the browser connection updates the count and timestamp."""

    app.serve(site_dir)
    client = _connect(app)
    client.close()
    assert wait_until(lambda: _count(app) == 0)
    assert app.orchestrator.get_last_disconnect_timestamp() is not None


def test_auto_stop_after_last_disconnect(
    fast_config: ServerConfig, site_dir: Path
) -> None:
    """The service stops itself once idle and releases the file server."""

    config = fast_config.with_changes(
        auto_stop_enabled=True, auto_stop_delay_seconds=0.3
    )
    app = HotReloadApplication(config)
    try:
        app.serve(site_dir)
        client = _connect(app)
        client.close()
        assert wait_until(lambda: app.orchestrator.state is ServerState.STOPPED)
        assert wait_until(lambda: not app.content_server.is_running())
    finally:
        app.shutdown()


def test_stop_closes_browser_sessions(
    app: HotReloadApplication, site_dir: Path
) -> None:
    """Stopping the service closes open sessions with going-away."""

    app.serve(site_dir)
    client = _connect(app)
    app.orchestrator.stop()
    with pytest.raises(ConnectionClosed):
        client.recv(timeout=5)
    assert client.protocol.close_code == 1001


def test_repeated_serve_keeps_browser_sessions(
    app: HotReloadApplication, site_dir: Path
) -> None:
    """Serving the same project again leaves open sessions connected."""

    url = app.serve(site_dir)
    client = _connect(app)
    try:
        assert app.serve(site_dir) == url
        assert _count(app) == 1
        app.event_bus.publish(FileChangeEvent(site_dir / "app.js"))
        assert _receive(client) == {"type": "reload", "file": "app.js"}
    finally:
        client.close()
