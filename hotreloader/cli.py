"""Standalone command-line entry point for the live-reload server."""

import logging
import signal
import sys
import threading
import webbrowser
from pathlib import Path
from typing import Optional

from hotreloader.app import HotReloadApplication
from hotreloader.bootstrap.config import config_from_args, parse_cli_args
from hotreloader.bootstrap.logging_setup import configure_logging
from hotreloader.bootstrap.ports import PortUnavailable
from hotreloader.diagnostics import build_diagnostic_report
from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.lifecycle.state import ServerState
from hotreloader.watch.directory_watcher import DirectoryWatcher
from hotreloader.watch.events import FileEventBus

CLI_LOGGER = CorrelationLoggerAdapter(logging.getLogger("hot_reloader.cli"), {})

WAIT_INTERVAL_SECONDS = 0.5


def main(argv: Optional[list[str]] = None) -> int:
    """Serve a directory with live reload until interrupted or auto-stopped."""
    args = parse_cli_args(sys.argv[1:] if argv is None else argv)
    configure_logging(args.log_level, args.log_destination, args.log_format == "json")

    project_root = Path(args.directory).resolve()
    if not project_root.is_dir():
        CLI_LOGGER.error(
            "Project directory does not exist",
            extra={"event": "directory_missing", "directory": str(project_root)},
        )
        return 2

    config = config_from_args(args)
    event_bus = FileEventBus()
    app = HotReloadApplication(
        config, event_bus=event_bus, open_project_roots=lambda: [project_root]
    )

    if args.diagnose:
        print(build_diagnostic_report(app), end="")
        return 0

    stop_event = threading.Event()

    def shutdown_handler(signum: int, _frame) -> None:
        CLI_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "signal_received", "signal": signum},
        )
        stop_event.set()

    def on_state(state: ServerState) -> None:
        if state is ServerState.STOPPED:
            stop_event.set()

    signal.signal(signal.SIGTERM, shutdown_handler)
    signal.signal(signal.SIGINT, shutdown_handler)

    CLI_LOGGER.info(
        "Starting live-reload server",
        extra={
            "event": "cli_starting",
            "directory": str(project_root),
            "host": config.host,
            "port": config.http_port,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
        },
    )
    try:
        url = app.serve(project_root)
    except PortUnavailable as error:
        CLI_LOGGER.error(
            "Could not start live-reload server",
            extra={
                "event": "cli_start_failed",
                "port": error.port,
                "error": str(error),
            },
        )
        return 1

    watcher = DirectoryWatcher(event_bus.publish, name="project")
    if not watcher.start([project_root]):
        CLI_LOGGER.warning(
            "Project watcher unavailable, changes will not trigger reloads",
            extra={"event": "project_watcher_failed", "directory": str(project_root)},
        )
    app.orchestrator.add_state_listener(on_state)

    CLI_LOGGER.info(
        "Live-reload server ready",
        extra={
            "event": "cli_ready",
            "base_url": url,
            "port": app.config.http_port,
            "connections": app.orchestrator.get_active_connections_count(),
        },
    )
    if args.open_browser:
        webbrowser.open(url)

    try:
        while not stop_event.wait(WAIT_INTERVAL_SECONDS):
            pass
    finally:
        watcher.stop()
        app.shutdown()
    return 0
