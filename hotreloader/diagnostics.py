"""Plain-text diagnostic report describing the live-reload services."""

import os
import platform
import sys
from typing import List

from hotreloader.app import HotReloadApplication

RULE = "=" * 50


def _yes_no(flag: bool) -> str:
    return "Yes" if flag else "No"


def _csv(values) -> str:
    return ", ".join(sorted(values)) or "(none)"


def build_diagnostic_report(app: HotReloadApplication) -> str:
    """Return a multi-section report about status, settings and the host."""
    orchestrator = app.orchestrator
    config = orchestrator.config
    running = orchestrator.is_running()
    server = app.content_server
    lines: List[str] = ["Hot Reloader Diagnostic Information", RULE, ""]

    lines.append("SERVICE STATUS:")
    lines.append(f"  - Reload service: {'Running' if running else 'Stopped'}")
    lines.append(f"  - State: {orchestrator.state.value}")
    serving = f"Serving {server.base_url}" if server.is_running() else "Stopped"
    lines.append(f"  - File server: {serving}")
    connections = orchestrator.get_active_connections_count()
    lines.append(f"  - Active connections: {connections}")
    last_disconnect = orchestrator.get_last_disconnect_timestamp()
    if last_disconnect is not None:
        lines.append(f"  - Last disconnect: {last_disconnect:.0f}")
    lines.append("")

    lines.append("NETWORK SETTINGS:")
    lines.append(f"  - WebSocket port: {config.web_socket_port}")
    lines.append(f"  - HTTP port: {config.http_port}")
    lines.append(f"  - WebSocket URL: ws://localhost:{config.web_socket_port}")
    lines.append(f"  - HTTP URL: http://{config.host}:{config.http_port}")
    lines.append(f"  - Search free port: {_yes_no(config.search_free_port)}")
    lines.append("")

    lines.append("GENERAL SETTINGS:")
    lines.append(f"  - Service enabled: {_yes_no(config.enabled)}")
    lines.append(f"  - Show indicator: {_yes_no(config.show_indicator)}")
    lines.append(f"  - Indicator position: {config.indicator_position.value}")
    lines.append(f"  - Browser refresh delay: {config.browser_refresh_delay_ms} ms")
    lines.append(f"  - Reconnect attempts: {config.reconnect_attempts}")
    lines.append(f"  - Thread pool size: {config.thread_pool_size}")
    auto_stop = "No"
    if config.auto_stop_enabled:
        auto_stop = f"after {config.auto_stop_delay_seconds} s"
    lines.append(f"  - Auto stop: {auto_stop}")
    lines.append("")

    lines.append("FILE TRACKING:")
    lines.append(f"  - Watched extensions: {_csv(config.watched_extensions)}")
    lines.append(f"  - Excluded folders: {_csv(config.excluded_folders)}")
    lines.append(f"  - External watching: {_yes_no(config.watch_external_changes)}")
    watcher = orchestrator.watcher
    if watcher is not None:
        for path in watcher.watched_paths:
            lines.append(f"    * {path}")
    lines.append("")

    lines.append("PROJECT INFORMATION:")
    roots = orchestrator.project_roots()
    if roots:
        for index, root in enumerate(roots, start=1):
            lines.append(f"  {index}. {root}")
    else:
        lines.append("  - No project bound")
    lines.append("")

    lines.append("SYSTEM INFORMATION:")
    implementation = platform.python_implementation()
    lines.append(f"  - Python: {sys.version.split()[0]} ({implementation})")
    lines.append(f"  - OS: {platform.system()} {platform.release()}")
    lines.append(f"  - Processors: {os.cpu_count()}")
    lines.append("")

    tips = []
    if not running:
        tips.append("Reload service is not running; start it with hot-reloader.")
    if not config.watched_extensions:
        tips.append("No file extensions are watched; pass --extensions.")
    if not roots:
        tips.append("No project directory is bound; pass --directory.")
    lines.append("TROUBLESHOOTING TIPS:")
    lines.extend(f"  ! {tip}" for tip in tips or ["No problems detected."])
    return "\n".join(lines) + "\n"
