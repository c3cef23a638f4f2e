"""Unit tests for configuration snapshots and CLI argument parsing."""

import dataclasses

import pytest

from hotreloader.bootstrap.config import (
    IndicatorPosition,
    ServerConfig,
    changed_fields,
    config_from_args,
    normalize_folders,
    parse_cli_args,
    parse_csv_set,
    parse_path_list,
    requires_restart,
)


def test_parse_cli_args_defaults(monkeypatch):
    """Default CLI arguments match the documented service defaults."""
    monkeypatch.delenv("HOT_RELOADER_LOG_LEVEL", raising=False)
    monkeypatch.delenv("HOT_RELOADER_LOG_DESTINATION", raising=False)
    monkeypatch.delenv("HOT_RELOADER_LOG_FORMAT", raising=False)
    args = parse_cli_args([])

    assert args.directory == "."
    assert args.http_port == 4080
    assert args.ws_port == 3000
    assert args.search_free_port is True
    assert args.refresh_delay_ms == 100
    assert args.auto_stop is False
    assert args.auto_stop_delay == 300
    assert args.thread_pool_size == 3
    assert args.reconnect_attempts == 10
    assert args.indicator_position == "top_right"
    assert args.log_level == "INFO"
    assert args.log_destination == "stdout"
    assert args.log_format == "json"
    assert args.diagnose is False


def test_parse_cli_args_overrides():
    """Explicit flags override defaults and booleans accept --no- forms."""
    args = parse_cli_args(
        [
            "--http-port",
            "5000",
            "--ws-port",
            "5001",
            "--no-search-free-port",
            "--auto-stop",
            "--log-level",
            "debug",
        ]
    )
    assert args.http_port == 5000
    assert args.ws_port == 5001
    assert args.search_free_port is False
    assert args.auto_stop is True
    assert args.log_level == "DEBUG"


def test_config_from_args_builds_snapshot():
    """CLI values flow into a normalized configuration snapshot."""
    args = parse_cli_args(
        [
            "--extensions",
            " HTML, Css ,,js",
            "--exclude",
            "Build/,\\dist\\assets",
            "--watch-path",
            "vendor, ../shared/",
            "--indicator-position",
            "bottom_left",
        ]
    )
    config = config_from_args(args)

    assert config.watched_extensions == frozenset({"html", "css", "js"})
    assert config.excluded_folders == frozenset({"build", "dist/assets"})
    assert config.external_watch_paths == frozenset({"vendor", "../shared"})
    assert config.watch_external_changes is True
    assert config.indicator_position is IndicatorPosition.BOTTOM_LEFT


def test_config_from_args_without_watch_paths():
    """External watching stays off when no extra paths are given."""
    config = config_from_args(parse_cli_args([]))
    assert config.watch_external_changes is False
    assert config.external_watch_paths == frozenset()


def test_parse_csv_set_handles_empty_values():
    """Empty and None settings produce an empty set."""
    assert parse_csv_set("") == frozenset()
    assert parse_csv_set(None) == frozenset()
    assert parse_csv_set(" , ,") == frozenset()


def test_normalize_folders_strips_slashes():
    """Folder rules lose surrounding slashes and use forward slashes."""
    assert normalize_folders(["/Node_Modules/", "a\\b", ""]) == frozenset(
        {"node_modules", "a/b"}
    )


def test_parse_path_list_preserves_case():
    """Watch paths keep their case since file systems may be case sensitive."""
    assert parse_path_list("Vendor/Lib/, C:\\Shared") == frozenset(
        {"Vendor/Lib", "C:/Shared"}
    )


@pytest.mark.parametrize(
    "value,expected",
    [
        ("top_left", IndicatorPosition.TOP_LEFT),
        ("BOTTOM-RIGHT", IndicatorPosition.BOTTOM_RIGHT),
        ("", IndicatorPosition.TOP_RIGHT),
        ("middle", IndicatorPosition.TOP_RIGHT),
    ],
)
def test_indicator_position_from_value(value, expected):
    """Unknown indicator positions fall back to the top right corner."""
    assert IndicatorPosition.from_value(value) is expected


def test_indicator_position_css():
    """Each corner renders matching CSS offsets."""
    assert IndicatorPosition.BOTTOM_LEFT.css == "bottom: 10px; left: 10px;"
    assert IndicatorPosition.TOP_RIGHT.css == "top: 10px; right: 10px;"


def test_with_changes_returns_new_snapshot():
    """Snapshots are immutable; with_changes copies."""
    config = ServerConfig()
    updated = config.with_changes(http_port=9999)
    assert updated.http_port == 9999
    assert config.http_port == ServerConfig().http_port
    with pytest.raises(dataclasses.FrozenInstanceError):
        config.http_port = 1  # type: ignore[misc]


def test_changed_fields_and_restart_classification():
    """Only critical fields require a restart."""
    base = ServerConfig()
    hot = base.with_changes(browser_refresh_delay_ms=500, css_hot_swap=False)
    cold = base.with_changes(web_socket_port=base.web_socket_port + 1)

    assert changed_fields(base, hot) == {"browser_refresh_delay_ms", "css_hot_swap"}
    assert not requires_restart(base, hot)
    assert changed_fields(base, cold) == {"web_socket_port"}
    assert requires_restart(base, cold)
    assert changed_fields(base, base) == set()


@pytest.mark.parametrize(
    "field,value",
    [
        ("host", "0.0.0.0"),
        ("thread_pool_size", 9),
        ("search_free_port", False),
    ],
)
def test_other_critical_fields_require_restart(field, value):
    """Host, pool size and port search changes need a restart."""
    base = ServerConfig(search_free_port=True)
    assert requires_restart(base, base.with_changes(**{field: value}))
