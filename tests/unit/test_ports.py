"""Unit tests for port probing and free-port search."""

import socket

import pytest

from hotreloader.bootstrap.ports import (
    MAX_PORT,
    PortExhausted,
    PortUnavailable,
    find_free_port,
    is_port_available,
    resolve_port,
)
from tests.utils.http import reserve_port

HOST = "127.0.0.1"


@pytest.fixture(name="busy_port")
def busy_port_fixture():
    """Hold a listening socket on a port for the duration of a test."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as listener:
        listener.bind((HOST, 0))
        listener.listen(1)
        yield listener.getsockname()[1]


def test_free_port_is_available():
    """An unbound port is reported as available."""
    assert is_port_available(reserve_port(HOST), HOST)


def test_busy_port_is_not_available(busy_port):
    """A port with an active listener is reported busy."""
    assert not is_port_available(busy_port, HOST)


@pytest.mark.parametrize("port", [0, -1, MAX_PORT + 1])
def test_out_of_range_ports_are_rejected(port):
    """Ports outside 1..65535 are never available."""
    assert not is_port_available(port, HOST)


def test_resolve_port_keeps_free_port():
    """A free configured port is used as is."""
    port = reserve_port(HOST)
    assert resolve_port(port, search_free_port=False, host=HOST) == port


def test_resolve_port_raises_without_search(busy_port):
    """A busy port without search fails with PortUnavailable."""
    with pytest.raises(PortUnavailable) as exc_info:
        resolve_port(busy_port, search_free_port=False, host=HOST)
    assert exc_info.value.port == busy_port


def test_resolve_port_searches_upward(busy_port):
    """A busy port with search enabled yields a higher free port."""
    found = resolve_port(busy_port, search_free_port=True, host=HOST)
    assert found > busy_port
    assert is_port_available(found, HOST)


def test_find_free_port_exhausted(monkeypatch):
    """Scanning past the last port raises PortExhausted."""
    monkeypatch.setattr(
        "hotreloader.bootstrap.ports.is_port_available", lambda port, host: False
    )
    with pytest.raises(PortExhausted):
        find_free_port(MAX_PORT - 2, HOST)
