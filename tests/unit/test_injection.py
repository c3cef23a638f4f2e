"""Unit tests for client script rendering and HTML injection."""

from pathlib import Path

from hotreloader.bootstrap.config import IndicatorPosition, ServerConfig
from hotreloader.domain.injection import (
    FALLBACK_SCRIPT,
    ClientScriptOptions,
    inject_into_document,
    inject_script,
    load_script_template,
    render_client_script,
)

SCRIPT = "<script>\nreload();\n</script>"


def test_injects_before_head_close():
    """The block lands right before </head> and nothing else changes."""
    html = "<html><head><title>x</title></head><body></body></html>"
    injected = inject_script(html, SCRIPT)
    assert injected == (
        "<html><head><title>x</title>" + SCRIPT + "\n</head><body></body></html>"
    )


def test_head_match_is_case_insensitive():
    """Upper-case closing tags are found too."""
    injected = inject_script("<HTML><HEAD></HEAD><BODY></BODY></HTML>", SCRIPT)
    assert injected.index(SCRIPT) == len("<HTML><HEAD>")


def test_falls_back_to_body_close():
    """Without </head> the script goes before </body>."""
    injected = inject_script("<body><p>hi</p></BODY>", SCRIPT)
    assert injected == "<body><p>hi</p>" + SCRIPT + "\n</BODY>"


def test_appends_when_no_closing_tags():
    """Fragments get the script appended."""
    assert inject_script("<p>fragment</p>", SCRIPT) == "<p>fragment</p>\n" + SCRIPT


def test_only_first_head_close_is_used():
    """A second </head> in the document is left untouched."""
    injected = inject_script("<head></head><pre></head></pre>", SCRIPT)
    assert injected.count(SCRIPT) == 1
    assert injected.startswith("<head>" + SCRIPT)


def test_document_bytes_are_preserved_around_insertion():
    """Removing the inserted block restores the original bytes exactly."""
    original = "<html><head>\u00e9\u4e2d</head><body>\r\n</body></html>".encode("utf-8")
    original += b"\xff"
    injected = inject_into_document(original, SCRIPT)
    assert injected.replace((SCRIPT + "\n").encode("utf-8"), b"") == original


def test_render_substitutes_every_placeholder():
    """Rendered scripts carry the configured values and no raw placeholders."""
    options = ClientScriptOptions(
        web_socket_port=4081,
        reconnect_attempts=3,
        indicator_position=IndicatorPosition.BOTTOM_LEFT,
        show_indicator=False,
    )
    block = render_client_script(options)
    assert block.startswith("<script>\n")
    assert block.endswith("\n</script>")
    assert "ws://localhost:4081" in block
    assert "bottom: 10px; left: 10px;" in block
    assert "{{" not in block


def test_render_with_custom_template():
    """A supplied template is used verbatim apart from substitutions."""
    block = render_client_script(
        ClientScriptOptions(web_socket_port=9000),
        template="port={{webSocketPort}} max={{maxReconnectAttempts}}",
    )
    assert block == "<script>\nport=9000 max=10\n</script>"


def test_missing_template_uses_fallback(tmp_path: Path):
    """An unreadable template yields the logging-only fallback script."""
    assert load_script_template(tmp_path / "missing.js") == FALLBACK_SCRIPT


def test_options_from_config():
    """Client options mirror the service configuration."""
    config = ServerConfig(
        web_socket_port=3100,
        reconnect_attempts=0,
        indicator_position=IndicatorPosition.TOP_LEFT,
        show_indicator=False,
    )
    options = ClientScriptOptions.from_config(config)
    assert options == ClientScriptOptions(3100, 0, IndicatorPosition.TOP_LEFT, False)
