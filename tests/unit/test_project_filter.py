"""Unit tests for project membership, extension and exclusion rules."""

import logging
from pathlib import Path

import pytest

from hotreloader.watch.project_filter import ProjectFilter, is_excluded, relative_to_any

ROOT = Path("/work/site")


@pytest.fixture(name="project_filter")
def project_filter_fixture():
    """Default web extensions with the usual excluded folders."""
    return ProjectFilter({"html", "css", "js"}, {"node_modules", ".git", "build/out"})


@pytest.mark.parametrize(
    "relative,expected",
    [
        ("node_modules/lib/index.js", True),
        ("packages/a/node_modules/x.js", True),
        ("NODE_MODULES/x.js", True),
        ("node_modules", True),
        ("build/out/app.js", True),
        ("src/build/out/app.js", True),
        ("my_node_modules/x.js", False),
        ("build/output/app.js", False),
        ("src/app.js", False),
    ],
)
def test_is_excluded(relative, expected):
    """Excluded folders match whole segments anywhere in the relative path."""
    assert is_excluded(relative, {"node_modules", "build/out"}) is expected


def test_relative_to_any_picks_containing_root():
    """The first containing root determines the relative path."""
    roots = [Path("/other"), ROOT]
    assert relative_to_any(ROOT / "css" / "app.css", roots) == "css/app.css"
    assert relative_to_any(Path("/elsewhere/app.css"), roots) is None


def test_accepts_watched_file(project_filter):
    """A watched file inside the project passes."""
    assert project_filter.accepts(ROOT / "index.html", [ROOT])


def test_extension_matching_is_case_insensitive(project_filter):
    """Upper-case extensions are watched too."""
    assert project_filter.accepts(ROOT / "STYLE.CSS", [ROOT])


@pytest.mark.parametrize(
    "path,running,reason",
    [
        (ROOT / "index.html", False, "service_inactive"),
        (Path("/elsewhere/index.html"), True, "outside_project"),
        (ROOT / "notes.md", True, "extension_not_watched"),
        (ROOT / "node_modules" / "pkg" / "index.js", True, "excluded_folder"),
    ],
)
def test_rejections_are_logged_with_reason(
    project_filter, caplog, path, running, reason
):
    """Each rejected event logs the rule that rejected it."""
    caplog.set_level(logging.DEBUG, logger="hot_reloader.watch.filter")
    assert not project_filter.accepts(path, [ROOT], running=running)
    reasons = [getattr(record, "reason", None) for record in caplog.records]
    assert reasons == [reason]


def test_disabled_filter_rejects_everything(project_filter):
    """A disabled service accepts nothing."""
    project_filter.update({"html"}, set(), enabled=False)
    assert not project_filter.accepts(ROOT / "index.html", [ROOT])


def test_update_swaps_rules(project_filter):
    """Updated rules apply to the next event."""
    project_filter.update({".LESS"}, {"vendor"})
    assert project_filter.watched_extensions == frozenset({"less"})
    assert project_filter.excluded_folders == frozenset({"vendor"})
    assert project_filter.accepts(ROOT / "theme.less", [ROOT])
    assert not project_filter.accepts(ROOT / "index.html", [ROOT])
    assert not project_filter.accepts(ROOT / "vendor" / "a.less", [ROOT])
