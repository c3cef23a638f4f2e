"""Decides whether a raw file-change event concerns the served project."""

import logging
import os
from pathlib import Path
from typing import Iterable, Optional

from hotreloader.domain.correlation_id import CorrelationLoggerAdapter
from hotreloader.domain.mime import file_extension

FILTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("hot_reloader.watch.filter"), {}
)


def relative_to_any(path: Path, roots: Iterable[Path]) -> Optional[str]:
    """Return path relative to the first root containing it, slash-separated."""
    for root in roots:
        try:
            relative = Path(os.path.abspath(path)).relative_to(os.path.abspath(root))
        except ValueError:
            continue
        return relative.as_posix()
    return None


def is_excluded(relative_path: str, excluded_folders: Iterable[str]) -> bool:
    """Return True when relative_path lies in, or is, an excluded folder."""
    lowered = relative_path.lower()
    padded = f"/{lowered}/"
    for excluded in excluded_folders:
        if lowered == excluded or lowered.startswith(f"{excluded}/"):
            return True
        if f"/{excluded}/" in padded:
            return True
    return False


class ProjectFilter:
    """Keeps events for watched files of the active project outside excluded folders."""

    def __init__(
        self,
        watched_extensions: Iterable[str],
        excluded_folders: Iterable[str],
        enabled: bool = True,
    ) -> None:
        self.update(watched_extensions, excluded_folders, enabled)

    def update(
        self,
        watched_extensions: Iterable[str],
        excluded_folders: Iterable[str],
        enabled: bool = True,
    ) -> None:
        """Swap the rule sets atomically."""
        self._rules = (
            frozenset(ext.lower().lstrip(".") for ext in watched_extensions),
            frozenset(excluded_folders),
            enabled,
        )

    @property
    def watched_extensions(self) -> frozenset:
        return self._rules[0]

    @property
    def excluded_folders(self) -> frozenset:
        return self._rules[1]

    def accepts(
        self, path: Path, project_roots: Iterable[Path], running: bool = True
    ) -> bool:
        """Return True only if every rule holds; rejected events are logged at debug."""
        extensions, excluded, enabled = self._rules
        reason = None
        relative = None
        if not (enabled and running):
            reason = "service_inactive"
        else:
            relative = relative_to_any(path, project_roots)
            if relative is None:
                reason = "outside_project"
            elif file_extension(path.name) not in extensions:
                reason = "extension_not_watched"
            elif is_excluded(relative, excluded):
                reason = "excluded_folder"

        if reason is not None:
            if FILTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
                FILTER_LOGGER.debug(
                    "File event ignored",
                    extra={
                        "event": "file_event_ignored",
                        "path": str(path),
                        "reason": reason,
                    },
                )
            return False
        return True
