"""Safe resolution of request paths inside the served project root."""

from pathlib import Path


class PathTraversalRejected(Exception):
    """Raised when a requested path could escape the project root."""


def split_request_path(user_path: str) -> list[str]:
    """Split a decoded request path into segments, rejecting parent references."""
    if "\x00" in user_path:
        raise PathTraversalRejected(user_path)

    normalized = user_path.replace("\\", "/")
    parts = [part for part in normalized.split("/") if part and part != "."]
    for part in parts:
        # "..", "..." and the like are never legitimate project segments
        if part.strip(". ") == "":
            raise PathTraversalRejected(user_path)
        if ":" in part:
            raise PathTraversalRejected(user_path)
    return parts


def resolve_project_path(root: Path, user_path: str) -> Path:
    """Resolve a user-supplied path inside the project root, failing closed."""
    parts = split_request_path(user_path)
    project_root = root.resolve()
    target = project_root.joinpath(*parts).resolve()
    if not (target == project_root or project_root in target.parents):
        raise PathTraversalRejected(user_path)
    return target
